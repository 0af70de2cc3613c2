"""Pydantic request/response models for signal endpoints."""

from __future__ import annotations

from typing import Optional, Sequence

from pydantic import AliasChoices, BaseModel, Field


class RoutePoint(BaseModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0, validation_alias=AliasChoices("lng", "lon", "longitude"))


class MatchRequest(BaseModel):
    route: Sequence[RoutePoint] = Field(..., description="Planned route in travel order.")
    radius_m: Optional[float] = Field(default=None, description="Corridor radius; defaults to the configured value.")
    max_results: Optional[int] = Field(default=None, ge=0, description="Result cap (0 = unlimited).")


class MatchedSignal(BaseModel):
    lat: float
    lng: float


class SignalModel(BaseModel):
    id: str
    lat: float
    lon: float
