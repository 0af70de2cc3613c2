"""Pydantic response models for zone endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class Coordinate(BaseModel):
    lat: float
    lng: float


class ZoneMember(Coordinate):
    id: str


class ZoneSummary(BaseModel):
    index: int = Field(..., ge=1, description="Stable 1-based zone number referenced by registrations.")
    centroid: Coordinate
    member_count: int
    members: list[ZoneMember]
    hull: list[Coordinate] = Field(default_factory=list, description="Outline of the zone members.")
    spread_m: float = Field(..., description="Largest centroid-to-member distance in meters.")


class ZoneListResponse(BaseModel):
    version: int
    built_at: Optional[datetime]
    zone_count: int
    signal_count: int
    zones: list[ZoneSummary]


class ZoneRebuildResponse(BaseModel):
    version: int
    zone_count: int
    signal_count: int
    radius_m: float
