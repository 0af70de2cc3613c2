"""Domain models for traffic signals, route matches and zones."""

from __future__ import annotations

import math
from dataclasses import dataclass

from ..exceptions import InvalidParameter


@dataclass(frozen=True, slots=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float

    def __post_init__(self) -> None:
        if not isinstance(self.lat, (int, float)) or not math.isfinite(self.lat) or not -90.0 <= self.lat <= 90.0:
            raise InvalidParameter("lat", self.lat, "latitude must be within [-90, 90]")
        if not isinstance(self.lon, (int, float)) or not math.isfinite(self.lon) or not -180.0 <= self.lon <= 180.0:
            raise InvalidParameter("lon", self.lon, "longitude must be within [-180, 180]")


@dataclass(frozen=True, slots=True)
class SignalRecord:
    """One physical traffic signal."""

    id: str
    location: GeoPoint

    @property
    def lat(self) -> float:
        return self.location.lat

    @property
    def lon(self) -> float:
        return self.location.lon

    def sort_key(self) -> tuple[float, float, str]:
        return (self.location.lat, self.location.lon, self.id)


@dataclass(frozen=True, slots=True)
class MatchResult:
    """A signal found inside the corridor of a route."""

    signal: SignalRecord
    route_index: int
    distance_m: float


@dataclass(frozen=True, slots=True)
class Zone:
    """A spatially compact group of signals with a stable 1-based index."""

    index: int
    members: tuple[SignalRecord, ...]
    centroid: GeoPoint

    def __len__(self) -> int:
        return len(self.members)

    @property
    def member_ids(self) -> frozenset[str]:
        return frozenset(member.id for member in self.members)
