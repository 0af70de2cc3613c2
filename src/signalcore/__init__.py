"""Traffic-signal corridor matching and patrol zone clustering."""

from .exceptions import (
    CatalogUnavailable,
    InvalidParameter,
    InvalidRoute,
    MatchTimeout,
    SignalCoreError,
    ZoneNotFound,
    ZonesNotReady,
)
from .models.domain import GeoPoint, MatchResult, SignalRecord, Zone

__all__ = [
    "GeoPoint",
    "SignalRecord",
    "MatchResult",
    "Zone",
    "SignalCoreError",
    "InvalidParameter",
    "InvalidRoute",
    "CatalogUnavailable",
    "ZoneNotFound",
    "ZonesNotReady",
    "MatchTimeout",
]
