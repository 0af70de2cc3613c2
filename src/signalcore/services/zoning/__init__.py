"""Zone clustering and lookup."""

from .clustering import cluster_signals
from .index import ZoneIndex
from .service import ZoneCache, ZoneSnapshot, current_zones, rebuild_zones, zone_by_index, zone_cache

__all__ = [
    "cluster_signals",
    "ZoneIndex",
    "ZoneCache",
    "ZoneSnapshot",
    "zone_cache",
    "rebuild_zones",
    "current_zones",
    "zone_by_index",
]
