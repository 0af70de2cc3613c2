"""High-level orchestration for zone clustering and lookups."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from ...config import settings
from ...data.signal_repository import CatalogSource, load_signals
from ...exceptions import InvalidParameter, ZonesNotReady
from ...models.domain import Zone
from ...schemas.zones import Coordinate, ZoneListResponse, ZoneMember, ZoneSummary
from ..geospatial import convex_hull, distance_meters
from .clustering import cluster_signals
from .index import ZoneIndex

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ZoneSnapshot:
    """A published zone index with the time and radius it was built with."""

    index: ZoneIndex
    built_at: datetime
    radius_m: float


class ZoneCache:
    """Holds the current zone snapshot and swaps in rebuilt ones whole.

    Rebuilds are serialised; readers never take the lock and always see a
    fully built snapshot (or none before the first successful rebuild).
    """

    def __init__(self, source_factory: Optional[Callable[[], CatalogSource]] = None) -> None:
        self._source_factory = source_factory
        self._lock = threading.Lock()
        self._published: Optional[ZoneSnapshot] = None
        self._version = 0

    @property
    def ready(self) -> bool:
        return self._published is not None

    def snapshot(self) -> ZoneSnapshot:
        published = self._published
        if published is None:
            raise ZonesNotReady()
        return published

    def current(self) -> ZoneIndex:
        return self.snapshot().index

    def refresh(
        self,
        source: CatalogSource | None = None,
        *,
        radius_m: float | None = None,
        max_iterations: int | None = None,
    ) -> ZoneSnapshot:
        """Reload the catalog, re-cluster it and publish the new snapshot.

        On failure the previous snapshot stays published and the error propagates.
        """

        radius = settings.cluster_radius_m if radius_m is None else radius_m
        iterations = settings.cluster_max_iterations if max_iterations is None else max_iterations
        if not radius > 0:
            raise InvalidParameter("radius_m", radius, "zone radius must be positive")
        if iterations < 0:
            raise InvalidParameter("max_iterations", iterations, "iteration cap must be >= 0")
        with self._lock:
            if source is None and self._source_factory is not None:
                source = self._source_factory()
            signals = load_signals(source)
            zones = cluster_signals(signals, radius, iterations)
            index = ZoneIndex.build(zones, version=self._version + 1)
            self._version = index.version
            published = ZoneSnapshot(index=index, built_at=datetime.now(timezone.utc), radius_m=radius)
            self._published = published
        logger.info(f"Published zone index v{index.version}: {len(index)} zones over {len(signals)} signals")
        return published

    def rebuild(self, source: CatalogSource | None = None, **kwargs) -> ZoneIndex:
        return self.refresh(source, **kwargs).index

    def clear(self) -> None:
        with self._lock:
            self._published = None


zone_cache = ZoneCache()


def summarize_zone(zone: Zone) -> ZoneSummary:
    points = [member.location for member in zone.members]
    spread = max((distance_meters(zone.centroid, point) for point in points), default=0.0)
    return ZoneSummary(
        index=zone.index,
        centroid=Coordinate(lat=zone.centroid.lat, lng=zone.centroid.lon),
        member_count=len(zone.members),
        members=[ZoneMember(id=member.id, lat=member.lat, lng=member.lon) for member in zone.members],
        hull=[Coordinate(lat=lat, lng=lon) for lat, lon in convex_hull(points)],
        spread_m=spread,
    )


def rebuild_zones(source: CatalogSource | None = None, **kwargs) -> ZoneSnapshot:
    return zone_cache.refresh(source, **kwargs)


def current_zones() -> list[ZoneSummary]:
    return [summarize_zone(zone) for zone in zone_cache.current()]


def list_zones() -> ZoneListResponse:
    snapshot = zone_cache.snapshot()
    index = snapshot.index
    summaries = [summarize_zone(zone) for zone in index]
    return ZoneListResponse(
        version=index.version,
        built_at=snapshot.built_at,
        zone_count=len(index),
        signal_count=sum(summary.member_count for summary in summaries),
        zones=summaries,
    )


def zone_by_index(index: int) -> Zone:
    return zone_cache.current().lookup(index)


def zone_for_signal(signal_id: str) -> Zone:
    return zone_cache.current().zone_for_signal(signal_id)
