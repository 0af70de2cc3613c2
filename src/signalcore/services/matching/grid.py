"""Uniform lat/lon bucketing of the signal catalog."""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Iterator, Sequence

from ...exceptions import InvalidParameter
from ...models.domain import GeoPoint, SignalRecord
from ..geospatial import EARTH_RADIUS_M

METERS_PER_DEGREE_LAT = EARTH_RADIUS_M * math.pi / 180.0
# Longitude cells are sized at this latitude at most; beyond it a search scans everything.
_MAX_GRID_LATITUDE = 85.0
# Slack between the planar corridor test and great-circle cell bounds.
_SEARCH_PADDING = 1.05


class SignalGrid:
    """Buckets signals into cells of roughly ``cell_size_m`` on each side.

    Cell keys are floored (lat, lon) cell coordinates. The longitude width of
    a cell is fixed for the whole grid and taken at the highest catalog
    latitude, so every cell spans at least ``cell_size_m`` east-west.
    """

    def __init__(self, signals: Sequence[SignalRecord], cell_size_m: float) -> None:
        if cell_size_m <= 0:
            raise InvalidParameter("cell_size_m", cell_size_m, "grid cell size must be positive")
        self.cell_size_m = cell_size_m
        self.signals = tuple(signals)
        self.lat_step = cell_size_m / METERS_PER_DEGREE_LAT

        max_abs_lat = max((abs(signal.lat) for signal in self.signals), default=0.0)
        ref_lat = min(max_abs_lat, _MAX_GRID_LATITUDE)
        self.lon_step = cell_size_m / (METERS_PER_DEGREE_LAT * math.cos(math.radians(ref_lat)))

        buckets: dict[tuple[int, int], list[SignalRecord]] = defaultdict(list)
        for signal in self.signals:
            buckets[self.cell_key(signal.location)].append(signal)
        self._buckets = {key: tuple(items) for key, items in buckets.items()}

    def __len__(self) -> int:
        return len(self.signals)

    @property
    def cell_count(self) -> int:
        return len(self._buckets)

    def cell_key(self, point: GeoPoint) -> tuple[int, int]:
        return (math.floor(point.lat / self.lat_step), math.floor(point.lon / self.lon_step))

    def candidates(self, start: GeoPoint, end: GeoPoint, radius_m: float) -> Iterator[SignalRecord]:
        """Yield every signal that could lie within ``radius_m`` of the segment.

        Walks the occupied buckets instead of the search window when the window
        is larger, and falls back to the full catalog when the expanded box
        reaches a pole or crosses the antimeridian.
        """

        if not self.signals:
            return

        radius_m *= _SEARCH_PADDING
        lat_margin = radius_m / METERS_PER_DEGREE_LAT
        south = min(start.lat, end.lat) - lat_margin
        north = max(start.lat, end.lat) + lat_margin
        widest_lat = max(abs(south), abs(north))
        if widest_lat >= _MAX_GRID_LATITUDE or abs(end.lon - start.lon) > 180.0:
            yield from self.signals
            return

        lon_margin = radius_m / (METERS_PER_DEGREE_LAT * math.cos(math.radians(widest_lat)))
        west = min(start.lon, end.lon) - lon_margin
        east = max(start.lon, end.lon) + lon_margin
        if west < -180.0 or east > 180.0:
            yield from self.signals
            return

        lat_lo, lat_hi = math.floor(south / self.lat_step), math.floor(north / self.lat_step)
        lon_lo, lon_hi = math.floor(west / self.lon_step), math.floor(east / self.lon_step)
        window_cells = (lat_hi - lat_lo + 1) * (lon_hi - lon_lo + 1)
        if window_cells > max(len(self._buckets), 1):
            # cheaper to walk the occupied buckets than the search window
            for (lat_key, lon_key), items in self._buckets.items():
                if lat_lo <= lat_key <= lat_hi and lon_lo <= lon_key <= lon_hi:
                    yield from items
            return

        for lat_key in range(lat_lo, lat_hi + 1):
            for lon_key in range(lon_lo, lon_hi + 1):
                yield from self._buckets.get((lat_key, lon_key), ())
