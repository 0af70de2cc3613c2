"""Corridor matching of traffic signals against a routed polyline."""

from __future__ import annotations

import logging
import time
from typing import Sequence

from ...exceptions import InvalidParameter, InvalidRoute, MatchTimeout
from ...models.domain import GeoPoint, MatchResult, SignalRecord
from ..geospatial import point_segment_distance_m
from .grid import SignalGrid

logger = logging.getLogger(__name__)


def _validate_route(route: Sequence[GeoPoint]) -> tuple[GeoPoint, ...]:
    if route is None or isinstance(route, (str, bytes)):
        raise InvalidRoute("Route must be an ordered sequence of points.")
    points = tuple(route)
    if not points:
        raise InvalidRoute("Route must contain at least one point.")
    for position, point in enumerate(points):
        if not isinstance(point, GeoPoint):
            raise InvalidRoute(f"Route point {position} is not a coordinate: {point!r}")
    return points


def _segments(points: tuple[GeoPoint, ...]) -> list[tuple[int, GeoPoint, GeoPoint]]:
    if len(points) == 1:
        return [(0, points[0], points[0])]
    return [(i, points[i], points[i + 1]) for i in range(len(points) - 1)]


def match_route(
    route: Sequence[GeoPoint],
    catalog: Sequence[SignalRecord],
    radius_m: float,
    max_results: int = 0,
    *,
    deadline: float | None = None,
    grid: SignalGrid | None = None,
) -> list[MatchResult]:
    """Return the signals within ``radius_m`` of the route in encounter order.

    Each signal is reported once, at its closest approach. ``route_index`` is
    the route point nearest to that approach. Results are ordered by
    ``route_index`` then distance, and cut to ``max_results`` when it is
    positive. ``deadline`` is a ``time.monotonic()`` value checked before each
    segment; running past it raises ``MatchTimeout``.
    """

    points = _validate_route(route)
    if radius_m is None or not radius_m > 0:
        raise InvalidParameter("radius_m", radius_m, "corridor radius must be positive")
    if max_results is None:
        max_results = 0
    if max_results < 0:
        raise InvalidParameter("max_results", max_results, "use 0 for no limit")

    if grid is None:
        if not catalog:
            return []
        grid = SignalGrid(catalog, cell_size_m=radius_m)
    if not len(grid):
        return []

    best: dict[str, MatchResult] = {}
    for segment_index, start, end in _segments(points):
        if deadline is not None and time.monotonic() > deadline:
            raise MatchTimeout("Signal matching")
        for signal in grid.candidates(start, end, radius_m):
            distance, t = point_segment_distance_m(signal.location, start, end)
            if distance > radius_m:
                continue
            previous = best.get(signal.id)
            if previous is not None and previous.distance_m <= distance:
                continue
            route_index = segment_index if t <= 0.5 else segment_index + 1
            best[signal.id] = MatchResult(signal=signal, route_index=route_index, distance_m=distance)

    results = sorted(best.values(), key=lambda item: (item.route_index, item.distance_m, item.signal.id))
    if max_results:
        results = results[:max_results]
    logger.debug(
        "Matched %d signals along %d route points (radius %.1fm)", len(results), len(points), radius_m
    )
    return results
