"""High-level orchestration for route matching requests."""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Iterable, Sequence

from ...config import settings
from ...data.signal_repository import CatalogSource, load_signals
from ...exceptions import InvalidParameter, InvalidRoute, MatchTimeout
from ...models.domain import GeoPoint, MatchResult
from .grid import SignalGrid
from .matcher import match_route

logger = logging.getLogger(__name__)


def _coerce_point(raw: Any, position: int) -> GeoPoint:
    if isinstance(raw, GeoPoint):
        return raw
    try:
        if isinstance(raw, dict):
            lat = raw.get("lat", raw.get("latitude"))
            lon = raw.get("lng", raw.get("lon", raw.get("longitude")))
        elif isinstance(raw, (list, tuple)) and len(raw) == 2:
            lat, lon = raw
        else:
            lat = getattr(raw, "lat")
            lon = getattr(raw, "lng", None)
            if lon is None:
                lon = getattr(raw, "lon")
        if lat is None or lon is None:
            raise ValueError("missing coordinate")
        return GeoPoint(lat=float(lat), lon=float(lon))
    except (AttributeError, TypeError, ValueError) as exc:
        raise InvalidRoute(f"Route point {position} is malformed: {raw!r}") from exc


def coerce_route(route: Iterable[Any]) -> list[GeoPoint]:
    """Accept GeoPoints, ``{lat, lng}``/``{lat, lon}`` mappings or ``(lat, lon)`` pairs."""

    if route is None or isinstance(route, (str, bytes, dict)):
        raise InvalidRoute("Route must be an ordered sequence of points.")
    points = [_coerce_point(raw, position) for position, raw in enumerate(route)]
    if not points:
        raise InvalidRoute("Route must contain at least one point.")
    return points


def find_matches(
    route: Sequence[Any],
    radius_m: float | None = None,
    max_results: int | None = None,
    *,
    source: CatalogSource | None = None,
    timeout_seconds: float | None = None,
) -> list[MatchResult]:
    """Load the catalog and match it against ``route``.

    Parameters are validated before the catalog is read. Defaults come from
    settings. Raises ``CatalogUnavailable`` rather than returning an empty
    list when the catalog cannot be read.
    """

    radius = settings.match_radius_m if radius_m is None else radius_m
    limit = settings.match_max_results if max_results is None else max_results
    timeout = settings.match_timeout_seconds if timeout_seconds is None else timeout_seconds
    if not math.isfinite(radius) or radius <= 0:
        raise InvalidParameter("radius_m", radius, "corridor radius must be positive")
    if limit < 0:
        raise InvalidParameter("max_results", limit, "use 0 for no limit")
    points = coerce_route(route)

    deadline = time.monotonic() + timeout if timeout and timeout > 0 else None
    catalog = load_signals(source)
    if deadline is not None and time.monotonic() > deadline:
        raise MatchTimeout("Signal matching", timeout)

    grid = SignalGrid(catalog, cell_size_m=settings.grid_cell_size_m or radius)
    try:
        results = match_route(points, catalog, radius, limit, deadline=deadline, grid=grid)
    except MatchTimeout as exc:
        logger.warning(f"Route match over {len(points)} points timed out after {timeout:.2f}s")
        raise MatchTimeout("Signal matching", timeout) from exc
    logger.info(f"Matched {len(results)} of {len(catalog)} signals along a {len(points)}-point route")
    return results


def match_signals(
    route: Sequence[Any],
    radius_m: float | None = None,
    max_results: int | None = None,
    **kwargs: Any,
) -> list[dict[str, float]]:
    """Coordinates of the matched signals in encounter order, ids and distances stripped."""

    return [
        {"lat": result.signal.lat, "lng": result.signal.lon}
        for result in find_matches(route, radius_m, max_results, **kwargs)
    ]
