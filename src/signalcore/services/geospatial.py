"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Iterable, Sequence

from shapely.geometry import MultiPoint, Polygon

from ..exceptions import InvalidParameter
from ..models.domain import GeoPoint

EARTH_RADIUS_M = 6_371_008.8


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance in meters between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def distance_meters(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in meters."""

    return haversine_m(a.lat, a.lon, b.lat, b.lon)


def bearing_degrees(a: GeoPoint, b: GeoPoint) -> float:
    """Calculate the initial bearing from ``a`` to ``b``."""

    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    delta_lambda = math.radians(b.lon - a.lon)
    y = math.sin(delta_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda)
    bearing = math.degrees(math.atan2(y, x))
    return (bearing + 360) % 360


def wrap_longitude(delta: float) -> float:
    """Fold a longitude or longitude difference in [-360, 360] back into [-180, 180]."""
    if delta > 180.0:
        return delta - 360.0
    if delta < -180.0:
        return delta + 360.0
    return delta


def point_segment_distance_m(point: GeoPoint, start: GeoPoint, end: GeoPoint) -> tuple[float, float]:
    """Distance from ``point`` to the segment ``start``-``end``, clamped to its endpoints.

    The segment and point are projected onto a local equirectangular plane
    centred on the segment, which is accurate for the short legs of a routed
    polyline. Returns ``(distance_m, t)`` where ``t`` in [0, 1] locates the
    closest point along the segment.
    """

    ref_lat = math.radians((start.lat + end.lat) / 2.0)
    kx = EARTH_RADIUS_M * math.cos(ref_lat) * math.pi / 180.0
    ky = EARTH_RADIUS_M * math.pi / 180.0

    ex = wrap_longitude(end.lon - start.lon) * kx
    ey = (end.lat - start.lat) * ky
    px = wrap_longitude(point.lon - start.lon) * kx
    py = (point.lat - start.lat) * ky

    length_sq = ex * ex + ey * ey
    if length_sq == 0.0:
        return distance_meters(point, start), 0.0

    t = (px * ex + py * ey) / length_sq
    t = min(1.0, max(0.0, t))
    if t == 0.0:
        return distance_meters(point, start), 0.0
    if t == 1.0:
        return distance_meters(point, end), 1.0
    return math.hypot(px - t * ex, py - t * ey), t


def is_within_corridor(point: GeoPoint, segment_start: GeoPoint, segment_end: GeoPoint, radius_m: float) -> bool:
    """Return True if ``point`` lies within ``radius_m`` of the segment (not its extension)."""

    if radius_m <= 0:
        raise InvalidParameter("radius_m", radius_m, "corridor radius must be positive")
    distance, _ = point_segment_distance_m(point, segment_start, segment_end)
    return distance <= radius_m


def centroid(points: Iterable[GeoPoint]) -> GeoPoint:
    """Mean of the coordinates, with longitudes averaged as offsets from the first point."""

    lat_total = 0.0
    offset_total = 0.0
    ref_lon = None
    count = 0
    for point in points:
        if ref_lon is None:
            ref_lon = point.lon
        lat_total += point.lat
        offset_total += wrap_longitude(point.lon - ref_lon)
        count += 1
    if count == 0:
        raise ValueError("Cannot compute the centroid of an empty point set.")
    return GeoPoint(lat=lat_total / count, lon=wrap_longitude(ref_lon + offset_total / count))


def convex_hull(points: Sequence[GeoPoint]) -> list[tuple[float, float]]:
    """Closed (lat, lon) ring outlining the points.

    Fewer than three distinct points collapse to a point or a line; those are
    returned as the ordered list of their coordinates without closing.
    """

    if not points:
        return []
    hull = MultiPoint([(point.lon, point.lat) for point in points]).convex_hull
    if isinstance(hull, Polygon):
        return [(lat, lon) for lon, lat in hull.exterior.coords]
    return [(lat, lon) for lon, lat in hull.coords]
