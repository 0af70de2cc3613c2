import math
import random
import time

import pytest

from signalcore.exceptions import InvalidParameter, InvalidRoute, MatchTimeout
from signalcore.models.domain import GeoPoint, SignalRecord
from signalcore.services.geospatial import EARTH_RADIUS_M, point_segment_distance_m
from signalcore.services.matching.grid import SignalGrid
from signalcore.services.matching.matcher import match_route

METERS_PER_DEGREE = EARTH_RADIUS_M * math.pi / 180.0
ORIGIN = GeoPoint(lat=18.5204, lon=73.8567)


def _offset(point: GeoPoint, north_m: float = 0.0, east_m: float = 0.0) -> GeoPoint:
    return GeoPoint(
        lat=point.lat + north_m / METERS_PER_DEGREE,
        lon=point.lon + east_m / (METERS_PER_DEGREE * math.cos(math.radians(point.lat))),
    )


def _signal(sid: str, north_m: float = 0.0, east_m: float = 0.0) -> SignalRecord:
    return SignalRecord(id=sid, location=_offset(ORIGIN, north_m=north_m, east_m=east_m))


def _straight_route(points: int = 3, spacing_m: float = 100.0) -> list[GeoPoint]:
    return [_offset(ORIGIN, east_m=i * spacing_m) for i in range(points)]


def _nearest_segment_distance(point: GeoPoint, route: list[GeoPoint]) -> float:
    if len(route) == 1:
        return point_segment_distance_m(point, route[0], route[0])[0]
    return min(point_segment_distance_m(point, a, b)[0] for a, b in zip(route, route[1:]))


def test_signal_beside_middle_of_route_is_matched_once():
    route = _straight_route()
    catalog = [_signal("S1", north_m=30, east_m=100), _signal("FAR", north_m=400, east_m=100)]

    results = match_route(route, catalog, radius_m=50)

    assert [result.signal.id for result in results] == ["S1"]
    assert results[0].route_index == 1
    assert results[0].distance_m == pytest.approx(30.0, abs=0.5)


def test_route_index_points_at_nearest_route_point():
    route = _straight_route(points=4)
    catalog = [
        _signal("NEAR_START", north_m=20, east_m=20),
        _signal("NEAR_SECOND", north_m=-20, east_m=80),
        _signal("NEAR_LAST", north_m=10, east_m=290),
    ]

    results = match_route(route, catalog, radius_m=50)

    assert {result.signal.id: result.route_index for result in results} == {
        "NEAR_START": 0,
        "NEAR_SECOND": 1,
        "NEAR_LAST": 3,
    }


def test_signal_near_extension_of_route_is_not_matched():
    route = _straight_route()
    catalog = [_signal("AHEAD", east_m=280), _signal("BEHIND", east_m=-90)]

    assert match_route(route, catalog, radius_m=50) == []


def test_results_follow_route_progression_then_distance():
    route = _straight_route(points=5)
    catalog = [
        _signal("D", north_m=5, east_m=395),
        _signal("A2", north_m=40, east_m=5),
        _signal("B", north_m=-10, east_m=110),
        _signal("A1", north_m=-15, east_m=0),
        _signal("C", north_m=25, east_m=205),
    ]

    results = match_route(route, catalog, radius_m=50)

    assert [result.signal.id for result in results] == ["A1", "A2", "B", "C", "D"]
    indices = [result.route_index for result in results]
    assert indices == sorted(indices)


def test_signal_near_a_vertex_is_reported_once():
    route = [ORIGIN, _offset(ORIGIN, east_m=100), _offset(ORIGIN, north_m=100, east_m=100)]
    catalog = [_signal("CORNER", north_m=10, east_m=90)]

    results = match_route(route, catalog, radius_m=50)

    assert len(results) == 1
    assert results[0].route_index == 1
    assert results[0].distance_m == pytest.approx(10.0, abs=0.5)


def test_max_results_truncates_in_encounter_order():
    route = _straight_route(points=5)
    catalog = [_signal(f"S{i}", north_m=10, east_m=i * 100) for i in range(5)]

    results = match_route(route, catalog, radius_m=50, max_results=2)

    assert [result.signal.id for result in results] == ["S0", "S1"]
    assert len(match_route(route, catalog, radius_m=50, max_results=0)) == 5


def test_single_point_route_matches_within_radius():
    catalog = [_signal("IN", north_m=30), _signal("OUT", north_m=80)]

    results = match_route([ORIGIN], catalog, radius_m=50)

    assert [result.signal.id for result in results] == ["IN"]
    assert results[0].route_index == 0


def test_empty_catalog_returns_empty_list():
    assert match_route(_straight_route(), [], radius_m=50) == []


def test_invalid_inputs_are_rejected():
    catalog = [_signal("S1")]

    with pytest.raises(InvalidRoute):
        match_route([], catalog, radius_m=50)
    with pytest.raises(InvalidRoute):
        match_route([ORIGIN, (18.52, 73.85)], catalog, radius_m=50)
    with pytest.raises(InvalidParameter):
        match_route([ORIGIN], catalog, radius_m=0)
    with pytest.raises(InvalidParameter):
        match_route([ORIGIN], catalog, radius_m=-5)
    with pytest.raises(InvalidParameter):
        match_route([ORIGIN], catalog, radius_m=50, max_results=-1)


def test_expired_deadline_raises_timeout():
    with pytest.raises(MatchTimeout):
        match_route(_straight_route(), [_signal("S1")], radius_m=50, deadline=time.monotonic() - 1)


def test_grid_matches_brute_force_scan():
    rng = random.Random(7)
    catalog = [
        _signal(f"S{i:04d}", north_m=rng.uniform(-3000, 3000), east_m=rng.uniform(-3000, 3000))
        for i in range(3000)
    ]
    route = [_offset(ORIGIN, north_m=rng.uniform(-2500, 2500), east_m=rng.uniform(-2500, 2500)) for _ in range(25)]
    radius = 75.0

    results = match_route(route, catalog, radius_m=radius)

    expected = {
        signal.id for signal in catalog if _nearest_segment_distance(signal.location, route) <= radius
    }
    assert expected
    assert {result.signal.id for result in results} == expected
    assert len(results) == len({result.signal.id for result in results})
    for result in results:
        assert _nearest_segment_distance(result.signal.location, route) <= radius + 1e-6
    assert results == match_route(route, list(reversed(catalog)), radius_m=radius)


def _wrapped_offset(point: GeoPoint, north_m: float = 0.0, east_m: float = 0.0) -> GeoPoint:
    lon = point.lon + east_m / (METERS_PER_DEGREE * math.cos(math.radians(point.lat)))
    return GeoPoint(lat=point.lat + north_m / METERS_PER_DEGREE, lon=(lon + 180.0) % 360.0 - 180.0)


@pytest.mark.parametrize(
    "anchor",
    [GeoPoint(lat=86.0, lon=20.0), GeoPoint(lat=-17.8, lon=179.995)],
    ids=["polar", "antimeridian"],
)
def test_full_scan_near_pole_and_antimeridian_matches_brute_force(anchor):
    rng = random.Random(3)
    catalog = [
        SignalRecord(
            id=f"S{i:03d}",
            location=_wrapped_offset(anchor, north_m=rng.uniform(-1500, 1500), east_m=rng.uniform(-1500, 1500)),
        )
        for i in range(400)
    ]
    route = [_wrapped_offset(anchor, east_m=east) for east in (-1200, -400, 400, 1200)]
    radius = 100.0

    grid = SignalGrid(catalog, cell_size_m=radius)
    assert len(list(grid.candidates(route[1], route[2], radius))) == len(catalog)

    results = match_route(route, catalog, radius_m=radius, grid=grid)

    expected = {
        signal.id for signal in catalog if _nearest_segment_distance(signal.location, route) <= radius
    }
    assert expected
    assert {result.signal.id for result in results} == expected


def test_prebuilt_grid_with_coarser_cells_gives_same_results():
    rng = random.Random(11)
    catalog = [
        _signal(f"S{i:03d}", north_m=rng.uniform(-800, 800), east_m=rng.uniform(-800, 800)) for i in range(400)
    ]
    route = _straight_route(points=8, spacing_m=150)

    default = match_route(route, catalog, radius_m=60)
    coarse = match_route(route, catalog, radius_m=60, grid=SignalGrid(catalog, cell_size_m=500))

    assert default == coarse


def test_grid_search_only_returns_nearby_cells():
    catalog = [_signal("NEAR", north_m=20, east_m=50), _signal("FAR", north_m=5000, east_m=5000)]
    grid = SignalGrid(catalog, cell_size_m=50)

    candidates = {signal.id for signal in grid.candidates(ORIGIN, _offset(ORIGIN, east_m=100), 50)}

    assert "NEAR" in candidates
    assert "FAR" not in candidates
    assert grid.cell_count == 2
