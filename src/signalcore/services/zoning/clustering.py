"""Density-threshold clustering of the signal catalog into patrol zones."""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from sklearn.neighbors import BallTree

from ...exceptions import InvalidParameter
from ...models.domain import GeoPoint, SignalRecord, Zone
from ..geospatial import EARTH_RADIUS_M, wrap_longitude

DEFAULT_MAX_ITERATIONS = 25

logger = logging.getLogger(__name__)


def _haversine_to_many(lat: float, lon: float, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    """Distances in meters from one coordinate to arrays of coordinates."""

    phi1 = np.radians(lat)
    phi2 = np.radians(lats)
    d_phi = phi2 - phi1
    d_lambda = np.radians(lons - lon)
    a = np.sin(d_phi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))


def _wrap_longitudes(lons: np.ndarray) -> np.ndarray:
    return np.where(lons > 180.0, lons - 360.0, np.where(lons < -180.0, lons + 360.0, lons))


def _seed_zones(coords: np.ndarray, radius_m: float) -> np.ndarray:
    """Greedy single pass: join the nearest running centroid within radius or seed a new zone.

    Longitudes are accumulated as offsets from each zone's first member so a
    zone straddling the antimeridian keeps its centroid beside its members.
    """

    labels = np.empty(len(coords), dtype=np.int64)
    ref_lons: list[float] = []
    lat_sums: list[float] = []
    offset_sums: list[float] = []
    counts: list[int] = []
    centroids = np.empty((0, 2), dtype=np.float64)

    for i, (lat, lon) in enumerate(coords):
        if len(centroids):
            distances = _haversine_to_many(lat, lon, centroids[:, 0], centroids[:, 1])
            nearest = int(np.argmin(distances))
            if distances[nearest] <= radius_m:
                labels[i] = nearest
                lat_sums[nearest] += lat
                offset_sums[nearest] += wrap_longitude(lon - ref_lons[nearest])
                counts[nearest] += 1
                centroids[nearest] = (
                    lat_sums[nearest] / counts[nearest],
                    wrap_longitude(ref_lons[nearest] + offset_sums[nearest] / counts[nearest]),
                )
                continue
        labels[i] = len(counts)
        ref_lons.append(float(lon))
        lat_sums.append(float(lat))
        offset_sums.append(0.0)
        counts.append(1)
        centroids = np.vstack([centroids, coords[i]])
    return labels


def _compact(labels: np.ndarray, coords: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Drop empty zones, renumber the survivors in order and recompute their centroids."""

    survivors, first, compacted = np.unique(labels, return_index=True, return_inverse=True)
    compacted = compacted.reshape(-1)
    counts = np.bincount(compacted, minlength=len(survivors))
    ref_lons = coords[first, 1]
    offsets = _wrap_longitudes(coords[:, 1] - ref_lons[compacted])

    lat_sums = np.zeros(len(survivors), dtype=np.float64)
    offset_sums = np.zeros(len(survivors), dtype=np.float64)
    np.add.at(lat_sums, compacted, coords[:, 0])
    np.add.at(offset_sums, compacted, offsets)

    centroids = np.column_stack([lat_sums / counts, _wrap_longitudes(ref_lons + offset_sums / counts)])
    return compacted.astype(np.int64), centroids


def _nearest_centroid(coords: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Index of the nearest centroid for every coordinate; exact ties go to the lower index."""

    tree = BallTree(np.radians(centroids), metric="haversine")
    k = min(2, len(centroids))
    distances, indices = tree.query(np.radians(coords), k=k)
    nearest = indices[:, 0]
    if k == 2:
        tied = distances[:, 0] == distances[:, 1]
        nearest = np.where(tied, np.minimum(indices[:, 0], indices[:, 1]), nearest)
    return nearest.astype(np.int64)


def cluster_signals(
    catalog: Sequence[SignalRecord],
    target_radius_m: float,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> list[Zone]:
    """Partition the catalog into zones numbered 1..N by centroid latitude then longitude.

    Zones are seeded greedily within ``target_radius_m`` of a running
    centroid, then relaxed by reassigning every signal to its nearest
    centroid until membership is stable or ``max_iterations`` passes ran.
    The result only depends on the catalog contents, not on its order.
    """

    if target_radius_m is None or not target_radius_m > 0:
        raise InvalidParameter("target_radius_m", target_radius_m, "zone radius must be positive")
    if max_iterations is None or max_iterations < 0:
        raise InvalidParameter("max_iterations", max_iterations, "iteration cap must be >= 0")
    if not catalog:
        return []

    ordered = sorted(catalog, key=SignalRecord.sort_key)
    coords = np.array([[signal.lat, signal.lon] for signal in ordered], dtype=np.float64)

    labels, centroids = _compact(_seed_zones(coords, target_radius_m), coords)
    seeded_zones = len(centroids)

    converged = False
    passes = 0
    for passes in range(1, max_iterations + 1):
        reassigned = _nearest_centroid(coords, centroids)
        if np.array_equal(reassigned, labels):
            converged = True
            break
        labels, centroids = _compact(reassigned, coords)

    if not converged and max_iterations:
        logger.info(
            "Zone relaxation hit the %d pass cap without converging; keeping the last partition",
            max_iterations,
        )

    members_by_label: dict[int, list[SignalRecord]] = {}
    for signal, label in zip(ordered, labels):
        members_by_label.setdefault(int(label), []).append(signal)

    provisional = sorted(
        (
            (float(centroids[label][0]), float(centroids[label][1]), members[0].id, members)
            for label, members in members_by_label.items()
        ),
        key=lambda item: item[:3],
    )
    zones = [
        Zone(index=position, members=tuple(members), centroid=GeoPoint(lat=lat, lon=lon))
        for position, (lat, lon, _, members) in enumerate(provisional, start=1)
    ]
    logger.info(
        "Clustered %d signals into %d zones (seeded %d, %d relaxation passes, converged=%s)",
        len(ordered),
        len(zones),
        seeded_zones,
        passes,
        converged,
    )
    return zones
