"""API routes for signal zones (traffic-police clusters)."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from ...exceptions import CatalogUnavailable, InvalidParameter, ZoneNotFound, ZonesNotReady
from ...schemas.zones import ZoneListResponse, ZoneRebuildResponse, ZoneSummary
from ...services.zoning.service import list_zones, rebuild_zones, summarize_zone, zone_by_index, zone_for_signal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/traffic-clusters", tags=["zones"])


def _not_ready(exc: ZonesNotReady) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.get("", response_model=ZoneListResponse, status_code=status.HTTP_200_OK)
def get_zones() -> ZoneListResponse:
    try:
        return list_zones()
    except ZonesNotReady as exc:
        raise _not_ready(exc) from exc


@router.get("/{index}", response_model=ZoneSummary, status_code=status.HTTP_200_OK)
def get_zone(index: int) -> ZoneSummary:
    try:
        return summarize_zone(zone_by_index(index))
    except ZonesNotReady as exc:
        raise _not_ready(exc) from exc
    except ZoneNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Cluster with ID {index} not found") from exc


@router.get("/by-signal/{signal_id}", response_model=ZoneSummary, status_code=status.HTTP_200_OK)
def get_zone_for_signal(signal_id: str) -> ZoneSummary:
    try:
        return summarize_zone(zone_for_signal(signal_id))
    except ZonesNotReady as exc:
        raise _not_ready(exc) from exc
    except ZoneNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Signal '{signal_id}' is not in any cluster") from exc


@router.post("/rebuild", response_model=ZoneRebuildResponse, status_code=status.HTTP_200_OK)
def rebuild(
    radius_m: Optional[float] = Query(default=None, gt=0, description="Override the configured zone radius."),
) -> ZoneRebuildResponse:
    """Re-cluster the current catalog and publish the new zones."""
    try:
        snapshot = rebuild_zones(radius_m=radius_m)
    except InvalidParameter as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except CatalogUnavailable as exc:
        logger.error(f"Zone rebuild failed, keeping previous zones: {exc}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    index = snapshot.index
    return ZoneRebuildResponse(
        version=index.version,
        zone_count=len(index),
        signal_count=sum(len(zone) for zone in index),
        radius_m=snapshot.radius_m,
    )
