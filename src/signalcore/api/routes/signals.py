"""API routes for the signal inventory and route matching."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from ...data.signal_repository import load_signals
from ...exceptions import CatalogUnavailable, InvalidParameter, InvalidRoute, MatchTimeout
from ...schemas.signals import MatchedSignal, MatchRequest, SignalModel
from ...services.matching.service import match_signals

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/traffic-signals", tags=["signals"])


@router.get("", response_model=list[SignalModel], status_code=status.HTTP_200_OK)
def list_signals() -> list[SignalModel]:
    try:
        signals = load_signals()
    except CatalogUnavailable as exc:
        logger.error(f"Signal catalog unavailable: {exc}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [SignalModel(id=signal.id, lat=signal.lat, lon=signal.lon) for signal in signals]


@router.post("/match", response_model=list[MatchedSignal], status_code=status.HTTP_200_OK)
def match_route_signals(payload: MatchRequest) -> list[MatchedSignal]:
    """Signals along the route in the order the ambulance reaches them."""
    try:
        matches = match_signals(
            [{"lat": point.lat, "lng": point.lng} for point in payload.route],
            radius_m=payload.radius_m,
            max_results=payload.max_results,
        )
    except (InvalidRoute, InvalidParameter) as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except CatalogUnavailable as exc:
        logger.error(f"Signal matching failed: {exc}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except MatchTimeout as exc:
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(exc)) from exc
    return [MatchedSignal(**match) for match in matches]
