"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/zones", status_code=status.HTTP_200_OK)
def health_zones() -> dict:
    """Report whether a zone index has been published."""
    from ...exceptions import ZonesNotReady
    from ...services.zoning.service import zone_cache

    try:
        snapshot = zone_cache.snapshot()
    except ZonesNotReady:
        return {"ready": False, "message": "Zones are still being processed."}
    return {
        "ready": True,
        "version": snapshot.index.version,
        "zone_count": len(snapshot.index),
        "radius_m": snapshot.radius_m,
        "built_at": snapshot.built_at.isoformat(),
    }


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Check whether the signal table is reachable."""
    from ...db.supabase import get_supabase_client

    supabase = get_supabase_client()
    if not supabase:
        return {
            "configured": False,
            "message": "Supabase not configured. Set SIGNALCORE_SUPABASE_URL and SIGNALCORE_SUPABASE_KEY environment variables.",
        }

    try:
        response = supabase.table(settings.signals_table).select("id", count="exact").limit(1).execute()
        return {
            "configured": True,
            "connected": True,
            "signals_count": response.count,
        }
    except Exception as exc:
        return {
            "configured": True,
            "connected": False,
            "error": str(exc),
            "message": f"Database connection error: {exc}",
        }
