"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


def _get_maps_health_check():
    """Lazy import to avoid startup failures."""
    from ...services.routing.maps_client import check_health as maps_health_check
    return maps_health_check


@router.get("/health/maps", status_code=status.HTTP_200_OK)
def health_maps() -> dict:
    """Check the distance matrix service."""
    configured = bool(settings.maps_api_key)
    if not configured:
        return {"service": "maps", "configured": False, "healthy": False}
    try:
        maps_health_check = _get_maps_health_check()
        return {"service": "maps", "configured": True, "healthy": maps_health_check()}
    except Exception as e:
        return {"service": "maps", "configured": True, "healthy": False, "error": str(e)}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Check whether the trip store is configured and reachable."""
    from ...db.supabase import get_supabase_client
    from ...data.trips_repository import TRIPS_TABLE

    supabase = get_supabase_client()
    if not supabase:
        return {
            "configured": False,
            "message": "Supabase not configured. Set ROUTEENGINE_SUPABASE_URL and ROUTEENGINE_SUPABASE_KEY environment variables.",
        }

    try:
        supabase.table(TRIPS_TABLE).select("trip_id").limit(1).execute()
        return {"configured": True, "connected": True, "message": "Database connected."}
    except Exception as exc:
        return {
            "configured": True,
            "connected": False,
            "error": str(exc),
            "message": f"Database connection error: {exc}",
        }
