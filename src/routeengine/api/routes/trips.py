"""Trip capacity endpoints: combination opportunities and under-utilization alerts."""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from ...data import trips_repository
from ...errors import RepositoryError, ValidationError
from ...schemas.capacity import CapacityAlertsResponse, CombinationOpportunitiesResponse
from ...services.capacity.alerts import build_capacity_alerts
from ...services.capacity.matcher import CombinationMatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants/{tenant_id}/trips", tags=["trips"])


def _load_day(tenant_id: str, day: date) -> dict:
    trips = trips_repository.get_trips_for_date(tenant_id, day)
    requests = trips_repository.get_customer_requests(tenant_id, day)
    customer_ids = sorted({request.customer_id for request in requests})
    return {
        "trips": trips,
        "vehicles": trips_repository.get_vehicles(tenant_id),
        "requests": requests,
        "history": trips_repository.get_destination_history(tenant_id, customer_ids, day),
        "fare": trips_repository.get_fare(tenant_id),
    }


@router.get(
    "/combination-opportunities",
    response_model=CombinationOpportunitiesResponse,
    status_code=status.HTTP_200_OK,
)
def combination_opportunities(
    tenant_id: str,
    day: date = Query(..., alias="date"),
) -> CombinationOpportunitiesResponse:
    """Unassigned customers who could ride along on legs with free seats."""
    try:
        data = _load_day(tenant_id, day)
        result = CombinationMatcher().find_opportunities(
            data["trips"], data["vehicles"], data["requests"], data["history"], data["fare"]
        )
        return CombinationOpportunitiesResponse.from_result(result)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception(f"Error finding combination opportunities: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to find combination opportunities: {str(exc)}",
        ) from exc


@router.get("/capacity-alerts", response_model=CapacityAlertsResponse, status_code=status.HTTP_200_OK)
def capacity_alerts(
    tenant_id: str,
    day: date = Query(..., alias="date"),
    driver_id: Optional[str] = Query(default=None, alias="driverId"),
) -> CapacityAlertsResponse:
    """Legs running well below capacity, with suggested extra passengers."""
    try:
        data = _load_day(tenant_id, day)
        report = build_capacity_alerts(
            data["trips"],
            data["vehicles"],
            data["requests"],
            data["history"],
            data["fare"],
            driver_id=driver_id,
        )
        return CapacityAlertsResponse.from_report(report)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception(f"Error building capacity alerts: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to build capacity alerts: {str(exc)}",
        ) from exc
