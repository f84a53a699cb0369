"""Route optimization endpoints."""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, HTTPException, Query, status

from ...config import settings
from ...data import trips_repository
from ...errors import InsufficientStopsError, NotFoundError, RepositoryError, ValidationError
from ...schemas.analytics import RouteAnalyticsResponse
from ...schemas.capacity import CapacityOptimizeRequest, CapacityOptimizeResponse
from ...schemas.routing import (
    BatchOptimizeRequest,
    BatchOptimizeResponse,
    OptimizationResultModel,
    OptimizationScoreModel,
    OptimizationScoresResponse,
    OptimizeRouteRequest,
)
from ...services.analytics import build_route_analytics
from ...services.capacity.planner import CapacityPlanner
from ...services.routing.batch import BatchOptimizer
from ...services.routing.optimizer import RouteOptimizer
from ...services.routing.scoring import OptimizationScorer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants/{tenant_id}/routes", tags=["routes"])


def get_route_optimizer() -> RouteOptimizer:
    return RouteOptimizer()


def _check_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise ValidationError(f"startDate {start_date} is after endDate {end_date}")


@router.post("/optimize", response_model=OptimizationResultModel, status_code=status.HTTP_200_OK)
def optimize(tenant_id: str, payload: OptimizeRouteRequest) -> OptimizationResultModel:
    """Reorder one driver's trips for a day to minimise travel distance."""
    try:
        trip_ids = [ref.trip_id for ref in payload.trips]
        if len(trip_ids) < 2:
            raise InsufficientStopsError("At least two trips are required to optimize a route.")
        trips = trips_repository.get_trips_by_ids(tenant_id, trip_ids)
        result = get_route_optimizer().optimize(payload.driver_id, payload.date, trips)
        return OptimizationResultModel.from_result(result)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception(f"Error optimizing route for driver {payload.driver_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to optimize route: {str(exc)}",
        ) from exc


@router.get("/optimization-scores", response_model=OptimizationScoresResponse, status_code=status.HTTP_200_OK)
def optimization_scores(
    tenant_id: str,
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
) -> OptimizationScoresResponse:
    """Score how close each driver-day is to its optimized order."""
    try:
        _check_range(start_date, end_date)
        trips, rejected = trips_repository.get_trips_in_range(tenant_id, start_date, end_date)
        scores = OptimizationScorer(get_route_optimizer()).score_all(trips, rejected)
        return OptimizationScoresResponse(scores=[OptimizationScoreModel.from_score(score) for score in scores])
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception(f"Error computing optimization scores: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to compute optimization scores: {str(exc)}",
        ) from exc


@router.post("/batch-optimize", response_model=BatchOptimizeResponse, status_code=status.HTTP_200_OK)
def batch_optimize(tenant_id: str, payload: BatchOptimizeRequest) -> BatchOptimizeResponse:
    """Optimize every driver-day in a date range."""
    try:
        _check_range(payload.start_date, payload.end_date)
        batch = BatchOptimizer(
            get_route_optimizer(),
            loader=lambda start, end: trips_repository.get_trips_in_range(tenant_id, start, end),
        )
        return BatchOptimizeResponse.from_result(batch.run(payload.start_date, payload.end_date))
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception(f"Error running batch optimization: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to run batch optimization: {str(exc)}",
        ) from exc


@router.post("/capacity-optimize", response_model=CapacityOptimizeResponse, status_code=status.HTTP_200_OK)
def capacity_optimize(tenant_id: str, payload: CapacityOptimizeRequest) -> CapacityOptimizeResponse:
    """Pack a day's trips into the fewest vehicles."""
    try:
        capacity = payload.vehicle_capacity if payload.vehicle_capacity is not None else settings.default_vehicle_capacity
        if capacity <= 0:
            raise ValidationError(f"vehicleCapacity must be a positive integer, got {capacity}")
        trips = trips_repository.get_trips_for_date(tenant_id, payload.date)
        plan = CapacityPlanner().pack(trips, capacity)
        return CapacityOptimizeResponse.from_plan(plan)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception(f"Error optimizing capacity: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to optimize capacity: {str(exc)}",
        ) from exc


@router.get("/analytics", response_model=RouteAnalyticsResponse, status_code=status.HTTP_200_OK)
def analytics(
    tenant_id: str,
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
) -> RouteAnalyticsResponse:
    try:
        _check_range(start_date, end_date)
        trips, _ = trips_repository.get_trips_in_range(tenant_id, start_date, end_date)
        return RouteAnalyticsResponse.model_validate(build_route_analytics(trips))
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception(f"Error building route analytics: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to build route analytics: {str(exc)}",
        ) from exc
