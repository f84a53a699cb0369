"""Route optimization request/response schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import Field

from ..models.domain import Stop, Trip
from ..services.routing.models import BatchResult, GroupResult, OptimizationResult, OptimizationScore
from .common import CamelModel, DateRangeModel


def _km(meters: float) -> float:
    return round(meters / 1000.0, 2)


def _minutes(seconds: float) -> float:
    return round(seconds / 60.0, 1)


class TripReference(CamelModel):
    trip_id: str = Field(..., min_length=1)


class OptimizeRouteRequest(CamelModel):
    driver_id: str = Field(..., min_length=1)
    date: date
    trips: List[TripReference] = Field(..., min_length=1)


class StopModel(CamelModel):
    stop_id: str
    role: str
    latitude: float
    longitude: float
    address: str = ""
    scheduled_time: datetime

    @classmethod
    def from_stop(cls, stop: Stop) -> "StopModel":
        return cls(
            stop_id=stop.stop_id,
            role=stop.role,
            latitude=stop.coordinate.latitude,
            longitude=stop.coordinate.longitude,
            address=stop.address,
            scheduled_time=stop.scheduled_time,
        )


class TripModel(CamelModel):
    trip_id: str
    driver_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    customer_id: Optional[str] = None
    passenger_count: int
    price: float
    status: str
    pickup: StopModel
    dropoff: StopModel

    @classmethod
    def from_trip(cls, trip: Trip) -> "TripModel":
        return cls(
            trip_id=trip.trip_id,
            driver_id=trip.driver_id,
            vehicle_id=trip.vehicle_id,
            customer_id=trip.customer_id,
            passenger_count=trip.passenger_count,
            price=trip.price,
            status=trip.status,
            pickup=StopModel.from_stop(trip.pickup),
            dropoff=StopModel.from_stop(trip.dropoff),
        )


class SavingsModel(CamelModel):
    distance: float = Field(..., description="Kilometres saved.")
    time: float = Field(..., description="Minutes saved.")


class OptimizationResultModel(CamelModel):
    success: bool = True
    driver_id: str
    date: date
    original_order: List[TripModel]
    optimized_order: List[TripModel]
    original_distance: float
    optimized_distance: float
    original_duration: float
    optimized_duration: float
    savings: SavingsModel
    method: str
    reliable: bool
    warning: Optional[str] = None

    @classmethod
    def from_result(cls, result: OptimizationResult) -> "OptimizationResultModel":
        return cls(
            driver_id=result.driver_id,
            date=result.date,
            original_order=[TripModel.from_trip(trip) for trip in result.original_order],
            optimized_order=[TripModel.from_trip(trip) for trip in result.optimized_order],
            original_distance=_km(result.original_distance),
            optimized_distance=_km(result.optimized_distance),
            original_duration=_minutes(result.original_duration),
            optimized_duration=_minutes(result.optimized_duration),
            savings=SavingsModel(distance=_km(result.savings.distance), time=_minutes(result.savings.time)),
            method=result.method,
            reliable=result.reliable,
            warning=result.warning,
        )


class OptimizationScoreModel(CamelModel):
    driver_id: str
    date: date
    score: Optional[int] = None
    status: str
    trip_count: int
    current_distance: float
    optimal_distance: float
    savings_potential: float
    error: Optional[str] = None

    @classmethod
    def from_score(cls, score: OptimizationScore) -> "OptimizationScoreModel":
        return cls(
            driver_id=score.driver_id,
            date=score.date,
            score=score.score,
            status=score.status,
            trip_count=score.trip_count,
            current_distance=score.current_distance,
            optimal_distance=score.optimal_distance,
            savings_potential=score.savings_potential,
            error=score.error,
        )


class OptimizationScoresResponse(CamelModel):
    scores: List[OptimizationScoreModel]


class BatchOptimizeRequest(CamelModel):
    start_date: date
    end_date: date


class GroupResultModel(CamelModel):
    driver_id: Optional[str] = None
    date: date
    status: str
    trip_count: int
    optimized_trip_ids: List[str] = Field(default_factory=list)
    distance_saved_km: float = 0.0
    time_saved_min: float = 0.0
    method: Optional[str] = None
    reliable: Optional[bool] = None
    error: Optional[str] = None

    @classmethod
    def from_group(cls, group: GroupResult) -> "GroupResultModel":
        return cls(
            driver_id=group.driver_id,
            date=group.date,
            status=group.status,
            trip_count=group.trip_count,
            optimized_trip_ids=group.optimized_trip_ids,
            distance_saved_km=_km(group.distance_saved),
            time_saved_min=_minutes(group.time_saved),
            method=group.method,
            reliable=group.reliable,
            error=group.error,
        )


class BatchOptimizeResponse(CamelModel):
    success: bool = True
    trip_count: int
    driver_count: int
    date_range: DateRangeModel
    total_distance_saved: float = Field(..., description="Kilometres saved across successful groups.")
    total_time_saved: float = Field(..., description="Minutes saved across successful groups.")
    groups: List[GroupResultModel]

    @classmethod
    def from_result(cls, result: BatchResult) -> "BatchOptimizeResponse":
        return cls(
            trip_count=result.trip_count,
            driver_count=result.driver_count,
            date_range=DateRangeModel(start_date=result.start_date, end_date=result.end_date),
            total_distance_saved=_km(result.total_distance_saved),
            total_time_saved=_minutes(result.total_time_saved),
            groups=[GroupResultModel.from_group(group) for group in result.group_results],
        )
