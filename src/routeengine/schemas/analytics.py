"""Route analytics response schemas."""

from __future__ import annotations

from typing import List

from .common import CamelModel


class AnalyticsOverviewModel(CamelModel):
    total_trips: int
    drivers_used: int
    days_active: int
    average_passengers_per_trip: float
    total_distance_km: float
    trips_per_driver: float


class DriverUtilizationModel(CamelModel):
    driver_id: str
    trip_count: int
    total_distance_km: float
    active_days: int


class PeakHourModel(CamelModel):
    hour: int
    trip_count: int


class RouteAnalyticsResponse(CamelModel):
    overview: AnalyticsOverviewModel
    driver_utilization: List[DriverUtilizationModel]
    peak_hours: List[PeakHourModel]
