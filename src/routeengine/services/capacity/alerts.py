"""Alerts for under-utilized vehicle legs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Literal, Mapping, Optional, Sequence

from ...config import settings
from ...models.domain import Coordinate, CustomerRequest, Trip, Vehicle
from .matcher import CombinationMatcher, CombinationOpportunity, Leg, build_legs

Severity = Literal["high", "medium", "low"]


@dataclass(slots=True)
class CapacityAlert:
    group_key: str
    driver_id: Optional[str]
    vehicle_id: Optional[str]
    vehicle: Optional[Vehicle]
    trip_ids: List[str]
    pickup_time: datetime
    destination: str
    total_seats: int
    occupied_seats: int
    empty_seats: int
    utilization_percentage: float
    average_trip_price: float
    potential_additional_revenue: float
    severity: Severity
    recommended_passengers: List[CombinationOpportunity]


@dataclass(slots=True)
class AlertSummary:
    total_alerts: int
    total_empty_seats: int
    total_potential_revenue: float
    average_utilization: float


@dataclass(slots=True)
class CapacityAlertReport:
    alerts: List[CapacityAlert]
    summary: AlertSummary


def severity_for(empty_seats: int) -> Severity:
    if empty_seats >= 4:
        return "high"
    if empty_seats >= 2:
        return "medium"
    return "low"


def needs_alert(leg: Leg) -> bool:
    return (
        leg.empty_seats > 0
        and leg.utilization < settings.alert_utilization_threshold
        and leg.total_seats >= settings.alert_min_capacity
    )


def build_capacity_alerts(
    trips: Sequence[Trip],
    vehicles: Mapping[str, Vehicle],
    requests: Sequence[CustomerRequest],
    history: Mapping[str, Sequence[Coordinate]] | None = None,
    fare: Optional[float] = None,
    driver_id: Optional[str] = None,
    matcher: CombinationMatcher | None = None,
) -> CapacityAlertReport:
    matcher = matcher or CombinationMatcher()
    history = history or {}

    alerts: list[CapacityAlert] = []
    for leg in build_legs(trips, vehicles):
        if driver_id and leg.driver_id != driver_id:
            continue
        if not needs_alert(leg):
            continue
        recommended = matcher.opportunities_for_leg(leg, requests, history, fare)
        alerts.append(
            CapacityAlert(
                group_key=leg.key,
                driver_id=leg.driver_id,
                vehicle_id=leg.vehicle_id,
                vehicle=leg.vehicle,
                trip_ids=[trip.trip_id for trip in leg.trips],
                pickup_time=leg.pickup_time,
                destination=leg.destination_name,
                total_seats=leg.total_seats,
                occupied_seats=leg.occupied_seats,
                empty_seats=leg.empty_seats,
                utilization_percentage=round(leg.utilization * 100, 1),
                average_trip_price=round(leg.average_price, 2),
                potential_additional_revenue=round(leg.empty_seats * leg.average_price, 2),
                severity=severity_for(leg.empty_seats),
                recommended_passengers=recommended[: settings.alert_max_recommendations],
            )
        )

    alerts.sort(key=lambda alert: (-alert.potential_additional_revenue, alert.pickup_time, alert.group_key))
    average_utilization = (
        sum(alert.utilization_percentage for alert in alerts) / len(alerts) if alerts else 100.0
    )
    return CapacityAlertReport(
        alerts=alerts,
        summary=AlertSummary(
            total_alerts=len(alerts),
            total_empty_seats=sum(alert.empty_seats for alert in alerts),
            total_potential_revenue=round(sum(alert.potential_additional_revenue for alert in alerts), 2),
            average_utilization=round(average_utilization, 1),
        ),
    )
