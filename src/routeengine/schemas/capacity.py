"""Capacity planning, combination and alert schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import Field

from ..services.capacity.alerts import CapacityAlert, CapacityAlertReport
from ..services.capacity.matcher import CombinationOpportunity, CombinationResult, Leg
from ..services.capacity.planner import CapacityGroup, CapacityPlan
from .common import CamelModel


class CapacityOptimizeRequest(CamelModel):
    date: date
    vehicle_capacity: Optional[int] = Field(
        default=None,
        description="Seats per vehicle. Defaults to the configured vehicle capacity.",
    )


class CapacityRouteModel(CamelModel):
    vehicle_slot_id: int
    trip_ids: List[str]
    occupied_seats: int
    empty_seats: int
    vehicle_capacity: int
    capacity_used: float
    first_pickup_time: Optional[datetime] = None

    @classmethod
    def from_group(cls, group: CapacityGroup) -> "CapacityRouteModel":
        return cls(
            vehicle_slot_id=group.vehicle_slot_id,
            trip_ids=[trip.trip_id for trip in group.trips],
            occupied_seats=group.occupied_seats,
            empty_seats=group.empty_seats,
            vehicle_capacity=group.vehicle_capacity,
            capacity_used=round(group.capacity_used, 1),
            first_pickup_time=min((trip.pickup_time for trip in group.trips), default=None),
        )


class CapacityStatisticsModel(CamelModel):
    total_trips: int
    total_passengers: int
    vehicles_needed: int
    vehicles_saved: int
    average_capacity_used: float
    efficiency: float
    vehicle_capacity: int


class CapacityOptimizeResponse(CamelModel):
    success: bool = True
    routes: List[CapacityRouteModel]
    statistics: CapacityStatisticsModel

    @classmethod
    def from_plan(cls, plan: CapacityPlan) -> "CapacityOptimizeResponse":
        stats = plan.statistics
        return cls(
            routes=[CapacityRouteModel.from_group(group) for group in plan.groups],
            statistics=CapacityStatisticsModel(
                total_trips=stats.total_trips,
                total_passengers=stats.total_passengers,
                vehicles_needed=stats.vehicles_needed,
                vehicles_saved=stats.vehicles_saved,
                average_capacity_used=stats.average_capacity_used,
                efficiency=stats.efficiency,
                vehicle_capacity=stats.vehicle_capacity,
            ),
        )


class CompatibleCustomerModel(CamelModel):
    id: str
    name: str = ""
    address: Optional[str] = None
    postcode: Optional[str] = None
    phone: Optional[str] = None
    destination_name: str = ""
    mobility_requirements: List[str] = Field(default_factory=list)
    similar_destination_trips: int = 0


class VehicleInfoModel(CamelModel):
    vehicle_id: Optional[str] = None
    capacity: int
    occupied_seats: int
    available_seats: int
    registration: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    wheelchair_accessible: bool = False

    @classmethod
    def from_leg(cls, leg: Leg) -> "VehicleInfoModel":
        vehicle = leg.vehicle
        return cls(
            vehicle_id=leg.vehicle_id,
            capacity=leg.total_seats,
            occupied_seats=leg.occupied_seats,
            available_seats=leg.empty_seats,
            registration=vehicle.registration if vehicle else None,
            make=vehicle.make if vehicle else None,
            model=vehicle.model if vehicle else None,
            wheelchair_accessible=vehicle.wheelchair_accessible if vehicle else False,
        )


class CurrentTripModel(CamelModel):
    trip_ids: List[str]
    driver_id: Optional[str] = None
    pickup_time: datetime
    destination: str = ""
    passengers: int


class OpportunityModel(CamelModel):
    trip_id: str
    compatible_customer: CompatibleCustomerModel
    compatibility_score: int
    recommendation: str
    potential_additional_revenue: float
    pickup_time: datetime
    time_difference_minutes: float
    destination_distance_km: float
    reasoning: List[str]
    vehicle: VehicleInfoModel
    current_trip: CurrentTripModel

    @classmethod
    def from_opportunity(cls, item: CombinationOpportunity) -> "OpportunityModel":
        customer = item.customer
        leg = item.leg
        return cls(
            trip_id=item.trip_id,
            compatible_customer=CompatibleCustomerModel(
                id=customer.customer_id,
                name=customer.name,
                address=customer.address,
                postcode=customer.postcode,
                phone=customer.phone,
                destination_name=customer.destination_name,
                mobility_requirements=sorted(customer.mobility_requirements),
                similar_destination_trips=item.similar_destination_trips,
            ),
            compatibility_score=item.compatibility_score,
            recommendation=item.recommendation,
            potential_additional_revenue=item.potential_additional_revenue,
            pickup_time=item.pickup_time,
            time_difference_minutes=item.time_difference_minutes,
            destination_distance_km=item.destination_distance_km,
            reasoning=item.reasoning,
            vehicle=VehicleInfoModel.from_leg(leg),
            current_trip=CurrentTripModel(
                trip_ids=[trip.trip_id for trip in leg.trips],
                driver_id=leg.driver_id,
                pickup_time=leg.pickup_time,
                destination=leg.destination_name,
                passengers=leg.occupied_seats,
            ),
        )


class CombinationSummaryModel(CamelModel):
    total_opportunities: int
    highly_recommended: int
    recommended: int
    acceptable: int
    total_potential_revenue: float


class CombinationOpportunitiesResponse(CamelModel):
    opportunities: List[OpportunityModel]
    summary: CombinationSummaryModel

    @classmethod
    def from_result(cls, result: CombinationResult) -> "CombinationOpportunitiesResponse":
        summary = result.summary
        return cls(
            opportunities=[OpportunityModel.from_opportunity(item) for item in result.opportunities],
            summary=CombinationSummaryModel(
                total_opportunities=summary.total_opportunities,
                highly_recommended=summary.highly_recommended,
                recommended=summary.recommended,
                acceptable=summary.acceptable,
                total_potential_revenue=summary.total_potential_revenue,
            ),
        )


class CapacityAlertModel(CamelModel):
    group_key: str
    driver_id: Optional[str] = None
    vehicle: VehicleInfoModel
    trip_ids: List[str]
    pickup_time: datetime
    destination: str = ""
    total_seats: int
    occupied_seats: int
    empty_seats: int
    utilization_percentage: float
    average_trip_price: float
    potential_additional_revenue: float
    severity: str
    recommended_passengers: List[OpportunityModel]

    @classmethod
    def from_alert(cls, alert: CapacityAlert) -> "CapacityAlertModel":
        vehicle = alert.vehicle
        return cls(
            group_key=alert.group_key,
            driver_id=alert.driver_id,
            vehicle=VehicleInfoModel(
                vehicle_id=alert.vehicle_id,
                capacity=alert.total_seats,
                occupied_seats=alert.occupied_seats,
                available_seats=alert.empty_seats,
                registration=vehicle.registration if vehicle else None,
                make=vehicle.make if vehicle else None,
                model=vehicle.model if vehicle else None,
                wheelchair_accessible=vehicle.wheelchair_accessible if vehicle else False,
            ),
            trip_ids=alert.trip_ids,
            pickup_time=alert.pickup_time,
            destination=alert.destination,
            total_seats=alert.total_seats,
            occupied_seats=alert.occupied_seats,
            empty_seats=alert.empty_seats,
            utilization_percentage=alert.utilization_percentage,
            average_trip_price=alert.average_trip_price,
            potential_additional_revenue=alert.potential_additional_revenue,
            severity=alert.severity,
            recommended_passengers=[OpportunityModel.from_opportunity(item) for item in alert.recommended_passengers],
        )


class AlertSummaryModel(CamelModel):
    total_alerts: int
    total_empty_seats: int
    total_potential_revenue: float
    average_utilization: float


class CapacityAlertsResponse(CamelModel):
    alerts: List[CapacityAlertModel]
    summary: AlertSummaryModel

    @classmethod
    def from_report(cls, report: CapacityAlertReport) -> "CapacityAlertsResponse":
        summary = report.summary
        return cls(
            alerts=[CapacityAlertModel.from_alert(alert) for alert in report.alerts],
            summary=AlertSummaryModel(
                total_alerts=summary.total_alerts,
                total_empty_seats=summary.total_empty_seats,
                total_potential_revenue=summary.total_potential_revenue,
                average_utilization=summary.average_utilization,
            ),
        )
