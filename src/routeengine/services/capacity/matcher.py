"""Matching unassigned customer requests to vehicle legs with empty seats."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Literal, Mapping, Optional, Sequence

from ...config import settings
from ...models.domain import Coordinate, CustomerRequest, Trip, Vehicle
from ..geospatial import distance_to_route_km, haversine_km

logger = logging.getLogger(__name__)

Recommendation = Literal["highly_recommended", "recommended", "acceptable"]

TIME_WEIGHT = 40
DESTINATION_WEIGHT = 40
HISTORY_WEIGHT = 20

HIGHLY_RECOMMENDED_THRESHOLD = 80
RECOMMENDED_THRESHOLD = 60
ACCEPTABLE_THRESHOLD = 40


@dataclass(slots=True)
class Leg:
    """Trips of one driver and vehicle that share a pickup time and destination."""

    key: str
    driver_id: Optional[str]
    vehicle_id: Optional[str]
    vehicle: Optional[Vehicle]
    pickup_time: datetime
    pickup: Coordinate
    destination: Coordinate
    destination_name: str
    total_seats: int
    trips: List[Trip] = field(default_factory=list)

    @property
    def occupied_seats(self) -> int:
        return sum(trip.passenger_count for trip in self.trips)

    @property
    def empty_seats(self) -> int:
        return self.total_seats - self.occupied_seats

    @property
    def utilization(self) -> float:
        return self.occupied_seats / self.total_seats if self.total_seats else 0.0

    @property
    def average_price(self) -> float:
        prices = [trip.price for trip in self.trips if trip.price > 0]
        return sum(prices) / len(prices) if prices else 0.0

    @property
    def trip_id(self) -> str:
        return self.trips[0].trip_id

    @property
    def customer_ids(self) -> set[str]:
        return {trip.customer_id for trip in self.trips if trip.customer_id}


@dataclass(slots=True)
class CombinationOpportunity:
    trip_id: str
    compatible_customer_id: str
    compatibility_score: int
    recommendation: Recommendation
    potential_additional_revenue: float
    pickup_time: datetime
    time_difference_minutes: float
    destination_distance_km: float
    similar_destination_trips: int
    reasoning: List[str]
    customer: CustomerRequest
    leg: Leg


@dataclass(slots=True)
class CombinationSummary:
    total_opportunities: int
    highly_recommended: int
    recommended: int
    acceptable: int
    total_potential_revenue: float


@dataclass(slots=True)
class CombinationResult:
    opportunities: List[CombinationOpportunity]
    summary: CombinationSummary


def recommendation_for_score(score: int) -> Optional[Recommendation]:
    if score >= HIGHLY_RECOMMENDED_THRESHOLD:
        return "highly_recommended"
    if score >= RECOMMENDED_THRESHOLD:
        return "recommended"
    if score >= ACCEPTABLE_THRESHOLD:
        return "acceptable"
    return None


def _leg_key(trip: Trip) -> str:
    destination = trip.dropoff.coordinate
    return "|".join(
        (
            trip.driver_id or "unassigned",
            trip.vehicle_id or "none",
            trip.pickup_time.isoformat(),
            f"{destination.latitude:.5f},{destination.longitude:.5f}",
        )
    )


def build_legs(
    trips: Iterable[Trip],
    vehicles: Mapping[str, Vehicle],
    default_capacity: int | None = None,
) -> list[Leg]:
    """Group active trips into legs, ordered by pickup time."""
    default_capacity = default_capacity or settings.default_vehicle_capacity
    legs: dict[str, Leg] = {}
    for trip in trips:
        if not trip.is_active:
            continue
        key = _leg_key(trip)
        leg = legs.get(key)
        if leg is None:
            vehicle = vehicles.get(trip.vehicle_id) if trip.vehicle_id else None
            leg = Leg(
                key=key,
                driver_id=trip.driver_id,
                vehicle_id=trip.vehicle_id,
                vehicle=vehicle,
                pickup_time=trip.pickup_time,
                pickup=trip.pickup.coordinate,
                destination=trip.dropoff.coordinate,
                destination_name=trip.dropoff.address,
                total_seats=vehicle.capacity if vehicle else default_capacity,
            )
            legs[key] = leg
        leg.trips.append(trip)
    return sorted(legs.values(), key=lambda leg: (leg.pickup_time, leg.key))


def _km_between(a: Coordinate, b: Coordinate) -> float:
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


class CombinationMatcher:
    """Scores unassigned customer requests against legs that have free seats."""

    def __init__(
        self,
        time_window_minutes: int | None = None,
        proximity_km: float | None = None,
        history_saturation: int | None = None,
        default_fare: float | None = None,
    ) -> None:
        self.time_window_minutes = time_window_minutes or settings.combination_time_window_minutes
        self.proximity_km = proximity_km or settings.combination_proximity_km
        self.history_saturation = history_saturation or settings.combination_history_saturation
        self.default_fare = default_fare if default_fare is not None else settings.default_fare

    def similar_trips(self, leg: Leg, past_destinations: Sequence[Coordinate]) -> int:
        return sum(1 for past in past_destinations if _km_between(past, leg.destination) <= self.proximity_km)

    def fare_for(self, leg: Leg, fare: Optional[float]) -> float:
        if fare is not None and fare > 0:
            return fare
        if leg.average_price > 0:
            return leg.average_price
        return self.default_fare

    def evaluate(
        self,
        leg: Leg,
        request: CustomerRequest,
        past_destinations: Sequence[Coordinate] = (),
        fare: Optional[float] = None,
    ) -> Optional[CombinationOpportunity]:
        """Score one request against one leg; None when they are incompatible."""
        if leg.empty_seats <= 0 or request.customer_id in leg.customer_ids:
            return None

        minutes_apart = abs((request.pickup_time - leg.pickup_time).total_seconds()) / 60.0
        if minutes_apart > self.time_window_minutes:
            return None

        reasoning: list[str] = []
        destination_km = _km_between(request.destination, leg.destination)
        route_km = distance_to_route_km(
            request.destination.latitude,
            request.destination.longitude,
            [leg.pickup.as_tuple(), leg.destination.as_tuple()],
        )
        effective_km = min(destination_km, route_km)
        if effective_km > self.proximity_km:
            return None

        if request.mobility_requirements:
            if leg.vehicle is None or not leg.vehicle.supports(request.mobility_requirements):
                return None
            reasoning.append(f"Vehicle supports {', '.join(sorted(request.mobility_requirements))}")

        similar = self.similar_trips(leg, past_destinations)
        time_points = TIME_WEIGHT * (1 - minutes_apart / self.time_window_minutes)
        destination_points = DESTINATION_WEIGHT * (1 - effective_km / self.proximity_km)
        history_points = HISTORY_WEIGHT * min(1.0, similar / self.history_saturation)
        score = max(0, min(100, round(time_points + destination_points + history_points)))

        recommendation = recommendation_for_score(score)
        if recommendation is None:
            return None

        reasoning.insert(0, f"Pickup {minutes_apart:.0f} min from the scheduled leg")
        if destination_km <= self.proximity_km:
            reasoning.insert(1, f"Destination {destination_km:.1f} km from the leg destination")
        else:
            reasoning.insert(1, f"Destination {route_km:.1f} km off the leg route")
        if similar:
            reasoning.append(f"{similar} previous trips to a similar destination")

        return CombinationOpportunity(
            trip_id=leg.trip_id,
            compatible_customer_id=request.customer_id,
            compatibility_score=score,
            recommendation=recommendation,
            potential_additional_revenue=round(self.fare_for(leg, fare), 2),
            pickup_time=request.pickup_time,
            time_difference_minutes=round(minutes_apart, 1),
            destination_distance_km=round(destination_km, 2),
            similar_destination_trips=similar,
            reasoning=reasoning,
            customer=request,
            leg=leg,
        )

    def opportunities_for_leg(
        self,
        leg: Leg,
        requests: Sequence[CustomerRequest],
        history: Mapping[str, Sequence[Coordinate]],
        fare: Optional[float] = None,
    ) -> list[CombinationOpportunity]:
        found = []
        for request in requests:
            opportunity = self.evaluate(leg, request, history.get(request.customer_id, ()), fare)
            if opportunity is not None:
                found.append(opportunity)
        return sort_opportunities(found)

    def find_opportunities(
        self,
        trips: Sequence[Trip],
        vehicles: Mapping[str, Vehicle],
        requests: Sequence[CustomerRequest],
        history: Mapping[str, Sequence[Coordinate]] | None = None,
        fare: Optional[float] = None,
    ) -> CombinationResult:
        history = history or {}
        opportunities: list[CombinationOpportunity] = []
        legs = [leg for leg in build_legs(trips, vehicles) if leg.empty_seats > 0]
        for leg in legs:
            opportunities.extend(self.opportunities_for_leg(leg, requests, history, fare))
        opportunities = sort_opportunities(opportunities)
        logger.info(
            f"Found {len(opportunities)} combination opportunities across {len(legs)} legs with free seats"
        )
        return CombinationResult(opportunities=opportunities, summary=summarize(opportunities))


def sort_opportunities(opportunities: Iterable[CombinationOpportunity]) -> list[CombinationOpportunity]:
    return sorted(
        opportunities,
        key=lambda item: (-item.compatibility_score, -item.potential_additional_revenue, item.trip_id, item.compatible_customer_id),
    )


def summarize(opportunities: Sequence[CombinationOpportunity]) -> CombinationSummary:
    counts: dict[str, int] = defaultdict(int)
    for opportunity in opportunities:
        counts[opportunity.recommendation] += 1
    return CombinationSummary(
        total_opportunities=len(opportunities),
        highly_recommended=counts["highly_recommended"],
        recommended=counts["recommended"],
        acceptable=counts["acceptable"],
        total_potential_revenue=round(sum(item.potential_additional_revenue for item in opportunities), 2),
    )
