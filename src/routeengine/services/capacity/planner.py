"""Seat-capacity bin-packing of a day's trips into shared vehicles."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence

from ...config import settings
from ...errors import ValidationError
from ...models.domain import Trip
from ..geospatial import haversine_km


@dataclass(slots=True)
class CapacityGroup:
    vehicle_slot_id: int
    vehicle_capacity: int
    trips: List[Trip] = field(default_factory=list)
    occupied_seats: int = 0

    def __post_init__(self) -> None:
        if self.vehicle_capacity <= 0:
            raise ValidationError("vehicle_capacity must be > 0")
        seats = sum(trip.passenger_count for trip in self.trips)
        if self.occupied_seats != seats:
            self.occupied_seats = seats
        if self.occupied_seats > self.vehicle_capacity:
            raise ValidationError(
                f"Group {self.vehicle_slot_id} holds {self.occupied_seats} passengers, capacity is {self.vehicle_capacity}"
            )

    @property
    def empty_seats(self) -> int:
        return self.vehicle_capacity - self.occupied_seats

    @property
    def capacity_used(self) -> float:
        return self.occupied_seats / self.vehicle_capacity * 100

    def add(self, trip: Trip) -> None:
        if trip.passenger_count > self.empty_seats:
            raise ValidationError(
                f"Trip {trip.trip_id} needs {trip.passenger_count} seats, group {self.vehicle_slot_id} has {self.empty_seats}"
            )
        self.trips.append(trip)
        self.occupied_seats += trip.passenger_count


@dataclass(slots=True)
class CapacityStatistics:
    total_trips: int
    total_passengers: int
    vehicles_needed: int
    vehicles_saved: int
    average_capacity_used: float
    efficiency: float
    vehicle_capacity: int


@dataclass(slots=True)
class CapacityPlan:
    groups: List[CapacityGroup]
    statistics: CapacityStatistics


def check_capacity(current_load: int, additional_passengers: int, vehicle_capacity: int) -> tuple[bool, int]:
    """Return whether the extra passengers fit and how many seats would remain."""
    new_load = current_load + additional_passengers
    return new_load <= vehicle_capacity, max(0, vehicle_capacity - new_load)


class CapacityPlanner:
    """First-fit grouping of trips that can share a vehicle."""

    def __init__(
        self,
        time_window_minutes: int | None = None,
        proximity_km: float | None = None,
    ) -> None:
        self.time_window_minutes = (
            time_window_minutes if time_window_minutes is not None else settings.capacity_time_window_minutes
        )
        self.proximity_km = proximity_km if proximity_km is not None else settings.capacity_proximity_km

    def compatible(self, a: Trip, b: Trip) -> bool:
        minutes_apart = abs((a.pickup_time - b.pickup_time).total_seconds()) / 60.0
        if minutes_apart > self.time_window_minutes:
            return False
        destination_km = haversine_km(
            a.dropoff.coordinate.latitude,
            a.dropoff.coordinate.longitude,
            b.dropoff.coordinate.latitude,
            b.dropoff.coordinate.longitude,
        )
        return destination_km <= self.proximity_km

    def pack(self, trips: Sequence[Trip], vehicle_capacity: int) -> CapacityPlan:
        if vehicle_capacity is None or vehicle_capacity <= 0:
            raise ValidationError(f"vehicleCapacity must be a positive integer, got {vehicle_capacity}")
        trips = [trip for trip in trips if trip.is_active]
        oversized = [trip.trip_id for trip in trips if trip.passenger_count > vehicle_capacity]
        if oversized:
            raise ValidationError(
                f"Trips {', '.join(oversized)} carry more passengers than a vehicle of capacity {vehicle_capacity}"
            )

        groups: list[CapacityGroup] = []
        for trip in sorted(trips, key=lambda t: (t.pickup_time, t.trip_id)):
            target = None
            for group in groups:
                fits, _ = check_capacity(group.occupied_seats, trip.passenger_count, vehicle_capacity)
                if fits and all(self.compatible(trip, other) for other in group.trips):
                    target = group
                    break
            if target is None:
                target = CapacityGroup(vehicle_slot_id=len(groups) + 1, vehicle_capacity=vehicle_capacity)
                groups.append(target)
            target.add(trip)

        return CapacityPlan(groups=groups, statistics=self._statistics(trips, groups, vehicle_capacity))

    @staticmethod
    def _statistics(trips: Sequence[Trip], groups: Sequence[CapacityGroup], vehicle_capacity: int) -> CapacityStatistics:
        vehicles_needed = len(groups)
        average_used = sum(group.occupied_seats for group in groups) / vehicles_needed if groups else 0.0
        efficiency = min(100.0, max(0.0, average_used / vehicle_capacity * 100))
        return CapacityStatistics(
            total_trips=len(trips),
            total_passengers=sum(trip.passenger_count for trip in trips),
            vehicles_needed=vehicles_needed,
            vehicles_saved=len(trips) - vehicles_needed,
            average_capacity_used=round(average_used, 2),
            efficiency=round(efficiency, 2),
            vehicle_capacity=vehicle_capacity,
        )
