"""Domain models for trips, stops, vehicles and customer requests."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal, Optional

from ..errors import ValidationError

StopRole = Literal["pickup", "dropoff"]

WHEELCHAIR = "wheelchair"

# Trips in these states take no seat and are never sequenced.
INACTIVE_STATUSES = frozenset({"cancelled", "canceled"})


@dataclass(frozen=True, slots=True)
class Coordinate:
    """Immutable latitude/longitude pair in decimal degrees."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        try:
            lat = float(self.latitude)
            lon = float(self.longitude)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Coordinate values must be numeric, got ({self.latitude!r}, {self.longitude!r})") from exc
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise ValidationError(f"Coordinate values must be finite, got ({lat}, {lon})")
        if not -90.0 <= lat <= 90.0:
            raise ValidationError(f"Latitude {lat} is outside [-90, 90]")
        if not -180.0 <= lon <= 180.0:
            raise ValidationError(f"Longitude {lon} is outside [-180, 180]")
        object.__setattr__(self, "latitude", lat)
        object.__setattr__(self, "longitude", lon)

    def as_tuple(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(slots=True)
class Stop:
    """A single pickup or drop-off location with a scheduled time."""

    stop_id: str
    coordinate: Coordinate
    scheduled_time: datetime
    role: StopRole
    address: str = ""

    def __post_init__(self) -> None:
        if self.role not in ("pickup", "dropoff"):
            raise ValidationError(f"Stop role must be 'pickup' or 'dropoff', got {self.role!r}")


@dataclass(slots=True)
class Trip:
    """A scheduled passenger trip as read from the scheduling store."""

    trip_id: str
    pickup: Stop
    dropoff: Stop
    passenger_count: int = 1
    driver_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    customer_id: Optional[str] = None
    price: float = 0.0
    status: str = "scheduled"
    mobility_requirements: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not self.trip_id:
            raise ValidationError("Trip id is required")
        if self.passenger_count < 1:
            raise ValidationError(f"Trip {self.trip_id}: passenger_count must be >= 1, got {self.passenger_count}")
        if self.price < 0:
            raise ValidationError(f"Trip {self.trip_id}: price must be >= 0, got {self.price}")
        if self.pickup.role != "pickup":
            raise ValidationError(f"Trip {self.trip_id}: first stop must be a pickup")
        if self.dropoff.role != "dropoff":
            raise ValidationError(f"Trip {self.trip_id}: second stop must be a dropoff")
        self.mobility_requirements = frozenset(req.strip().lower() for req in self.mobility_requirements if req)

    @property
    def trip_date(self) -> date:
        return self.pickup.scheduled_time.date()

    @property
    def pickup_time(self) -> datetime:
        return self.pickup.scheduled_time

    @property
    def is_active(self) -> bool:
        return self.status.lower() not in INACTIVE_STATUSES


@dataclass(slots=True)
class Vehicle:
    """A vehicle with its seat capacity and accessibility."""

    vehicle_id: str
    capacity: int
    wheelchair_accessible: bool = False
    registration: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValidationError(f"Vehicle {self.vehicle_id}: capacity must be >= 1, got {self.capacity}")

    def supports(self, requirements: frozenset[str]) -> bool:
        for requirement in requirements:
            if requirement == WHEELCHAIR:
                if not self.wheelchair_accessible:
                    return False
            else:
                return False
        return True


@dataclass(slots=True)
class CustomerRequest:
    """An unassigned customer's travel request for a given day."""

    customer_id: str
    pickup: Coordinate
    destination: Coordinate
    pickup_time: datetime
    name: str = ""
    destination_name: str = ""
    address: Optional[str] = None
    postcode: Optional[str] = None
    phone: Optional[str] = None
    mobility_requirements: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not self.customer_id:
            raise ValidationError("Customer request requires a customer id")
        self.mobility_requirements = frozenset(req.strip().lower() for req in self.mobility_requirements if req)
