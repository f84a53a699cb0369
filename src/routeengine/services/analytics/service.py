"""Route analytics helpers."""

from __future__ import annotations

from collections import Counter, defaultdict
from typing import Iterable, List

from ...models.domain import Trip
from ..geospatial import haversine_km

PEAK_HOURS_LIMIT = 5


def _trip_km(trip: Trip) -> float:
    start = trip.pickup.coordinate
    end = trip.dropoff.coordinate
    return haversine_km(start.latitude, start.longitude, end.latitude, end.longitude)


def build_route_analytics(trips: Iterable[Trip]) -> dict:
    active = [trip for trip in trips if trip.is_active]

    per_driver_trips: Counter[str] = Counter()
    per_driver_km: dict[str, float] = defaultdict(float)
    per_driver_days: dict[str, set] = defaultdict(set)
    hours: Counter[int] = Counter()
    days = set()
    total_km = 0.0

    for trip in active:
        km = _trip_km(trip)
        total_km += km
        days.add(trip.trip_date)
        hours[trip.pickup_time.hour] += 1
        if trip.driver_id:
            per_driver_trips[trip.driver_id] += 1
            per_driver_km[trip.driver_id] += km
            per_driver_days[trip.driver_id].add(trip.trip_date)

    total_trips = len(active)
    drivers_used = len(per_driver_trips)
    total_passengers = sum(trip.passenger_count for trip in active)

    driver_utilization: List[dict] = []
    for driver_id, count in sorted(per_driver_trips.items(), key=lambda item: (-item[1], item[0])):
        driver_utilization.append(
            {
                "driver_id": driver_id,
                "trip_count": count,
                "total_distance_km": round(per_driver_km[driver_id], 2),
                "active_days": len(per_driver_days[driver_id]),
            }
        )

    peak_hours = [
        {"hour": hour, "trip_count": count}
        for hour, count in sorted(hours.items(), key=lambda item: (-item[1], item[0]))[:PEAK_HOURS_LIMIT]
    ]

    return {
        "overview": {
            "total_trips": total_trips,
            "drivers_used": drivers_used,
            "days_active": len(days),
            "average_passengers_per_trip": round(total_passengers / total_trips, 2) if total_trips else 0.0,
            "total_distance_km": round(total_km, 2),
            "trips_per_driver": round(total_trips / drivers_used, 2) if drivers_used else 0.0,
        },
        "driver_utilization": driver_utilization,
        "peak_hours": peak_hours,
    }
