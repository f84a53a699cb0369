"""Tenant-scoped reads of trips, vehicles and customer requests from Supabase."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, time
from typing import Any, Iterable, Optional, Sequence

from ..db.supabase import get_supabase_client
from ..errors import NotFoundError, RepositoryError, ValidationError
from ..models.domain import INACTIVE_STATUSES, Coordinate, CustomerRequest, Stop, Trip, Vehicle

logger = logging.getLogger(__name__)

TRIPS_TABLE = "tenant_trips"
VEHICLES_TABLE = "tenant_vehicles"
REQUESTS_TABLE = "tenant_customer_requests"
FARES_TABLE = "tenant_fare_settings"

RejectedGroups = dict[tuple[str, date], str]


class MissingCoordinatesError(ValidationError):
    """A row has no coordinates at all."""


def _client():
    client = get_supabase_client()
    if client is None:
        raise RepositoryError("Trip store is not configured (set ROUTEENGINE_SUPABASE_URL and ROUTEENGINE_SUPABASE_KEY).")
    return client


def _execute(query, description: str) -> list[dict[str, Any]]:
    try:
        response = query.execute()
    except Exception as exc:
        raise RepositoryError(f"Failed to load {description}: {exc}") from exc
    return list(response.data or [])


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise ValidationError("Missing date")
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise ValidationError(f"Unable to parse date from value '{value}'") from exc


def _parse_datetime(day: date, value: Any) -> datetime:
    """Combine a row's date with a clock time ("08:30") or a full ISO timestamp."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if not value:
        return datetime.combine(day, time.min)
    text = str(value).strip()
    try:
        if "T" in text or " " in text:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).replace(tzinfo=None)
        return datetime.combine(day, time.fromisoformat(text))
    except ValueError as exc:
        raise ValidationError(f"Unable to parse time from value '{value}'") from exc


def _coordinate(row: dict[str, Any], prefix: str) -> Coordinate:
    lat = row.get(f"{prefix}_lat")
    lng = row.get(f"{prefix}_lng")
    if lat in (None, "") or lng in (None, ""):
        raise MissingCoordinatesError(f"{prefix} coordinates are missing")
    return Coordinate(lat, lng)


def _requirements(value: Any) -> frozenset[str]:
    if not value:
        return frozenset()
    if isinstance(value, str):
        return frozenset(item.strip() for item in value.split(",") if item.strip())
    return frozenset(str(item) for item in value)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def row_to_trip(row: dict[str, Any]) -> Trip:
    trip_id = str(row.get("trip_id") or row.get("id") or "")
    day = _parse_date(row.get("trip_date"))
    pickup_time = _parse_datetime(day, row.get("pickup_time"))
    dropoff_time = _parse_datetime(day, row.get("dropoff_time")) if row.get("dropoff_time") else pickup_time
    return Trip(
        trip_id=trip_id,
        pickup=Stop(
            stop_id=f"{trip_id}-pickup",
            coordinate=_coordinate(row, "pickup"),
            scheduled_time=pickup_time,
            role="pickup",
            address=row.get("pickup_address") or "",
        ),
        dropoff=Stop(
            stop_id=f"{trip_id}-dropoff",
            coordinate=_coordinate(row, "destination"),
            scheduled_time=dropoff_time,
            role="dropoff",
            address=row.get("destination_address") or row.get("destination") or "",
        ),
        passenger_count=int(row.get("passenger_count") or 1),
        driver_id=_text(row.get("driver_id")),
        vehicle_id=_text(row.get("vehicle_id")),
        customer_id=_text(row.get("customer_id")),
        price=float(row.get("price") or row.get("fare_amount") or 0.0),
        status=(row.get("status") or "scheduled").strip().lower(),
        mobility_requirements=_requirements(row.get("mobility_requirements")),
    )


def rows_to_trips(rows: Iterable[dict[str, Any]]) -> tuple[list[Trip], RejectedGroups]:
    """Map rows to trips.

    A row with missing or invalid data marks its (driver, date) group as
    rejected so callers can report it instead of optimizing a partial day.
    Unassigned and cancelled rows that cannot be mapped are only skipped.
    """

    trips: list[Trip] = []
    rejected: RejectedGroups = {}
    for row in rows:
        trip_id = row.get("trip_id") or row.get("id")
        try:
            trips.append(row_to_trip(row))
        except (ValidationError, TypeError, ValueError) as exc:
            if (_text(row.get("status")) or "").lower() in INACTIVE_STATUSES:
                logger.debug(f"Skipping cancelled trip {trip_id}: {exc}")
                continue
            driver_id = _text(row.get("driver_id"))
            try:
                day = _parse_date(row.get("trip_date"))
            except ValidationError:
                logger.warning(f"Skipping trip {trip_id}: {exc}")
                continue
            if driver_id is None:
                logger.warning(f"Skipping unassigned trip {trip_id}: {exc}")
                continue
            logger.warning(f"Rejecting trip {trip_id} for driver {driver_id} on {day}: {exc}")
            rejected.setdefault((driver_id, day), f"Trip {trip_id} has invalid data: {exc}")
    return trips, rejected


def get_trips_by_ids(tenant_id: str, trip_ids: Sequence[str]) -> list[Trip]:
    """Load specific trips; every id must exist and be valid."""
    if not trip_ids:
        return []
    query = _client().table(TRIPS_TABLE).select("*").eq("tenant_id", tenant_id).in_("trip_id", list(trip_ids))
    rows = _execute(query, "trips")
    found = {str(row.get("trip_id") or row.get("id")): row for row in rows}
    missing = [trip_id for trip_id in trip_ids if trip_id not in found]
    if missing:
        raise NotFoundError(f"Trips not found: {', '.join(missing)}")
    try:
        return [row_to_trip(found[trip_id]) for trip_id in trip_ids]
    except (TypeError, ValueError) as exc:
        raise ValidationError(str(exc)) from exc


def get_trips_in_range(tenant_id: str, start_date: date, end_date: date) -> tuple[list[Trip], RejectedGroups]:
    query = (
        _client()
        .table(TRIPS_TABLE)
        .select("*")
        .eq("tenant_id", tenant_id)
        .gte("trip_date", start_date.isoformat())
        .lte("trip_date", end_date.isoformat())
    )
    return rows_to_trips(_execute(query, "trips"))


def get_trips_for_date(tenant_id: str, day: date) -> list[Trip]:
    trips, rejected = get_trips_in_range(tenant_id, day, day)
    for (driver_id, _), reason in rejected.items():
        logger.warning(f"Ignoring rejected trips for driver {driver_id} on {day}: {reason}")
    return trips


def row_to_vehicle(row: dict[str, Any]) -> Vehicle:
    return Vehicle(
        vehicle_id=str(row.get("vehicle_id") or row.get("id")),
        capacity=int(row.get("capacity") or row.get("seating_capacity") or 0),
        wheelchair_accessible=bool(row.get("wheelchair_accessible")),
        registration=_text(row.get("registration")),
        make=_text(row.get("make")),
        model=_text(row.get("model")),
    )


def get_vehicles(tenant_id: str) -> dict[str, Vehicle]:
    rows = _execute(_client().table(VEHICLES_TABLE).select("*").eq("tenant_id", tenant_id), "vehicles")
    vehicles: dict[str, Vehicle] = {}
    for row in rows:
        try:
            vehicle = row_to_vehicle(row)
        except (TypeError, ValueError) as exc:
            logger.warning(f"Skipping vehicle {row.get('vehicle_id') or row.get('id')}: {exc}")
            continue
        vehicles[vehicle.vehicle_id] = vehicle
    return vehicles


def row_to_request(row: dict[str, Any]) -> CustomerRequest:
    day = _parse_date(row.get("requested_date") or row.get("trip_date"))
    return CustomerRequest(
        customer_id=str(row.get("customer_id") or ""),
        pickup=_coordinate(row, "pickup"),
        destination=_coordinate(row, "destination"),
        pickup_time=_parse_datetime(day, row.get("pickup_time")),
        name=row.get("name") or "",
        destination_name=row.get("destination_name") or "",
        address=_text(row.get("address")),
        postcode=_text(row.get("postcode")),
        phone=_text(row.get("phone")),
        mobility_requirements=_requirements(row.get("mobility_requirements")),
    )


def get_customer_requests(tenant_id: str, day: date) -> list[CustomerRequest]:
    query = (
        _client()
        .table(REQUESTS_TABLE)
        .select("*")
        .eq("tenant_id", tenant_id)
        .eq("requested_date", day.isoformat())
        .eq("status", "pending")
    )
    requests: list[CustomerRequest] = []
    for row in _execute(query, "customer requests"):
        try:
            requests.append(row_to_request(row))
        except (TypeError, ValueError) as exc:
            logger.warning(f"Skipping request for customer {row.get('customer_id')}: {exc}")
    return requests


def get_destination_history(tenant_id: str, customer_ids: Sequence[str], before: date) -> dict[str, list[Coordinate]]:
    """Past destinations per customer, used to score similar-destination history."""
    if not customer_ids:
        return {}
    query = (
        _client()
        .table(TRIPS_TABLE)
        .select("customer_id,destination_lat,destination_lng")
        .eq("tenant_id", tenant_id)
        .in_("customer_id", list(customer_ids))
        .lt("trip_date", before.isoformat())
    )
    history: dict[str, list[Coordinate]] = defaultdict(list)
    for row in _execute(query, "trip history"):
        try:
            history[str(row["customer_id"])].append(_coordinate(row, "destination"))
        except (KeyError, TypeError, ValueError):
            continue
    return dict(history)


def get_fare(tenant_id: str) -> Optional[float]:
    query = _client().table(FARES_TABLE).select("*").eq("tenant_id", tenant_id).limit(1)
    rows = _execute(query, "fare settings")
    if not rows:
        return None
    value = rows[0].get("base_fare") or rows[0].get("fare_amount")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        logger.warning(f"Ignoring invalid fare setting for tenant {tenant_id}: {value!r}")
        return None
