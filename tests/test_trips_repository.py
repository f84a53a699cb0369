from datetime import date, datetime
from types import SimpleNamespace

import pytest

from routeengine.data import trips_repository
from routeengine.errors import NotFoundError, RepositoryError

DAY = date(2025, 3, 3)


def _row(trip_id, driver="D1", lat=51.5, **overrides):
    row = {
        "trip_id": trip_id,
        "tenant_id": "t1",
        "trip_date": DAY.isoformat(),
        "pickup_time": "09:30",
        "pickup_address": "1 High Street",
        "pickup_lat": lat,
        "pickup_lng": -0.12,
        "destination_address": "General Hospital",
        "destination_lat": 51.52,
        "destination_lng": -0.10,
        "passenger_count": 2,
        "price": "12.50",
        "status": "Scheduled",
        "driver_id": driver,
        "vehicle_id": "V1",
        "customer_id": "C1",
        "mobility_requirements": "wheelchair",
    }
    row.update(overrides)
    return row


class DummyQuery:
    def __init__(self, rows, fail=False):
        self.rows = rows
        self.fail = fail
        self.calls = []

    def __getattr__(self, name):
        def method(*args, **kwargs):
            self.calls.append((name, args))
            return self

        return method

    def execute(self):
        if self.fail:
            raise RuntimeError("connection reset")
        return SimpleNamespace(data=self.rows)


class DummyClient:
    def __init__(self, tables, fail=False):
        self.tables = tables
        self.fail = fail
        self.queries = {}

    def table(self, name):
        query = DummyQuery(self.tables.get(name, []), fail=self.fail)
        self.queries[name] = query
        return query


@pytest.fixture
def use_client(monkeypatch):
    def install(tables, fail=False):
        client = DummyClient(tables, fail=fail)
        monkeypatch.setattr(trips_repository, "get_supabase_client", lambda: client)
        return client

    return install


def test_row_to_trip_maps_columns():
    trip = trips_repository.row_to_trip(_row("T1"))

    assert trip.trip_id == "T1"
    assert trip.pickup.scheduled_time == datetime(2025, 3, 3, 9, 30)
    assert trip.pickup.coordinate.latitude == 51.5
    assert trip.dropoff.address == "General Hospital"
    assert trip.passenger_count == 2
    assert trip.price == 12.5
    assert trip.status == "scheduled"
    assert trip.mobility_requirements == frozenset({"wheelchair"})


def test_range_query_rejects_groups_with_corrupted_coordinates(use_client):
    client = use_client(
        {
            "tenant_trips": [
                _row("T1"),
                _row("T2", driver="D2", lat=123.0),
                _row("T3", driver="D2"),
                _row("T4", driver_id=None, pickup_lat=None),
            ]
        }
    )

    trips, rejected = trips_repository.get_trips_in_range("t1", DAY, DAY)

    assert [trip.trip_id for trip in trips] == ["T1", "T3"]
    assert list(rejected) == [("D2", DAY)]
    assert "T2" in rejected[("D2", DAY)]
    assert ("eq", ("tenant_id", "t1")) in client.queries["tenant_trips"].calls


def test_missing_coordinates_reject_the_driver_day():
    rows = [
        _row("T1"),
        _row("T2", destination_lat=None),
        _row("T3", driver="D2", pickup_lng=None, status="Cancelled"),
        _row("T4", driver="D2"),
    ]

    trips, rejected = trips_repository.rows_to_trips(rows)

    assert [trip.trip_id for trip in trips] == ["T1", "T4"]
    assert list(rejected) == [("D1", DAY)]
    assert "T2" in rejected[("D1", DAY)]
    assert "missing" in rejected[("D1", DAY)]


def test_get_trips_by_ids_raises_for_missing(use_client):
    use_client({"tenant_trips": [_row("T1")]})
    with pytest.raises(NotFoundError, match="T2"):
        trips_repository.get_trips_by_ids("t1", ["T1", "T2"])


def test_get_trips_by_ids_keeps_requested_order(use_client):
    use_client({"tenant_trips": [_row("T1"), _row("T2")]})
    trips = trips_repository.get_trips_by_ids("t1", ["T2", "T1"])
    assert [trip.trip_id for trip in trips] == ["T2", "T1"]


def test_unconfigured_store_raises_repository_error(monkeypatch):
    monkeypatch.setattr(trips_repository, "get_supabase_client", lambda: None)
    with pytest.raises(RepositoryError):
        trips_repository.get_trips_in_range("t1", DAY, DAY)


def test_query_failure_raises_repository_error(use_client):
    use_client({}, fail=True)
    with pytest.raises(RepositoryError, match="connection reset"):
        trips_repository.get_vehicles("t1")


def test_vehicles_requests_history_and_fare(use_client):
    use_client(
        {
            "tenant_vehicles": [
                {"vehicle_id": "V1", "capacity": 8, "wheelchair_accessible": True, "registration": "AB12 CDE"},
                {"vehicle_id": "V2", "capacity": 0},
            ],
            "tenant_customer_requests": [
                {
                    "customer_id": "C9",
                    "requested_date": DAY.isoformat(),
                    "pickup_time": "09:15",
                    "pickup_lat": 51.5,
                    "pickup_lng": -0.12,
                    "destination_lat": 51.52,
                    "destination_lng": -0.10,
                    "name": "Jo Bloggs",
                },
                {"customer_id": "C10", "requested_date": DAY.isoformat(), "pickup_lat": None},
            ],
            "tenant_fare_settings": [{"base_fare": "9.5"}],
        }
    )

    vehicles = trips_repository.get_vehicles("t1")
    assert list(vehicles) == ["V1"]
    assert vehicles["V1"].wheelchair_accessible is True

    requests = trips_repository.get_customer_requests("t1", DAY)
    assert [request.customer_id for request in requests] == ["C9"]
    assert requests[0].pickup_time == datetime(2025, 3, 3, 9, 15)

    assert trips_repository.get_fare("t1") == 9.5


def test_destination_history_groups_by_customer(use_client):
    use_client(
        {
            "tenant_trips": [
                {"customer_id": "C1", "destination_lat": 51.52, "destination_lng": -0.10},
                {"customer_id": "C1", "destination_lat": 51.53, "destination_lng": -0.11},
                {"customer_id": "C2", "destination_lat": None, "destination_lng": None},
            ]
        }
    )
    history = trips_repository.get_destination_history("t1", ["C1", "C2"], DAY)
    assert len(history["C1"]) == 2
    assert "C2" not in history
