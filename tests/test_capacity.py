from datetime import date, datetime, time, timedelta

import pytest

from routeengine.errors import ValidationError
from routeengine.models.domain import Coordinate, CustomerRequest, Stop, Trip, Vehicle
from routeengine.services.capacity.alerts import build_capacity_alerts, severity_for
from routeengine.services.capacity.matcher import CombinationMatcher, build_legs
from routeengine.services.capacity.planner import CapacityGroup, CapacityPlanner, check_capacity

DAY = date(2025, 3, 3)
HOME = (51.50, -0.12)
HOSPITAL = (51.52, -0.10)


def _trip(
    trip_id, hour, minute=0, passengers=1, destination=HOSPITAL, vehicle="V1", driver="D1", price=0.0, customer=None, status="scheduled"
):
    when = datetime.combine(DAY, time(hour, minute))
    return Trip(
        trip_id=trip_id,
        pickup=Stop(f"{trip_id}-p", Coordinate(*HOME), when, "pickup"),
        dropoff=Stop(f"{trip_id}-d", Coordinate(*destination), when + timedelta(minutes=25), "dropoff", address="General Hospital"),
        passenger_count=passengers,
        driver_id=driver,
        vehicle_id=vehicle,
        customer_id=customer,
        price=price,
        status=status,
    )


def _request(customer_id, hour, minute=0, destination=HOSPITAL, requirements=()):
    return CustomerRequest(
        customer_id=customer_id,
        pickup=Coordinate(51.501, -0.121),
        destination=Coordinate(*destination),
        pickup_time=datetime.combine(DAY, time(hour, minute)),
        name=f"Customer {customer_id}",
        mobility_requirements=frozenset(requirements),
    )


# Capacity planner


def test_pack_rejects_non_positive_capacity():
    with pytest.raises(ValidationError):
        CapacityPlanner().pack([_trip("T1", 9)], 0)


def test_pack_rejects_trip_larger_than_vehicle():
    with pytest.raises(ValidationError):
        CapacityPlanner().pack([_trip("T1", 9, passengers=5)], 4)


def test_pack_groups_compatible_trips_without_overflow():
    trips = [_trip("T1", 9, passengers=2), _trip("T2", 9, 5, passengers=2), _trip("T3", 9, 10, passengers=2)]
    plan = CapacityPlanner(time_window_minutes=15, proximity_km=3).pack(trips, 4)

    assert [[trip.trip_id for trip in group.trips] for group in plan.groups] == [["T1", "T2"], ["T3"]]
    assert all(group.occupied_seats <= group.vehicle_capacity for group in plan.groups)
    stats = plan.statistics
    assert stats.total_trips == 3
    assert stats.total_passengers == 6
    assert stats.vehicles_needed == 2
    assert stats.vehicles_saved == 1
    assert stats.average_capacity_used == 3
    assert stats.efficiency == 75


def test_pack_separates_trips_outside_time_window_or_destination():
    trips = [
        _trip("T1", 9),
        _trip("T2", 10),
        _trip("T3", 9, 5, destination=(51.60, 0.10)),
    ]
    plan = CapacityPlanner(time_window_minutes=15, proximity_km=3).pack(trips, 8)
    assert plan.statistics.vehicles_needed == 3


def test_pack_empty_day_has_zero_efficiency():
    plan = CapacityPlanner().pack([], 8)
    assert plan.groups == []
    assert plan.statistics.efficiency == 0
    assert plan.statistics.vehicles_saved == 0


def test_pack_ignores_cancelled_trips():
    trips = [_trip("T1", 9), _trip("T2", 9, 5, status="cancelled"), _trip("T3", 12, status="Canceled")]
    plan = CapacityPlanner().pack(trips, 8)

    assert [[trip.trip_id for trip in group.trips] for group in plan.groups] == [["T1"]]
    assert plan.statistics.total_trips == 1
    assert plan.statistics.vehicles_needed == 1
    assert plan.statistics.efficiency == 12.5


def test_pack_three_time_clusters():
    starts = [(8, 0), (8, 5), (8, 10), (11, 0), (11, 5), (11, 10), (15, 0), (15, 5), (15, 10), (15, 12)]
    trips = [_trip(f"T{i}", hour, minute) for i, (hour, minute) in enumerate(starts)]

    stats = CapacityPlanner(time_window_minutes=15, proximity_km=3).pack(trips, 8).statistics

    assert stats.total_trips == 10
    assert 2 <= stats.vehicles_needed <= 10
    assert stats.vehicles_needed == 3
    assert 0 < stats.efficiency < 100


def test_capacity_group_refuses_overflow():
    group = CapacityGroup(vehicle_slot_id=1, vehicle_capacity=3)
    group.add(_trip("T1", 9, passengers=2))
    with pytest.raises(ValidationError):
        group.add(_trip("T2", 9, passengers=2))
    assert group.occupied_seats == 2
    assert group.empty_seats == 1


def test_check_capacity():
    assert check_capacity(3, 2, 8) == (True, 3)
    assert check_capacity(7, 2, 8) == (False, 0)


# Combination matcher


def test_legs_group_trips_by_vehicle_time_and_destination():
    trips = [_trip("T1", 9), _trip("T2", 9, passengers=2), _trip("T3", 11)]
    legs = build_legs(trips, {"V1": Vehicle("V1", capacity=6)})

    assert [[trip.trip_id for trip in leg.trips] for leg in legs] == [["T1", "T2"], ["T3"]]
    assert legs[0].occupied_seats == 3
    assert legs[0].empty_seats == 3


def test_legs_use_default_capacity_for_unknown_vehicle():
    legs = build_legs([_trip("T1", 9, vehicle="missing")], {}, default_capacity=8)
    assert legs[0].total_seats == 8


def test_perfect_match_is_highly_recommended():
    matcher = CombinationMatcher(time_window_minutes=30, proximity_km=2, history_saturation=5, default_fare=7.0)
    history = {"C1": [Coordinate(*HOSPITAL)] * 5}

    result = matcher.find_opportunities(
        [_trip("T1", 9)], {"V1": Vehicle("V1", capacity=4)}, [_request("C1", 9)], history, fare=12.5
    )

    opportunity = result.opportunities[0]
    assert opportunity.compatibility_score == 100
    assert opportunity.recommendation == "highly_recommended"
    assert opportunity.potential_additional_revenue == 12.5
    assert opportunity.similar_destination_trips == 5
    assert result.summary.highly_recommended == 1
    assert result.summary.total_potential_revenue == 12.5


def test_score_falls_with_time_difference():
    matcher = CombinationMatcher(time_window_minutes=30, proximity_km=2, default_fare=7.0)
    result = matcher.find_opportunities([_trip("T1", 9)], {"V1": Vehicle("V1", capacity=4)}, [_request("C1", 9, 15)])

    opportunity = result.opportunities[0]
    assert opportunity.compatibility_score == 60
    assert opportunity.recommendation == "recommended"
    assert opportunity.time_difference_minutes == 15


def test_incompatible_requests_are_excluded():
    matcher = CombinationMatcher(time_window_minutes=30, proximity_km=2, default_fare=7.0)
    requests = [
        _request("late", 9, 45),
        _request("far", 9, destination=(51.70, 0.20)),
        _request("wheelchair", 9, requirements=["wheelchair"]),
        _request("oxygen", 9, requirements=["oxygen"]),
    ]
    result = matcher.find_opportunities([_trip("T1", 9)], {"V1": Vehicle("V1", capacity=4)}, requests)
    assert result.opportunities == []
    assert result.summary.total_opportunities == 0


def test_wheelchair_request_matches_accessible_vehicle():
    matcher = CombinationMatcher(time_window_minutes=30, proximity_km=2, default_fare=7.0)
    vehicles = {"V1": Vehicle("V1", capacity=4, wheelchair_accessible=True)}
    result = matcher.find_opportunities([_trip("T1", 9)], vehicles, [_request("C1", 9, requirements=["Wheelchair"])])
    assert [item.compatible_customer_id for item in result.opportunities] == ["C1"]


def test_destination_along_the_route_is_compatible():
    trip = _trip("T1", 9, destination=(51.50, 0.08))
    request = _request("C1", 9, destination=(51.50, -0.02))
    matcher = CombinationMatcher(time_window_minutes=30, proximity_km=2, default_fare=7.0)

    result = matcher.find_opportunities([trip], {"V1": Vehicle("V1", capacity=4)}, [request])

    opportunity = result.opportunities[0]
    assert opportunity.destination_distance_km > 2
    assert opportunity.compatibility_score == 80
    assert any("route" in reason for reason in opportunity.reasoning)


def test_full_leg_gets_no_opportunities():
    matcher = CombinationMatcher(default_fare=7.0)
    result = matcher.find_opportunities([_trip("T1", 9, passengers=4)], {"V1": Vehicle("V1", capacity=4)}, [_request("C1", 9)])
    assert result.opportunities == []


def test_revenue_falls_back_to_leg_price_then_default_fare():
    matcher = CombinationMatcher(time_window_minutes=30, proximity_km=2, default_fare=7.0)
    vehicles = {"V1": Vehicle("V1", capacity=4)}

    priced = matcher.find_opportunities([_trip("T1", 9, price=20.0)], vehicles, [_request("C1", 9)])
    unpriced = matcher.find_opportunities([_trip("T1", 9)], vehicles, [_request("C1", 9)])

    assert priced.opportunities[0].potential_additional_revenue == 20.0
    assert unpriced.opportunities[0].potential_additional_revenue == 7.0


def test_opportunities_sorted_by_score():
    matcher = CombinationMatcher(time_window_minutes=30, proximity_km=2, default_fare=7.0)
    result = matcher.find_opportunities(
        [_trip("T1", 9)], {"V1": Vehicle("V1", capacity=4)}, [_request("slow", 9, 15), _request("exact", 9)]
    )
    assert [item.compatible_customer_id for item in result.opportunities] == ["exact", "slow"]


def test_existing_passenger_is_not_offered_again():
    matcher = CombinationMatcher(default_fare=7.0)
    result = matcher.find_opportunities(
        [_trip("T1", 9, customer="C1")], {"V1": Vehicle("V1", capacity=4)}, [_request("C1", 9)]
    )
    assert result.opportunities == []


# Capacity alerts


@pytest.mark.parametrize("empty, expected", [(7, "high"), (4, "high"), (3, "medium"), (2, "medium"), (1, "low")])
def test_severity_tiers(empty, expected):
    assert severity_for(empty) == expected


def test_alerts_flag_underused_legs_only():
    vehicles = {
        "V1": Vehicle("V1", capacity=8),
        "V2": Vehicle("V2", capacity=3),
        "V3": Vehicle("V3", capacity=4),
        "V4": Vehicle("V4", capacity=4),
    }
    trips = [
        _trip("big", 9, price=15.0, vehicle="V1", driver="D1"),
        _trip("small", 9, vehicle="V2", driver="D2"),
        _trip("busy", 9, passengers=3, vehicle="V3", driver="D3"),
        _trip("half", 10, passengers=2, price=10.0, vehicle="V4", driver="D4"),
    ]

    report = build_capacity_alerts(trips, vehicles, [_request("C1", 9)], matcher=CombinationMatcher(default_fare=7.0))

    assert [alert.trip_ids for alert in report.alerts] == [["big"], ["half"]]
    big, half = report.alerts
    assert big.severity == "high"
    assert big.empty_seats == 7
    assert big.potential_additional_revenue == 105.0
    assert big.utilization_percentage == 12.5
    assert [item.compatible_customer_id for item in big.recommended_passengers] == ["C1"]
    assert half.severity == "medium"
    assert half.potential_additional_revenue == 20.0
    assert report.summary.total_alerts == 2
    assert report.summary.total_empty_seats == 9
    assert report.summary.total_potential_revenue == 125.0
    assert report.summary.average_utilization == pytest.approx((12.5 + 50.0) / 2, abs=0.1)


def test_alerts_filter_by_driver():
    vehicles = {"V1": Vehicle("V1", capacity=8), "V2": Vehicle("V2", capacity=8)}
    trips = [_trip("a", 9, vehicle="V1", driver="D1"), _trip("b", 9, vehicle="V2", driver="D2")]

    report = build_capacity_alerts(trips, vehicles, [], driver_id="D2")

    assert [alert.driver_id for alert in report.alerts] == ["D2"]


def test_no_alerts_summary_reports_full_utilization():
    report = build_capacity_alerts([], {}, [])
    assert report.alerts == []
    assert report.summary.average_utilization == 100.0
