"""Trip sequence optimization for a single driver-day.

A driver's day is modelled as an open path over trips: the driver starts at the
earliest scheduled pickup, carries each passenger from pickup to drop-off, then
drives empty to the next pickup. The in-trip legs are fixed, so reordering only
changes the connecting legs. Small days are searched exhaustively; larger ones
are solved with OR-Tools and polished with 2-opt.
"""

from __future__ import annotations

import itertools
import logging
import math
from datetime import date
from typing import Sequence

from ortools.constraint_solver import pywrapcp, routing_enums_pb2

from ...config import settings
from ...errors import ComputationError, InsufficientStopsError, ValidationError
from ...models.domain import Stop, Trip
from .distance import DistanceMatrix, DistanceProvider, build_distance_provider
from .models import OptimizationResult, Savings

logger = logging.getLogger(__name__)

# Improvements smaller than this (meters) are treated as ties.
COST_EPSILON = 1e-6


def sort_by_pickup(trips: Sequence[Trip]) -> list[Trip]:
    return sorted(trips, key=lambda trip: (trip.pickup.scheduled_time, trip.trip_id))


def trip_stops(trips: Sequence[Trip]) -> list[Stop]:
    """Stops for a trip sequence: index 2k is trip k's pickup, 2k + 1 its drop-off."""
    stops: list[Stop] = []
    for trip in trips:
        stops.extend((trip.pickup, trip.dropoff))
    return stops


class _TripCosts:
    """Trip-level view of a stop distance matrix."""

    def __init__(self, matrix: DistanceMatrix, trip_count: int) -> None:
        self.n = trip_count
        self.service_distance = [matrix.distance(2 * k, 2 * k + 1) for k in range(trip_count)]
        self.service_duration = [matrix.duration(2 * k, 2 * k + 1) for k in range(trip_count)]
        self.connect_distance = [
            [matrix.distance(2 * i + 1, 2 * j) for j in range(trip_count)] for i in range(trip_count)
        ]
        self.connect_duration = [
            [matrix.duration(2 * i + 1, 2 * j) for j in range(trip_count)] for i in range(trip_count)
        ]
        values = (
            *self.service_distance,
            *self.service_duration,
            *itertools.chain.from_iterable(self.connect_distance),
            *itertools.chain.from_iterable(self.connect_duration),
        )
        if any(not math.isfinite(value) or value < 0 for value in values):
            raise ComputationError("Distance matrix contains invalid values; cannot order trips.")

    def distance(self, order: Sequence[int]) -> float:
        total = sum(self.service_distance[k] for k in order)
        total += sum(self.connect_distance[a][b] for a, b in zip(order, order[1:]))
        return total

    def duration(self, order: Sequence[int]) -> float:
        total = sum(self.service_duration[k] for k in order)
        total += sum(self.connect_duration[a][b] for a, b in zip(order, order[1:]))
        return total


def _displacement(order: Sequence[int]) -> int:
    return sum(1 for position, index in enumerate(order) if position != index)


def _is_better(cost: float, order: Sequence[int], best_cost: float, best_order: Sequence[int]) -> bool:
    if cost < best_cost - COST_EPSILON:
        return True
    return abs(cost - best_cost) <= COST_EPSILON and _displacement(order) < _displacement(best_order)


def exact_order(costs: _TripCosts) -> list[int]:
    """Enumerate every ordering that keeps the first trip in place."""
    best_order = list(range(costs.n))
    best_cost = costs.distance(best_order)
    for tail in itertools.permutations(range(1, costs.n)):
        order = [0, *tail]
        cost = costs.distance(order)
        if _is_better(cost, order, best_cost, best_order):
            best_order, best_cost = order, cost
    return best_order


def nearest_neighbour_order(costs: _TripCosts) -> list[int]:
    order = [0]
    remaining = set(range(1, costs.n))
    while remaining:
        current = order[-1]
        # ties go to the earlier scheduled trip
        nearest = min(remaining, key=lambda j: (costs.connect_distance[current][j], j))
        order.append(nearest)
        remaining.remove(nearest)
    return order


def two_opt(costs: _TripCosts, order: Sequence[int], max_passes: int) -> list[int]:
    """Reverse segments while doing so shortens the path; the first trip stays fixed."""
    best = list(order)
    best_cost = costs.distance(best)
    for _ in range(max_passes):
        improved = False
        for i in range(1, costs.n - 1):
            for j in range(i + 1, costs.n):
                candidate = best[:i] + best[i : j + 1][::-1] + best[j + 1 :]
                cost = costs.distance(candidate)
                if cost < best_cost - COST_EPSILON:
                    best, best_cost = candidate, cost
                    improved = True
        if not improved:
            break
    return best


def solver_order(costs: _TripCosts, time_limit_seconds: int) -> list[int] | None:
    """Solve the open-path ordering with OR-Tools using a zero-cost dummy end node."""
    n = costs.n
    end_node = n
    manager = pywrapcp.RoutingIndexManager(n + 1, 1, [0], [end_node])
    routing = pywrapcp.RoutingModel(manager)

    def distance_callback(from_index: int, to_index: int) -> int:
        from_node = manager.IndexToNode(from_index)
        to_node = manager.IndexToNode(to_index)
        if from_node == end_node or to_node == end_node:
            return 0
        return int(round(costs.connect_distance[from_node][to_node]))

    transit_callback_index = routing.RegisterTransitCallback(distance_callback)
    routing.SetArcCostEvaluatorOfAllVehicles(transit_callback_index)

    search_parameters = pywrapcp.DefaultRoutingSearchParameters()
    search_parameters.first_solution_strategy = getattr(
        routing_enums_pb2.FirstSolutionStrategy, settings.solver_first_solution_strategy
    )
    search_parameters.local_search_metaheuristic = getattr(
        routing_enums_pb2.LocalSearchMetaheuristic, settings.solver_local_search_metaheuristic
    )
    search_parameters.time_limit.FromSeconds(time_limit_seconds)

    assignment = routing.SolveWithParameters(search_parameters)
    if not assignment:
        return None

    order: list[int] = []
    index = routing.Start(0)
    while not routing.IsEnd(index):
        order.append(manager.IndexToNode(index))
        index = assignment.Value(routing.NextVar(index))
    if sorted(order) != list(range(n)):
        logger.warning(f"Solver returned an incomplete sequence ({len(order)} of {n} trips); ignoring it")
        return None
    return order


class RouteOptimizer:
    """Reorders one driver's trips for one day to minimise travel distance."""

    def __init__(
        self,
        provider: DistanceProvider | None = None,
        *,
        exact_search_max_trips: int | None = None,
        time_limit_seconds: int | None = None,
        two_opt_max_passes: int | None = None,
    ) -> None:
        self.provider = provider or build_distance_provider()
        self.exact_search_max_trips = exact_search_max_trips or settings.exact_search_max_trips
        self.time_limit_seconds = time_limit_seconds or settings.solver_time_limit_seconds
        self.two_opt_max_passes = two_opt_max_passes or settings.two_opt_max_passes

    def _search(self, costs: _TripCosts) -> list[int]:
        if costs.n <= self.exact_search_max_trips:
            return exact_order(costs)

        candidates = [two_opt(costs, nearest_neighbour_order(costs), self.two_opt_max_passes)]
        solved = solver_order(costs, self.time_limit_seconds)
        if solved is not None:
            candidates.append(two_opt(costs, solved, self.two_opt_max_passes))

        best_order = list(range(costs.n))
        best_cost = costs.distance(best_order)
        for order in candidates:
            cost = costs.distance(order)
            if _is_better(cost, order, best_cost, best_order):
                best_order, best_cost = order, cost
        return best_order

    def optimize(self, driver_id: str, day: date, trips: Sequence[Trip]) -> OptimizationResult:
        if not trips:
            raise ValidationError("At least two trips are required to optimize a route, got none.")
        if len(trips) < 2:
            raise InsufficientStopsError("At least two trips are required to optimize a route.")
        trip_ids = [trip.trip_id for trip in trips]
        if len(set(trip_ids)) != len(trip_ids):
            raise ValidationError("Duplicate trip ids in optimization request.")

        original = sort_by_pickup(trips)
        matrix = self.provider.compute_matrix(trip_stops(original))
        costs = _TripCosts(matrix, len(original))

        identity = list(range(len(original)))
        order = self._search(costs)
        if sorted(order) != identity:
            raise ComputationError(f"Optimizer produced an invalid ordering for driver {driver_id} on {day}.")

        original_distance = costs.distance(identity)
        optimized_distance = costs.distance(order)
        if optimized_distance > original_distance:
            # Guard against float drift; never hand back a longer route.
            order, optimized_distance = identity, original_distance

        original_duration = costs.duration(identity)
        optimized_duration = costs.duration(order)
        optimized = [original[k] for k in order]

        logger.debug(
            f"Optimized {len(original)} trips for driver {driver_id} on {day}: "
            f"{original_distance:.0f}m -> {optimized_distance:.0f}m ({matrix.method})"
        )

        return OptimizationResult(
            driver_id=driver_id,
            date=day,
            original_order=original,
            optimized_order=optimized,
            original_distance=original_distance,
            optimized_distance=optimized_distance,
            original_duration=original_duration,
            optimized_duration=optimized_duration,
            savings=Savings(
                distance=max(0.0, original_distance - optimized_distance),
                time=max(0.0, original_duration - optimized_duration),
            ),
            method=matrix.method,
            reliable=matrix.reliable,
            warning=matrix.warning,
        )
