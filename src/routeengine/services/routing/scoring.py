"""Optimization scores: how far each driver-day's order is from the optimized one."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Iterable, Optional, Sequence

from ...errors import RouteEngineError
from ...models.domain import Trip
from .models import OptimizationScore, ScoreStatus
from .optimizer import RouteOptimizer

logger = logging.getLogger(__name__)

OPTIMAL_THRESHOLD = 90
GOOD_THRESHOLD = 70


def status_for_score(score: int) -> ScoreStatus:
    if score >= OPTIMAL_THRESHOLD:
        return "optimal"
    if score >= GOOD_THRESHOLD:
        return "good"
    return "needs-optimization"


def group_by_driver_day(trips: Iterable[Trip]) -> dict[tuple[str, date], list[Trip]]:
    """Group assigned, active trips by (driver, day), ordered by day then driver."""
    groups: dict[tuple[str, date], list[Trip]] = defaultdict(list)
    for trip in trips:
        if not trip.driver_id or not trip.is_active:
            continue
        groups[(trip.driver_id, trip.trip_date)].append(trip)
    return dict(sorted(groups.items(), key=lambda item: (item[0][1], item[0][0])))


class OptimizationScorer:
    def __init__(self, optimizer: RouteOptimizer | None = None) -> None:
        self.optimizer = optimizer or RouteOptimizer()

    def score(self, driver_id: str, day: date, trips: Sequence[Trip]) -> Optional[OptimizationScore]:
        """Score one driver-day. Returns None when there are fewer than two trips."""
        if len(trips) < 2:
            return None
        try:
            result = self.optimizer.optimize(driver_id, day, trips)
        except RouteEngineError as exc:
            logger.warning(f"Could not score driver {driver_id} on {day}: {exc}", exc_info=True)
            return error_score(driver_id, day, len(trips), str(exc))
        except Exception as exc:
            logger.exception(f"Unexpected scoring failure for driver {driver_id} on {day}: {exc}")
            return error_score(driver_id, day, len(trips), str(exc))

        current = result.original_distance / 1000.0
        optimal = result.optimized_distance / 1000.0
        score = round(100 * optimal / current) if current > 0 else 100
        score = max(0, min(100, score))
        return OptimizationScore(
            driver_id=driver_id,
            date=day,
            score=score,
            status=status_for_score(score),
            trip_count=len(trips),
            current_distance=round(current, 2),
            optimal_distance=round(optimal, 2),
            savings_potential=round(max(0.0, current - optimal), 2),
        )

    def score_all(
        self,
        trips: Iterable[Trip],
        rejected: dict[tuple[str, date], str] | None = None,
    ) -> list[OptimizationScore]:
        """Score every driver-day; groups with rejected records are reported as errors."""
        rejected = rejected or {}
        scores: list[OptimizationScore] = []
        groups = group_by_driver_day(trips)
        for (driver_id, day), group in groups.items():
            reason = rejected.get((driver_id, day))
            if reason is not None:
                scores.append(error_score(driver_id, day, len(group), reason))
                continue
            scored = self.score(driver_id, day, group)
            if scored is not None:
                scores.append(scored)
        for (driver_id, day), reason in rejected.items():
            if (driver_id, day) not in groups:
                scores.append(error_score(driver_id, day, 0, reason))
        return scores


def error_score(driver_id: str, day: date, trip_count: int, message: str) -> OptimizationScore:
    return OptimizationScore(
        driver_id=driver_id,
        date=day,
        score=None,
        status="error",
        trip_count=trip_count,
        current_distance=0.0,
        optimal_distance=0.0,
        savings_potential=0.0,
        error=message,
    )
