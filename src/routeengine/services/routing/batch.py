"""Batch optimization across every driver-day in a date range."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Callable, Iterable

from ...config import settings
from ...errors import RouteEngineError, ValidationError
from ...models.domain import Trip
from .models import BatchResult, GroupResult
from .optimizer import RouteOptimizer
from .scoring import group_by_driver_day

logger = logging.getLogger(__name__)

TripLoader = Callable[[date, date], tuple[list[Trip], dict[tuple[str, date], str]]]


class BatchOptimizer:
    """Runs the route optimizer once per (driver, day) and isolates failures per group."""

    def __init__(
        self,
        optimizer: RouteOptimizer | None = None,
        loader: TripLoader | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.optimizer = optimizer or RouteOptimizer()
        self.loader = loader
        self.max_workers = max_workers or settings.batch_max_workers

    def run(self, start_date: date, end_date: date) -> BatchResult:
        if self.loader is None:
            raise ValidationError("BatchOptimizer.run needs a trip loader; use run_trips for pre-fetched trips.")
        trips, rejected = self.loader(start_date, end_date)
        return self.run_trips(trips, start_date, end_date, rejected=rejected)

    def _optimize_group(self, driver_id: str, day: date, trips: list[Trip]) -> GroupResult:
        if len(trips) < 2:
            return GroupResult(driver_id=driver_id, date=day, status="skipped", trip_count=len(trips))
        try:
            result = self.optimizer.optimize(driver_id, day, trips)
        except RouteEngineError as exc:
            logger.warning(f"Batch optimization failed for driver {driver_id} on {day}: {exc}", exc_info=True)
            return GroupResult(driver_id=driver_id, date=day, status="error", trip_count=len(trips), error=str(exc))
        except Exception as exc:
            logger.exception(f"Unexpected batch failure for driver {driver_id} on {day}: {exc}")
            return GroupResult(driver_id=driver_id, date=day, status="error", trip_count=len(trips), error=str(exc))
        return GroupResult(
            driver_id=driver_id,
            date=day,
            status="ok",
            trip_count=len(trips),
            optimized_trip_ids=[trip.trip_id for trip in result.optimized_order],
            distance_saved=result.savings.distance,
            time_saved=result.savings.time,
            method=result.method,
            reliable=result.reliable,
        )

    def run_trips(
        self,
        trips: Iterable[Trip],
        start_date: date,
        end_date: date,
        rejected: dict[tuple[str, date], str] | None = None,
    ) -> BatchResult:
        if start_date > end_date:
            raise ValidationError(f"startDate {start_date} is after endDate {end_date}")
        rejected = rejected or {}

        in_range = [trip for trip in trips if start_date <= trip.trip_date <= end_date]
        groups = group_by_driver_day(in_range)

        results: list[GroupResult] = []
        runnable: list[tuple[str, date, list[Trip]]] = []
        for (driver_id, day), group in groups.items():
            reason = rejected.get((driver_id, day))
            if reason is not None:
                results.append(GroupResult(driver_id=driver_id, date=day, status="error", trip_count=len(group), error=reason))
            else:
                runnable.append((driver_id, day, group))
        for (driver_id, day), reason in rejected.items():
            if (driver_id, day) not in groups and start_date <= day <= end_date:
                results.append(GroupResult(driver_id=driver_id, date=day, status="error", trip_count=0, error=reason))

        logger.info(f"Batch optimizing {len(runnable)} driver-day groups from {start_date} to {end_date}")
        if runnable:
            workers = min(self.max_workers, len(runnable))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                results.extend(executor.map(lambda args: self._optimize_group(*args), runnable))

        results.sort(key=lambda group: (group.date, group.driver_id or ""))
        valid = [group for group in results if group.status != "error"]
        return BatchResult(
            trip_count=sum(group.trip_count for group in valid),
            driver_count=len({group.driver_id for group in valid}),
            start_date=start_date,
            end_date=end_date,
            group_results=results,
            total_distance_saved=sum(group.distance_saved for group in valid),
            total_time_saved=sum(group.time_saved for group in valid),
        )
