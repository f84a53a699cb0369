"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Literal, Optional

from ...models.domain import Trip

ScoreStatus = Literal["optimal", "good", "needs-optimization", "error"]
GroupStatus = Literal["ok", "error", "skipped"]


@dataclass(slots=True)
class Savings:
    distance: float
    time: float


@dataclass(slots=True)
class OptimizationResult:
    driver_id: str
    date: date
    original_order: List[Trip]
    optimized_order: List[Trip]
    original_distance: float
    optimized_distance: float
    original_duration: float
    optimized_duration: float
    savings: Savings
    method: str
    reliable: bool
    warning: Optional[str] = None


@dataclass(slots=True)
class OptimizationScore:
    driver_id: str
    date: date
    score: Optional[int]
    status: ScoreStatus
    trip_count: int
    current_distance: float
    optimal_distance: float
    savings_potential: float
    error: Optional[str] = None


@dataclass(slots=True)
class GroupResult:
    driver_id: Optional[str]
    date: date
    status: GroupStatus
    trip_count: int
    optimized_trip_ids: List[str] = field(default_factory=list)
    distance_saved: float = 0.0
    time_saved: float = 0.0
    method: Optional[str] = None
    reliable: Optional[bool] = None
    error: Optional[str] = None


@dataclass(slots=True)
class BatchResult:
    trip_count: int
    driver_count: int
    start_date: date
    end_date: date
    group_results: List[GroupResult]
    total_distance_saved: float
    total_time_saved: float
