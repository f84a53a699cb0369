"""Capacity planning, combination matching and under-utilization alerts."""

from .alerts import build_capacity_alerts
from .matcher import CombinationMatcher, build_legs
from .planner import CapacityPlanner, check_capacity

__all__ = [
    "CapacityPlanner",
    "CombinationMatcher",
    "build_capacity_alerts",
    "build_legs",
    "check_capacity",
]
