"""Route analytics exports."""

from .service import build_route_analytics

__all__ = ["build_route_analytics"]
