"""Route group exports."""

from . import health, routes, trips

__all__ = ["health", "routes", "trips"]
