"""Exception types raised by the optimization engine."""

from __future__ import annotations


class RouteEngineError(Exception):
    """Base class for engine failures."""


class ValidationError(RouteEngineError, ValueError):
    """Input is missing, malformed or violates a domain invariant."""


class InsufficientStopsError(ValidationError):
    """Fewer trips than a route optimization needs."""


class NotFoundError(RouteEngineError, LookupError):
    """A referenced trip, driver or vehicle does not exist for the tenant."""


class ExternalServiceError(RouteEngineError, ConnectionError):
    """The mapping service failed (timeout, quota, credentials, bad payload)."""


class ComputationError(RouteEngineError, RuntimeError):
    """The optimizer could not produce a valid ordering."""


class RepositoryError(RouteEngineError, ConnectionError):
    """The trip store is unreachable or not configured."""
