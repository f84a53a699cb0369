"""Distance providers: mapping service, haversine estimate, and the fallback policy."""

from __future__ import annotations

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Callable, Literal, Optional, Sequence

from ...config import settings
from ...errors import ExternalServiceError, ValidationError
from ...models.domain import Stop
from ..geospatial import haversine_matrix_km
from .maps_client import DistanceMatrixClient

logger = logging.getLogger(__name__)

MatrixMethod = Literal["external", "geometric"]

WARNING_NOT_CONFIGURED = "Using estimated distances (maps API not configured)."
WARNING_UNAVAILABLE = "Using estimated distances (maps service unavailable). Results may be less accurate."


@dataclass(slots=True)
class DistanceMatrix:
    """Square matrix of travel distance (meters) and duration (seconds) between stops."""

    stops: list[Stop]
    distances: list[list[float]]
    durations: list[list[float]]
    method: MatrixMethod
    reliable: bool
    warning: Optional[str] = None

    def __post_init__(self) -> None:
        n = len(self.stops)
        if len(self.distances) != n or len(self.durations) != n:
            raise ValidationError(f"Matrix size mismatch: {n} stops, {len(self.distances)} distance rows")
        for row in (*self.distances, *self.durations):
            if len(row) != n:
                raise ValidationError("Distance matrix must be square")

    def distance(self, i: int, j: int) -> float:
        return self.distances[i][j]

    def duration(self, i: int, j: int) -> float:
        return self.durations[i][j]


def _require_stops(stops: Sequence[Stop]) -> None:
    if len(stops) < 2:
        raise ValidationError(f"At least two stops are required for a distance matrix, got {len(stops)}")


class DistanceProvider(ABC):
    """Contract for distance matrix implementations."""

    @abstractmethod
    def compute_matrix(self, stops: Sequence[Stop]) -> DistanceMatrix:
        raise NotImplementedError


class GeometricProvider(DistanceProvider):
    """Great-circle distances with durations from a constant average speed."""

    def __init__(self, average_speed_kmh: float | None = None) -> None:
        self.average_speed_kmh = average_speed_kmh or settings.average_speed_kmh

    def compute_matrix(self, stops: Sequence[Stop]) -> DistanceMatrix:
        _require_stops(stops)
        distances_km = haversine_matrix_km([stop.coordinate.as_tuple() for stop in stops])
        distances_m = distances_km * 1000.0
        durations_s = distances_km / self.average_speed_kmh * 3600.0
        return DistanceMatrix(
            stops=list(stops),
            distances=distances_m.tolist(),
            durations=durations_s.tolist(),
            method="geometric",
            reliable=False,
        )


class ExternalMapProvider(DistanceProvider):
    """Road-network distances from the mapping service. Fails instead of degrading."""

    def __init__(self, client_factory: Callable[[], DistanceMatrixClient] | None = None) -> None:
        self._client_factory = client_factory

    def compute_matrix(self, stops: Sequence[Stop]) -> DistanceMatrix:
        _require_stops(stops)
        client = self._client_factory() if self._client_factory else DistanceMatrixClient()
        table = client.matrix([stop.coordinate.as_tuple() for stop in stops])
        distances = table.get("distances")
        durations = table.get("durations")
        if distances is None or durations is None:
            raise ExternalServiceError("Distance matrix response missing distances or durations.")
        for row in (*distances, *durations):
            if any(value is None or not math.isfinite(value) for value in row):
                raise ExternalServiceError("Distance matrix response contains unreachable pairs.")
        try:
            return DistanceMatrix(
                stops=list(stops),
                distances=[list(map(float, row)) for row in distances],
                durations=[list(map(float, row)) for row in durations],
                method="external",
                reliable=True,
            )
        except ValidationError as exc:
            raise ExternalServiceError(f"Malformed distance matrix: {exc}") from exc


class MatrixCache:
    """Read-through TTL cache for distance matrices, safe for concurrent use."""

    def __init__(self, ttl_seconds: float | None = None, max_entries: int | None = None) -> None:
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.matrix_cache_ttl_seconds
        self.max_entries = max_entries if max_entries is not None else settings.matrix_cache_max_entries
        self._entries: OrderedDict[tuple, tuple[float, DistanceMatrix]] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def key_for(stops: Sequence[Stop]) -> tuple:
        return tuple((round(stop.coordinate.latitude, 6), round(stop.coordinate.longitude, 6)) for stop in stops)

    def get_or_compute(self, stops: Sequence[Stop], compute: Callable[[Sequence[Stop]], DistanceMatrix]) -> DistanceMatrix:
        if self.max_entries == 0 or self.ttl_seconds == 0:
            return compute(stops)

        key = self.key_for(stops)
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and now - entry[0] < self.ttl_seconds:
                self._entries.move_to_end(key)
                return replace(entry[1], stops=list(stops))

        # Computed outside the lock; two workers may fetch the same key once each.
        matrix = compute(stops)
        with self._lock:
            self._entries[key] = (now, matrix)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        return matrix

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class CachedProvider(DistanceProvider):
    def __init__(self, inner: DistanceProvider, cache: MatrixCache) -> None:
        self.inner = inner
        self.cache = cache

    def compute_matrix(self, stops: Sequence[Stop]) -> DistanceMatrix:
        _require_stops(stops)
        return self.cache.get_or_compute(stops, self.inner.compute_matrix)


class FallbackDistanceProvider(DistanceProvider):
    """Try the primary provider; on a mapping-service failure use the geometric estimate."""

    def __init__(self, primary: DistanceProvider, fallback: GeometricProvider | None = None) -> None:
        self.primary = primary
        self.fallback = fallback or GeometricProvider()

    def compute_matrix(self, stops: Sequence[Stop]) -> DistanceMatrix:
        _require_stops(stops)
        try:
            return self.primary.compute_matrix(stops)
        except ExternalServiceError as exc:
            logger.warning(f"Maps service failed for {len(stops)} stops, using haversine fallback: {exc}")
        matrix = self.fallback.compute_matrix(stops)
        matrix.warning = WARNING_UNAVAILABLE
        return matrix


class _UnconfiguredProvider(GeometricProvider):
    def compute_matrix(self, stops: Sequence[Stop]) -> DistanceMatrix:
        matrix = super().compute_matrix(stops)
        matrix.warning = WARNING_NOT_CONFIGURED
        return matrix


_shared_cache = MatrixCache()


def build_distance_provider(cache: MatrixCache | None = None) -> DistanceProvider:
    """Select the distance provider for the current configuration."""
    if not settings.maps_api_key:
        return _UnconfiguredProvider()
    external: DistanceProvider = ExternalMapProvider()
    cache = cache or _shared_cache
    if cache.max_entries > 0:
        external = CachedProvider(external, cache)
    return FallbackDistanceProvider(external)
