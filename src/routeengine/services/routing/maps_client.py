"""HTTP client for the Google Distance Matrix service."""

from __future__ import annotations

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

import httpx

from ...config import settings
from ...errors import ExternalServiceError

# Distance Matrix allows at most 100 elements (origins x destinations) per request,
# so requests are split into 10 x 10 blocks.
DEFAULT_MAX_LOCATIONS_PER_REQUEST = 10

# Statuses worth one more attempt; everything else is a hard failure.
RETRYABLE_STATUSES = frozenset({"UNKNOWN_ERROR"})

logger = logging.getLogger(__name__)


class DistanceMatrixClient:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        max_locations_per_request: int = DEFAULT_MAX_LOCATIONS_PER_REQUEST,
        max_parallel_requests: int | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or settings.maps_api_key
        if not self.api_key:
            raise ExternalServiceError("Maps API key is not configured.")
        self.base_url = (base_url or settings.maps_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.maps_timeout_seconds
        self.max_retries = min(1, max_retries if max_retries is not None else settings.maps_max_retries)
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.maps_backoff_seconds
        self.max_locations_per_request = max_locations_per_request
        self.max_parallel_requests = max_parallel_requests or settings.maps_max_parallel_requests
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        """Create a fresh client; httpx clients are not shared across threads here."""
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0)),
            transport=self._transport,
        )

    def _request_block(
        self,
        origins: Sequence[tuple[float, float]],
        destinations: Sequence[tuple[float, float]],
    ) -> dict:
        """Fetch one block of the matrix, retrying at most once."""
        params = {
            "origins": "|".join(f"{lat},{lon}" for lat, lon in origins),
            "destinations": "|".join(f"{lat},{lon}" for lat, lon in destinations),
            "units": settings.maps_units,
            "key": self.api_key,
        }
        url = f"{self.base_url}/distancematrix/json"

        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    response.raise_for_status()
                    data = response.json()
                    if not isinstance(data, dict):
                        raise ExternalServiceError(f"Distance matrix returned an unexpected {type(data).__name__} body")
                    status = data.get("status")
                    if status in RETRYABLE_STATUSES:
                        raise httpx.HTTPError(f"Distance matrix returned retryable status {status}")
                    if status != "OK":
                        message = data.get("error_message") or "no details"
                        raise ExternalServiceError(f"Distance matrix request failed with status {status}: {message}")
                    return data
                except httpx.TimeoutException as exc:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"Distance matrix request timed out after {attempt} attempt(s): {exc}")
                        raise ExternalServiceError(f"Distance matrix request timed out: {exc}") from exc
                    logger.debug(f"Distance matrix timeout, retrying in {self.backoff_seconds:.1f}s")
                    time.sleep(self.backoff_seconds)
                except (httpx.HTTPError, ValueError) as exc:
                    # ValueError covers undecodable JSON bodies
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ExternalServiceError(f"Distance matrix request failed: {exc}") from exc
                    logger.debug(f"Distance matrix error, retrying in {self.backoff_seconds:.1f}s: {exc}")
                    time.sleep(self.backoff_seconds)
        finally:
            client.close()

    def _parse_block(self, data: dict, n_origins: int, n_destinations: int) -> tuple[list[list[float]], list[list[float]]]:
        rows = data.get("rows")
        if not isinstance(rows, list) or len(rows) != n_origins:
            raise ExternalServiceError("Distance matrix response has an unexpected number of rows.")

        distances: list[list[float]] = []
        durations: list[list[float]] = []
        for row in rows:
            elements = row.get("elements") if isinstance(row, dict) else None
            if not isinstance(elements, list) or len(elements) != n_destinations:
                raise ExternalServiceError("Distance matrix response has an unexpected number of elements.")
            distance_row: list[float] = []
            duration_row: list[float] = []
            for element in elements:
                if not isinstance(element, dict):
                    raise ExternalServiceError("Distance matrix element is not an object.")
                if element.get("status") != "OK":
                    raise ExternalServiceError(f"Distance matrix element status {element.get('status')}")
                try:
                    distance_row.append(float(element["distance"]["value"]))
                    duration_row.append(float(element["duration"]["value"]))
                except (KeyError, TypeError, ValueError) as exc:
                    raise ExternalServiceError("Distance matrix element is missing distance or duration.") from exc
            distances.append(distance_row)
            durations.append(duration_row)
        return distances, durations

    def matrix(self, coordinates: Sequence[tuple[float, float]]) -> dict:
        """Get the full distance (meters) and duration (seconds) matrix for (lat, lon) pairs.

        Large inputs are split into blocks and fetched in parallel. Any block
        failure fails the whole call.
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for a distance matrix.")

        n = len(coordinates)
        size = self.max_locations_per_request
        ranges = [(start, min(start + size, n)) for start in range(0, n, size)]
        blocks = [(src, dst) for src in ranges for dst in ranges]

        distances: list[list[float]] = [[math.nan] * n for _ in range(n)]
        durations: list[list[float]] = [[math.nan] * n for _ in range(n)]

        def fetch(block: tuple[tuple[int, int], tuple[int, int]]):
            (src_start, src_end), (dst_start, dst_end) = block
            data = self._request_block(coordinates[src_start:src_end], coordinates[dst_start:dst_end])
            return block, self._parse_block(data, src_end - src_start, dst_end - dst_start)

        if len(blocks) > 1:
            logger.info(f"Splitting distance matrix for {n} locations into {len(blocks)} requests")

        workers = min(self.max_parallel_requests, len(blocks))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            for block, (block_distances, block_durations) in executor.map(fetch, blocks):
                (src_start, _), (dst_start, _) = block
                for i, (distance_row, duration_row) in enumerate(zip(block_distances, block_durations)):
                    for j, (distance, duration) in enumerate(zip(distance_row, duration_row)):
                        distances[src_start + i][dst_start + j] = distance
                        durations[src_start + i][dst_start + j] = duration

        return {"distances": distances, "durations": durations}


def check_health(api_key: str | None = None, transport: httpx.BaseTransport | None = None) -> bool:
    """Check the mapping service with a minimal two-point request."""
    key = api_key or settings.maps_api_key
    if not key:
        return False
    try:
        client = DistanceMatrixClient(api_key=key, timeout=5.0, max_retries=0, transport=transport)
        result = client.matrix([(51.5007, -0.1246), (51.5033, -0.1196)])
        return len(result["distances"]) == 2
    except (ExternalServiceError, ValueError):
        return False
