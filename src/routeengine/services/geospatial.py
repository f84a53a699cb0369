"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np
from shapely.geometry import LineString, Point

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def haversine_matrix_km(coordinates: Sequence[tuple[float, float]]) -> np.ndarray:
    """Pairwise Haversine distances for (lat, lon) pairs as an n x n array.

    The result is symmetric with a zero diagonal.
    """

    points = np.radians(np.asarray(coordinates, dtype=float).reshape(-1, 2))
    lat = points[:, 0][:, np.newaxis]
    lon = points[:, 1][:, np.newaxis]

    d_phi = lat.T - lat
    d_lambda = lon.T - lon
    a = np.sin(d_phi / 2) ** 2 + np.cos(lat) * np.cos(lat.T) * np.sin(d_lambda / 2) ** 2
    a = np.clip(a, 0.0, 1.0)
    distances = 2 * EARTH_RADIUS_KM * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
    # Force exact symmetry; floating point can differ in the last bit.
    distances = np.minimum(distances, distances.T)
    np.fill_diagonal(distances, 0.0)
    return distances


def _project_km(lat: float, lon: float, ref_lat: float, ref_lon: float) -> tuple[float, float]:
    """Equirectangular projection around a reference point, in kilometres."""

    x = math.radians(lon - ref_lon) * math.cos(math.radians(ref_lat)) * EARTH_RADIUS_KM
    y = math.radians(lat - ref_lat) * EARTH_RADIUS_KM
    return (x, y)


def distance_to_route_km(
    lat: float,
    lon: float,
    route: Sequence[tuple[float, float]],
) -> float:
    """Shortest distance from a point to a polyline of (lat, lon) waypoints.

    Uses a local flat projection, which is accurate for the short urban
    legs this service deals with.
    """

    if not route:
        raise ValueError("Route must contain at least one waypoint.")
    if len(route) == 1:
        return haversine_km(lat, lon, route[0][0], route[0][1])

    ref_lat, ref_lon = route[0]
    line = LineString([_project_km(p_lat, p_lon, ref_lat, ref_lon) for p_lat, p_lon in route])
    point = Point(_project_km(lat, lon, ref_lat, ref_lon))
    return float(line.distance(point))
