"""
Geographic utility functions.

This module provides the geospatial calculations used by the dispatch matcher:
haversine distance, a normalized coordinate type, and a radius filter.
"""

import math
from dataclasses import dataclass
from math import radians, cos, sin, asin, sqrt
from typing import Any, Callable, Iterable, List, Optional, Tuple, TypeVar

EARTH_RADIUS_METERS = 6371000

T = TypeVar("T")


@dataclass(frozen=True)
class Coordinate:
    """A validated latitude/longitude pair with an optional address."""
    latitude: float
    longitude: float
    address: str = ""


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points in meters using Haversine formula.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in meters
    """
    lat1, lon1, lat2, lon2 = map(radians, [float(lat1), float(lon1), float(lat2), float(lon2)])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * asin(min(1.0, sqrt(a)))
    return c * EARTH_RADIUS_METERS


def _read(value: Any, key: str) -> Any:
    if isinstance(value, dict):
        return value.get(key)
    return getattr(value, key, None)


def coerce_coordinate(value: Any) -> Optional[Coordinate]:
    """
    Normalize a mapping or object carrying latitude/longitude into a Coordinate.

    Returns None when either component is missing, not numeric, not finite,
    or outside the valid latitude/longitude ranges.
    """
    if value is None:
        return None
    if isinstance(value, Coordinate):
        return value

    try:
        lat = float(_read(value, "latitude"))
        lon = float(_read(value, "longitude"))
    except (TypeError, ValueError):
        return None

    if not (math.isfinite(lat) and math.isfinite(lon)):
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        return None

    address = _read(value, "address") or ""
    return Coordinate(latitude=lat, longitude=lon, address=str(address))


def distance_between(a: Coordinate, b: Coordinate) -> float:
    """Distance in meters between two normalized coordinates."""
    return calculate_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def filter_within_radius(
    origin: Coordinate,
    candidates: Iterable[T],
    radius_meters: float,
    location: Callable[[T], Any] = lambda candidate: candidate,
) -> List[Tuple[T, float]]:
    """
    Keep the candidates within ``radius_meters`` of ``origin``.

    ``location`` extracts something coercible to a Coordinate from each
    candidate. Candidates without a valid location are skipped. The boundary
    is inclusive. Results are sorted closest first.
    """
    within: List[Tuple[T, float]] = []
    for candidate in candidates:
        point = coerce_coordinate(location(candidate))
        if point is None:
            continue
        distance = distance_between(origin, point)
        if distance <= radius_meters:
            within.append((candidate, distance))

    within.sort(key=lambda item: item[1])
    return within
