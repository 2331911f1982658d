"""Distance geometry and coordinate snapping helpers.

Everything in here is pure: no logging, no configuration lookups. Invalid
numbers (NaN/Infinity) are not rejected, they propagate as NaN and must be
filtered by the caller (see ``is_valid_coordinate``).
"""

from __future__ import annotations

import math
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from event_detection.models import Coordinate

EARTH_RADIUS_METERS = 6_371_000
DEFAULT_PRECISION = 3

T = TypeVar("T")


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle (haversine) distance between two WGS84 points, in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    if a > 1.0:  # rounding on near-antipodal points
        a = 1.0
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def distance_between(a: Coordinate, b: Coordinate) -> float:
    return distance_meters(a.latitude, a.longitude, b.latitude, b.longitude)


def round_coordinate(value: float, precision: int = DEFAULT_PRECISION) -> float:
    """Round half-up to ``precision`` decimal degrees (3 is roughly a 110 m grid)."""
    if math.isnan(value) or math.isinf(value):
        return math.nan
    factor = 10 ** precision
    return math.floor(value * factor + 0.5) / factor


def grid_key(latitude: float, longitude: float, precision: int = DEFAULT_PRECISION) -> Tuple[float, float]:
    return round_coordinate(latitude, precision), round_coordinate(longitude, precision)


def is_valid_coordinate(latitude: Any, longitude: Any) -> bool:
    """True when both values are finite numbers inside the WGS84 ranges."""
    for value in (latitude, longitude):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if not math.isfinite(value):
            return False
    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0


def centroid(points: Iterable[Coordinate]) -> Optional[Coordinate]:
    """Arithmetic mean of the coordinates, ``None`` for an empty input."""
    points = list(points)
    if not points:
        return None
    lat = sum(p.latitude for p in points) / len(points)
    lng = sum(p.longitude for p in points) / len(points)
    return Coordinate(latitude=lat, longitude=lng)


def pairwise_distances(points: Sequence[Coordinate]) -> List[float]:
    """Every i<j distance between the given points."""
    distances: List[float] = []
    for i in range(len(points)):
        for j in range(i + 1, len(points)):
            distances.append(distance_between(points[i], points[j]))
    return distances


def max_distance_from(center: Coordinate, points: Iterable[Coordinate]) -> float:
    return max((distance_between(center, p) for p in points), default=0.0)


def group_by_proximity(
    items: Sequence[T],
    locate: Callable[[T], Coordinate],
    threshold_meters: float,
    min_size: int = 2,
) -> List[List[T]]:
    """Seed-based proximity grouping.

    Each unassigned item in input order seeds a group and absorbs every other
    unassigned item within ``threshold_meters`` of the seed. Groups smaller
    than ``min_size`` are dropped, their items stay consumed.
    """
    groups: List[List[T]] = []
    used = [False] * len(items)

    for i, seed in enumerate(items):
        if used[i]:
            continue
        used[i] = True
        seed_point = locate(seed)
        group = [seed]
        for j in range(i + 1, len(items)):
            if used[j]:
                continue
            if distance_between(seed_point, locate(items[j])) <= threshold_meters:
                group.append(items[j])
                used[j] = True
        if len(group) >= min_size:
            groups.append(group)

    return groups
