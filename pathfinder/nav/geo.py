"""Geodesic helpers and progress interpolation along lat/lon polylines."""

from __future__ import annotations

import math
from typing import Any, List, Sequence, Tuple

from pathfinder.errors import InvalidInput
from pathfinder.nav.models import Coordinate, coerce_path

EARTH_RADIUS_M = 6371000.0


def haversine_m(a: Any, b: Any) -> float:
    """Great-circle distance in meters on a sphere of radius EARTH_RADIUS_M."""
    a = Coordinate.coerce(a)
    b = Coordinate.coerce(b)
    lat1, lon1 = math.radians(a.lat), math.radians(a.lon)
    lat2, lon2 = math.radians(b.lat), math.radians(b.lon)
    sin_dlat = math.sin((lat2 - lat1) / 2.0)
    sin_dlon = math.sin((lon2 - lon1) / 2.0)
    h = sin_dlat * sin_dlat + math.cos(lat1) * math.cos(lat2) * sin_dlon * sin_dlon
    # Rounding can push h slightly outside [0, 1] for antipodal points.
    h = min(1.0, max(0.0, h))
    return 2.0 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1.0 - h))


def segment_lengths_m(path: Sequence[Coordinate]) -> List[float]:
    return [haversine_m(a, b) for a, b in zip(path, path[1:])]


def cumulative_distances_m(path: Sequence[Any]) -> List[float]:
    """Distance from the first point to every point of the path (same length as path)."""
    points = coerce_path(path)
    if not points:
        return []
    out = [0.0]
    for length in segment_lengths_m(points):
        out.append(out[-1] + length)
    return out


def path_length_m(path: Sequence[Any]) -> float:
    points = coerce_path(path)
    if len(points) < 2:
        return 0.0
    return float(sum(segment_lengths_m(points)))


def _check_progress(progress: float) -> float:
    try:
        value = float(progress)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"Progress must be a number, got {progress!r}.") from exc
    if not math.isfinite(value):
        raise InvalidInput(f"Progress must be finite, got {value}.")
    return value


def _lerp(a: Coordinate, b: Coordinate, t: float) -> Coordinate:
    return Coordinate(a.lat + (b.lat - a.lat) * t, a.lon + (b.lon - a.lon) * t)


def point_at_progress(path: Sequence[Any], progress: float) -> Coordinate:
    """
    Position at a fraction of the total path length.

    The active segment is found by haversine length, then latitude and
    longitude are interpolated linearly in degrees inside that segment.
    """
    points = coerce_path(path)
    value = _check_progress(progress)
    if not points:
        raise InvalidInput("Cannot interpolate along an empty path.")
    if len(points) == 1:
        return points[0]

    lengths = segment_lengths_m(points)
    total = sum(lengths)
    if total <= 0.0 or value <= 0.0:
        return points[0]
    if value >= 1.0:
        return points[-1]

    target = value * total
    cumulative = 0.0
    for i, seg_len in enumerate(lengths):
        if seg_len <= 0.0:
            continue
        if cumulative + seg_len >= target:
            t = (target - cumulative) / seg_len
            return _lerp(points[i], points[i + 1], min(1.0, max(0.0, t)))
        cumulative += seg_len
    return points[-1]


def closest_index(path: Sequence[Any], position: Any) -> int:
    """Index of the path point nearest to position; the first one wins on ties."""
    points = coerce_path(path)
    if not points:
        raise InvalidInput("Cannot search an empty path.")
    target = Coordinate.coerce(position)
    best_index = 0
    best_dist = float("inf")
    for i, point in enumerate(points):
        dist = haversine_m(point, target)
        if dist < best_dist:
            best_dist = dist
            best_index = i
    return best_index


def progress_at_index(path: Sequence[Any], index: int) -> float:
    """Fraction of the total path length covered when standing on path[index]."""
    cumulative = cumulative_distances_m(path)
    if len(cumulative) < 2 or cumulative[-1] <= 0.0:
        return 0.0
    index = max(0, min(int(index), len(cumulative) - 1))
    return min(1.0, max(0.0, cumulative[index] / cumulative[-1]))


def interpolate_linear(start: Any, goal: Any, count: int) -> List[Coordinate]:
    start = Coordinate.coerce(start)
    goal = Coordinate.coerce(goal)
    if count < 2:
        return [start, goal]
    return [_lerp(start, goal, i / (count - 1)) for i in range(count)]


def bounding_box(path: Sequence[Any]) -> Tuple[Coordinate, Coordinate]:
    points = coerce_path(path)
    if not points:
        raise InvalidInput("Cannot bound an empty path.")
    south = min(p.lat for p in points)
    north = max(p.lat for p in points)
    west = min(p.lon for p in points)
    east = max(p.lon for p in points)
    return Coordinate(south, west), Coordinate(north, east)
