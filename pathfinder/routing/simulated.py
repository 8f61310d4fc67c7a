"""Locally synthesized routes used when no routing provider answers."""

from __future__ import annotations

import random
from typing import List, Sequence

from pathfinder.nav.geo import haversine_m, interpolate_linear
from pathfinder.nav.models import MODE_DRIVING, MODE_FLIGHT, Coordinate, PathSegment, Route, RouteSet

DEFAULT_GROUND_SPEED_MPS = 10.0
DEFAULT_FLIGHT_SPEED_MPS = 250.0
DEFAULT_JITTER_DEG = 0.005
FLIGHT_PATH_POINTS = 24


def generate_random_waypoints(
    start: Coordinate,
    end: Coordinate,
    count: int,
    *,
    rng: random.Random | None = None,
    jitter_deg: float = DEFAULT_JITTER_DEG,
) -> List[Coordinate]:
    """Evenly spaced points between start and end, each nudged by up to jitter_deg / 2."""
    rng = rng or random.Random()
    waypoints: List[Coordinate] = []
    for i in range(count):
        t = (i + 1) / (count + 1)
        lat = start.lat + (end.lat - start.lat) * t
        lon = start.lon + (end.lon - start.lon) * t
        lat += (rng.random() - 0.5) * jitter_deg
        lon += (rng.random() - 0.5) * jitter_deg
        waypoints.append(Coordinate(lat, lon))
    return waypoints


def route_through(
    points: Sequence[Coordinate],
    *,
    speed_mps: float,
    first_instruction: str,
    next_instruction: str,
    mode: str = MODE_DRIVING,
    summary: str = "",
) -> Route:
    segments: List[PathSegment] = []
    for i, (a, b) in enumerate(zip(points, points[1:])):
        distance = haversine_m(a, b)
        segments.append(
            PathSegment.from_points(
                [a, b],
                distance_m=distance,
                duration_s=distance / speed_mps,
                instruction=first_instruction if i == 0 else next_instruction,
            )
        )
    return Route.from_segments(segments, mode=mode, summary=summary)


def generate_simulated_route_set(
    source: Coordinate,
    destination: Coordinate,
    destination_name: str,
    *,
    rng: random.Random | None = None,
    speed_mps: float = DEFAULT_GROUND_SPEED_MPS,
    jitter_deg: float = DEFAULT_JITTER_DEG,
    route_count: int = 3,
) -> RouteSet:
    rng = rng or random.Random()
    routes: List[Route] = []
    for index in range(route_count):
        midpoints = generate_random_waypoints(source, destination, 3 + index, rng=rng, jitter_deg=jitter_deg)
        routes.append(
            route_through(
                [source, *midpoints, destination],
                speed_mps=speed_mps,
                first_instruction=f"Head toward {destination_name}",
                next_instruction=f"Continue toward {destination_name}",
                summary=f"Simulated route {index + 1}",
            )
        )
    return RouteSet(routes=tuple(routes), source=source, destination=destination).sorted_by_distance()


def generate_detour_route(
    position: Coordinate,
    destination: Coordinate,
    *,
    rng: random.Random | None = None,
    speed_mps: float = DEFAULT_GROUND_SPEED_MPS,
    jitter_deg: float = DEFAULT_JITTER_DEG,
    mode: str = MODE_DRIVING,
) -> Route:
    midpoints = generate_random_waypoints(position, destination, 2, rng=rng, jitter_deg=jitter_deg)
    return route_through(
        [position, *midpoints, destination],
        speed_mps=speed_mps,
        first_instruction="Take detour due to obstacle",
        next_instruction="Continue to destination",
        mode=mode,
        summary="Obstacle detour",
    )


def direct_flight_route(
    source: Coordinate,
    destination: Coordinate,
    destination_name: str,
    *,
    speed_mps: float = DEFAULT_FLIGHT_SPEED_MPS,
    path_points: int = FLIGHT_PATH_POINTS,
) -> Route:
    distance = haversine_m(source, destination)
    segment = PathSegment.from_points(
        interpolate_linear(source, destination, path_points),
        distance_m=distance,
        duration_s=distance / speed_mps,
        instruction=f"Fly direct to {destination_name}",
    )
    return Route.from_segments([segment], mode=MODE_FLIGHT, summary="Direct flight")
