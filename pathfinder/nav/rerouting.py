"""Route switching: obstacle reroutes and transport-mode preference."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from pathfinder.nav.geo import closest_index, haversine_m, path_length_m, progress_at_index
from pathfinder.nav.models import Coordinate, Route, RouteSet, is_ground_mode


@dataclass(frozen=True)
class RerouteResult:
    route_set: RouteSet
    route_index: int
    progress: float
    reused_existing: bool = False


def progress_for_position(route: Route, position: Any) -> float:
    """Distance-based progress of the route point nearest to position, in [0, 1]."""
    geometry = route.geometry
    if len(geometry) < 2 or path_length_m(geometry) <= 0.0:
        return 0.0
    return progress_at_index(geometry, closest_index(geometry, position))


def _distance_to_route_m(route: Route, position: Coordinate) -> float:
    index = closest_index(route.geometry, position)
    return haversine_m(route.geometry[index], position)


def find_ground_route(route_set: RouteSet, current_index: int, position: Any) -> Optional[int]:
    """
    Ground route to fall back to while travelling on a direct (non-ground) route.

    Returns None when the active route is already a ground route or no other
    ground route is loaded. Among several candidates the one passing closest
    to position wins, the lower index on ties.
    """
    routes = route_set.routes
    if not (0 <= current_index < len(routes)):
        return None
    if is_ground_mode(routes[current_index].mode):
        return None
    here = Coordinate.coerce(position)
    best_index: Optional[int] = None
    best_dist = float("inf")
    for i, route in enumerate(routes):
        if i == current_index or not route.geometry or not is_ground_mode(route.mode):
            continue
        dist = _distance_to_route_m(route, here)
        if dist < best_dist:
            best_dist = dist
            best_index = i
    return best_index


def find_matching_route(route_set: RouteSet, route: Route) -> Optional[int]:
    for i, existing in enumerate(route_set.routes):
        if existing.mode == route.mode and existing.same_geometry(route):
            return i
    return None


def reroute(
    current: RouteSet,
    current_index: int,
    current_position: Any,
    alternative: Optional[Route] = None,
) -> RerouteResult:
    """
    Merge a reroute into the route set without moving the marker.

    A ground route already in the set is preferred while on a direct route;
    otherwise the alternative is appended (or matched to an identical route
    already present) and progress is re-derived from the point on the new
    geometry nearest to current_position.
    """
    position = Coordinate.coerce(current_position)

    existing = find_ground_route(current, current_index, position)
    if existing is not None:
        return RerouteResult(
            route_set=current,
            route_index=existing,
            progress=progress_for_position(current.routes[existing], position),
            reused_existing=True,
        )

    if alternative is None:
        if not current.routes:
            return RerouteResult(route_set=current, route_index=0, progress=0.0)
        index = max(0, min(int(current_index), len(current.routes) - 1))
        return RerouteResult(
            route_set=current,
            route_index=index,
            progress=progress_for_position(current.routes[index], position),
        )

    duplicate = find_matching_route(current, alternative)
    if duplicate is not None:
        return RerouteResult(
            route_set=current,
            route_index=duplicate,
            progress=progress_for_position(current.routes[duplicate], position),
            reused_existing=True,
        )

    merged = current.with_route(alternative)
    return RerouteResult(
        route_set=merged,
        route_index=len(merged.routes) - 1,
        progress=progress_for_position(alternative, position),
    )


def select_preferred_route(routes: Sequence[Route], preferred_mode: str) -> int:
    for i, route in enumerate(routes):
        if route.mode == preferred_mode:
            return i
    return 0
