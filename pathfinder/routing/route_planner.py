"""Route loading and alternative-route lookup with simulated fallbacks."""

from __future__ import annotations

from dataclasses import dataclass
import random
from typing import List, Optional

from pathfinder.config import NavigationConfig, OsrmConfig, load_navigation_config
from pathfinder.errors import InvalidInput
from pathfinder.nav.models import MODE_DRIVING, Coordinate, Route, RouteSet, is_ground_mode
from pathfinder.routing.geocode import geocode_nominatim, hashed_location, lookup_known_location
from pathfinder.routing.osrm_client import OsrmClient
from pathfinder.routing.simulated import (
    direct_flight_route,
    generate_detour_route,
    generate_simulated_route_set,
)


@dataclass
class RoutePlan:
    route_set: RouteSet
    source_name: str
    destination_name: str
    notes: str
    source: str = "simulated"
    osrm_requested: bool = False
    osrm_used: bool = False
    warning: str = ""


def _join(parts: List[str]) -> str:
    return " ".join(part.strip() for part in parts if part and part.strip())


def resolve_location(
    name: str,
    *,
    use_nominatim: bool = False,
    note_parts: Optional[List[str]] = None,
) -> Coordinate:
    notes = note_parts if note_parts is not None else []
    known = lookup_known_location(name)
    if known is not None:
        return known
    if use_nominatim:
        try:
            return geocode_nominatim(name)
        except Exception as exc:
            notes.append(f"Geocoding failed for '{name}': {exc}")
    notes.append(f"Using approximate location for '{name}'.")
    return hashed_location(name)


def plan_routes(
    source_name: str,
    destination_name: str,
    *,
    use_osrm: bool = True,
    use_nominatim: bool = False,
    include_flight: bool = True,
    nav_config: NavigationConfig | None = None,
    osrm_config: OsrmConfig | None = None,
    rng: random.Random | None = None,
) -> RoutePlan:
    source_name = (source_name or "").strip()
    destination_name = (destination_name or "").strip()
    if not source_name or not destination_name:
        raise InvalidInput("Both a source and a destination are required.")

    nav_config = nav_config or load_navigation_config()
    note_parts: List[str] = []
    warning_parts: List[str] = []

    start = resolve_location(source_name, use_nominatim=use_nominatim, note_parts=note_parts)
    goal = resolve_location(destination_name, use_nominatim=use_nominatim, note_parts=note_parts)

    routes: List[Route] = []
    source = "simulated"
    osrm_used = False

    if use_osrm:
        try:
            client = OsrmClient(config=osrm_config)
            routes = client.get_routes(start, goal, alternatives=True)
            source = "osrm"
            osrm_used = True
            note_parts.append(f"OSRM returned {len(routes)} route(s).")
        except Exception as exc:
            message = f"OSRM unavailable: {exc}"
            note_parts.append(message)
            warning_parts.append(message)
            routes = []

    if not routes:
        simulated = generate_simulated_route_set(
            start,
            goal,
            destination_name,
            rng=rng,
            speed_mps=nav_config.ground_speed_mps,
            jitter_deg=nav_config.waypoint_jitter_deg,
        )
        routes = list(simulated.routes)
        source = "simulated"
        note_parts.append("Simulated route fallback.")

    if use_osrm and not osrm_used:
        warning_parts.append("OSRM route not available, using simulated routes.")

    if include_flight:
        routes.append(
            direct_flight_route(start, goal, destination_name, speed_mps=nav_config.flight_speed_mps)
        )

    return RoutePlan(
        route_set=RouteSet(routes=tuple(routes), source=start, destination=goal),
        source_name=source_name,
        destination_name=destination_name,
        notes=_join(note_parts),
        source=source,
        osrm_requested=bool(use_osrm),
        osrm_used=osrm_used,
        warning=_join(warning_parts),
    )


def find_alternative_route(
    current_route: Route,
    position: Coordinate,
    destination: Coordinate,
    *,
    use_osrm: bool = True,
    nav_config: NavigationConfig | None = None,
    osrm_config: OsrmConfig | None = None,
    rng: random.Random | None = None,
) -> Route:
    """Route from the current position to the destination that avoids the present path."""
    nav_config = nav_config or load_navigation_config()
    if use_osrm:
        try:
            return OsrmClient(config=osrm_config).get_alternative_route(position, destination)
        except Exception as exc:
            print(f"[routing] Alternative route lookup failed, using local detour: {exc}")

    mode = current_route.mode if is_ground_mode(current_route.mode) else MODE_DRIVING
    return generate_detour_route(
        position,
        destination,
        rng=rng,
        speed_mps=nav_config.ground_speed_mps,
        jitter_deg=nav_config.waypoint_jitter_deg,
        mode=mode,
    )
