"""OSRM route client."""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

import requests

from pathfinder.config import OsrmConfig, load_osrm_config
from pathfinder.errors import UpstreamUnavailable
from pathfinder.nav.models import (
    MODE_CYCLING,
    MODE_DRIVING,
    MODE_WALKING,
    Coordinate,
    PathSegment,
    Route,
)

# Detour waypoint offset (degrees) used to force OSRM onto a different path.
ALTERNATIVE_OFFSET_DEG = 0.0005

_PROFILE_MODES = {
    "driving": MODE_DRIVING,
    "car": MODE_DRIVING,
    "walking": MODE_WALKING,
    "foot": MODE_WALKING,
    "cycling": MODE_CYCLING,
    "bike": MODE_CYCLING,
}

_MANEUVER_VERBS = {
    "depart": "Head",
    "arrive": "Arrive",
    "turn": "Turn",
    "end of road": "Turn",
    "continue": "Continue",
    "new name": "Continue",
    "merge": "Merge",
    "on ramp": "Take the ramp",
    "off ramp": "Take the exit",
    "fork": "Keep",
    "roundabout": "Enter the roundabout",
    "rotary": "Enter the rotary",
    "roundabout turn": "At the roundabout turn",
    "notification": "Continue",
}


class OsrmError(UpstreamUnavailable):
    pass


def decode_polyline(encoded: str, precision: int = 5) -> List[Coordinate]:
    points: List[Coordinate] = []
    factor = float(10**precision)
    index = 0
    lat = 0
    lon = 0

    while index < len(encoded):
        shift = 0
        result = 0
        while True:
            if index >= len(encoded):
                return points
            byte = ord(encoded[index]) - 63
            index += 1
            result |= (byte & 0x1F) << shift
            shift += 5
            if byte < 0x20:
                break
        delta_lat = ~(result >> 1) if (result & 1) else (result >> 1)
        lat += delta_lat

        shift = 0
        result = 0
        while True:
            if index >= len(encoded):
                return points
            byte = ord(encoded[index]) - 63
            index += 1
            result |= (byte & 0x1F) << shift
            shift += 5
            if byte < 0x20:
                break
        delta_lon = ~(result >> 1) if (result & 1) else (result >> 1)
        lon += delta_lon

        points.append(Coordinate(lat / factor, lon / factor))
    return points


def describe_step(step: Dict[str, Any]) -> str:
    maneuver = step.get("maneuver", {})
    if not isinstance(maneuver, dict):
        maneuver = {}
    explicit = maneuver.get("instruction")
    if isinstance(explicit, str) and explicit.strip():
        return explicit.strip()

    kind = str(maneuver.get("type", "") or "").strip().lower()
    modifier = str(maneuver.get("modifier", "") or "").strip()
    name = str(step.get("name", "") or "").strip()
    if kind == "arrive":
        return "Arrive at destination"
    text = _MANEUVER_VERBS.get(kind, "Continue")
    if modifier and kind != "depart":
        text = f"{text} {modifier}"
    if name:
        text = f"{text} onto {name}"
    return text


def _float_field(data: Dict[str, Any], key: str) -> float:
    try:
        return float(data.get(key, 0.0) or 0.0)
    except (TypeError, ValueError):
        return 0.0


def parse_route(raw: Dict[str, Any], mode: str = MODE_DRIVING) -> Route:
    legs = raw.get("legs", [])
    if not isinstance(legs, list):
        legs = []
    summary = ""
    segments: List[PathSegment] = []
    for leg in legs:
        if not isinstance(leg, dict):
            continue
        summary = summary or str(leg.get("summary", "") or "")
        steps = leg.get("steps", [])
        if not isinstance(steps, list):
            continue
        for step in steps:
            if not isinstance(step, dict):
                continue
            encoded = step.get("geometry")
            if not isinstance(encoded, str) or not encoded:
                continue
            points = decode_polyline(encoded)
            if not points:
                continue
            segments.append(
                PathSegment.from_points(
                    points,
                    distance_m=_float_field(step, "distance"),
                    duration_s=_float_field(step, "duration"),
                    instruction=describe_step(step),
                )
            )

    if segments:
        return Route.from_segments(segments, mode=mode, summary=summary)

    encoded = raw.get("geometry")
    geometry = decode_polyline(encoded) if isinstance(encoded, str) else []
    if not geometry:
        raise OsrmError("OSRM route has no geometry.")
    return Route.from_geometry(
        geometry,
        distance_m=_float_field(raw, "distance"),
        duration_s=_float_field(raw, "duration"),
        mode=mode,
        summary=summary,
    )


class OsrmClient:
    def __init__(self, config: OsrmConfig | None = None, session: requests.Session | None = None):
        self.config = config or load_osrm_config()
        self.session = session or requests.Session()

    @property
    def mode(self) -> str:
        return _PROFILE_MODES.get(self.config.profile.lower(), MODE_DRIVING)

    def _request_routes(self, points: Sequence[Coordinate], *, alternatives: bool) -> List[Dict[str, Any]]:
        if len(points) < 2:
            raise ValueError("At least two coordinates are required to compute a route.")
        coords = ";".join(f"{p.lon:.6f},{p.lat:.6f}" for p in points)
        url = f"{self.config.endpoint}/route/v1/{self.config.profile}/{coords}"
        params = {
            "overview": "full",
            "geometries": "polyline",
            "steps": "true",
            "alternatives": "true" if alternatives else "false",
        }
        try:
            response = self.session.get(url, params=params, timeout=self.config.timeout_s)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise OsrmError(f"OSRM request failed: {exc}") from exc

        if not isinstance(data, dict):
            raise OsrmError("OSRM returned a malformed response.")
        code = str(data.get("code", ""))
        if code != "Ok":
            message = data.get("message") or "Unknown error"
            raise OsrmError(f"OSRM routing error code={code}: {message}")
        routes = data.get("routes", [])
        if not isinstance(routes, list) or not routes:
            raise OsrmError("OSRM returned no routes.")
        return [r for r in routes if isinstance(r, dict)]

    def get_routes(self, start: Coordinate, goal: Coordinate, *, alternatives: bool = True) -> List[Route]:
        raw_routes = self._request_routes([start, goal], alternatives=alternatives)
        return [parse_route(raw, mode=self.mode) for raw in raw_routes]

    def get_alternative_route(self, position: Coordinate, destination: Coordinate) -> Route:
        """Route from position to destination through a small detour waypoint."""
        detour = position.offset(ALTERNATIVE_OFFSET_DEG, ALTERNATIVE_OFFSET_DEG)
        raw_routes = self._request_routes([position, detour, destination], alternatives=False)
        return parse_route(raw_routes[0], mode=self.mode)
