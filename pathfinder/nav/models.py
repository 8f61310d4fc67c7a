"""Route data records shared by the navigation core and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Any, Iterable, List, Sequence, Tuple

from pathfinder.errors import InvalidInput

MODE_DRIVING = "driving"
MODE_WALKING = "walking"
MODE_CYCLING = "cycling"
MODE_FLIGHT = "flight"
GROUND_MODES = frozenset({MODE_DRIVING, MODE_WALKING, MODE_CYCLING})

# Boundary points closer than this (degrees) are treated as the same point.
POINT_EPS_DEG = 1.0e-9


def is_ground_mode(mode: str) -> bool:
    return mode in GROUND_MODES


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lon: float

    def __post_init__(self) -> None:
        try:
            lat = float(self.lat)
            lon = float(self.lon)
        except (TypeError, ValueError) as exc:
            raise InvalidInput(f"Coordinate values must be numbers, got ({self.lat!r}, {self.lon!r}).") from exc
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise InvalidInput(f"Coordinate values must be finite, got ({lat}, {lon}).")
        object.__setattr__(self, "lat", lat)
        object.__setattr__(self, "lon", lon)

    @classmethod
    def coerce(cls, value: Any) -> "Coordinate":
        """Accept a Coordinate, a (lat, lon) pair, or a mapping with lat/lon keys."""
        if isinstance(value, Coordinate):
            return value
        if isinstance(value, dict):
            lat = value.get("lat", value.get("latitude"))
            lon = value.get("lon", value.get("lng", value.get("longitude")))
            return cls(lat, lon)
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return cls(value[0], value[1])
        raise InvalidInput(f"Cannot interpret {value!r} as a coordinate.")

    def as_tuple(self) -> Tuple[float, float]:
        return self.lat, self.lon

    def offset(self, dlat: float, dlon: float) -> "Coordinate":
        return Coordinate(self.lat + dlat, self.lon + dlon)

    def almost_equals(self, other: "Coordinate", eps: float = POINT_EPS_DEG) -> bool:
        return abs(self.lat - other.lat) <= eps and abs(self.lon - other.lon) <= eps


def coerce_path(points: Iterable[Any]) -> List[Coordinate]:
    return [Coordinate.coerce(p) for p in points]


def concat_geometries(geometries: Iterable[Sequence[Coordinate]]) -> List[Coordinate]:
    """Concatenate polylines, collapsing a shared boundary point into one."""
    out: List[Coordinate] = []
    for geometry in geometries:
        for point in geometry:
            if out and out[-1].almost_equals(point):
                continue
            out.append(point)
    return out


@dataclass(frozen=True)
class PathSegment:
    distance_m: float
    duration_s: float
    start: Coordinate
    end: Coordinate
    instruction: str
    geometry: Tuple[Coordinate, ...]

    @classmethod
    def from_points(
        cls,
        points: Sequence[Any],
        *,
        distance_m: float,
        duration_s: float,
        instruction: str,
    ) -> "PathSegment":
        geometry = tuple(coerce_path(points))
        if not geometry:
            raise InvalidInput("A path segment needs at least one point.")
        return cls(
            distance_m=float(distance_m),
            duration_s=float(duration_s),
            start=geometry[0],
            end=geometry[-1],
            instruction=instruction,
            geometry=geometry,
        )


@dataclass(frozen=True)
class Route:
    segments: Tuple[PathSegment, ...]
    geometry: Tuple[Coordinate, ...]
    distance_m: float
    duration_s: float
    mode: str = MODE_DRIVING
    summary: str = ""

    @classmethod
    def from_segments(cls, segments: Sequence[PathSegment], *, mode: str = MODE_DRIVING, summary: str = "") -> "Route":
        segments = tuple(segments)
        return cls(
            segments=segments,
            geometry=tuple(concat_geometries(seg.geometry for seg in segments)),
            distance_m=float(sum(seg.distance_m for seg in segments)),
            duration_s=float(sum(seg.duration_s for seg in segments)),
            mode=mode,
            summary=summary,
        )

    @classmethod
    def from_geometry(
        cls,
        points: Sequence[Any],
        *,
        distance_m: float,
        duration_s: float,
        mode: str = MODE_DRIVING,
        summary: str = "",
    ) -> "Route":
        """Route without turn-by-turn segments, e.g. an overview polyline."""
        return cls(
            segments=(),
            geometry=tuple(concat_geometries([coerce_path(points)])),
            distance_m=float(distance_m),
            duration_s=float(duration_s),
            mode=mode,
            summary=summary,
        )

    @property
    def start(self) -> Coordinate | None:
        return self.geometry[0] if self.geometry else None

    @property
    def end(self) -> Coordinate | None:
        return self.geometry[-1] if self.geometry else None

    def same_geometry(self, other: "Route", eps: float = POINT_EPS_DEG) -> bool:
        if len(self.geometry) != len(other.geometry):
            return False
        return all(a.almost_equals(b, eps) for a, b in zip(self.geometry, other.geometry))


@dataclass(frozen=True)
class RouteSet:
    routes: Tuple[Route, ...]
    source: Coordinate
    destination: Coordinate

    def with_route(self, route: Route) -> "RouteSet":
        return RouteSet(routes=self.routes + (route,), source=self.source, destination=self.destination)

    def sorted_by_distance(self) -> "RouteSet":
        return RouteSet(
            routes=tuple(sorted(self.routes, key=lambda r: r.distance_m)),
            source=self.source,
            destination=self.destination,
        )


@dataclass(frozen=True)
class ProgressState:
    route_index: int
    progress: float
    position: Coordinate
