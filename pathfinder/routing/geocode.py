"""Location-name resolution."""

from __future__ import annotations

import math
from typing import Dict, Optional

import requests

from pathfinder.config import NominatimConfig, load_nominatim_config
from pathfinder.errors import UpstreamUnavailable
from pathfinder.nav.models import Coordinate


class GeocodingError(UpstreamUnavailable):
    pass


KNOWN_LOCATIONS: Dict[str, Coordinate] = {
    "new york": Coordinate(40.7128, -74.0060),
    "boston": Coordinate(42.3601, -71.0589),
    "chicago": Coordinate(41.8781, -87.6298),
    "los angeles": Coordinate(34.0522, -118.2437),
    "san francisco": Coordinate(37.7749, -122.4194),
    "seattle": Coordinate(47.6062, -122.3321),
    "miami": Coordinate(25.7617, -80.1918),
    "austin": Coordinate(30.2672, -97.7431),
    "denver": Coordinate(39.7392, -104.9903),
    "philadelphia": Coordinate(39.9526, -75.1652),
}

# Unknown names are scattered around this point.
HASHED_LOCATION_ORIGIN = KNOWN_LOCATIONS["new york"]


def lookup_known_location(name: str) -> Optional[Coordinate]:
    return KNOWN_LOCATIONS.get((name or "").strip().lower())


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value >= 0x80000000 else value


def _name_hash(name: str) -> int:
    h = 0
    for ch in name:
        h = _to_int32((h << 5) - h + ord(ch))
    return h


def hashed_location(name: str) -> Coordinate:
    """
    Deterministic stand-in coordinate for a name no provider could resolve.

    The same name always maps to the same point, a few degrees around
    HASHED_LOCATION_ORIGIN, so repeated demo runs draw the same routes.
    """
    h = _name_hash(name)
    lat_offset = math.fmod(h, 1000) / 1000.0 * 10.0 - 5.0
    lon_offset = math.fmod(h >> 10, 1000) / 1000.0 * 10.0 - 5.0
    return HASHED_LOCATION_ORIGIN.offset(lat_offset, lon_offset)


def geocode_nominatim(
    query: str,
    config: NominatimConfig | None = None,
    session: requests.Session | None = None,
) -> Coordinate:
    """
    Geocode a place name using Nominatim.

    Returns a Coordinate on success; raises GeocodingError otherwise.
    """
    if not query:
        raise GeocodingError("Empty geocoding query")

    config = config or load_nominatim_config()
    http = session or requests.Session()
    params = {
        "q": query,
        "format": "json",
        "limit": 1,
    }
    headers = {
        "User-Agent": config.user_agent,
    }
    try:
        response = http.get(config.endpoint, params=params, headers=headers, timeout=config.timeout_s)
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        raise GeocodingError(f"Nominatim request failed for '{query}': {exc}") from exc
    if not data:
        raise GeocodingError(f"No results for '{query}'")
    try:
        return Coordinate(float(data[0]["lat"]), float(data[0]["lon"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise GeocodingError(f"Malformed Nominatim result for '{query}'") from exc
