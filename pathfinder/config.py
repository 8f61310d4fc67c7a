"""Configuration helpers for the path finder."""

from __future__ import annotations

from dataclasses import dataclass
import os


DEFAULT_OSRM_ENDPOINT = "https://router.project-osrm.org"
DEFAULT_OSRM_PROFILE = "driving"
DEFAULT_NOMINATIM_ENDPOINT = "https://nominatim.openstreetmap.org/search"
DEFAULT_NOMINATIM_USER_AGENT = "pathfinder/0.1 (local dev)"


@dataclass(frozen=True)
class OsrmConfig:
    endpoint: str = DEFAULT_OSRM_ENDPOINT
    profile: str = DEFAULT_OSRM_PROFILE
    timeout_s: int = 10


@dataclass(frozen=True)
class NominatimConfig:
    endpoint: str = DEFAULT_NOMINATIM_ENDPOINT
    user_agent: str = DEFAULT_NOMINATIM_USER_AGENT
    timeout_s: int = 10


@dataclass(frozen=True)
class NavigationConfig:
    animation_duration_s: float = 10.0
    reroute_cooldown_s: float = 5.0
    detection_interval_s: float = 0.5
    obstacle_probability: float = 0.1
    ground_speed_mps: float = 10.0
    flight_speed_mps: float = 250.0
    waypoint_jitter_deg: float = 0.005
    preferred_mode: str = "driving"
    obstacle_history_limit: int = 50


def load_dotenv(path: str | None = None) -> None:
    """Load environment variables from a .env file if present."""
    env_path = path or os.path.join(os.getcwd(), ".env")
    if not os.path.exists(env_path):
        return
    try:
        with open(env_path, "r", encoding="utf-8") as handle:
            for line in handle:
                stripped = line.strip()
                if not stripped or stripped.startswith("#") or "=" not in stripped:
                    continue
                key, value = stripped.split("=", 1)
                key = key.strip()
                value = value.strip().strip("'\"")
                if key and key not in os.environ:
                    os.environ[key] = value
    except OSError:
        return


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_osrm_config() -> OsrmConfig:
    return OsrmConfig(
        endpoint=os.environ.get("OSRM_ENDPOINT", DEFAULT_OSRM_ENDPOINT).strip().rstrip("/"),
        profile=os.environ.get("OSRM_PROFILE", DEFAULT_OSRM_PROFILE).strip() or DEFAULT_OSRM_PROFILE,
        timeout_s=_env_int("OSRM_TIMEOUT_S", 10),
    )


def load_nominatim_config() -> NominatimConfig:
    return NominatimConfig(
        endpoint=os.environ.get("NOMINATIM_ENDPOINT", DEFAULT_NOMINATIM_ENDPOINT).strip(),
        user_agent=os.environ.get("NOMINATIM_USER_AGENT", DEFAULT_NOMINATIM_USER_AGENT).strip(),
        timeout_s=_env_int("NOMINATIM_TIMEOUT_S", 10),
    )


def load_navigation_config() -> NavigationConfig:
    defaults = NavigationConfig()
    return NavigationConfig(
        animation_duration_s=max(0.1, _env_float("PATHFINDER_ANIMATION_S", defaults.animation_duration_s)),
        reroute_cooldown_s=max(0.0, _env_float("PATHFINDER_REROUTE_COOLDOWN_S", defaults.reroute_cooldown_s)),
        detection_interval_s=max(0.0, _env_float("PATHFINDER_DETECTION_INTERVAL_S", defaults.detection_interval_s)),
        obstacle_probability=min(1.0, max(0.0, _env_float("PATHFINDER_OBSTACLE_PROBABILITY", defaults.obstacle_probability))),
        ground_speed_mps=max(0.1, _env_float("PATHFINDER_GROUND_SPEED_MPS", defaults.ground_speed_mps)),
        flight_speed_mps=max(0.1, _env_float("PATHFINDER_FLIGHT_SPEED_MPS", defaults.flight_speed_mps)),
        waypoint_jitter_deg=max(0.0, _env_float("PATHFINDER_WAYPOINT_JITTER_DEG", defaults.waypoint_jitter_deg)),
        preferred_mode=os.environ.get("PATHFINDER_PREFERRED_MODE", defaults.preferred_mode).strip() or defaults.preferred_mode,
        obstacle_history_limit=max(1, _env_int("PATHFINDER_OBSTACLE_HISTORY", defaults.obstacle_history_limit)),
    )
