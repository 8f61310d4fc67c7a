"""Human-readable route figures."""

from __future__ import annotations


def format_distance(meters: float) -> str:
    if meters >= 1000.0:
        return f"{meters / 1000.0:.1f} km"
    return f"{round(meters)} m"


def format_duration(seconds: float) -> str:
    total = max(0, int(seconds))
    hours = total // 3600
    minutes = (total % 3600) // 60
    if hours > 0:
        return f"{hours} hr {minutes} min"
    return f"{minutes} min"
