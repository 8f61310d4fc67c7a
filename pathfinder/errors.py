"""Error types shared across the navigation core and its collaborators."""

from __future__ import annotations


class InvalidInput(ValueError):
    """Raised for caller bugs: empty paths, non-finite coordinates or progress."""


class UpstreamUnavailable(RuntimeError):
    """Raised when a geocoding or routing provider cannot be reached or answers badly."""
