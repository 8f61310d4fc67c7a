"""Session event definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass(frozen=True)
class SessionEvent:
    name: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def status(cls, message: str) -> "SessionEvent":
        return cls("status", {"message": message})

    @classmethod
    def error(cls, message: str) -> "SessionEvent":
        return cls("error", {"message": message})

    @classmethod
    def route_set(cls, route_set: Any, route_index: int) -> "SessionEvent":
        return cls("route_set", {"route_set": route_set, "route_index": route_index})

    @classmethod
    def obstacle(cls, record: Any, count: int) -> "SessionEvent":
        return cls("obstacle", {"record": record, "count": count})

    @classmethod
    def rerouted(cls, route_index: int, progress: float, reused_existing: bool) -> "SessionEvent":
        return cls(
            "rerouted",
            {"route_index": route_index, "progress": progress, "reused_existing": reused_existing},
        )

    @classmethod
    def complete(cls) -> "SessionEvent":
        return cls("complete", {})

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)
