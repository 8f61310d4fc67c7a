"""Obstacle signals and the in-memory obstacle history."""

from __future__ import annotations

from collections import OrderedDict, deque
from dataclasses import dataclass
import random
import threading
import time
import uuid
from typing import Callable, Deque, List, Optional

from pathfinder.nav.models import Coordinate

OBSTACLE_KINDS = ("person", "vehicle", "construction", "other")

# Anything returning True when an obstacle is present on the path.
ObstacleDetector = Callable[[], bool]


@dataclass(frozen=True)
class ObstacleRecord:
    id: str
    kind: str
    confidence: float
    timestamp: float
    location: Optional[Coordinate] = None

    @classmethod
    def new(
        cls,
        *,
        kind: str = "other",
        confidence: float = 1.0,
        location: Optional[Coordinate] = None,
        timestamp: float | None = None,
    ) -> "ObstacleRecord":
        kind = kind if kind in OBSTACLE_KINDS else "other"
        return cls(
            id=uuid.uuid4().hex,
            kind=kind,
            confidence=min(1.0, max(0.0, float(confidence))),
            timestamp=float(timestamp) if timestamp is not None else time.time(),
            location=location,
        )


class RandomObstacleDetector:
    """Stand-in for a real perception signal: fires with a fixed probability per poll."""

    def __init__(self, probability: float = 0.1, rng: random.Random | None = None) -> None:
        self.probability = min(1.0, max(0.0, float(probability)))
        self._rng = rng or random.Random()

    def __call__(self) -> bool:
        return self._rng.random() < self.probability


class ObstacleLog:
    """
    Bounded newest-first history; records with an already-seen id are ignored.

    Ids are remembered beyond eviction from the history, up to seen_limit
    (default ten times max_entries), oldest forgotten first.
    """

    def __init__(self, max_entries: int = 50, seen_limit: int | None = None) -> None:
        self._lock = threading.Lock()
        self._max_entries = max(1, int(max_entries))
        self._seen_limit = max(self._max_entries, int(seen_limit or 10 * self._max_entries))
        self._records: Deque[ObstacleRecord] = deque(maxlen=self._max_entries)
        self._seen_ids: OrderedDict[str, None] = OrderedDict()

    def add(self, record: ObstacleRecord) -> bool:
        with self._lock:
            if record.id in self._seen_ids:
                return False
            self._seen_ids[record.id] = None
            while len(self._seen_ids) > self._seen_limit:
                self._seen_ids.popitem(last=False)
            self._records.appendleft(record)
            return True

    def records(self) -> List[ObstacleRecord]:
        with self._lock:
            return list(self._records)

    def latest(self) -> Optional[ObstacleRecord]:
        with self._lock:
            return self._records[0] if self._records else None

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._seen_ids.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
