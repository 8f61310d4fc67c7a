"""Navigation session: route loading, progress ticks and obstacle reroutes."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
import functools
import random
import threading
import time
from typing import Callable, List, Optional, Tuple

from pathfinder.config import NavigationConfig, load_navigation_config
from pathfinder.errors import InvalidInput
from pathfinder.nav.events import SessionEvent
from pathfinder.nav.geo import point_at_progress
from pathfinder.nav.models import Coordinate, ProgressState, Route, RouteSet
from pathfinder.nav.obstacles import ObstacleDetector, ObstacleLog, ObstacleRecord
from pathfinder.nav.rerouting import find_ground_route, reroute, select_preferred_route
from pathfinder.routing.route_planner import RoutePlan, find_alternative_route, plan_routes
from pathfinder.routing.simulated import generate_detour_route

RouteLoader = Callable[[str, str], RoutePlan]
AlternativeFinder = Callable[[Route, Coordinate, Coordinate], Route]


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ANIMATING = "animating"
    REROUTING = "rerouting"
    COMPLETE = "complete"


@dataclass(frozen=True)
class RerouteRequest:
    ticket: int
    route_set: RouteSet
    route_index: int
    position: Coordinate
    destination: Coordinate
    existing_index: Optional[int]
    record: ObstacleRecord

    @property
    def route(self) -> Route:
        return self.route_set.routes[self.route_index]

    @property
    def needs_alternative(self) -> bool:
        return self.existing_index is None


class NavigationSession:
    """
    Owns the RouteSet/ProgressState of one navigation and its state machine.

    idle -> loading -> ready -> animating <-> rerouting -> complete

    Reroutes are serialized: while one is in flight, or within the cooldown
    after the last accepted obstacle, further obstacle events are rejected.
    Collaborators (route loading, alternative lookup, obstacle signal) are
    injected and always called without the session lock held.
    """

    def __init__(
        self,
        *,
        load_routes: RouteLoader | None = None,
        find_alternative: AlternativeFinder | None = None,
        detector: ObstacleDetector | None = None,
        config: NavigationConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
        use_osrm: bool = True,
    ) -> None:
        self.config = config or load_navigation_config()
        self._rng = rng or random.Random()
        self._load_routes = load_routes or functools.partial(
            plan_routes, use_osrm=use_osrm, nav_config=self.config, rng=self._rng
        )
        self._default_find_alternative = find_alternative or self.alternative_finder(use_osrm=use_osrm)
        self._find_alternative = self._default_find_alternative
        self._detector = detector
        self._clock = clock
        self._lock = threading.Lock()

        self._state = SessionState.IDLE
        self._preferred_mode = self.config.preferred_mode
        self._plan: Optional[RoutePlan] = None
        self._route_set: Optional[RouteSet] = None
        self._route_index = 0
        self._progress = 0.0
        self._anchor_progress = 0.0
        self._anchor_time = 0.0

        self._reroute_in_flight = False
        self._reroute_ticket = 0
        self._last_obstacle_at: Optional[float] = None
        self._last_detection_poll: Optional[float] = None
        self._obstacle_count = 0
        self.obstacle_log = ObstacleLog(self.config.obstacle_history_limit)

    def alternative_finder(self, *, use_osrm: bool = True) -> AlternativeFinder:
        """Alternative-route lookup bound to this session's config and rng."""
        return functools.partial(
            find_alternative_route,
            use_osrm=use_osrm,
            nav_config=self.config,
            rng=self._rng,
        )

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def is_complete(self) -> bool:
        return self.state == SessionState.COMPLETE

    @property
    def route_set(self) -> Optional[RouteSet]:
        with self._lock:
            return self._route_set

    @property
    def route_index(self) -> int:
        with self._lock:
            return self._route_index

    @property
    def plan(self) -> Optional[RoutePlan]:
        with self._lock:
            return self._plan

    @property
    def preferred_mode(self) -> str:
        with self._lock:
            return self._preferred_mode

    @property
    def obstacle_count(self) -> int:
        with self._lock:
            return self._obstacle_count

    @property
    def reroute_in_flight(self) -> bool:
        with self._lock:
            return self._reroute_in_flight

    def active_route(self) -> Optional[Route]:
        with self._lock:
            if self._route_set is None:
                return None
            return self._route_set.routes[self._route_index]

    def _now(self, now: float | None) -> float:
        return float(now) if now is not None else self._clock()

    def _reanchor_locked(self, now: float) -> None:
        self._anchor_progress = self._progress
        self._anchor_time = now

    def _advance_locked(self, now: float) -> None:
        if self._state != SessionState.ANIMATING:
            return
        elapsed = max(0.0, now - self._anchor_time)
        target = min(1.0, self._anchor_progress + elapsed / self.config.animation_duration_s)
        self._progress = max(self._progress, target)
        if self._progress >= 1.0:
            self._progress = 1.0
            self._state = SessionState.COMPLETE

    def _position_locked(self) -> Coordinate:
        assert self._route_set is not None
        geometry = self._route_set.routes[self._route_index].geometry
        if not geometry:
            return self._route_set.source
        return point_at_progress(geometry, self._progress)

    def _progress_state_locked(self) -> Optional[ProgressState]:
        if self._route_set is None:
            return None
        return ProgressState(
            route_index=self._route_index,
            progress=self._progress,
            position=self._position_locked(),
        )

    def progress_state(self) -> Optional[ProgressState]:
        with self._lock:
            return self._progress_state_locked()

    def load(
        self,
        source_name: str,
        destination_name: str,
        *,
        load_routes: RouteLoader | None = None,
        find_alternative: AlternativeFinder | None = None,
    ) -> List[SessionEvent]:
        """Plan routes between two names; find_alternative overrides reroute lookups for this load."""
        with self._lock:
            if self._state == SessionState.LOADING:
                return [SessionEvent.error("A route is already loading.")]
            self._state = SessionState.LOADING
            self._reroute_ticket += 1
            self._reroute_in_flight = False

        events = [SessionEvent.status(f"Planning route from {source_name} to {destination_name}...")]
        try:
            plan = (load_routes or self._load_routes)(source_name, destination_name)
        except InvalidInput:
            with self._lock:
                self._state = SessionState.IDLE
            raise
        except Exception as exc:
            events.append(SessionEvent.error(f"Route loading failed: {exc}"))
            plan = plan_routes(
                source_name,
                destination_name,
                use_osrm=False,
                nav_config=self.config,
                rng=self._rng,
            )

        with self._lock:
            self._find_alternative = find_alternative or self._default_find_alternative
        if plan.notes:
            events.append(SessionEvent.status(plan.notes))
        if plan.warning:
            events.append(SessionEvent.status(f"Warning: {plan.warning}"))
        events.extend(self.load_route_set(plan.route_set, plan=plan))
        return events

    def load_route_set(self, route_set: RouteSet, *, plan: RoutePlan | None = None) -> List[SessionEvent]:
        if not route_set.routes:
            with self._lock:
                self._state = SessionState.IDLE
            raise InvalidInput("A route set needs at least one route.")
        with self._lock:
            self._plan = plan
            self._route_set = route_set
            self._route_index = select_preferred_route(route_set.routes, self._preferred_mode)
            self._progress = 0.0
            self._reanchor_locked(self._clock())
            self._reroute_ticket += 1
            self._reroute_in_flight = False
            self._last_obstacle_at = None
            self._last_detection_poll = None
            self._obstacle_count = 0
            self._state = SessionState.READY
            index = self._route_index
        return [
            SessionEvent.route_set(route_set, index),
            SessionEvent.status(f"{len(route_set.routes)} route(s) ready."),
        ]

    def start(self, now: float | None = None) -> bool:
        now = self._now(now)
        with self._lock:
            if self._state == SessionState.READY:
                self._state = SessionState.ANIMATING
                self._reanchor_locked(now)
            return self._state == SessionState.ANIMATING

    def stop(self, now: float | None = None) -> None:
        now = self._now(now)
        with self._lock:
            self._advance_locked(now)
            if self._state == SessionState.ANIMATING:
                self._state = SessionState.READY
                self._reanchor_locked(now)

    def tick(self, now: float | None = None) -> Optional[ProgressState]:
        now = self._now(now)
        with self._lock:
            self._advance_locked(now)
            return self._progress_state_locked()

    def set_preferred_mode(self, mode: str, now: float | None = None) -> Optional[ProgressState]:
        """
        Switch the active route to the preferred mode, keeping the progress fraction.

        During a reroute only the preference is stored: the reroute result stays
        active and the mode applies on the next load or mode change.
        """
        now = self._now(now)
        with self._lock:
            self._advance_locked(now)
            self._preferred_mode = mode
            if self._route_set is not None and self._state != SessionState.REROUTING:
                self._route_index = select_preferred_route(self._route_set.routes, mode)
                self._reanchor_locked(now)
            return self._progress_state_locked()

    def _accepts_obstacle_locked(self, now: float) -> bool:
        if self._route_set is None:
            return False
        if self._state not in (SessionState.READY, SessionState.ANIMATING):
            return False
        if self._reroute_in_flight:
            return False
        if self._last_obstacle_at is not None and (now - self._last_obstacle_at) < self.config.reroute_cooldown_s:
            return False
        return True

    def request_reroute(self, record: ObstacleRecord | None = None, now: float | None = None) -> Optional[RerouteRequest]:
        """Accept an obstacle event and enter rerouting, or return None when gated."""
        now = self._now(now)
        with self._lock:
            self._advance_locked(now)
            if not self._accepts_obstacle_locked(now):
                return None
            assert self._route_set is not None
            position = self._position_locked()
            if record is None:
                record = ObstacleRecord.new(location=position)
            elif record.location is None:
                record = replace(record, location=position)
            if not self.obstacle_log.add(record):
                return None

            self._obstacle_count += 1
            self._last_obstacle_at = now
            self._reroute_in_flight = True
            self._reroute_ticket += 1
            self._state = SessionState.REROUTING
            return RerouteRequest(
                ticket=self._reroute_ticket,
                route_set=self._route_set,
                route_index=self._route_index,
                position=position,
                destination=self._route_set.destination,
                existing_index=find_ground_route(self._route_set, self._route_index, position),
                record=record,
            )

    def resolve_alternative(self, request: RerouteRequest) -> Tuple[Optional[Route], List[SessionEvent]]:
        """Fetch the alternative route for a request; never raises."""
        if not request.needs_alternative:
            return None, [SessionEvent.status("Switching to an available ground route.")]
        try:
            route = self._find_alternative(request.route, request.position, request.destination)
            return route, [SessionEvent.status("Alternative route found.")]
        except Exception as exc:
            route = generate_detour_route(
                request.position,
                request.destination,
                rng=self._rng,
                speed_mps=self.config.ground_speed_mps,
                jitter_deg=self.config.waypoint_jitter_deg,
            )
            return route, [SessionEvent.error(f"Alternative route lookup failed, using local detour: {exc}")]

    def complete_reroute(
        self,
        request: RerouteRequest,
        alternative: Optional[Route],
        now: float | None = None,
    ) -> List[SessionEvent]:
        now = self._now(now)
        with self._lock:
            if request.ticket != self._reroute_ticket or self._state != SessionState.REROUTING:
                return [SessionEvent.status("Ignoring superseded reroute.")]
            assert self._route_set is not None
            result = reroute(self._route_set, self._route_index, request.position, alternative)
            changed_set = result.route_set is not self._route_set
            self._route_set = result.route_set
            self._route_index = result.route_index
            self._progress = result.progress
            self._reroute_in_flight = False
            self._state = SessionState.ANIMATING
            self._reanchor_locked(now)
            if self._progress >= 1.0:
                self._state = SessionState.COMPLETE

            events: List[SessionEvent] = []
            if changed_set:
                events.append(SessionEvent.route_set(result.route_set, result.route_index))
            events.append(SessionEvent.rerouted(result.route_index, result.progress, result.reused_existing))
            if self._state == SessionState.COMPLETE:
                events.append(SessionEvent.complete())
            return events

    def abort_reroute(self, request: RerouteRequest, now: float | None = None) -> None:
        """Leave rerouting without changing routes, e.g. when the caller was cancelled."""
        now = self._now(now)
        with self._lock:
            if request.ticket != self._reroute_ticket or self._state != SessionState.REROUTING:
                return
            self._reroute_in_flight = False
            self._state = SessionState.ANIMATING
            self._reanchor_locked(now)

    def handle_obstacle(self, record: ObstacleRecord | None = None, now: float | None = None) -> List[SessionEvent]:
        request = self.request_reroute(record, now=now)
        if request is None:
            return []
        events = [
            SessionEvent.obstacle(request.record, self.obstacle_count),
            SessionEvent.status("Obstacle detected! Recalculating path..."),
        ]
        alternative, lookup_events = self.resolve_alternative(request)
        events.extend(lookup_events)
        events.extend(self.complete_reroute(request, alternative, now=now))
        return events

    def check_detector(self, now: float | None = None) -> bool:
        """Ask the injected obstacle signal, at most once per detection interval."""
        if self._detector is None:
            return False
        now = self._now(now)
        with self._lock:
            if not self._accepts_obstacle_locked(now):
                return False
            if (
                self._last_detection_poll is not None
                and (now - self._last_detection_poll) < self.config.detection_interval_s
            ):
                return False
            self._last_detection_poll = now
        return bool(self._detector())

    def poll_detector(self, now: float | None = None) -> List[SessionEvent]:
        if not self.check_detector(now):
            return []
        return self.handle_obstacle(now=now)
