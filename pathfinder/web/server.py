"""Aiohttp web server exposing a navigation session + WebSocket progress streaming."""

from __future__ import annotations

import asyncio
import functools
import json
import pathlib
import time
from typing import Any, Dict, List, Optional, Set

from aiohttp import WSMsgType, web

from pathfinder.errors import InvalidInput
from pathfinder.nav.events import SessionEvent
from pathfinder.nav.formatting import format_distance, format_duration
from pathfinder.nav.geo import bounding_box
from pathfinder.nav.models import Coordinate, ProgressState, Route, RouteSet
from pathfinder.nav.obstacles import ObstacleRecord
from pathfinder.nav.session import NavigationSession, SessionState
from pathfinder.routing.route_planner import plan_routes

DEFAULT_TICK_HZ = 30.0


def _coord_json(coord: Optional[Coordinate]) -> Optional[List[float]]:
    if coord is None:
        return None
    return [coord.lat, coord.lon]


def route_to_json(route: Route) -> Dict[str, Any]:
    return {
        "mode": route.mode,
        "summary": route.summary,
        "distanceM": route.distance_m,
        "durationS": route.duration_s,
        "distanceText": format_distance(route.distance_m),
        "durationText": format_duration(route.duration_s),
        "geometry": [_coord_json(p) for p in route.geometry],
        "segments": [
            {
                "instruction": seg.instruction,
                "distanceM": seg.distance_m,
                "durationS": seg.duration_s,
                "start": _coord_json(seg.start),
                "end": _coord_json(seg.end),
            }
            for seg in route.segments
        ],
    }


def route_set_to_json(route_set: RouteSet) -> Dict[str, Any]:
    points = [p for route in route_set.routes for p in route.geometry]
    points.extend([route_set.source, route_set.destination])
    south_west, north_east = bounding_box(points)
    return {
        "source": _coord_json(route_set.source),
        "destination": _coord_json(route_set.destination),
        "bounds": [_coord_json(south_west), _coord_json(north_east)],
        "routes": [route_to_json(route) for route in route_set.routes],
    }


def progress_to_json(state: Optional[ProgressState]) -> Optional[Dict[str, Any]]:
    if state is None:
        return None
    return {
        "routeIndex": state.route_index,
        "progress": state.progress,
        "position": _coord_json(state.position),
    }


def record_to_json(record: ObstacleRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "kind": record.kind,
        "confidence": record.confidence,
        "timestamp": record.timestamp,
        "location": _coord_json(record.location),
    }


def event_to_json(event: SessionEvent) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"type": event.name, "t": time.time()}
    if event.name in {"status", "error"}:
        payload["message"] = event.get("message", "")
    elif event.name == "route_set":
        payload["routeSet"] = route_set_to_json(event.get("route_set"))
        payload["routeIndex"] = event.get("route_index")
    elif event.name == "obstacle":
        payload["record"] = record_to_json(event.get("record"))
        payload["count"] = event.get("count")
    elif event.name == "rerouted":
        payload["routeIndex"] = event.get("route_index")
        payload["progress"] = event.get("progress")
        payload["reusedExisting"] = event.get("reused_existing")
    return payload


def session_to_json(session: NavigationSession) -> Dict[str, Any]:
    route_set = session.route_set
    route = session.active_route()
    plan = session.plan
    payload: Dict[str, Any] = {
        "state": session.state.value,
        "preferredMode": session.preferred_mode,
        "obstacleCount": session.obstacle_count,
        "rerouteInFlight": session.reroute_in_flight,
        "progress": progress_to_json(session.progress_state()),
        "routeSet": route_set_to_json(route_set) if route_set else None,
        "activeRoute": route_to_json(route) if route else None,
    }
    if plan is not None:
        payload.update(
            {
                "sourceName": plan.source_name,
                "destinationName": plan.destination_name,
                "notes": plan.notes,
                "routeSource": plan.source,
                "osrmRequested": plan.osrm_requested,
                "osrmUsed": plan.osrm_used,
                "warning": plan.warning,
            }
        )
    return payload


class ProgressHub:
    def __init__(self) -> None:
        self._clients: set[web.WebSocketResponse] = set()
        self._lock = asyncio.Lock()

    async def register(self, ws: web.WebSocketResponse) -> None:
        async with self._lock:
            self._clients.add(ws)

    async def unregister(self, ws: web.WebSocketResponse) -> None:
        async with self._lock:
            self._clients.discard(ws)

    async def broadcast(self, payload: Dict[str, Any]) -> None:
        async with self._lock:
            if not self._clients:
                return
            data = json.dumps(payload)
            to_remove = []
            for ws in self._clients:
                if ws.closed:
                    to_remove.append(ws)
                    continue
                try:
                    await ws.send_str(data)
                except ConnectionResetError:
                    to_remove.append(ws)
            for ws in to_remove:
                self._clients.discard(ws)

    async def broadcast_events(self, events: List[SessionEvent]) -> None:
        for event in events:
            await self.broadcast(event_to_json(event))


def _report_task_error(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        print(f"[web] Background task {task.get_name()} failed: {exc!r}")


class AnimationDriver:
    """Per-frame loop advancing the session and streaming its ProgressState."""

    def __init__(self, app: web.Application, tick_hz: float = DEFAULT_TICK_HZ) -> None:
        self._app = app
        self._period_s = 1.0 / max(1.0, float(tick_hz))
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        self._task.add_done_callback(_report_task_error)

    async def cancel(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        session: NavigationSession = self._app["session"]
        hub: ProgressHub = self._app["progress_hub"]
        while True:
            state = session.tick()
            await hub.broadcast({"type": "progress", "t": time.time(), **(progress_to_json(state) or {})})
            if session.state == SessionState.COMPLETE:
                await hub.broadcast_events([SessionEvent.complete()])
                return
            if session.state != SessionState.ANIMATING:
                return
            if session.check_detector():
                _schedule_reroute(self._app)
            await asyncio.sleep(self._period_s)


def _schedule_reroute(app: web.Application, record: ObstacleRecord | None = None) -> None:
    tasks: Set[asyncio.Task] = app["reroute_tasks"]
    task = asyncio.create_task(run_reroute(app, record))
    tasks.add(task)
    task.add_done_callback(_report_task_error)
    task.add_done_callback(tasks.discard)


async def run_reroute(app: web.Application, record: ObstacleRecord | None = None) -> Dict[str, Any]:
    session: NavigationSession = app["session"]
    hub: ProgressHub = app["progress_hub"]
    driver: AnimationDriver = app["animation"]

    request = session.request_reroute(record)
    if request is None:
        return {"accepted": False, "state": session.state.value}

    # The old route's frame loop must stop before the merged state is written.
    await driver.cancel()
    await hub.broadcast_events(
        [
            SessionEvent.obstacle(request.record, session.obstacle_count),
            SessionEvent.status("Obstacle detected! Recalculating path..."),
        ]
    )
    try:
        alternative, events = await asyncio.to_thread(session.resolve_alternative, request)
    except asyncio.CancelledError:
        session.abort_reroute(request)
        raise
    events.extend(session.complete_reroute(request, alternative))
    await hub.broadcast_events(events)
    if session.state == SessionState.ANIMATING:
        driver.start()
    return {
        "accepted": True,
        "record": record_to_json(request.record),
        "progress": progress_to_json(session.progress_state()),
        "state": session.state.value,
    }


async def _read_json_body(request: web.Request) -> Dict[str, Any]:
    if not request.can_read_body:
        return {}
    try:
        parsed = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise web.HTTPBadRequest(
            text=json.dumps({"error": "Request body must be JSON."}),
            content_type="application/json",
        )
    return parsed if isinstance(parsed, dict) else {}


async def _handle_state(request: web.Request) -> web.Response:
    return web.json_response(session_to_json(request.app["session"]))


async def _handle_plan(request: web.Request) -> web.Response:
    session: NavigationSession = request.app["session"]
    hub: ProgressHub = request.app["progress_hub"]
    driver: AnimationDriver = request.app["animation"]
    body = await _read_json_body(request)

    source_name = str(body.get("source") or "").strip()
    destination_name = str(body.get("destination") or "").strip()
    if not source_name or not destination_name:
        return web.json_response({"error": "Both 'source' and 'destination' are required."}, status=400)
    mode = str(body.get("mode") or "").strip()
    if mode:
        session.set_preferred_mode(mode)

    use_osrm = bool(body.get("useOsrm", request.app["use_osrm"]))
    loader = functools.partial(
        plan_routes,
        use_osrm=use_osrm,
        use_nominatim=bool(body.get("useNominatim", request.app["use_nominatim"])),
        nav_config=session.config,
    )
    await driver.cancel()
    try:
        events = await asyncio.to_thread(
            session.load,
            source_name,
            destination_name,
            load_routes=loader,
            find_alternative=session.alternative_finder(use_osrm=use_osrm),
        )
    except InvalidInput as exc:
        return web.json_response({"error": str(exc)}, status=400)
    await hub.broadcast_events(events)

    if bool(body.get("autoStart", False)) and session.start():
        driver.start()
    return web.json_response(session_to_json(session))


async def _handle_start(request: web.Request) -> web.Response:
    session: NavigationSession = request.app["session"]
    driver: AnimationDriver = request.app["animation"]
    if session.start():
        driver.start()
    return web.json_response({"running": driver.running, "state": session.state.value})


async def _handle_stop(request: web.Request) -> web.Response:
    session: NavigationSession = request.app["session"]
    driver: AnimationDriver = request.app["animation"]
    await driver.cancel()
    session.stop()
    return web.json_response({"running": driver.running, "state": session.state.value})


async def _handle_mode(request: web.Request) -> web.Response:
    session: NavigationSession = request.app["session"]
    hub: ProgressHub = request.app["progress_hub"]
    body = await _read_json_body(request)
    mode = str(body.get("mode") or "").strip()
    if not mode:
        return web.json_response({"error": "Missing 'mode'."}, status=400)
    state = session.set_preferred_mode(mode)
    payload = {"type": "progress", "t": time.time(), **(progress_to_json(state) or {})}
    await hub.broadcast(payload)
    return web.json_response({"preferredMode": session.preferred_mode, "progress": progress_to_json(state)})


async def _handle_obstacle(request: web.Request) -> web.Response:
    body = await _read_json_body(request)
    try:
        record = ObstacleRecord.new(
            kind=str(body.get("kind") or "other"),
            confidence=float(body.get("confidence", 1.0)),
        )
    except (TypeError, ValueError):
        return web.json_response({"error": "Invalid obstacle confidence."}, status=400)
    result = await run_reroute(request.app, record)
    return web.json_response(result)


async def _handle_obstacles(request: web.Request) -> web.Response:
    session: NavigationSession = request.app["session"]
    return web.json_response(
        {
            "count": session.obstacle_count,
            "records": [record_to_json(r) for r in session.obstacle_log.records()],
        }
    )


async def _handle_ws(request: web.Request) -> web.WebSocketResponse:
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    session: NavigationSession = request.app["session"]
    hub: ProgressHub = request.app["progress_hub"]

    await hub.register(ws)
    try:
        await ws.send_str(json.dumps({"type": "state", "t": time.time(), **session_to_json(session)}))
        async for msg in ws:
            if msg.type != WSMsgType.TEXT:
                if msg.type in {WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED, WSMsgType.ERROR}:
                    break
                continue
            try:
                payload = json.loads(msg.data)
            except json.JSONDecodeError:
                continue
            if not isinstance(payload, dict):
                continue

            message_type = str(payload.get("type", "")).strip().lower()
            if message_type == "obstacle":
                _schedule_reroute(request.app)
            elif message_type == "mode":
                mode = str(payload.get("mode") or "").strip()
                if mode:
                    state = session.set_preferred_mode(mode)
                    await hub.broadcast({"type": "progress", "t": time.time(), **(progress_to_json(state) or {})})
    finally:
        await hub.unregister(ws)
    return ws


async def _on_cleanup(app: web.Application) -> None:
    await app["animation"].cancel()
    tasks = list(app["reroute_tasks"])
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


def create_app(
    session: NavigationSession,
    *,
    static_dir: str | None = None,
    tick_hz: float = DEFAULT_TICK_HZ,
    use_osrm: bool = True,
    use_nominatim: bool = False,
) -> web.Application:
    app = web.Application()
    app["session"] = session
    app["progress_hub"] = ProgressHub()
    app["animation"] = AnimationDriver(app, tick_hz=tick_hz)
    app["reroute_tasks"] = set()
    app["use_osrm"] = use_osrm
    app["use_nominatim"] = use_nominatim
    app.on_cleanup.append(_on_cleanup)

    app.router.add_get("/api/state", _handle_state)
    app.router.add_post("/api/plan", _handle_plan)
    app.router.add_post("/api/start", _handle_start)
    app.router.add_post("/api/stop", _handle_stop)
    app.router.add_post("/api/mode", _handle_mode)
    app.router.add_post("/api/obstacle", _handle_obstacle)
    app.router.add_get("/api/obstacles", _handle_obstacles)
    app.router.add_get("/ws", _handle_ws)

    if static_dir:
        static_path = pathlib.Path(static_dir)
        if not static_path.is_dir():
            print(f"[web] Static directory not found, serving the API only: {static_path}")
            return app
        index_path = static_path / "index.html"
        if index_path.exists():
            app.router.add_get("/", lambda request: web.FileResponse(index_path))
        app.router.add_static("/", static_path, show_index=False)
    return app
