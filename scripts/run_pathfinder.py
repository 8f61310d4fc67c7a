"""Plan a route between two places and animate it, headless or behind the web UI."""

from __future__ import annotations

import argparse
import functools
import os
import random
import sys
import time

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from aiohttp import web

from pathfinder.config import load_dotenv, load_navigation_config
from pathfinder.errors import InvalidInput
from pathfinder.nav.events import SessionEvent
from pathfinder.nav.formatting import format_distance, format_duration
from pathfinder.nav.models import GROUND_MODES, MODE_FLIGHT
from pathfinder.nav.obstacles import RandomObstacleDetector
from pathfinder.nav.session import NavigationSession, SessionState
from pathfinder.routing.route_planner import plan_routes
from pathfinder.web.server import create_app


def _print_events(events: list[SessionEvent]) -> None:
    for event in events:
        if event.name in {"status", "error"}:
            message = event.get("message", "")
            if message:
                prefix = "Error" if event.name == "error" else "Nav"
                print(f"[nav] {prefix}: {message}")
        elif event.name == "route_set":
            route_set = event.get("route_set")
            active = event.get("route_index", 0)
            for i, route in enumerate(route_set.routes):
                marker = "*" if i == active else " "
                print(
                    f"[nav] {marker} {i}: {route.summary or route.mode} "
                    f"({route.mode}) {format_distance(route.distance_m)}, {format_duration(route.duration_s)}"
                )
        elif event.name == "obstacle":
            record = event.get("record")
            print(f"[nav] Obstacle #{event.get('count')}: {record.kind} ({record.confidence:.2f})")
        elif event.name == "rerouted":
            reused = " (existing ground route)" if event.get("reused_existing") else ""
            print(f"[nav] Rerouted to route {event.get('route_index')} at {event.get('progress'):.0%}{reused}")
        elif event.name == "complete":
            print("[nav] Arrived at destination.")


def run_headless(session: NavigationSession, fps: float) -> None:
    if not session.start():
        raise SystemExit(f"Navigation could not start from state '{session.state.value}'.")
    period = 1.0 / max(1.0, fps)
    last_report = -1
    while session.state not in {SessionState.COMPLETE, SessionState.IDLE}:
        _print_events(session.poll_detector())
        state = session.tick()
        if state is not None:
            decile = int(state.progress * 10)
            if decile != last_report:
                last_report = decile
                print(f"[nav] {state.progress:5.1%} at {state.position.lat:.5f},{state.position.lon:.5f}")
        time.sleep(period)
    _print_events([SessionEvent.complete()])


def main() -> None:
    load_dotenv(os.path.join(REPO_ROOT, ".env"))
    nav_config = load_navigation_config()

    parser = argparse.ArgumentParser()
    parser.add_argument("source", type=str, help="Source place name, e.g. 'New York'")
    parser.add_argument("destination", type=str, help="Destination place name")
    parser.add_argument(
        "--mode",
        type=str,
        default=nav_config.preferred_mode,
        choices=sorted(GROUND_MODES | {MODE_FLIGHT}),
    )
    parser.add_argument("--no-osrm", dest="use_osrm", action="store_false")
    parser.add_argument("--nominatim", dest="use_nominatim", action="store_true")
    parser.add_argument("--fps", type=float, default=30.0)
    parser.add_argument("--serve", action="store_true", help="Serve the web UI instead of animating in the terminal")
    parser.add_argument("--host", type=str, default=os.environ.get("WEB_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("WEB_PORT", "8080")))
    parser.add_argument(
        "--static-dir",
        type=str,
        default=os.environ.get("WEB_STATIC_DIR") or None,
        help="Directory with index.html for the web UI (API only when omitted)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for simulated routes and obstacles")
    args = parser.parse_args()
    if args.static_dir:
        if not os.path.isabs(args.static_dir):
            args.static_dir = os.path.join(REPO_ROOT, args.static_dir)
        if not os.path.isdir(args.static_dir):
            raise SystemExit(f"Static directory not found: {args.static_dir}")

    rng = random.Random(args.seed)
    session = NavigationSession(
        load_routes=functools.partial(
            plan_routes,
            use_osrm=args.use_osrm,
            use_nominatim=args.use_nominatim,
            nav_config=nav_config,
            rng=rng,
        ),
        detector=RandomObstacleDetector(nav_config.obstacle_probability, rng=rng),
        config=nav_config,
        rng=rng,
        use_osrm=args.use_osrm,
    )
    session.set_preferred_mode(args.mode)

    try:
        events = session.load(args.source, args.destination)
    except InvalidInput as exc:
        raise SystemExit(f"Route planning failed: {exc}") from exc
    _print_events(events)

    if args.serve:
        app = create_app(
            session,
            static_dir=args.static_dir,
            tick_hz=args.fps,
            use_osrm=args.use_osrm,
            use_nominatim=args.use_nominatim,
        )
        print(f"Web UI running at http://{args.host}:{args.port}")
        print("Press Ctrl+C to stop.")
        web.run_app(app, host=args.host, port=args.port, print=None)
        return

    try:
        run_headless(session, args.fps)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
