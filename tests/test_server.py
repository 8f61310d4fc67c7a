import asyncio
import os
import random
import tempfile
import unittest
from unittest.mock import patch

from aiohttp.test_utils import AioHTTPTestCase

from pathfinder.config import NavigationConfig
from pathfinder.nav.session import NavigationSession
from pathfinder.routing.simulated import generate_detour_route
from pathfinder.web.server import create_app


class ServerTests(AioHTTPTestCase):
    async def get_application(self):
        rng = random.Random(11)
        self.session = NavigationSession(
            find_alternative=lambda route, position, destination: generate_detour_route(position, destination, rng=rng),
            config=NavigationConfig(animation_duration_s=600.0),
            rng=rng,
        )
        return create_app(self.session, tick_hz=20.0, use_osrm=False)

    async def _plan(self):
        resp = await self.client.post(
            "/api/plan",
            json={"source": "Boston", "destination": "New York", "useOsrm": False},
        )
        self.assertEqual(resp.status, 200)
        return await resp.json()

    async def test_state_starts_idle(self) -> None:
        resp = await self.client.get("/api/state")
        self.assertEqual(resp.status, 200)
        data = await resp.json()
        self.assertEqual(data["state"], "idle")
        self.assertIsNone(data["routeSet"])
        self.assertIsNone(data["progress"])

    async def test_plan_loads_routes(self) -> None:
        data = await self._plan()
        self.assertEqual(data["state"], "ready")
        self.assertEqual(data["routeSource"], "simulated")
        self.assertFalse(data["osrmRequested"])
        routes = data["routeSet"]["routes"]
        self.assertEqual(len(routes), 4)
        self.assertEqual(routes[-1]["mode"], "flight")
        self.assertTrue(routes[0]["distanceText"].endswith("km"))
        self.assertEqual(data["progress"]["routeIndex"], 0)
        self.assertEqual(data["progress"]["progress"], 0.0)

    async def test_plan_rejects_bad_requests(self) -> None:
        resp = await self.client.post("/api/plan", json={"source": "Boston"})
        self.assertEqual(resp.status, 400)
        resp = await self.client.post("/api/plan", data="not json", headers={"Content-Type": "application/json"})
        self.assertEqual(resp.status, 400)

    async def test_mode_switch_selects_flight(self) -> None:
        await self._plan()
        resp = await self.client.post("/api/mode", json={"mode": "flight"})
        data = await resp.json()
        self.assertEqual(data["preferredMode"], "flight")
        self.assertEqual(data["progress"]["routeIndex"], 3)

        resp = await self.client.post("/api/mode", json={})
        self.assertEqual(resp.status, 400)

    async def test_obstacle_gated_without_routes(self) -> None:
        resp = await self.client.post("/api/obstacle", json={"kind": "person"})
        data = await resp.json()
        self.assertFalse(data["accepted"])

    async def test_obstacle_reroutes_and_is_logged(self) -> None:
        await self._plan()
        resp = await self.client.post("/api/start")
        self.assertEqual((await resp.json())["state"], "animating")

        resp = await self.client.post("/api/obstacle", json={"kind": "vehicle", "confidence": 0.8})
        data = await resp.json()
        self.assertTrue(data["accepted"])
        self.assertEqual(data["record"]["kind"], "vehicle")
        self.assertEqual(data["state"], "animating")
        self.assertEqual(data["progress"]["routeIndex"], 4)

        resp = await self.client.post("/api/obstacle", json={"kind": "vehicle"})
        self.assertFalse((await resp.json())["accepted"])

        resp = await self.client.get("/api/obstacles")
        history = await resp.json()
        self.assertEqual(history["count"], 1)
        self.assertEqual(len(history["records"]), 1)

        resp = await self.client.post("/api/stop")
        self.assertEqual((await resp.json())["state"], "ready")

    async def test_websocket_sends_state_snapshot(self) -> None:
        await self._plan()
        ws = await self.client.ws_connect("/ws")
        message = await ws.receive_json()
        self.assertEqual(message["type"], "state")
        self.assertEqual(message["state"], "ready")
        await ws.close()

    async def test_failing_animation_tick_is_reported(self) -> None:
        await self._plan()
        driver = self.app["animation"]
        with patch.object(self.session, "tick", side_effect=RuntimeError("tick failed")):
            with patch("builtins.print") as printed:
                driver.start()
                for _ in range(20):
                    if printed.called:
                        break
                    await asyncio.sleep(0.01)
        self.assertFalse(driver.running)
        self.assertIn("tick failed", printed.call_args.args[0])


class OfflineServerTests(AioHTTPTestCase):
    async def get_application(self):
        self.session = NavigationSession(config=NavigationConfig(animation_duration_s=600.0), rng=random.Random(2))
        return create_app(self.session, use_osrm=False)

    async def test_reroute_respects_offline_plan(self) -> None:
        with patch("pathfinder.routing.route_planner.OsrmClient") as client_cls:
            resp = await self.client.post("/api/plan", json={"source": "Austin", "destination": "Denver"})
            self.assertEqual(resp.status, 200)
            resp = await self.client.post("/api/obstacle", json={"kind": "construction"})
            data = await resp.json()
        client_cls.assert_not_called()
        self.assertTrue(data["accepted"])
        self.assertEqual(self.session.active_route().summary, "Obstacle detour")


class StaticDirTests(unittest.TestCase):
    def test_missing_static_dir_serves_api_only(self) -> None:
        session = NavigationSession(config=NavigationConfig())
        with tempfile.TemporaryDirectory() as tmp:
            with patch("builtins.print") as printed:
                app = create_app(session, static_dir=os.path.join(tmp, "web"))
        paths = {route.resource.canonical for route in app.router.routes()}
        self.assertIn("/api/state", paths)
        self.assertNotIn("/", paths)
        self.assertIn("Static directory not found", printed.call_args.args[0])


if __name__ == "__main__":
    unittest.main()
