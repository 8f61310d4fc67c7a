import random
import unittest
from unittest.mock import patch

from pathfinder.errors import InvalidInput
from pathfinder.nav.models import MODE_DRIVING, MODE_FLIGHT, MODE_WALKING, Coordinate, Route
from pathfinder.routing.geocode import KNOWN_LOCATIONS, hashed_location
from pathfinder.routing.route_planner import find_alternative_route, plan_routes, resolve_location


class PlanRoutesTests(unittest.TestCase):
    def test_simulated_plan_without_osrm(self) -> None:
        plan = plan_routes("Boston", "New York", use_osrm=False, rng=random.Random(1))
        self.assertEqual(plan.source, "simulated")
        self.assertFalse(plan.osrm_requested)
        self.assertFalse(plan.osrm_used)
        self.assertEqual(plan.warning, "")

        routes = plan.route_set.routes
        self.assertEqual(len(routes), 4)
        ground = routes[:3]
        self.assertEqual([r.distance_m for r in ground], sorted(r.distance_m for r in ground))
        self.assertTrue(all(r.mode == MODE_DRIVING for r in ground))
        self.assertEqual(routes[-1].mode, MODE_FLIGHT)
        self.assertEqual(routes[-1].summary, "Direct flight")
        self.assertEqual(plan.route_set.source, KNOWN_LOCATIONS["boston"])
        self.assertEqual(plan.route_set.destination, KNOWN_LOCATIONS["new york"])
        for route in ground:
            self.assertEqual(route.start, KNOWN_LOCATIONS["boston"])
            self.assertEqual(route.end, KNOWN_LOCATIONS["new york"])
            self.assertEqual(route.segments[0].instruction, "Head toward New York")

    def test_osrm_failure_emits_warning(self) -> None:
        with patch("pathfinder.routing.route_planner.OsrmClient", side_effect=RuntimeError("quota exceeded")):
            plan = plan_routes("Boston", "Chicago", include_flight=False, rng=random.Random(2))
        self.assertTrue(plan.osrm_requested)
        self.assertFalse(plan.osrm_used)
        self.assertEqual(plan.source, "simulated")
        self.assertIn("OSRM", plan.warning)
        self.assertIn("simulated", plan.warning.lower())
        self.assertIn("quota exceeded", plan.notes)
        self.assertEqual(len(plan.route_set.routes), 3)

    def test_osrm_routes_are_used(self) -> None:
        osrm_route = Route.from_geometry([(42.36, -71.06), (40.71, -74.0)], distance_m=350000, duration_s=14000)
        with patch("pathfinder.routing.route_planner.OsrmClient") as client_cls:
            client_cls.return_value.get_routes.return_value = [osrm_route]
            plan = plan_routes("Boston", "New York")
        self.assertEqual(plan.source, "osrm")
        self.assertTrue(plan.osrm_used)
        self.assertEqual(plan.warning, "")
        self.assertIs(plan.route_set.routes[0], osrm_route)
        self.assertEqual(plan.route_set.routes[-1].mode, MODE_FLIGHT)

    def test_empty_names_rejected(self) -> None:
        with self.assertRaises(InvalidInput):
            plan_routes("  ", "Boston", use_osrm=False)


class ResolveLocationTests(unittest.TestCase):
    def test_known_names_are_case_insensitive(self) -> None:
        self.assertEqual(resolve_location("  San Francisco "), KNOWN_LOCATIONS["san francisco"])

    def test_unknown_name_is_deterministic(self) -> None:
        notes = []
        first = resolve_location("Springfield", note_parts=notes)
        self.assertEqual(first, resolve_location("Springfield"))
        self.assertEqual(first, hashed_location("Springfield"))
        self.assertNotEqual(first, hashed_location("Shelbyville"))
        self.assertIn("approximate", notes[0])

    def test_nominatim_failure_falls_back_to_hash(self) -> None:
        notes = []
        with patch("pathfinder.routing.route_planner.geocode_nominatim", side_effect=RuntimeError("offline")):
            point = resolve_location("Springfield", use_nominatim=True, note_parts=notes)
        self.assertEqual(point, hashed_location("Springfield"))
        self.assertIn("offline", notes[0])

    def test_nominatim_result_is_used(self) -> None:
        with patch("pathfinder.routing.route_planner.geocode_nominatim", return_value=Coordinate(1.0, 2.0)):
            self.assertEqual(resolve_location("Somewhere", use_nominatim=True), Coordinate(1.0, 2.0))


class FindAlternativeRouteTests(unittest.TestCase):
    def setUp(self) -> None:
        self.position = Coordinate(40.0, -75.0)
        self.destination = Coordinate(40.5, -74.0)

    def test_local_detour_keeps_ground_mode(self) -> None:
        current = Route.from_geometry([(40.0, -75.0), (40.5, -74.0)], distance_m=1, duration_s=1, mode=MODE_WALKING)
        route = find_alternative_route(current, self.position, self.destination, use_osrm=False, rng=random.Random(5))
        self.assertEqual(route.mode, MODE_WALKING)
        self.assertEqual(route.summary, "Obstacle detour")
        self.assertEqual(route.start, self.position)
        self.assertEqual(route.end, self.destination)
        self.assertEqual(len(route.segments), 3)
        self.assertEqual(route.segments[0].instruction, "Take detour due to obstacle")

    def test_osrm_failure_uses_driving_detour_for_flight(self) -> None:
        current = Route.from_geometry([(40.0, -75.0), (40.5, -74.0)], distance_m=1, duration_s=1, mode=MODE_FLIGHT)
        with patch("pathfinder.routing.route_planner.OsrmClient", side_effect=RuntimeError("down")):
            with patch("builtins.print"):
                route = find_alternative_route(current, self.position, self.destination, rng=random.Random(5))
        self.assertEqual(route.mode, MODE_DRIVING)
        self.assertEqual(route.summary, "Obstacle detour")


if __name__ == "__main__":
    unittest.main()
