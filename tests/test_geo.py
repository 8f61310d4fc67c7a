import math
import unittest

from pathfinder.errors import InvalidInput
from pathfinder.nav.geo import (
    bounding_box,
    closest_index,
    cumulative_distances_m,
    haversine_m,
    interpolate_linear,
    path_length_m,
    point_at_progress,
    progress_at_index,
)
from pathfinder.nav.models import Coordinate


class HaversineTests(unittest.TestCase):
    def test_one_degree_of_longitude_at_equator(self) -> None:
        dist = haversine_m(Coordinate(0.0, 0.0), Coordinate(0.0, 1.0))
        self.assertAlmostEqual(dist, 111195.0, delta=111195.0 * 0.01)

    def test_symmetric_and_zero_on_same_point(self) -> None:
        a = Coordinate(40.7128, -74.0060)
        b = Coordinate(42.3601, -71.0589)
        self.assertAlmostEqual(haversine_m(a, b), haversine_m(b, a), places=6)
        self.assertEqual(haversine_m(a, a), 0.0)

    def test_antipodal_points_stay_finite(self) -> None:
        dist = haversine_m((0.0, 0.0), (0.0, 180.0))
        self.assertTrue(math.isfinite(dist))
        self.assertAlmostEqual(dist, math.pi * 6371000.0, delta=1.0)

    def test_accepts_pairs_and_mappings(self) -> None:
        self.assertAlmostEqual(
            haversine_m((0.0, 0.0), {"lat": 0.0, "lng": 1.0}),
            haversine_m(Coordinate(0.0, 0.0), Coordinate(0.0, 1.0)),
        )

    def test_non_finite_coordinate_rejected(self) -> None:
        with self.assertRaises(InvalidInput):
            haversine_m((float("nan"), 0.0), (0.0, 1.0))


class PointAtProgressTests(unittest.TestCase):
    path = [Coordinate(0.0, 0.0), Coordinate(0.0, 1.0), Coordinate(0.0, 2.0)]

    def test_midpoint_of_equal_segments(self) -> None:
        point = point_at_progress(self.path, 0.5)
        self.assertAlmostEqual(point.lat, 0.0, places=6)
        self.assertAlmostEqual(point.lon, 1.0, places=6)

    def test_endpoints_and_clamping(self) -> None:
        self.assertEqual(point_at_progress(self.path, 0.0), self.path[0])
        self.assertEqual(point_at_progress(self.path, 1.0), self.path[-1])
        self.assertEqual(point_at_progress(self.path, -0.3), self.path[0])
        self.assertEqual(point_at_progress(self.path, 1.7), self.path[-1])

    def test_single_point_and_degenerate_paths(self) -> None:
        only = Coordinate(10.0, 20.0)
        self.assertEqual(point_at_progress([only], 0.7), only)
        self.assertEqual(point_at_progress([only, only, only], 0.5), only)

    def test_zero_length_segment_is_skipped(self) -> None:
        path = [Coordinate(0.0, 0.0), Coordinate(0.0, 0.0), Coordinate(0.0, 2.0)]
        point = point_at_progress(path, 0.25)
        self.assertAlmostEqual(point.lon, 0.5, places=6)

    def test_progress_is_monotonic_along_path(self) -> None:
        start = self.path[0]
        previous = -1.0
        for step in range(21):
            dist = haversine_m(start, point_at_progress(self.path, step / 20.0))
            self.assertGreaterEqual(dist, previous - 1e-6)
            previous = dist

    def test_invalid_input(self) -> None:
        with self.assertRaises(InvalidInput):
            point_at_progress([], 0.5)
        with self.assertRaises(InvalidInput):
            point_at_progress(self.path, float("inf"))
        with self.assertRaises(InvalidInput):
            point_at_progress(self.path, float("nan"))


class ClosestIndexTests(unittest.TestCase):
    def test_nearest_point(self) -> None:
        path = [(0.0, 0.0), (0.0, 1.0), (0.0, 2.0)]
        self.assertEqual(closest_index(path, (0.1, 1.2)), 1)
        self.assertEqual(closest_index(path, (0.0, 5.0)), 2)

    def test_first_index_wins_ties(self) -> None:
        path = [(0.0, 0.0), (0.0, 2.0), (0.0, 0.0)]
        self.assertEqual(closest_index(path, (0.0, 0.0)), 0)
        self.assertEqual(closest_index([(0.0, 0.0), (0.0, 2.0)], (0.0, 1.0)), 0)

    def test_empty_path_rejected(self) -> None:
        with self.assertRaises(InvalidInput):
            closest_index([], (0.0, 0.0))


class PathMetricTests(unittest.TestCase):
    def test_cumulative_and_progress_at_index(self) -> None:
        path = [(0.0, 0.0), (0.0, 1.0), (0.0, 3.0)]
        cumulative = cumulative_distances_m(path)
        self.assertEqual(len(cumulative), 3)
        self.assertEqual(cumulative[0], 0.0)
        self.assertAlmostEqual(cumulative[-1], path_length_m(path))
        self.assertAlmostEqual(progress_at_index(path, 1), 1.0 / 3.0, places=6)
        self.assertEqual(progress_at_index(path, 99), 1.0)
        self.assertEqual(progress_at_index([(1.0, 1.0)], 0), 0.0)

    def test_interpolate_linear_and_bounds(self) -> None:
        points = interpolate_linear((0.0, 0.0), (2.0, 4.0), 5)
        self.assertEqual(len(points), 5)
        self.assertEqual(points[2], Coordinate(1.0, 2.0))
        south_west, north_east = bounding_box(points)
        self.assertEqual(south_west, Coordinate(0.0, 0.0))
        self.assertEqual(north_east, Coordinate(2.0, 4.0))
        with self.assertRaises(InvalidInput):
            bounding_box([])


if __name__ == "__main__":
    unittest.main()
