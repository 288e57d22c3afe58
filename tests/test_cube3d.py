import unittest

import numpy as np

from cctools.errors import InvalidDataError
from cctools.model.geometry_primitives import Cube3D, Point


class Cube3DTests(unittest.TestCase):

    def setUp(self):
        self.cube = Cube3D(0.0, 10.0, 0.0, 10.0, 0.0, 10.0)
        self.inverted = Cube3D(0.0, 10.0, 0.0, 10.0, 0.0, 10.0, invert=True)

        self.points_inside = [
            [5.0, 5.0, 5.0],
            [0.0, 0.0, 0.0],
            [10.0, 10.0, 10.0],
            [0.0, 5.0, 10.0],
            [9.999, 0.001, 5.0],
        ]
        self.points_outside = [
            [-0.001, 5.0, 5.0],
            [5.0, 10.001, 5.0],
            [5.0, 5.0, -3.0],
            [11.0, 11.0, 11.0],
            [-1.0, -1.0, -1.0],
        ]

    def test_contains_inclusive_bounds(self):
        for p in self.points_inside:
            self.assertTrue(self.cube.contains(p), p)
        for p in self.points_outside:
            self.assertFalse(self.cube.contains(p), p)

    def test_inverted_cube_negates_containment(self):
        for p in self.points_inside:
            self.assertFalse(self.inverted.contains(p), p)
        for p in self.points_outside:
            self.assertTrue(self.inverted.contains(p), p)

    def test_contains_points_matches_contains(self):
        points = np.array(self.points_inside + self.points_outside)
        expected = [self.cube.contains(p) for p in points]
        self.assertEqual(self.cube.contains_points(points).tolist(), expected)
        self.assertEqual(self.inverted.contains_points(points).tolist(), [not e for e in expected])

    def test_min_greater_than_max_is_rejected(self):
        with self.assertRaises(InvalidDataError):
            Cube3D(10.0, 0.0, 0.0, 10.0, 0.0, 10.0)
        with self.assertRaises(InvalidDataError):
            Cube3D(0.0, 10.0, 0.0, 10.0, 0.0, float("nan"))

    def test_degenerate_cube_is_allowed(self):
        flat = Cube3D(0.0, 10.0, 0.0, 10.0, 5.0, 5.0)
        self.assertTrue(flat.contains([1.0, 1.0, 5.0]))
        self.assertFalse(flat.contains([1.0, 1.0, 5.1]))

    def test_resize_validates_again(self):
        cube = Cube3D(0.0, 1.0, 0.0, 1.0, 0.0, 1.0, invert=True)
        cube.resize(0.0, 2.0, 0.0, 2.0, 0.0, 2.0)
        self.assertEqual(cube.max_corner, Point(2.0, 2.0, 2.0))
        self.assertTrue(cube.invert)

        with self.assertRaises(InvalidDataError):
            cube.resize(0.0, 2.0, 3.0, 2.0, 0.0, 2.0)
        # failed resize keeps the old bounds
        self.assertEqual(cube.max_corner, Point(2.0, 2.0, 2.0))

    def test_clamp(self):
        self.assertEqual(self.cube.clamp([12.0, -1.0, 5.0]), Point(10.0, 0.0, 5.0))
        self.assertEqual(self.cube.clamp([3.0, 4.0, 5.0]), Point(3.0, 4.0, 5.0))

    def test_center_and_size(self):
        cube = Cube3D(0.0, 2.0, -1.0, 1.0, 4.0, 10.0)
        self.assertEqual(cube.center, Point(1.0, 0.0, 7.0))
        np.testing.assert_allclose(cube.size, [2.0, 2.0, 6.0])

    def test_dict_round_trip(self):
        data = {"min": [0, 1, 2], "max": [3, 4, 5], "invert": True}
        cube = Cube3D.from_dict(data)
        self.assertEqual(cube.to_dict(), {"min": [0.0, 1.0, 2.0], "max": [3.0, 4.0, 5.0], "invert": True})
        self.assertEqual(Cube3D.from_dict(cube.to_dict()), cube)

    def test_from_dict_rejects_bad_input(self):
        with self.assertRaises(InvalidDataError):
            Cube3D.from_dict({"min": [0, 0, 0]})
        with self.assertRaises(InvalidDataError):
            Cube3D.from_dict({"min": [0, 0], "max": [1, 1, 1]})
        with self.assertRaises(InvalidDataError):
            Cube3D.from_dict({"min": [0, 0, 0], "max": [1, 1, 1], "invert": "yes"})


if __name__ == '__main__':
    unittest.main()
