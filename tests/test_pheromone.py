#!/usr/bin/env python3
"""
Unit tests for the pheromone field
"""

import unittest

import numpy as np

from schoolbus.errors import InvalidParameter
from schoolbus.pheromone import PHEROMONE_FLOOR, PheromoneField


class TestPheromoneField(unittest.TestCase):
    """Test evaporation and deposit"""

    def setUp(self):
        self.field = PheromoneField(4)

    def test_initialized_to_one(self):
        """Test every cell starts at 1"""
        np.testing.assert_array_equal(self.field.trail, np.ones((4, 4)))

    def test_evaporate(self):
        """Test evaporation scales every cell"""
        self.field.evaporate(0.25)
        np.testing.assert_allclose(self.field.trail, np.full((4, 4), 0.75))

    def test_floor_after_many_rounds(self):
        """Test cells never drop below the floor"""
        for _ in range(500):
            self.field.evaporate(0.9)

        self.assertTrue((self.field.trail >= PHEROMONE_FLOOR).all())
        self.assertTrue((self.field.trail > 0).all())
        np.testing.assert_allclose(self.field.trail, np.full((4, 4), PHEROMONE_FLOOR))

    def test_rate_outside_open_interval(self):
        """Test rates outside (0, 1) are rejected"""
        for rate in (0.0, 1.0, -0.1, 1.5):
            with self.assertRaises(InvalidParameter):
                self.field.evaporate(rate)
        np.testing.assert_array_equal(self.field.trail, np.ones((4, 4)))

    def test_deposit_both_directions(self):
        """Test deposit adds to both directions of every traversed edge"""
        self.field.deposit((0, 1, 2, 3, 0), 0.5)

        for a, b in [(0, 1), (1, 2), (2, 3), (3, 0)]:
            self.assertEqual(self.field.trail[a, b], 1.5)
            self.assertEqual(self.field.trail[b, a], 1.5)
        self.assertEqual(self.field.trail[0, 2], 1.0)
        self.assertEqual(self.field.trail[1, 3], 1.0)
        self.assertEqual(self.field.trail[0, 0], 1.0)

    def test_deposit_accumulates_repeated_edges(self):
        """Test an edge traversed twice receives two deposits per direction"""
        self.field.deposit((0, 1, 0), 1.0)
        self.assertEqual(self.field.trail[0, 1], 3.0)
        self.assertEqual(self.field.trail[1, 0], 3.0)

    def test_snapshot_is_read_only_copy(self):
        """Test snapshots do not follow later updates"""
        snapshot = self.field.snapshot()
        self.field.deposit((0, 1, 2, 3, 0), 2.0)

        self.assertEqual(snapshot[0, 1], 1.0)
        with self.assertRaises(ValueError):
            snapshot[0, 1] = 3.0


if __name__ == "__main__":
    unittest.main()
