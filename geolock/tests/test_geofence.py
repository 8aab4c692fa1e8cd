"""
Tests for the pure geofence evaluation: haversine distance, severity tiers
and threshold handling.
"""

from __future__ import annotations

import math
import unittest

from geolock.const import EARTH_RADIUS_M
from geolock.geofence import classify_severity, evaluate, haversine_m
from geolock.models import Position

from .test_common import MOVED_HIGH, MOVED_LOW, MOVED_MEDIUM, REFERENCE


class TestHaversine(unittest.TestCase):

    def test_identical_points_are_zero(self):
        self.assertEqual(haversine_m(52.52, 13.405, 52.52, 13.405), 0.0)

    def test_symmetric(self):
        pairs = [
            ((10.0, 20.0), (10.0004, 20.0)),
            ((-33.86, 151.21), (51.5, -0.12)),
            ((89.9, 0.0), (-89.9, 179.0)),
            ((0.0, 179.999), (0.0, -179.999)),
        ]
        for (lat1, lon1), (lat2, lon2) in pairs:
            with self.subTest(a=(lat1, lon1), b=(lat2, lon2)):
                self.assertAlmostEqual(
                    haversine_m(lat1, lon1, lat2, lon2),
                    haversine_m(lat2, lon2, lat1, lon1),
                    places=6,
                )

    def test_antipodal_points_are_half_circumference(self):
        distance = haversine_m(0.0, 0.0, 0.0, 180.0)
        self.assertAlmostEqual(distance, math.pi * EARTH_RADIUS_M, delta=1.0)

    def test_antipodal_poles(self):
        distance = haversine_m(90.0, 0.0, -90.0, 0.0)
        self.assertFalse(math.isnan(distance))
        self.assertAlmostEqual(distance, math.pi * EARTH_RADIUS_M, delta=1.0)

    def test_one_degree_of_latitude(self):
        # 2πR / 360
        self.assertAlmostEqual(haversine_m(0.0, 0.0, 1.0, 0.0), 111194.9, delta=0.5)


class TestSeverity(unittest.TestCase):

    def test_tiers(self):
        cases = [
            (10.5, "low"),
            (25.0, "low"),
            (25.01, "medium"),
            (50.0, "medium"),
            (50.01, "high"),
            (5000.0, "high"),
        ]
        for distance, expected in cases:
            with self.subTest(distance=distance):
                self.assertEqual(classify_severity(distance), expected)


class TestEvaluate(unittest.TestCase):

    def test_same_position_not_exceeded(self):
        result = evaluate(REFERENCE, REFERENCE)
        self.assertEqual(result.distance_m, 0.0)
        self.assertFalse(result.exceeded)
        self.assertIsNone(result.severity)

    def test_documented_scenario_is_medium(self):
        result = evaluate(REFERENCE, MOVED_MEDIUM)
        self.assertAlmostEqual(result.distance_m, 44.5, delta=0.1)
        self.assertTrue(result.exceeded)
        self.assertEqual(result.severity, "medium")

    def test_low_and_high(self):
        self.assertEqual(evaluate(REFERENCE, MOVED_LOW).severity, "low")
        self.assertEqual(evaluate(REFERENCE, MOVED_HIGH).severity, "high")

    def test_threshold_is_strict(self):
        distance = evaluate(REFERENCE, MOVED_LOW).distance_m
        at_threshold = evaluate(REFERENCE, MOVED_LOW, threshold=distance)
        self.assertFalse(at_threshold.exceeded)
        self.assertIsNone(at_threshold.severity)
        just_below = evaluate(REFERENCE, MOVED_LOW, threshold=distance - 0.001)
        self.assertTrue(just_below.exceeded)

    def test_within_default_radius(self):
        nearby = Position(10.00005, 20.0)   # ≈ 5.6 m
        result = evaluate(REFERENCE, nearby)
        self.assertFalse(result.exceeded)
        self.assertGreater(result.distance_m, 0.0)

    def test_custom_threshold(self):
        result = evaluate(REFERENCE, MOVED_MEDIUM, threshold=100.0)
        self.assertFalse(result.exceeded)
        self.assertIsNone(result.severity)

    def test_distance_symmetric_through_evaluate(self):
        forward = evaluate(REFERENCE, MOVED_HIGH)
        backward = evaluate(MOVED_HIGH, REFERENCE)
        self.assertAlmostEqual(forward.distance_m, backward.distance_m, places=9)
        self.assertEqual(forward.severity, backward.severity)
