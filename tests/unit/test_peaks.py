"""
Unit tests for vertical acceleration peak detection.
"""

import unittest

from stepsense.detection.peaks import PeakDetector, vertical_acceleration

from tests.unit.fixtures import moving_window, still_window

class TestPeakDetector(unittest.TestCase):

    def setUp(self):
        self.detector = PeakDetector(buffer_size=15, min_peak_height=0.12, min_peak_distance=6)

    def _fill(self, values):
        self.detector.values.clear()
        self.detector.values.extend(values)

    def test_vertical_acceleration_removes_gravity(self):
        self.assertAlmostEqual(vertical_acceleration(still_window()), 0.0)
        self.assertGreater(vertical_acceleration(moving_window(amplitude=2.0)), 0.0)

    def test_update_appends_to_ring_buffer(self):
        for _ in range(20):
            self.detector.update(still_window())
        self.assertEqual(len(self.detector.values), 15)

    def test_no_peak_until_buffer_full(self):
        self._fill([0.01] * 7 + [0.5] + [0.01] * 6)
        self.assertFalse(self.detector.detect_peak())

    def test_center_peak_detected(self):
        self._fill([0.01] * 7 + [0.5] + [0.01] * 7)
        self.assertTrue(self.detector.detect_peak())

    def test_peak_must_exceed_min_height(self):
        self._fill([0.01] * 7 + [0.12] + [0.01] * 7)
        self.assertFalse(self.detector.detect_peak())

    def test_peak_must_be_strictly_greatest_in_neighbourhood(self):
        self._fill([0.01] * 7 + [0.5, 0.01, 0.01, 0.01, 0.01, 0.01, 0.5] + [0.01])
        self.assertFalse(self.detector.detect_peak())

    def test_values_outside_neighbourhood_ignored(self):
        # Index 0 and 14 are 7 slots away from the center, beyond min_peak_distance
        self._fill([0.9] + [0.01] * 6 + [0.5] + [0.01] * 6 + [0.9])
        self.assertTrue(self.detector.detect_peak())

    def test_off_center_maximum_is_not_a_peak(self):
        self._fill([0.01] * 5 + [0.5] + [0.01] * 9)
        self.assertFalse(self.detector.detect_peak())

    def test_distance_must_fit_buffer(self):
        with self.assertRaises(ValueError):
            PeakDetector(buffer_size=15, min_peak_distance=8)

if __name__ == "__main__":
    unittest.main()
