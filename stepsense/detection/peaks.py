"""
Vertical acceleration peak detection.

A secondary step signal independent of the classifier: each window is reduced to
the variance of its gravity-removed acceleration magnitude, and a step-like peak
is a value that stands clearly above its neighbours in the recent history.
Peaks are only used to corroborate borderline classifier scores.
"""

import logging
from collections import deque
from typing import Deque

import numpy as np

from stepsense.detection.window import Window

def vertical_acceleration(window: Window) -> float:
    """
    Variance of the acceleration magnitude after subtracting the window mean.

    Subtracting the mean is a crude removal of the constant gravity component.
    """
    magnitudes = np.linalg.norm(window.accel, axis=1)
    return float(np.var(magnitudes - magnitudes.mean()))

class PeakDetector:
    """
    Ring buffer of per-window vertical acceleration values with a center-peak test.
    """

    def __init__(self, buffer_size: int = 15, min_peak_height: float = 0.12, min_peak_distance: int = 6):
        if not 1 <= min_peak_distance <= buffer_size // 2:
            raise ValueError("min_peak_distance must fit on both sides of the center slot")
        self.buffer_size = buffer_size
        self.min_peak_height = min_peak_height
        self.min_peak_distance = min_peak_distance
        self.values: Deque[float] = deque(maxlen=buffer_size)
        self.logger = logging.getLogger(__name__)

    def update(self, window: Window) -> float:
        """Push the window's vertical acceleration into the buffer and return it."""
        value = vertical_acceleration(window)
        self.values.append(value)
        return value

    def detect_peak(self) -> bool:
        """
        True when the buffer is full and its center value is above
        `min_peak_height` and strictly greater than every value within
        `min_peak_distance` slots on either side.
        """
        if len(self.values) < self.buffer_size:
            return False

        center = self.buffer_size // 2
        center_value = self.values[center]
        if center_value <= self.min_peak_height:
            return False

        for offset in range(1, self.min_peak_distance + 1):
            if self.values[center - offset] >= center_value:
                return False
            if self.values[center + offset] >= center_value:
                return False

        self.logger.debug("Peak detected, value %.6f", center_value)
        return True
