"""
Motion gating.

Decides whether the device is moving at all before any classifier inference is
spent on a window. Motion intensity is the sum of the per-axis variances of the
accelerometer channels; the gate smooths it over the last few windows and compares
the mean to a fixed threshold.
"""

import logging
from collections import deque
from enum import Enum
from typing import Callable, Deque, Optional

import numpy as np

from stepsense.detection.window import Window

class MotionState(str, Enum):
    STATIONARY = "stationary"
    MOVING = "moving"

def motion_intensity(window: Window) -> float:
    """Sum of the population variances of the three accelerometer axes."""
    return float(np.var(window.accel, axis=0).sum())

class MotionGate:
    """
    Rolling-average motion detector.

    The state is STATIONARY until the mean of the buffered intensities rises above
    `threshold`. Every change is logged and passed to `on_change` if given.
    """

    def __init__(self,
                 threshold: float = 0.008,
                 buffer_size: int = 8,
                 on_change: Optional[Callable[[MotionState, float], None]] = None):
        self.threshold = threshold
        self.intensities: Deque[float] = deque(maxlen=buffer_size)
        self.state = MotionState.STATIONARY
        self.average_intensity = 0.0
        self.on_change = on_change
        self.logger = logging.getLogger(__name__)

    def update(self, window: Window) -> MotionState:
        """
        Feed one window and return the resulting motion state.
        """
        intensity = motion_intensity(window)
        self.intensities.append(intensity)
        self.average_intensity = sum(self.intensities) / len(self.intensities)

        previous = self.state
        self.state = MotionState.MOVING if self.average_intensity > self.threshold else MotionState.STATIONARY
        self.logger.debug("Motion intensity %.6f, average %.6f", intensity, self.average_intensity)

        if self.state is not previous:
            self.logger.info(
                "Motion state changed to %s, avg motion: %.6f, threshold: %s",
                self.state.name, self.average_intensity, self.threshold
            )
            if self.on_change:
                try:
                    self.on_change(self.state, self.average_intensity)
                except Exception as e:
                    self.logger.warning("Motion state listener failed: %s", e)

        return self.state

    @property
    def is_moving(self) -> bool:
        return self.state is MotionState.MOVING
