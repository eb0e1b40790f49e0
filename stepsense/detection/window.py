"""
Sample windowing.

Motion samples arrive one at a time from the sensor source. The classifier and the
motion statistics work on fixed-length windows of 50 samples x 6 channels, so this
module buffers samples and hands out a `Window` each time enough have arrived.

Windowing policy: by default windows do not overlap (stride == size), so every
sample is evaluated exactly once. A smaller stride yields overlapping windows,
e.g. stride 25 re-evaluates the second half of each window as the first half of
the next one.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterable, Optional, Tuple

import numpy as np

from stepsense.core.errors import MalformedWindowError

WINDOW_SIZE = 50
CHANNELS = 6

@dataclass(frozen=True)
class Sample:
    """One reading of the accelerometer (m/s^2 or g) and gyroscope (rad/s)."""
    accel_x: float
    accel_y: float
    accel_z: float
    gyro_x: float = 0.0
    gyro_y: float = 0.0
    gyro_z: float = 0.0

    def as_row(self) -> Tuple[float, float, float, float, float, float]:
        return (self.accel_x, self.accel_y, self.accel_z,
                self.gyro_x, self.gyro_y, self.gyro_z)

class Window:
    """
    An immutable (size x channels) block of samples.

    Columns 0-2 hold the accelerometer axes and columns 3-5 the gyroscope axes.
    Construction validates the shape; nothing is ever padded or truncated.
    """

    __slots__ = ("_data", "timestamp_ms")

    def __init__(self, data, size: int = WINDOW_SIZE, channels: int = CHANNELS,
                 timestamp_ms: Optional[float] = None):
        try:
            array = np.array(data, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise MalformedWindowError(f"Window data is not numeric: {e}") from e

        if array.ndim != 2 or array.shape[0] != size:
            raise MalformedWindowError(
                f"Window must have {size} samples, got shape {array.shape}")
        if array.shape[1] != channels:
            raise MalformedWindowError(
                f"Each sample must have {channels} channels, got {array.shape[1]}")
        if not np.all(np.isfinite(array)):
            raise MalformedWindowError("Window contains NaN or infinite values")

        array.setflags(write=False)
        self._data = array
        # Capture time of the last sample, in ms on the source clock
        self.timestamp_ms = timestamp_ms

    @classmethod
    def from_samples(cls, samples: Iterable[Sample], size: int = WINDOW_SIZE,
                     timestamp_ms: Optional[float] = None) -> "Window":
        return cls([s.as_row() for s in samples], size=size, timestamp_ms=timestamp_ms)

    @property
    def data(self) -> np.ndarray:
        """The read-only (size x channels) array."""
        return self._data

    @property
    def accel(self) -> np.ndarray:
        """Accelerometer columns, shape (size, 3)."""
        return self._data[:, :3]

    @property
    def gyro(self) -> np.ndarray:
        return self._data[:, 3:6]

    def __len__(self) -> int:
        return self._data.shape[0]

    def __repr__(self) -> str:
        return f"Window(shape={self._data.shape})"

class SampleWindow:
    """
    Buffers pushed samples and emits a Window every `stride` samples once
    `size` samples are available.
    """

    def __init__(self, size: int = WINDOW_SIZE, stride: Optional[int] = None):
        if size < 1:
            raise ValueError("Window size must be positive")
        stride = size if stride is None else stride
        if not 1 <= stride <= size:
            raise ValueError(f"Window stride must be between 1 and {size}")

        self.size = size
        self.stride = stride
        self._buffer: Deque[Sample] = deque(maxlen=size)
        self._since_last_window = 0
        self.samples_received = 0
        self.logger = logging.getLogger(__name__)

    def push(self, sample: Sample, timestamp_ms: Optional[float] = None) -> Optional[Window]:
        """
        Add one sample.

        Args:
            sample: The reading
            timestamp_ms: When it was captured; stamped on the window it completes

        Returns:
            A Window when this sample completes one, otherwise None
        """
        self._buffer.append(sample)
        self.samples_received += 1
        self._since_last_window += 1

        # The buffer fills with size >= stride fresh samples, so the first window is
        # emitted as soon as it is full and later ones every `stride` samples
        if len(self._buffer) < self.size or self._since_last_window < self.stride:
            return None

        self._since_last_window = 0
        window = Window.from_samples(self._buffer, size=self.size, timestamp_ms=timestamp_ms)
        self.logger.debug("Window complete after %d samples", self.samples_received)
        return window

    def clear(self) -> None:
        """Drop any partially collected window."""
        self._buffer.clear()
        self._since_last_window = 0
        self.samples_received = 0

    def __len__(self) -> int:
        return len(self._buffer)
