"""
Sensor sources.

The engine only needs push-style delivery: it subscribes a callback when counting
starts and unsubscribes when it stops. ReplaySensorSource delivers recorded
samples at the nominal sensor rate, which is how recordings are fed to the
engine from the command line.
"""

import asyncio
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import numpy as np

from stepsense.detection.window import CHANNELS, Sample
from stepsense.hardware.base import BaseHardware

SampleCallback = Callable[[Sample, Optional[float]], None]

DEFAULT_RATE_HZ = 20.0  # 50 ms sensor update interval

def load_samples_csv(path: Union[str, Path]) -> List[Sample]:
    """
    Read samples from a CSV file with six numeric columns
    (accel x/y/z, gyro x/y/z). A header row is skipped if present.
    """
    path = Path(path)
    with path.open() as f:
        first = f.readline()
    skip = 0 if _is_numeric_row(first) else 1
    data = np.loadtxt(path, delimiter=",", skiprows=skip, ndmin=2)
    if data.shape[1] != CHANNELS:
        raise ValueError(f"{path} must have {CHANNELS} columns, found {data.shape[1]}")
    return [Sample(*map(float, row)) for row in data]

def _is_numeric_row(line: str) -> bool:
    try:
        [float(v) for v in line.strip().split(",")]
    except ValueError:
        return False
    return True

class ReplaySensorSource(BaseHardware):
    """
    Replays a fixed sequence of samples to subscribers.

    Samples are stamped as if captured at `sample_rate_hz`, independent of how fast
    `rate_hz` delivers them, so a fast replay keeps the recording's timing.
    """

    def __init__(self, samples: Optional[Sequence[Sample]] = None, path: Optional[Union[str, Path]] = None,
                 rate_hz: float = DEFAULT_RATE_HZ, sample_rate_hz: float = DEFAULT_RATE_HZ,
                 name: Optional[str] = None):
        super().__init__(name=name)
        self.samples: List[Sample] = list(samples or [])
        self.path = Path(path) if path else None
        self.rate_hz = rate_hz
        self.sample_rate_hz = sample_rate_hz
        self._subscribers: List[SampleCallback] = []
        self._task: Optional[asyncio.Task] = None
        self.delivered = 0

    async def _initialize_impl(self) -> None:
        if self.path is not None:
            self.samples = await asyncio.to_thread(load_samples_csv, self.path)
            self.logger.info("Loaded samples", path=str(self.path), count=len(self.samples))

    async def _shutdown_impl(self) -> None:
        task = self.stop_replay()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def subscribe(self, callback: SampleCallback) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: SampleCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def emit(self, sample: Sample, timestamp_ms: Optional[float] = None) -> None:
        """
        Deliver one sample to every subscriber. Without an explicit capture time
        the sample is stamped from its position in the stream.
        """
        if timestamp_ms is None:
            timestamp_ms = self.delivered * 1000.0 / self.sample_rate_hz
        for callback in list(self._subscribers):
            callback(sample, timestamp_ms)
        self.delivered += 1

    async def replay(self) -> int:
        """
        Deliver all samples at rate_hz (as fast as possible if rate_hz <= 0).

        Returns:
            Number of samples delivered
        """
        interval = 1.0 / self.rate_hz if self.rate_hz > 0 else 0.0
        for sample in self.samples:
            self.emit(sample)
            await asyncio.sleep(interval)
        return len(self.samples)

    def start_replay(self) -> asyncio.Task:
        """Run replay() in the background; shutdown() cancels it."""
        self._task = asyncio.create_task(self.replay(), name=f"{self.name}-replay")
        return self._task

    def stop_replay(self) -> Optional[asyncio.Task]:
        """Cancel a background replay. Returns the cancelled task, if any."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        return task
