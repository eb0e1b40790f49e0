"""
Shared builders for the unit tests: synthetic windows, fake models and stores,
and a manually advanced clock.
"""

import asyncio

import numpy as np

from stepsense.detection.window import Sample, Window

GRAVITY = 9.81
TODAY = "2026-10-16"

def still_window(size=50):
    """Device lying flat: constant gravity on z, no rotation."""
    data = np.zeros((size, 6))
    data[:, 2] = GRAVITY
    return Window(data, size=size)

def moving_window(amplitude=0.5, size=50, cycles=2.0):
    """Device swinging along x and bouncing along z."""
    t = np.linspace(0.0, 2 * np.pi * cycles, size)
    data = np.zeros((size, 6))
    data[:, 0] = amplitude * np.sin(t)
    data[:, 2] = GRAVITY + amplitude * np.cos(t)
    data[:, 4] = 0.1 * np.sin(t)
    return Window(data, size=size)

def samples_of(window):
    return [Sample(*row) for row in window.data]

class FakeModel:
    """Returns queued probabilities (the last one repeats) and counts calls."""

    def __init__(self, *probabilities, error=None):
        self.probabilities = list(probabilities) or [0.9]
        self.error = error
        self.calls = 0
        self.inputs = []

    def predict(self, window):
        self.inputs.append(window)
        self.calls += 1
        if self.error is not None:
            raise self.error
        if len(self.probabilities) > 1:
            return self.probabilities.pop(0)
        return self.probabilities[0]

class FakeStore:
    """
    Records add_steps calls. The first `failures` calls raise, and `gate` (if set)
    must be released before a call completes.
    """

    def __init__(self, failures=0):
        self.calls = []
        self.failures = failures
        self.gate = None

    async def add_steps(self, count, date):
        self.calls.append((count, date))
        if self.gate is not None:
            await self.gate.wait()
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("store unavailable")
        return True

    def hold(self):
        """Block store calls until release() is called."""
        self.gate = asyncio.Event()

    def release(self):
        self.gate.set()

class ManualClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
