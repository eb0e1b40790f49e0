"""
Haptic feedback drivers.

A step is acknowledged with one short vibration pulse. Real devices provide a
driver subclass; LoggingHapticDriver stands in where there is no motor.
"""

from abc import abstractmethod

from stepsense.hardware.base import BaseHardware

DEFAULT_PULSE_MS = 100

class HapticDriver(BaseHardware):
    """Vibration motor binding."""

    async def _initialize_impl(self) -> None:
        pass

    async def _shutdown_impl(self) -> None:
        pass

    @abstractmethod
    async def pulse(self, duration_ms: int = DEFAULT_PULSE_MS) -> None:
        """Vibrate once for duration_ms."""

class LoggingHapticDriver(HapticDriver):
    """Driver for devices without a motor; records pulses and logs them."""

    def __init__(self, name=None):
        super().__init__(name=name)
        self.pulses = 0

    async def pulse(self, duration_ms: int = DEFAULT_PULSE_MS) -> None:
        self.pulses += 1
        self.logger.debug("Haptic pulse", duration_ms=duration_ms, count=self.pulses)
