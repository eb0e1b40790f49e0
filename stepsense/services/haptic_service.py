"""
Service for haptic step feedback.
Pulses the vibration motor once for every STEP_DETECTED event.
"""

from typing import Optional

from stepsense.core.events import BaseEvent, EventType
from stepsense.core.service import BaseService
from stepsense.hardware.haptic import DEFAULT_PULSE_MS, HapticDriver, LoggingHapticDriver

class HapticService(BaseService):
    """
    Fire-and-forget step feedback. Driver failures are logged and never reach
    the step counter.
    """

    CONSUMES_EVENTS = {
        EventType.STEP_DETECTED: 'handle_event',
    }

    def __init__(self, event_bus, service_registry,
                 driver: Optional[HapticDriver] = None,
                 pulse_ms: int = DEFAULT_PULSE_MS,
                 config=None, name: Optional[str] = None):
        super().__init__(event_bus, service_registry, name=name, config=config)
        self.driver = driver or LoggingHapticDriver()
        self.pulse_ms = pulse_ms

    async def start(self):
        """Initialize the driver and start listening for steps"""
        await self.driver.initialize()
        await super().start()

    async def stop(self):
        """Stop the service and release the driver"""
        try:
            await self.driver.shutdown()
        except Exception as e:
            self.logger.warning(f"Error shutting down haptic driver: {e}")
        await super().stop()

    async def handle_event(self, event: BaseEvent) -> None:
        if event.type != EventType.STEP_DETECTED:
            return
        try:
            await self.driver.pulse(self.pulse_ms)
        except Exception as e:
            self.logger.debug(f"Haptic pulse failed: {e}")
