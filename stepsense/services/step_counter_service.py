"""
Service exposing the step engine on the event bus.

Consumes START_COUNTING / STOP_COUNTING / RESET_STEPS commands and publishes what
the engine does: detected steps, motion state changes, session status, and the
outcome of every flush to the store.
"""

from typing import Optional

from stepsense.core.config import ApplicationConfig
from stepsense.core.errors import SessionActiveError
from stepsense.core.events import BaseEvent, EventType
from stepsense.core.service import BaseService
from stepsense.detection.classifier import ModelLoader
from stepsense.detection.motion import MotionState
from stepsense.engine import SensorSource, StepEngine
from stepsense.events.counting import (
    FlushFailedEvent,
    MotionStateChangedEvent,
    SessionStateChangedEvent,
    StepDetectedEvent,
    StepsFlushedEvent,
)
from stepsense.events.system import ServiceErrorEvent
from stepsense.session.accountant import FlushResult
from stepsense.session.store import StepStore

class StepCounterService(BaseService):
    """
    Owns one StepEngine. The model is loaded when the service starts; a model that
    cannot be loaded makes start() fail.
    """

    PRODUCES_EVENTS = {
        EventType.STEP_DETECTED: {
            'schema': StepDetectedEvent,
            'description': "A step was confirmed and counted"
        },
        EventType.MOTION_STATE_CHANGED: {
            'schema': MotionStateChangedEvent,
            'description': "The device started or stopped moving"
        },
        EventType.SESSION_STATE_CHANGED: {
            'schema': SessionStateChangedEvent,
            'description': "The counting session changed status"
        },
        EventType.STEPS_FLUSHED: {
            'schema': StepsFlushedEvent,
            'description': "A step delta was saved to the store"
        },
        EventType.FLUSH_FAILED: {
            'schema': FlushFailedEvent,
            'description': "Saving a step delta failed and will be retried"
        },
        EventType.SERVICE_ERROR: {
            'schema': ServiceErrorEvent,
            'description': "A command could not be carried out"
        },
    }

    CONSUMES_EVENTS = {
        EventType.START_COUNTING: 'handle_event',
        EventType.STOP_COUNTING: 'handle_event',
        EventType.RESET_STEPS: 'handle_event',
    }

    def __init__(self, event_bus, service_registry,
                 model_loader: ModelLoader,
                 store: StepStore,
                 sensor: Optional[SensorSource] = None,
                 config: Optional[ApplicationConfig] = None,
                 name: Optional[str] = None,
                 **engine_kwargs):
        super().__init__(event_bus, service_registry, name=name, config=config)
        self.engine = StepEngine(
            model_loader,
            store,
            sensor=sensor,
            notifier=self,
            config=config,
            on_motion_change=self._on_motion_change,
            on_flush=self._on_flush,
            **engine_kwargs
        )

    async def start(self) -> None:
        """Load the step model, then subscribe to commands."""
        try:
            await self.engine.initialize()
        except Exception as e:
            self.logger.error("Step model failed to load", error=str(e))
            raise
        await super().start()

    async def stop(self) -> None:
        """Tear the engine down (saving unsaved steps once) and unsubscribe."""
        was_counting = self.engine.is_counting
        await self.engine.teardown()
        if was_counting and self.is_running:
            await self._publish_session_state()
        await super().stop()

    async def handle_event(self, event: BaseEvent) -> None:
        if event.type == EventType.START_COUNTING:
            await self.start_counting()
        elif event.type == EventType.STOP_COUNTING:
            await self.stop_counting()
        elif event.type == EventType.RESET_STEPS:
            await self.reset_steps()

    async def start_counting(self) -> None:
        if await self.engine.start():
            await self._publish_session_state()

    async def stop_counting(self) -> None:
        if not self.engine.is_counting:
            self.logger.info("Stop requested while not counting")
            return
        await self.engine.stop()
        await self._publish_session_state()

    async def reset_steps(self) -> None:
        try:
            self.engine.reset()
        except SessionActiveError as e:
            self.logger.warning("Reset rejected", reason=str(e))
            await self.publish(ServiceErrorEvent(
                producer_name=self.name,
                service_name=self.name,
                error_type=type(e).__name__,
                error_message=str(e)
            ))
            return
        await self._publish_session_state()

    async def _publish_session_state(self) -> None:
        await self.publish(SessionStateChangedEvent(
            producer_name=self.name,
            status=self.engine.accountant.status.value,
            total_steps=self.engine.step_count
        ))

    def on_step(self) -> None:
        """Step notifier callback from the session accountant."""
        accountant = self.engine.accountant
        self.publish_soon(StepDetectedEvent(
            producer_name=self.name,
            total_steps=accountant.current_count,
            session_steps=accountant.session_steps,
            unsaved_steps=accountant.pending_steps
        ))

    def _on_motion_change(self, state: MotionState, intensity: float) -> None:
        self.publish_soon(MotionStateChangedEvent(
            producer_name=self.name,
            state=state.value,
            intensity=intensity
        ))

    def _on_flush(self, result: FlushResult) -> None:
        if result.success:
            event = StepsFlushedEvent(producer_name=self.name, steps=result.steps, date=result.date)
        else:
            self.logger.warning("Steps not saved, will retry", steps=result.steps, error=result.error)
            event = FlushFailedEvent(producer_name=self.name, steps=result.steps,
                                     date=result.date, error=result.error)
        self.publish_soon(event)
