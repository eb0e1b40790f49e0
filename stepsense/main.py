"""
Main entry point for StepSense.

This module wires the event system, the step counter and haptic services, and a
sensor source together. Run as a script it replays a recorded CSV of motion
samples through the engine and reports the steps saved per day.
"""

import argparse
import asyncio
import logging
import signal
import sys
import structlog
from typing import Any, Dict, Optional

from stepsense.core import EventRegistry, ServiceRegistry, EventBus, EventTracer, ApplicationConfig, get_config
from stepsense.core.errors import StepSenseError
from stepsense.detection.classifier import ModelLoader, load_model_factory
from stepsense.events.counting import (
    StartCountingEvent,
    StopCountingEvent,
    ResetStepsEvent,
    register_command_events,
)
from stepsense.events.system import ApplicationStartupCompletedEvent
from stepsense.core.events import EventType
from stepsense.hardware.haptic import HapticDriver
from stepsense.hardware.sensor import ReplaySensorSource
from stepsense.services import HapticService, StepCounterService
from stepsense.session.store import InMemoryStepStore, StepStore

UI_SENDER = "ui"

def setup_logging(level: str = "INFO"):
    """Configure structured logging for the application."""
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level, logging.INFO),
        stream=sys.stdout,
    )

class StepSenseApplication:
    """
    Owns the event system and the services of one StepSense instance.
    """

    def __init__(self,
                 model_loader: ModelLoader,
                 store: StepStore,
                 sensor: Optional[ReplaySensorSource] = None,
                 haptic_driver: Optional[HapticDriver] = None,
                 config: Optional[ApplicationConfig] = None):
        self.logger = structlog.get_logger(app="stepsense")
        self.config = config or get_config()
        self.model_loader = model_loader
        self.store = store
        self.sensor = sensor
        self.haptic_driver = haptic_driver

        self.event_registry = EventRegistry()
        self.service_registry = ServiceRegistry()
        if self.config.event.tracing_enabled:
            self.event_tracer = EventTracer(max_events=self.config.event.max_trace_events)
        else:
            self.event_tracer = None
        self.event_bus = EventBus(self.event_registry, self.event_tracer)

        register_command_events(self.event_registry)
        self.event_registry.register_event(
            EventType.APPLICATION_STARTUP_COMPLETED,
            ApplicationStartupCompletedEvent,
            "All services are running"
        )

        self.services: Dict[str, Any] = {}
        self._shutdown_done = False

    async def initialize(self):
        """Initialize hardware and services in dependency order."""
        self.logger.info("Initializing StepSense")
        try:
            if self.sensor is not None:
                await self.sensor.initialize()
            self.services["haptic"] = await self._init_service(HapticService, driver=self.haptic_driver)
            self.services["step_counter"] = await self._init_service(
                StepCounterService,
                model_loader=self.model_loader,
                store=self.store,
                sensor=self.sensor
            )
            await self.event_bus.publish(
                ApplicationStartupCompletedEvent(producer_name="stepsense"),
                "stepsense"
            )
            self.logger.info("StepSense initialization complete")
        except Exception as e:
            self.logger.error("Failed to initialize application", error=str(e), exc_info=True)
            await self.shutdown()
            raise

    async def _init_service(self, service_class, **kwargs):
        """
        Create and start a service.

        Args:
            service_class: The service class to initialize
            **kwargs: Additional arguments to pass to the service constructor

        Returns:
            The started service instance
        """
        service_name = service_class.__name__
        self.logger.info(f"Initializing service: {service_name}")
        service = service_class(
            self.event_bus,
            self.service_registry,
            config=self.config,
            **kwargs
        )
        await service.start()
        return service

    async def send_command(self, event) -> None:
        """Publish a counting command as the UI layer would."""
        await self.event_bus.publish(event, UI_SENDER)

    async def start_counting(self):
        await self.send_command(StartCountingEvent(producer_name=UI_SENDER))

    async def stop_counting(self):
        await self.send_command(StopCountingEvent(producer_name=UI_SENDER))

    async def reset_steps(self):
        await self.send_command(ResetStepsEvent(producer_name=UI_SENDER))

    async def shutdown(self):
        """Stop services in reverse order. The step counter saves unsaved steps once."""
        if self._shutdown_done:
            return
        self._shutdown_done = True
        self.logger.info("Shutting down StepSense")

        for name, service in reversed(list(self.services.items())):
            try:
                self.logger.info(f"Stopping service: {name}")
                await service.stop()
            except Exception as e:
                self.logger.error(f"Error stopping service {name}: {e}")

        if self.sensor is not None and self.sensor.is_initialized():
            await self.sensor.shutdown()
        self.logger.info("StepSense shutdown complete")

    def handle_signal(self, sig):
        """Cancel any replay in progress; main() then stops counting and shuts down."""
        self.logger.info(f"Received signal {sig.name}, shutting down")
        if self.sensor is not None:
            self.sensor.stop_replay()

def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Count steps in a recorded motion stream")
    parser.add_argument("--replay", required=True, help="CSV file with accel x/y/z and gyro x/y/z columns")
    parser.add_argument("--model-factory", help="module:attribute of the step model loader "
                                                "(defaults to STEPSENSE_CLASSIFIER_MODEL_FACTORY)")
    parser.add_argument("--rate", type=float, default=20.0, help="Replay rate in Hz, 0 for as fast as possible")
    parser.add_argument("--sample-rate", type=float, default=20.0,
                        help="Rate the recording was captured at, in Hz; sets sample timestamps")
    return parser.parse_args(argv)

async def main(argv=None) -> int:
    """Application entry point."""
    args = parse_args(argv)
    config = get_config()
    setup_logging(config.log_level.value)
    logger = structlog.get_logger(app="stepsense")

    factory_path = args.model_factory or config.classifier.model_factory
    if not factory_path:
        logger.error("No step model configured; pass --model-factory or set STEPSENSE_CLASSIFIER_MODEL_FACTORY")
        return 2

    try:
        model_loader = load_model_factory(factory_path)
    except StepSenseError as e:
        logger.error("Cannot resolve step model", error=str(e))
        return 2

    store = InMemoryStepStore()
    sensor = ReplaySensorSource(path=args.replay, rate_hz=args.rate, sample_rate_hz=args.sample_rate)
    app = StepSenseApplication(model_loader, store, sensor=sensor, config=config)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: app.handle_signal(s))

    try:
        await app.initialize()
    except StepSenseError as e:
        logger.error("StepSense cannot start", error=str(e))
        return 1

    await app.start_counting()
    replay = sensor.start_replay()
    try:
        await replay
    except asyncio.CancelledError:
        pass
    await app.stop_counting()
    await app.shutdown()

    for date, steps in sorted(store.totals.items()):
        logger.info("Steps saved", date=date, steps=steps)
    return 0

def run():
    try:
        sys.exit(asyncio.run(main()))
    except Exception as e:
        logging.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)

if __name__ == "__main__":
    run()
