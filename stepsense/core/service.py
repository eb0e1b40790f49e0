"""
Base service implementation for StepSense.

This module provides the BaseService class that all services should inherit from,
defining the core service lifecycle and event handling interfaces.
"""

import asyncio
import structlog
from abc import ABC, abstractmethod
from typing import Dict, Set, Any, Optional, ClassVar
from .events import EventType, BaseEvent
from .registry import ServiceRegistry
from .bus import EventBus

class BaseService(ABC):
    """
    Base class for all services.

    This class provides:
    - Service lifecycle management (start/stop)
    - Typed event publishing and handling
    - Service registration and lifecycle state
    - Structured logging with context

    All services should inherit from this class and define their produced and consumed events.
    """

    # Map of EventType to {'schema': event class, 'description': text}
    PRODUCES_EVENTS: ClassVar[Dict[EventType, Dict[str, Any]]] = {}

    # Map of EventType to handler method name
    CONSUMES_EVENTS: ClassVar[Dict[EventType, str]] = {}

    def __init__(self,
                 event_bus: EventBus,
                 service_registry: ServiceRegistry,
                 name: Optional[str] = None,
                 config: Optional[Any] = None):
        """
        Initialize the service.

        Args:
            event_bus: The event bus for publishing and subscribing to events
            service_registry: The service registry for service lifecycle management
            name: Optional service name (defaults to class name)
            config: Optional application configuration
        """
        self.event_bus = event_bus
        self.service_registry = service_registry
        self.name = name or self.__class__.__name__
        self.config = config

        self.logger = structlog.get_logger(service=self.name)

        self._running = False
        self._lock = asyncio.Lock()
        self._background_tasks: Set[asyncio.Task] = set()

        from stepsense.events.system import ServiceStateChangedEvent
        if event_bus.registry.get_event_schema(EventType.SERVICE_STATE_CHANGED) is None:
            event_bus.registry.register_event(
                EventType.SERVICE_STATE_CHANGED,
                ServiceStateChangedEvent,
                "A service changed lifecycle state"
            )

        for event_type, event_info in self.PRODUCES_EVENTS.items():
            event_bus.registry.register_producer(self.name, event_type)
            if 'schema' in event_info and 'description' in event_info:
                event_bus.registry.register_event(
                    event_type,
                    event_info['schema'],
                    event_info['description']
                )

        self.service_registry.register_service(self.name, self)

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """
        Start the service.

        This method:
        1. Subscribes to events
        2. Marks the service as running

        Implementations should call super().start() after their own initialization
        succeeded, so a failed start never leaves the service subscribed.
        """
        async with self._lock:
            if self._running:
                self.logger.warning("Service already running")
                return

            for event_type, handler_name in self.CONSUMES_EVENTS.items():
                self.event_bus.subscribe(event_type, getattr(self, handler_name), self.name)

            self._running = True
            self.service_registry.set_service_state(self.name, 'running')
            self.logger.info("Service started")

        await self.publish_service_state('started')

    async def stop(self) -> None:
        """
        Stop the service.

        Unsubscribes from events, waits for events still being published and marks
        the service as stopped. Implementations should call super().stop() at the end.
        """
        async with self._lock:
            if not self._running:
                self.logger.warning("Service already stopped")
                return

            await self.publish_service_state('stopping')

            for event_type, handler_name in self.CONSUMES_EVENTS.items():
                self.event_bus.unsubscribe(event_type, getattr(self, handler_name))

            if self._background_tasks:
                await asyncio.gather(*self._background_tasks, return_exceptions=True)

            self._running = False
            self.service_registry.set_service_state(self.name, 'stopped')
            self.logger.info("Service stopped")

        await self.publish_service_state('stopped')

    async def publish(self, event: BaseEvent) -> None:
        """
        Publish an event through the bus.

        Args:
            event: The event to publish
        """
        if not self._running:
            self.logger.warning("Attempted publish while stopped", event_type=event.type)
            return

        await self.event_bus.publish(event, self.name)

    def publish_soon(self, event: BaseEvent) -> None:
        """
        Schedule an event for publishing without waiting for its subscribers.

        Used from synchronous callbacks. The task is tracked so stop() can wait for it.
        """
        task = asyncio.get_running_loop().create_task(self.publish(event))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def publish_service_state(self, state: str) -> None:
        """
        Publish a service state change event.

        Args:
            state: New state of the service
        """
        from stepsense.events.system import ServiceStateChangedEvent

        event = ServiceStateChangedEvent(
            producer_name=self.name,
            service_name=self.name,
            state=state
        )
        await self.event_bus.publish(event, self.name)

    @abstractmethod
    async def handle_event(self, event: BaseEvent) -> None:
        """
        Handle an event from the event bus.

        Handlers registered in CONSUMES_EVENTS should delegate here so that event
        handling goes through one place.

        Args:
            event: The event to handle
        """
