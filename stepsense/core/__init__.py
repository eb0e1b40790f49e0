"""
Core framework for StepSense.

This package provides the fundamental components of the StepSense architecture:
- Event system with typed event definitions
- Service registry and lifecycle management
- Configuration management
- Error types
- Event tracing
"""

from .events import EventType, BaseEvent
from .registry import EventRegistry, ServiceRegistry
from .bus import EventBus
from .tracing import EventTracer
from .service import BaseService
from .config import get_config, ApplicationConfig
from .errors import StepSenseError, ModelLoadError, MalformedWindowError, SessionActiveError

__all__ = [
    'EventType',
    'BaseEvent',
    'EventRegistry',
    'ServiceRegistry',
    'EventBus',
    'EventTracer',
    'BaseService',
    'get_config',
    'ApplicationConfig',
    'StepSenseError',
    'ModelLoadError',
    'MalformedWindowError',
    'SessionActiveError',
]
