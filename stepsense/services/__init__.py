"""
Service implementations for StepSense.

Services are the event-driven components of the application; each owns one piece
of functionality and communicates with the others through the event bus.
"""

from .step_counter_service import StepCounterService
from .haptic_service import HapticService

__all__ = ['StepCounterService', 'HapticService']
