"""
Step counting events for StepSense.

This module defines the commands a UI layer sends to the step counter and the
events the counter publishes while detecting and persisting steps.
"""

from typing import Literal, Optional
from stepsense.core.events import BaseEvent, EventType

class StartCountingEvent(BaseEvent):
    """Request to begin a counting session."""
    type: Literal[EventType.START_COUNTING] = EventType.START_COUNTING

class StopCountingEvent(BaseEvent):
    """Request to end the current counting session and persist its steps."""
    type: Literal[EventType.STOP_COUNTING] = EventType.STOP_COUNTING

class ResetStepsEvent(BaseEvent):
    """Request to zero the step counters. Rejected while a session is counting."""
    type: Literal[EventType.RESET_STEPS] = EventType.RESET_STEPS

class StepDetectedEvent(BaseEvent):
    """
    Event published for every confirmed step.

    Consumers such as haptic feedback treat it as fire-and-forget.
    """
    type: Literal[EventType.STEP_DETECTED] = EventType.STEP_DETECTED
    total_steps: int  # Running count since the last reset
    session_steps: int  # Steps counted since the session started
    unsaved_steps: int  # Steps not yet confirmed by the store

class MotionStateChangedEvent(BaseEvent):
    """Event published when the motion gate flips between stationary and moving."""
    type: Literal[EventType.MOTION_STATE_CHANGED] = EventType.MOTION_STATE_CHANGED
    state: str  # 'stationary' or 'moving'
    intensity: float  # Smoothed motion intensity that caused the change

class SessionStateChangedEvent(BaseEvent):
    """Event published when the counting session changes status."""
    type: Literal[EventType.SESSION_STATE_CHANGED] = EventType.SESSION_STATE_CHANGED
    status: str  # 'idle', 'counting' or 'stopped'
    total_steps: int

class StepsFlushedEvent(BaseEvent):
    """Event published after a step delta was persisted."""
    type: Literal[EventType.STEPS_FLUSHED] = EventType.STEPS_FLUSHED
    steps: int
    date: str  # ISO date the steps were credited to

class FlushFailedEvent(BaseEvent):
    """
    Soft warning published when persisting a delta failed.

    Counting continues; the same delta is retried on the next checkpoint or stop.
    """
    type: Literal[EventType.FLUSH_FAILED] = EventType.FLUSH_FAILED
    steps: int
    date: str
    error: Optional[str] = None

COMMAND_EVENTS = {
    EventType.START_COUNTING: (StartCountingEvent, "Begin a counting session"),
    EventType.STOP_COUNTING: (StopCountingEvent, "End the counting session and save its steps"),
    EventType.RESET_STEPS: (ResetStepsEvent, "Zero the step counters"),
}

def register_command_events(registry) -> None:
    """Register the command schemas a UI layer publishes."""
    for event_type, (schema, description) in COMMAND_EVENTS.items():
        registry.register_event(event_type, schema, description)
