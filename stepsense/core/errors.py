"""
Exception types raised by StepSense.
"""

class StepSenseError(Exception):
    """Base class for all StepSense errors."""

class ModelLoadError(StepSenseError, RuntimeError):
    """The step classifier could not be loaded or warmed up. The engine cannot run."""

class MalformedWindowError(StepSenseError, ValueError):
    """A window does not have the expected sample or channel count."""

class SessionActiveError(StepSenseError, RuntimeError):
    """An operation that would discard unflushed steps was requested mid-session."""
