"""
StepSense - real-time step detection and session accounting.

This package turns a stream of 6-channel motion samples (accelerometer and
gyroscope) into de-duplicated step events and persists them as per-day totals.

Features:
- Windowed motion gating so a resting device never runs inference
- Classifier scores corroborated by vertical acceleration peaks
- Refractory and streak debouncing of step decisions
- Save-once session accounting with checkpoint flushes
"""

__version__ = "1.0.0"

from stepsense.engine import StepEngine, SensorSource

__all__ = ['StepEngine', 'SensorSource', '__version__']
