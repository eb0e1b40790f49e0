"""
Hardware abstraction layer for StepSense.

Isolates the engine from the sensor and haptic bindings of a specific device.
"""
