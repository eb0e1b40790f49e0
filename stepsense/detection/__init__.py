"""
Step detection pipeline: windowing, motion gating, peak detection, the
classifier adapter and the decision debouncer.
"""

from .window import Sample, Window, SampleWindow, WINDOW_SIZE, CHANNELS
from .motion import MotionGate, MotionState, motion_intensity
from .peaks import PeakDetector, vertical_acceleration
from .classifier import StepClassifier, StepModel, ModelLoader, load_model_factory
from .debounce import DecisionDebouncer, DebounceState, StepDecision

__all__ = [
    'Sample',
    'Window',
    'SampleWindow',
    'WINDOW_SIZE',
    'CHANNELS',
    'MotionGate',
    'MotionState',
    'motion_intensity',
    'PeakDetector',
    'vertical_acceleration',
    'StepClassifier',
    'StepModel',
    'ModelLoader',
    'load_model_factory',
    'DecisionDebouncer',
    'DebounceState',
    'StepDecision',
]
