"""
Configuration management for StepSense.

This module provides Pydantic settings models for type-safe configuration with
validation and environment variable integration. Every tunable constant of the
detection pipeline lives here rather than in the components themselves.
"""

from typing import Optional
from enum import Enum
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class LogLevel(str, Enum):
    """Log levels for the application."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

class BaseConfig(BaseSettings):
    """
    Base configuration class with common settings for all components.

    All other configuration classes should inherit from this class.
    """
    model_config = SettingsConfigDict(env_file=".env", env_prefix="STEPSENSE_", extra="ignore")

    debug: bool = False
    log_level: LogLevel = LogLevel.INFO

class EventConfig(BaseConfig):
    """Configuration for the event system."""
    model_config = SettingsConfigDict(env_prefix="STEPSENSE_EVENT_")

    max_trace_events: int = 1000
    tracing_enabled: bool = True

class WindowConfig(BaseConfig):
    """Configuration for sample windowing."""
    model_config = SettingsConfigDict(env_prefix="STEPSENSE_WINDOW_")

    size: int = 50
    channels: int = 6
    # Samples dropped between consecutive windows; equal to size means non-overlapping
    stride: int = 50

    @model_validator(mode="after")
    def validate_stride(self):
        """Validate the stride fits inside a window."""
        if not 1 <= self.stride <= self.size:
            raise ValueError(f"Window stride must be between 1 and {self.size}")
        return self

class MotionConfig(BaseConfig):
    """Configuration for the motion gate."""
    model_config = SettingsConfigDict(env_prefix="STEPSENSE_MOTION_")

    buffer_size: int = 8
    threshold: float = 0.008  # summed accelerometer variance, in sensor units squared

    @field_validator("buffer_size")
    @classmethod
    def validate_buffer_size(cls, v):
        """Validate the smoothing buffer length."""
        if not 5 <= v <= 10:
            raise ValueError("Motion buffer size must be between 5 and 10")
        return v

class PeakConfig(BaseConfig):
    """Configuration for vertical acceleration peak detection."""
    model_config = SettingsConfigDict(env_prefix="STEPSENSE_PEAK_")

    buffer_size: int = 15
    min_height: float = 0.12
    min_distance: int = 6

    @model_validator(mode="after")
    def validate_distance(self):
        """Validate the comparison neighbourhood fits around the center slot."""
        if not 1 <= self.min_distance <= self.buffer_size // 2:
            raise ValueError("Peak min_distance must be between 1 and half the buffer size")
        return self

class ClassifierConfig(BaseConfig):
    """Configuration for the step classifier."""
    model_config = SettingsConfigDict(env_prefix="STEPSENSE_CLASSIFIER_")

    threshold: float = 0.18
    # "package.module:attribute" of a zero-argument callable returning the model
    model_factory: Optional[str] = None
    warmup: bool = True

    @field_validator("threshold")
    @classmethod
    def validate_threshold(cls, v):
        """Validate threshold is a probability."""
        if not 0.0 <= v <= 1.0:
            raise ValueError("Classifier threshold must be between 0.0 and 1.0")
        return v

class DebounceConfig(BaseConfig):
    """Configuration for the step decision debouncer."""
    model_config = SettingsConfigDict(env_prefix="STEPSENSE_DEBOUNCE_")

    refractory_period_ms: int = 700
    required_consecutive_highs: int = 1
    reset_ratio: float = 0.8  # streak resets only below threshold * reset_ratio
    peak_ratio: float = 0.9  # peak-corroborated steps need threshold * peak_ratio

    @field_validator("reset_ratio", "peak_ratio")
    @classmethod
    def validate_ratio(cls, v):
        if not 0.0 < v <= 1.0:
            raise ValueError("Ratios must be in (0.0, 1.0]")
        return v

class SessionConfig(BaseConfig):
    """Configuration for session accounting and checkpoint flushes."""
    model_config = SettingsConfigDict(env_prefix="STEPSENSE_SESSION_")

    checkpoint_steps: int = 10
    checkpoint_interval: float = 120.0  # seconds

    @field_validator("checkpoint_steps")
    @classmethod
    def validate_checkpoint_steps(cls, v):
        if v < 1:
            raise ValueError("Checkpoint step multiple must be at least 1")
        return v

class ApplicationConfig(BaseConfig):
    """
    Main application configuration that combines all component configurations.

    This is the top-level configuration class that should be used by the application.
    """
    model_config = SettingsConfigDict(env_prefix="STEPSENSE_", env_nested_delimiter="__")

    event: EventConfig = Field(default_factory=EventConfig)
    window: WindowConfig = Field(default_factory=WindowConfig)
    motion: MotionConfig = Field(default_factory=MotionConfig)
    peak: PeakConfig = Field(default_factory=PeakConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    debounce: DebounceConfig = Field(default_factory=DebounceConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)

def get_config() -> ApplicationConfig:
    """
    Get the application configuration.

    Returns:
        The validated ApplicationConfig instance
    """
    return ApplicationConfig()
