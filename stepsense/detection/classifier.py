"""
Step classifier adapter.

The classification model is a pre-trained black box with a single operation,
`predict(window) -> probability`. This adapter owns loading and warming it up
once, and turns every per-window failure into a probability of 0 so a model
error never interrupts counting.
"""

import importlib
import inspect
import logging
import math
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

import numpy as np

from stepsense.core.errors import ModelLoadError
from stepsense.detection.window import CHANNELS, WINDOW_SIZE, Window

class StepModel(Protocol):
    """Anything with a predict method taking a (50, 6) array. May be async."""

    def predict(self, window: np.ndarray) -> Union[float, Awaitable[float]]:
        ...

ModelLoader = Callable[[], Union[StepModel, Awaitable[StepModel]]]

async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value

def _to_probability(raw: Any) -> float:
    """Reduce a model output (scalar or single-element array) to a float."""
    values = np.asarray(raw, dtype=np.float64).ravel()
    if values.size == 0:
        raise ValueError("Model returned an empty prediction")
    return float(values[0])

def load_model_factory(path: str) -> ModelLoader:
    """
    Resolve a "package.module:attribute" path to a model loader callable.

    Raises:
        ModelLoadError: If the path is malformed or cannot be imported
    """
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ModelLoadError(f"Model factory must look like 'module:attribute', got {path!r}")
    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attribute)
    except (ImportError, AttributeError) as e:
        raise ModelLoadError(f"Cannot import model factory {path!r}: {e}") from e
    if not callable(factory):
        raise ModelLoadError(f"Model factory {path!r} is not callable")
    return factory

class StepClassifier:
    """
    Loads the step model once and scores windows with it.
    """

    def __init__(self, loader: ModelLoader, warmup: bool = True,
                 window_size: int = WINDOW_SIZE, channels: int = CHANNELS):
        self._loader = loader
        self._warmup = warmup
        self._window_size = window_size
        self._channels = channels
        self.model: Optional[StepModel] = None
        self.calls = 0
        self.failures = 0
        self.logger = logging.getLogger(__name__)

    @property
    def is_ready(self) -> bool:
        return self.model is not None

    async def load(self) -> None:
        """
        Load the model and run one warm-up prediction on an all-ones window.

        Raises:
            ModelLoadError: If loading or warm-up fails
        """
        if self.model is not None:
            return

        try:
            model = await _resolve(self._loader())
            if model is None or not callable(getattr(model, "predict", None)):
                raise TypeError("loader did not return an object with a predict method")

            if self._warmup:
                dummy = np.ones((self._window_size, self._channels), dtype=np.float64)
                _to_probability(await _resolve(model.predict(dummy)))
        except ModelLoadError:
            raise
        except Exception as e:
            self.logger.error("Failed to load step model: %s", e)
            raise ModelLoadError(f"Failed to load step model: {e}") from e

        self.model = model
        self.logger.info("Step model loaded%s", " and warmed up" if self._warmup else "")

    async def predict(self, window: Window) -> float:
        """
        Score one window.

        Returns:
            Probability in [0, 1]; 0.0 if the model is not loaded or the call failed
        """
        if self.model is None:
            self.logger.warning("Step model is not loaded, treating window as no step")
            return 0.0

        self.calls += 1
        try:
            probability = _to_probability(await _resolve(self.model.predict(window.data)))
        except Exception as e:
            self.failures += 1
            self.logger.warning("Step prediction failed: %s", e)
            return 0.0

        if math.isnan(probability):
            self.failures += 1
            self.logger.warning("Step model returned NaN, treating window as no step")
            return 0.0
        return min(1.0, max(0.0, probability))

    def dispose(self) -> None:
        """Release the model. A later load() reloads it."""
        if self.model is not None:
            close = getattr(self.model, "dispose", None)
            if callable(close):
                try:
                    close()
                except Exception as e:
                    self.logger.warning("Error disposing step model: %s", e)
            self.model = None
