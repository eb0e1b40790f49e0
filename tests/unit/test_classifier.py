"""
Unit tests for the step classifier adapter.
"""

import math
import unittest

import numpy as np

from stepsense.core.errors import ModelLoadError
from stepsense.detection.classifier import StepClassifier, load_model_factory

from tests.unit.fixtures import FakeModel, moving_window

class AsyncModel:
    async def predict(self, window):
        return 0.75

def build_model():
    return FakeModel(0.42)

class TestStepClassifierLoading(unittest.IsolatedAsyncioTestCase):

    async def test_load_warms_up_with_ones_window(self):
        model = FakeModel(0.1)
        classifier = StepClassifier(lambda: model)
        await classifier.load()

        self.assertTrue(classifier.is_ready)
        self.assertEqual(model.calls, 1)
        np.testing.assert_array_equal(model.inputs[0], np.ones((50, 6)))

    async def test_load_is_done_once(self):
        loads = []
        def loader():
            loads.append(1)
            return FakeModel()
        classifier = StepClassifier(loader)
        await classifier.load()
        await classifier.load()
        self.assertEqual(len(loads), 1)

    async def test_loader_failure_is_fatal(self):
        def loader():
            raise FileNotFoundError("model.bin")
        classifier = StepClassifier(loader)
        with self.assertRaises(ModelLoadError):
            await classifier.load()
        self.assertFalse(classifier.is_ready)

    async def test_warmup_failure_is_fatal(self):
        classifier = StepClassifier(lambda: FakeModel(error=RuntimeError("bad weights")))
        with self.assertRaises(ModelLoadError):
            await classifier.load()

    async def test_loader_must_return_model(self):
        classifier = StepClassifier(lambda: object())
        with self.assertRaises(ModelLoadError):
            await classifier.load()

    async def test_async_loader_and_model(self):
        async def loader():
            return AsyncModel()
        classifier = StepClassifier(loader)
        await classifier.load()
        self.assertEqual(await classifier.predict(moving_window()), 0.75)

class TestStepClassifierPredict(unittest.IsolatedAsyncioTestCase):

    async def _loaded(self, model):
        classifier = StepClassifier(lambda: model, warmup=False)
        await classifier.load()
        return classifier

    async def test_predict_passes_window_array(self):
        model = FakeModel(0.3)
        classifier = await self._loaded(model)
        window = moving_window()
        self.assertAlmostEqual(await classifier.predict(window), 0.3)
        self.assertIs(model.inputs[0], window.data)

    async def test_prediction_error_counts_as_zero(self):
        classifier = await self._loaded(FakeModel(error=RuntimeError("tensor disposed")))
        self.assertEqual(await classifier.predict(moving_window()), 0.0)
        self.assertEqual(classifier.failures, 1)

    async def test_nan_counts_as_zero(self):
        classifier = await self._loaded(FakeModel(math.nan))
        self.assertEqual(await classifier.predict(moving_window()), 0.0)

    async def test_output_is_clamped(self):
        classifier = await self._loaded(FakeModel(1.7, -0.2))
        self.assertEqual(await classifier.predict(moving_window()), 1.0)
        self.assertEqual(await classifier.predict(moving_window()), 0.0)

    async def test_array_output_reduced_to_scalar(self):
        classifier = await self._loaded(FakeModel(np.array([[0.9]])))
        self.assertAlmostEqual(await classifier.predict(moving_window()), 0.9)

    async def test_predict_before_load_is_no_step(self):
        classifier = StepClassifier(lambda: FakeModel())
        self.assertEqual(await classifier.predict(moving_window()), 0.0)

    async def test_dispose_releases_model(self):
        classifier = await self._loaded(FakeModel())
        classifier.dispose()
        self.assertFalse(classifier.is_ready)

class TestLoadModelFactory(unittest.TestCase):

    def test_resolves_module_attribute(self):
        factory = load_model_factory("tests.unit.test_classifier:build_model")
        self.assertTrue(callable(factory))
        self.assertEqual(factory().predict(None), 0.42)

    def test_malformed_path(self):
        with self.assertRaises(ModelLoadError):
            load_model_factory("tests.unit.test_classifier")

    def test_missing_module(self):
        with self.assertRaises(ModelLoadError):
            load_model_factory("no_such_module_xyz:build")

    def test_missing_attribute(self):
        with self.assertRaises(ModelLoadError):
            load_model_factory("tests.unit.test_classifier:missing")

if __name__ == "__main__":
    unittest.main()
