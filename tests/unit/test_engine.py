"""
Unit tests for the step engine pipeline.
"""

import asyncio
import unittest

import numpy as np

from stepsense.core.config import ApplicationConfig, SessionConfig
from stepsense.core.errors import ModelLoadError, SessionActiveError
from stepsense.detection.motion import MotionState
from stepsense.engine import StepEngine
from stepsense.hardware.sensor import ReplaySensorSource

from tests.unit.fixtures import TODAY, FakeModel, FakeStore, ManualClock, moving_window, samples_of, still_window

class CountingNotifier:
    def __init__(self):
        self.steps = 0

    def on_step(self):
        self.steps += 1

class TestStepEngine(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.model = FakeModel(0.9)
        self.store = FakeStore()
        self.clock = ManualClock()
        self.notifier = CountingNotifier()
        self.motion_changes = []
        self.flushes = []
        self.engine = self._engine()
        await self.engine.initialize()

    def _engine(self, config=None, sensor=None, loader=None):
        return StepEngine(
            loader or (lambda: self.model),
            self.store,
            sensor=sensor,
            notifier=self.notifier,
            config=config,
            clock=self.clock,
            today=lambda: TODAY,
            on_motion_change=lambda state, avg: self.motion_changes.append(state),
            on_flush=self.flushes.append
        )

    async def test_steps_spaced_past_refractory_are_counted(self):
        await self.engine.start()
        for now_ms in (1000, 2000, 3000):
            decision = await self.engine.evaluate_window(moving_window(), now_ms=now_ms)
            self.assertTrue(decision.step)
        await self.engine.stop()

        self.assertEqual(self.engine.step_count, 3)
        self.assertEqual(self.notifier.steps, 3)
        self.assertEqual(self.store.calls, [(3, TODAY)])
        self.assertTrue(self.flushes[-1].success)

    async def test_refractory_period_limits_rate(self):
        await self.engine.start()
        for now_ms in (1000, 1200, 1400, 1600, 1800):
            await self.engine.evaluate_window(moving_window(), now_ms=now_ms)
        self.assertEqual(self.engine.step_count, 2)

    async def test_stationary_device_never_calls_model(self):
        await self.engine.start()
        warmup_calls = self.model.calls
        for i in range(50):
            decision = await self.engine.evaluate_window(still_window(), now_ms=1000 * (i + 1))
            self.assertFalse(decision.step)
        self.assertEqual(self.model.calls, warmup_calls)
        self.assertEqual(self.engine.step_count, 0)
        self.assertEqual(self.motion_changes, [])

    async def test_motion_change_is_reported(self):
        await self.engine.start()
        await self.engine.evaluate_window(moving_window(), now_ms=1000)
        self.assertEqual(self.motion_changes, [MotionState.MOVING])

    async def test_malformed_window_is_no_step(self):
        await self.engine.start()
        for bad in (np.zeros((49, 6)), np.full((50, 6), np.nan), [[1, 2, 3]]):
            with self.subTest(shape=np.shape(bad)):
                decision = await self.engine.evaluate_window(bad, now_ms=1000)
                self.assertFalse(decision.step)
        self.assertEqual(self.engine.windows_rejected, 3)
        self.assertEqual(self.engine.step_count, 0)

    async def test_array_window_is_accepted(self):
        await self.engine.start()
        decision = await self.engine.evaluate_window(moving_window().data.tolist(), now_ms=1000)
        self.assertTrue(decision.step)

    async def test_prediction_error_does_not_stop_counting(self):
        await self.engine.start()
        self.model.error = RuntimeError("inference failed")
        decision = await self.engine.evaluate_window(moving_window(), now_ms=1000)
        self.assertFalse(decision.step)

        self.model.error = None
        decision = await self.engine.evaluate_window(moving_window(), now_ms=2000)
        self.assertTrue(decision.step)
        self.assertEqual(self.engine.step_count, 1)

    async def test_steps_not_counted_when_idle(self):
        decision = await self.engine.evaluate_window(moving_window(), now_ms=1000)
        self.assertTrue(decision.step)
        self.assertEqual(self.engine.step_count, 0)

    async def test_checkpoint_flush_during_session(self):
        self.engine = self._engine(config=ApplicationConfig(session=SessionConfig(checkpoint_steps=2)))
        await self.engine.initialize()
        await self.engine.start()
        for now_ms in (1000, 2000):
            await self.engine.evaluate_window(moving_window(), now_ms=now_ms)
        await asyncio.gather(*list(self.engine._background_tasks))

        self.assertEqual(self.store.calls, [(2, TODAY)])
        self.assertTrue(self.flushes[0].success)

        await self.engine.evaluate_window(moving_window(), now_ms=3000)
        await self.engine.stop()
        self.assertEqual(self.store.calls, [(2, TODAY), (1, TODAY)])

    async def test_checkpoint_failure_retried_on_stop(self):
        self.store.failures = 1
        self.engine = self._engine(config=ApplicationConfig(session=SessionConfig(checkpoint_steps=2)))
        await self.engine.initialize()
        await self.engine.start()
        for now_ms in (1000, 2000):
            await self.engine.evaluate_window(moving_window(), now_ms=now_ms)
        await asyncio.gather(*list(self.engine._background_tasks))
        self.assertFalse(self.flushes[0].success)

        await self.engine.stop()
        self.assertEqual(self.store.calls, [(2, TODAY), (2, TODAY)])
        self.assertTrue(self.flushes[-1].success)

    async def test_explicit_flush_while_counting(self):
        await self.engine.start()
        await self.engine.evaluate_window(moving_window(), now_ms=1000)
        result = await self.engine.flush()
        self.assertTrue(result.success)
        self.assertTrue(self.engine.is_counting)

        await self.engine.evaluate_window(moving_window(), now_ms=2000)
        await self.engine.stop()
        self.assertEqual(self.store.calls, [(1, TODAY), (1, TODAY)])
        self.assertEqual(len(self.flushes), 2)

    async def test_teardown_after_stop_saves_once(self):
        await self.engine.start()
        await self.engine.evaluate_window(moving_window(), now_ms=1000)
        await self.engine.stop()
        await self.engine.teardown()
        self.assertEqual(self.store.calls, [(1, TODAY)])
        self.assertFalse(self.engine.classifier.is_ready)

    async def test_teardown_while_counting_saves(self):
        await self.engine.start()
        await self.engine.evaluate_window(moving_window(), now_ms=1000)
        await self.engine.teardown()
        self.assertEqual(self.store.calls, [(1, TODAY)])
        self.assertFalse(self.engine.is_counting)

    async def test_reset_while_counting_raises(self):
        await self.engine.start()
        with self.assertRaises(SessionActiveError):
            self.engine.reset()

    async def test_start_twice(self):
        self.assertTrue(await self.engine.start())
        self.assertFalse(await self.engine.start())

class TestEngineModelLoading(unittest.IsolatedAsyncioTestCase):

    async def test_model_load_failure_is_fatal(self):
        def loader():
            raise OSError("model file missing")
        engine = StepEngine(loader, FakeStore())
        with self.assertRaises(ModelLoadError):
            await engine.initialize()

    async def test_start_requires_loaded_model(self):
        engine = StepEngine(lambda: FakeModel(), FakeStore())
        with self.assertRaises(ModelLoadError):
            await engine.start()
        self.assertFalse(engine.is_counting)

class TestEngineWithSensor(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.store = FakeStore()
        self.clock = ManualClock()
        self.sensor = ReplaySensorSource()
        self.engine = StepEngine(lambda: FakeModel(0.9), self.store, sensor=self.sensor,
                                 clock=self.clock, today=lambda: TODAY)
        await self.engine.initialize()

    async def test_samples_are_windowed_and_counted(self):
        await self.engine.start()
        for _ in range(3):
            for sample in samples_of(moving_window()):
                self.sensor.emit(sample)
            await self.engine._queue.join()
            self.clock.advance(1.0)
        await self.engine.stop()

        self.assertEqual(self.engine.windows_evaluated, 3)
        self.assertEqual(self.engine.step_count, 3)
        self.assertEqual(self.store.calls, [(3, TODAY)])

    async def test_queued_windows_keep_capture_spacing(self):
        # Both windows are queued before the worker runs and the engine clock never moves
        await self.engine.start()
        for i, sample in enumerate(samples_of(moving_window()) * 2):
            self.engine.push_sample(sample, 50.0 * i)
        await self.engine.stop()

        self.assertEqual(self.engine.windows_evaluated, 2)
        self.assertEqual(self.engine.step_count, 2)
        self.assertEqual(self.store.calls, [(2, TODAY)])

    async def test_stop_evaluates_queued_windows(self):
        await self.engine.start()
        for sample in samples_of(moving_window()):
            self.sensor.emit(sample)
        await self.engine.stop()
        self.assertEqual(self.engine.windows_evaluated, 1)
        self.assertEqual(self.store.calls, [(1, TODAY)])

    async def test_samples_after_stop_are_ignored(self):
        await self.engine.start()
        await self.engine.stop()
        for sample in samples_of(moving_window()):
            self.sensor.emit(sample)
        await asyncio.sleep(0)
        self.assertEqual(self.engine.windows_evaluated, 0)

    async def test_partial_window_is_not_evaluated(self):
        await self.engine.start()
        for sample in samples_of(moving_window())[:49]:
            self.sensor.emit(sample)
        await self.engine.stop()
        self.assertEqual(self.engine.windows_evaluated, 0)
        self.assertEqual(self.store.calls, [])

    async def test_replay_delivers_all_samples(self):
        self.sensor.samples = samples_of(moving_window()) * 2
        self.sensor.rate_hz = 0
        await self.engine.start()
        delivered = await self.sensor.replay()
        await self.engine.stop()
        self.assertEqual(delivered, 100)
        self.assertEqual(self.engine.windows_evaluated, 2)

class TestFastReplay(unittest.IsolatedAsyncioTestCase):

    async def test_every_window_of_a_fast_replay_is_counted(self):
        # Ten windows of 20 Hz walking data, delivered without pacing, on the real clock
        store = FakeStore()
        sensor = ReplaySensorSource(samples=samples_of(moving_window()) * 10, rate_hz=0)
        engine = StepEngine(lambda: FakeModel(0.9), store, sensor=sensor, today=lambda: TODAY)
        await engine.initialize()
        await engine.start()
        await sensor.replay()
        await engine.stop()
        await engine.teardown()

        self.assertEqual(engine.windows_evaluated, 10)
        self.assertEqual(engine.step_count, 10)
        self.assertEqual(store.calls, [(10, TODAY)])

class TestEngineOutsideLoop(unittest.TestCase):

    def test_engine_built_before_the_loop_runs(self):
        store = FakeStore()
        sensor = ReplaySensorSource(samples=samples_of(moving_window()) * 2, rate_hz=0)
        engine = StepEngine(lambda: FakeModel(0.9), store, sensor=sensor, today=lambda: TODAY)

        async def session():
            await engine.initialize()
            await engine.start()
            await sensor.replay()
            await engine.stop()

        asyncio.run(session())
        self.assertEqual(engine.step_count, 2)
        self.assertEqual(store.calls, [(2, TODAY)])

if __name__ == "__main__":
    unittest.main()
