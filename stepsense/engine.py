"""
Step engine.

Wires the detection pipeline to the session accountant:

    sensor source -> SampleWindow -> MotionGate -> PeakDetector -> StepClassifier
                  -> DecisionDebouncer -> SessionAccountant -> store (+ notifier)

Concurrency model (single asyncio event loop):
- push_sample() is synchronous and never waits. Completed windows go into a queue.
- One worker task drains the queue, so windows are evaluated one at a time and the
  debounce state is never touched by two evaluations at once. evaluate_window()
  also holds a lock so direct callers get the same guarantee.
- Debounce timing uses the capture time stamped on each window, so windows
  that wait in the queue keep their real spacing.
- Checkpoint flushes run as separate tasks; evaluation keeps going while the store
  call is in flight. The accountant serializes flushes.
- stop() unsubscribes from the sensor, lets the worker finish the queued windows
  and then performs the final flush.
"""

import asyncio
import logging
import time
from typing import Callable, Optional, Protocol, Set

from stepsense.core.config import ApplicationConfig
from stepsense.core.errors import MalformedWindowError, ModelLoadError
from stepsense.detection.classifier import ModelLoader, StepClassifier
from stepsense.detection.debounce import DecisionDebouncer, StepDecision
from stepsense.detection.motion import MotionGate, MotionState
from stepsense.detection.peaks import PeakDetector
from stepsense.detection.window import Sample, SampleWindow, Window
from stepsense.session.accountant import FlushResult, SessionAccountant, StepNotifier
from stepsense.session.store import StepStore, today_iso

SampleCallback = Callable[[Sample, Optional[float]], None]

class SensorSource(Protocol):
    """
    Push-style sample provider. Callbacks receive each sample with its capture
    time in milliseconds, or None when the source has no timestamps.
    """

    def subscribe(self, callback: SampleCallback) -> None:
        ...

    def unsubscribe(self, callback: SampleCallback) -> None:
        ...

class StepEngine:
    """
    Turns a stream of motion samples into counted, persisted steps.

    All collaborators are injected so the engine can be driven with synthetic
    samples and fake models in tests.
    """

    def __init__(self,
                 model_loader: ModelLoader,
                 store: StepStore,
                 sensor: Optional[SensorSource] = None,
                 notifier: Optional[StepNotifier] = None,
                 config: Optional[ApplicationConfig] = None,
                 clock: Callable[[], float] = time.monotonic,
                 today: Callable[[], str] = today_iso,
                 on_motion_change: Optional[Callable[[MotionState, float], None]] = None,
                 on_flush: Optional[Callable[[FlushResult], None]] = None):
        """
        Args:
            model_loader: Zero-argument callable returning the step model
            store: Persistence store for step deltas
            sensor: Sample source the engine subscribes to while counting
            notifier: Step feedback sink
            config: Tunables; defaults to ApplicationConfig()
            clock: Monotonic clock in seconds, shared by debouncing and checkpoints
            today: Returns the ISO date used for flushes
            on_motion_change: Called with the new MotionState and smoothed intensity
            on_flush: Called with every FlushResult, including checkpoint flushes
        """
        config = config or ApplicationConfig()
        self.config = config
        self.sensor = sensor
        self.on_flush = on_flush
        self._clock = clock
        self.logger = logging.getLogger(__name__)

        self.window = SampleWindow(size=config.window.size, stride=config.window.stride)
        self.motion_gate = MotionGate(
            threshold=config.motion.threshold,
            buffer_size=config.motion.buffer_size,
            on_change=on_motion_change
        )
        self.peak_detector = PeakDetector(
            buffer_size=config.peak.buffer_size,
            min_peak_height=config.peak.min_height,
            min_peak_distance=config.peak.min_distance
        )
        self.classifier = StepClassifier(
            model_loader,
            warmup=config.classifier.warmup,
            window_size=config.window.size,
            channels=config.window.channels
        )
        self.debouncer = DecisionDebouncer(
            threshold=config.classifier.threshold,
            refractory_period_ms=config.debounce.refractory_period_ms,
            required_consecutive_highs=config.debounce.required_consecutive_highs,
            reset_ratio=config.debounce.reset_ratio,
            peak_ratio=config.debounce.peak_ratio
        )
        self.accountant = SessionAccountant(
            store,
            notifier=notifier,
            checkpoint_steps=config.session.checkpoint_steps,
            checkpoint_interval=config.session.checkpoint_interval,
            clock=clock,
            today=today
        )

        self._queue: "asyncio.Queue[Window]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._evaluation_lock = asyncio.Lock()
        self._background_tasks: Set[asyncio.Task] = set()

        self.windows_evaluated = 0
        self.windows_rejected = 0

    @property
    def step_count(self) -> int:
        return self.accountant.current_count

    @property
    def is_counting(self) -> bool:
        return self.accountant.is_counting

    async def initialize(self) -> None:
        """
        Load and warm up the step model.

        Raises:
            ModelLoadError: The engine cannot operate without a model
        """
        await self.classifier.load()

    async def start(self) -> bool:
        """
        Start a counting session and subscribe to the sensor source.

        Returns:
            False if a session was already counting

        Raises:
            ModelLoadError: If initialize() has not loaded the model
        """
        if not self.classifier.is_ready:
            raise ModelLoadError("Step model is not loaded; call initialize() first")
        if not self.accountant.start():
            return False

        self.window.clear()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run_worker(), name="stepsense-window-worker")
        if self.sensor is not None:
            self.sensor.subscribe(self.push_sample)
        return True

    def push_sample(self, sample: Sample, timestamp_ms: Optional[float] = None) -> None:
        """
        Sensor callback. Buffers the sample and queues a completed window.
        Samples that arrive while not counting are dropped.

        Without a capture time the sample is stamped with the engine clock on arrival.
        """
        if not self.accountant.is_counting:
            return
        if timestamp_ms is None:
            timestamp_ms = self._clock() * 1000.0
        try:
            window = self.window.push(sample, timestamp_ms)
        except MalformedWindowError as e:
            self.windows_rejected += 1
            self.window.clear()
            self.logger.warning("Rejected malformed window: %s", e)
            return
        if window is not None:
            self._queue.put_nowait(window)

    async def _run_worker(self) -> None:
        while True:
            window = await self._queue.get()
            try:
                await self.evaluate_window(window)
            except Exception:
                self.logger.exception("Unexpected error evaluating window")
            finally:
                self._queue.task_done()

    async def evaluate_window(self, window, now_ms: Optional[float] = None) -> StepDecision:
        """
        Run one window through the pipeline and count the step if one is confirmed.

        Args:
            window: A Window or anything array-like of shape (size, channels)
            now_ms: Decision time in milliseconds; defaults to the window's capture
                time, then to the engine clock

        Returns:
            The decision for this window. Malformed windows are rejected as "no step".
        """
        if not isinstance(window, Window):
            try:
                window = Window(window, size=self.config.window.size, channels=self.config.window.channels)
            except MalformedWindowError as e:
                self.windows_rejected += 1
                self.logger.warning("Rejected malformed window: %s", e)
                return StepDecision(step=False, probability=0.0, peak=False)

        async with self._evaluation_lock:
            self.windows_evaluated += 1
            state = self.motion_gate.update(window)
            self.peak_detector.update(window)

            if state is MotionState.STATIONARY:
                self.logger.debug("No significant motion detected, skipping step detection")
                self.debouncer.clear_streak()
                return StepDecision(step=False, probability=0.0, peak=False)

            peak = self.peak_detector.detect_peak()
            probability = await self.classifier.predict(window)
            if now_ms is None:
                now_ms = window.timestamp_ms
            if now_ms is None:
                now_ms = self._clock() * 1000.0
            decision = self.debouncer.evaluate(probability, peak, now_ms)

            if decision.step and self.accountant.record_step():
                self._spawn(self._checkpoint())
            return decision

    async def _checkpoint(self) -> None:
        self._report_flush(await self.accountant.checkpoint())

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def _report_flush(self, result: Optional[FlushResult]) -> None:
        if result is None or self.on_flush is None:
            return
        try:
            self.on_flush(result)
        except Exception as e:
            self.logger.warning("Flush listener failed: %s", e)

    async def flush(self) -> Optional[FlushResult]:
        """Flush the pending delta now (e.g. app moving to the background)."""
        result = await self.accountant.flush()
        self._report_flush(result)
        return result

    async def stop(self) -> Optional[FlushResult]:
        """
        Stop counting: unsubscribe, evaluate already queued windows, then flush
        unless the current delta is already saved.
        """
        if not self.accountant.is_counting:
            self.logger.debug("Stop requested while not counting")
            return None

        if self.sensor is not None:
            try:
                self.sensor.unsubscribe(self.push_sample)
            except Exception as e:
                self.logger.warning("Error unsubscribing from sensor source: %s", e)
        if self._worker is not None and not self._worker.done():
            await self._queue.join()
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
        self._worker = None
        self.window.clear()

        result = await self.accountant.stop()
        self._report_flush(result)
        return result

    def reset(self) -> None:
        """
        Zero the step counters.

        Raises:
            SessionActiveError: If counting
        """
        self.accountant.reset()

    async def teardown(self) -> Optional[FlushResult]:
        """
        Dispose of the engine. Stops a running session with the same save-once guard
        as stop(), retries a failed final save, and releases the model. Never raises.
        """
        result = None
        try:
            if self.accountant.is_counting:
                result = await self.stop()
            else:
                result = await self.accountant.teardown()
                self._report_flush(result)
        except Exception as e:
            self.logger.warning("Error during engine teardown: %s", e)

        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self.classifier.dispose()
        return result
