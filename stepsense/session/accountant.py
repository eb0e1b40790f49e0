"""
Session accounting.

Owns the counting session lifecycle and the contract with the persistence store:

    IDLE --start()--> COUNTING --stop()/teardown()--> STOPPED --start()--> COUNTING

Detected steps increase `current_count`. The session delta
(`current_count - session_start_count`) is what has not been persisted yet.
A flush sends the delta to the store and, only once the store confirmed it,
advances `session_start_count` by exactly that delta. A failed flush therefore
leaves the same delta pending for the next checkpoint or stop, and a delta that
was already stored is never sent again.

`flushed` is true when the last flush covered every counted step; any new step
clears it. stop() and teardown() skip their final flush while it is set, which is
what keeps a stop followed by a teardown from saving the session twice.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol, Set

from stepsense.core.errors import SessionActiveError
from stepsense.session.store import StepStore, today_iso

class SessionStatus(str, Enum):
    IDLE = "idle"
    COUNTING = "counting"
    STOPPED = "stopped"

class StepNotifier(Protocol):
    """Fire-and-forget sink for step feedback (haptics, UI). Its result is ignored."""

    def on_step(self) -> Any:
        ...

@dataclass(frozen=True)
class FlushResult:
    steps: int
    date: str
    success: bool
    error: Optional[str] = None

class SessionAccountant:
    """
    Accumulates confirmed steps and flushes them to the store exactly once per delta.
    """

    def __init__(self,
                 store: StepStore,
                 notifier: Optional[StepNotifier] = None,
                 checkpoint_steps: int = 10,
                 checkpoint_interval: float = 120.0,
                 clock: Callable[[], float] = time.monotonic,
                 today: Callable[[], str] = today_iso):
        """
        Args:
            store: Persistence store receiving add_steps(delta, date)
            notifier: Optional step feedback sink
            checkpoint_steps: Flush whenever the pending delta reaches a multiple of this
            checkpoint_interval: Flush when this many seconds passed since the last attempt
            clock: Monotonic clock in seconds
            today: Returns the ISO date steps are credited to
        """
        self.store = store
        self.notifier = notifier
        self.checkpoint_steps = checkpoint_steps
        self.checkpoint_interval = checkpoint_interval
        self._clock = clock
        self._today = today

        self.status = SessionStatus.IDLE
        self.session_start_count = 0
        self.current_count = 0
        self.flushed = False
        self._session_mark = 0

        self._flush_lock = asyncio.Lock()
        self._last_flush_attempt = clock()
        self._notifier_tasks: Set[asyncio.Future] = set()
        self.logger = logging.getLogger(__name__)

    @property
    def pending_steps(self) -> int:
        """Steps counted but not yet confirmed by the store."""
        return self.current_count - self.session_start_count

    @property
    def session_steps(self) -> int:
        """Steps counted since the current (or last) session started, saved or not."""
        return self.current_count - self._session_mark

    @property
    def is_counting(self) -> bool:
        return self.status is SessionStatus.COUNTING

    @property
    def flush_in_flight(self) -> bool:
        return self._flush_lock.locked()

    def start(self) -> bool:
        """
        Begin counting. Returns False if a session is already counting.
        """
        if self.status is SessionStatus.COUNTING:
            self.logger.warning("Session already counting")
            return False

        if self.pending_steps > 0:
            # An earlier final flush failed; keep its delta pending so the next flush carries it
            self.logger.warning("Starting session with %d unsaved steps from the previous one", self.pending_steps)
        else:
            self.session_start_count = self.current_count
        self._session_mark = self.current_count
        self.flushed = False
        self._last_flush_attempt = self._clock()
        self.status = SessionStatus.COUNTING
        self.logger.info("Step counting started at %d steps", self.current_count)
        return True

    def record_step(self) -> bool:
        """
        Count one confirmed step and notify.

        Returns:
            True if a checkpoint flush is due
        """
        if self.status is not SessionStatus.COUNTING:
            self.logger.debug("Step ignored, session is %s", self.status.value)
            return False

        self.current_count += 1
        self.flushed = False
        self._notify()
        self.logger.info("Step detected, total count: %d", self.current_count)

        pending = self.pending_steps
        return (pending % self.checkpoint_steps == 0
                or self._clock() - self._last_flush_attempt >= self.checkpoint_interval)

    def _notify(self) -> None:
        if self.notifier is None:
            return
        try:
            result = self.notifier.on_step()
            if inspect.isawaitable(result):
                future = asyncio.ensure_future(result)
                self._notifier_tasks.add(future)
                future.add_done_callback(self._discard_notifier_task)
        except Exception as e:
            self.logger.debug("Step notifier failed: %s", e)

    def _discard_notifier_task(self, future: asyncio.Future) -> None:
        self._notifier_tasks.discard(future)
        if not future.cancelled() and future.exception() is not None:
            self.logger.debug("Step notifier failed: %s", future.exception())

    async def checkpoint(self) -> Optional[FlushResult]:
        """
        Periodic flush while counting. Coalesced: does nothing when the current delta
        is already flushed or another flush is still running.
        """
        if self.flushed or self.flush_in_flight:
            return None
        return await self.flush()

    async def flush(self) -> Optional[FlushResult]:
        """
        Send the pending delta to the store.

        Returns:
            The outcome, or None if there was nothing to send
        """
        async with self._flush_lock:
            delta = self.pending_steps
            if delta <= 0 or self.flushed:
                return None

            date = self._today()
            self._last_flush_attempt = self._clock()
            self.logger.info("Saving %d steps for %s", delta, date)
            try:
                result = self.store.add_steps(delta, date)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                self.logger.warning("Failed to save %d steps: %s", delta, e)
                return FlushResult(steps=delta, date=date, success=False, error=str(e))

            if result is False:
                self.logger.warning("Store rejected %d steps", delta)
                return FlushResult(steps=delta, date=date, success=False, error="store reported failure")

            # Steps recorded while the store call was in flight stay pending
            self.session_start_count += delta
            self.flushed = self.pending_steps == 0
            self.logger.info("Steps saved successfully")
            return FlushResult(steps=delta, date=date, success=True)

    async def stop(self) -> Optional[FlushResult]:
        """
        End the session and flush the remaining delta unless it is already saved.
        Stopping a session that is not counting does nothing.
        """
        if self.status is not SessionStatus.COUNTING:
            self.logger.debug("Stop ignored, session is %s", self.status.value)
            return None

        self.status = SessionStatus.STOPPED
        self.logger.info("Step counting stopped at %d steps", self.current_count)
        if self.flushed:
            self.logger.debug("Steps already saved for this session")
            return None
        return await self.flush()

    async def teardown(self) -> Optional[FlushResult]:
        """
        Best-effort final save when the owner goes away.

        Stops a counting session, or retries a delta whose final flush failed.
        Never raises.
        """
        try:
            if self.status is SessionStatus.COUNTING:
                return await self.stop()
            if not self.flushed and self.pending_steps > 0:
                return await self.flush()
            self.logger.debug("Teardown, no steps left to save")
        except Exception as e:
            self.logger.warning("Final save during teardown failed: %s", e)
        return None

    def reset(self) -> None:
        """
        Zero the counters.

        Raises:
            SessionActiveError: If a session is counting
        """
        if self.status is SessionStatus.COUNTING:
            raise SessionActiveError("Cannot reset step count while counting")
        if self.pending_steps > 0:
            self.logger.warning("Reset discards %d unsaved steps", self.pending_steps)

        self.current_count = 0
        self.session_start_count = 0
        self._session_mark = 0
        self.flushed = False
        self.logger.info("Step count reset")
