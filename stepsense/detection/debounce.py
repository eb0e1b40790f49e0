"""
Step decision debouncing.

Turns per-window evidence into a yes/no step decision:

- The classifier probability feeds a streak counter of consecutive high readings.
  The streak only resets when the probability falls well below the threshold
  (`reset_ratio` x threshold), so a single slightly-low frame does not cancel a
  near-miss sequence.
- A refractory period after each confirmed step blocks another confirmation;
  700 ms is a lower bound on the time between two human steps.
- A step is confirmed by the primary path (probability above threshold with a long
  enough streak) or by the secondary path (a vertical acceleration peak together
  with a probability above `peak_ratio` x threshold but not above the threshold
  itself).

The debouncer never raises: any input it cannot make sense of is "no step".
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

@dataclass
class DebounceState:
    last_step_ms: Optional[float] = None
    consecutive_high_count: int = 0

@dataclass(frozen=True)
class StepDecision:
    """Outcome of evaluating one window."""
    step: bool
    probability: float
    peak: bool
    reason: Optional[str] = None  # 'classifier' or 'peak' when step is True

class DecisionDebouncer:
    def __init__(self,
                 threshold: float = 0.18,
                 refractory_period_ms: float = 700,
                 required_consecutive_highs: int = 1,
                 reset_ratio: float = 0.8,
                 peak_ratio: float = 0.9):
        self.threshold = threshold
        self.refractory_period_ms = refractory_period_ms
        self.required_consecutive_highs = required_consecutive_highs
        self.reset_ratio = reset_ratio
        self.peak_ratio = peak_ratio
        self.state = DebounceState()
        self.logger = logging.getLogger(__name__)

    def evaluate(self, probability: float, peak: bool, now_ms: float) -> StepDecision:
        """
        Update the streak and refractory state with one window's evidence.

        Args:
            probability: Classifier output for the window
            peak: Whether the peak detector saw a peak
            now_ms: Current time in milliseconds on a monotonic clock
        """
        try:
            probability = float(probability)
        except (TypeError, ValueError):
            probability = 0.0
        if math.isnan(probability):
            probability = 0.0

        state = self.state
        if probability > self.threshold:
            state.consecutive_high_count += 1
        elif probability < self.threshold * self.reset_ratio:
            state.consecutive_high_count = 0

        refractory_elapsed = (state.last_step_ms is None
                              or now_ms - state.last_step_ms > self.refractory_period_ms)

        reason = None
        if refractory_elapsed:
            if probability > self.threshold:
                if state.consecutive_high_count >= self.required_consecutive_highs:
                    reason = "classifier"
            elif peak and probability > self.threshold * self.peak_ratio:
                # Peaks only rescue scores at or just below the threshold
                reason = "peak"

        self.logger.debug(
            "Step prediction %.4f, consecutive highs %d, peak %s, refractory elapsed %s",
            probability, state.consecutive_high_count, peak, refractory_elapsed
        )

        if reason is None:
            return StepDecision(step=False, probability=probability, peak=peak)

        state.last_step_ms = now_ms
        state.consecutive_high_count = 0
        self.logger.debug("Step confirmed by %s", reason)
        return StepDecision(step=True, probability=probability, peak=peak, reason=reason)

    def clear_streak(self) -> None:
        """Drop the consecutive-high streak, e.g. when the device stops moving."""
        self.state.consecutive_high_count = 0
