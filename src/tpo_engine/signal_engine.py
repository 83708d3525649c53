"""
Signal Engine - Trend + Envelope Breakout with POC Filter

Generates at most one directional signal per closed bar.
Side-effect free: the same inputs always give the same signal.

Strategy:
- BUY  if close > fast trend AND close > slow trend AND close > envelope upper
- SELL if close < fast trend AND close < slow trend AND close < envelope lower
- BUY is discarded if close < last session POC
- SELL is discarded if close > last session POC

COLD START:
Until the first session completes there is no POC and every signal is
discarded. This is expected, not a failure.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .models import Direction


@dataclass(frozen=True)
class SignalInputs:
    """Indicator snapshot at the newest closed bar."""
    close: float
    fast_trend: float
    slow_trend: float
    envelope_upper: float
    envelope_lower: float
    poc: Optional[float]

    def to_dict(self) -> dict:
        return {
            "close": self.close,
            "fast_trend": self.fast_trend,
            "slow_trend": self.slow_trend,
            "envelope_upper": self.envelope_upper,
            "envelope_lower": self.envelope_lower,
            "poc": self.poc,
        }


class SignalGenerator:
    """Stateless signal generator."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def raw_signal(self, inputs: SignalInputs) -> Direction:
        """Trend/envelope rule. BUY is checked first."""
        close = inputs.close
        if close > inputs.fast_trend and close > inputs.slow_trend and close > inputs.envelope_upper:
            return Direction.BUY
        if close < inputs.fast_trend and close < inputs.slow_trend and close < inputs.envelope_lower:
            return Direction.SELL
        return Direction.NONE

    def apply_poc_filter(self, signal: Direction, close: float, poc: Optional[float]) -> Direction:
        """Discard signals on the wrong side of the last session POC."""
        if signal is Direction.NONE:
            return signal
        if poc is None:
            self.logger.debug(f"{signal.value} discarded: no session POC yet")
            return Direction.NONE
        if signal is Direction.BUY and close < poc:
            self.logger.debug(f"BUY discarded: close {close} < POC {poc}")
            return Direction.NONE
        if signal is Direction.SELL and close > poc:
            self.logger.debug(f"SELL discarded: close {close} > POC {poc}")
            return Direction.NONE
        return signal

    def evaluate(self, inputs: SignalInputs) -> Direction:
        """Full decision: raw rule followed by the POC filter."""
        return self.apply_poc_filter(self.raw_signal(inputs), inputs.close, inputs.poc)
