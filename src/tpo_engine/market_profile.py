"""
Market Profile Engine - Session Point of Control

Builds a TPO-style histogram over the bars of one session and returns the
price level with the most bar overlaps (the POC).

ALGORITHM:
1. Session high = max(bar highs), session low = min(bar lows)
2. bin_count = floor((high - low) / tick_size); no update if bin_count <= 0
3. Bin b spans [high - (b+1)·tick, high - b·tick]; a bar counts toward a bin
   when [low, high] overlaps it (inclusive on both ends)
4. Best bin = highest count; ties go to the first bin scanned, i.e. the
   higher-priced one
5. POC = bin top - tick_size / 2

Only the POC survives a session; the histogram is discarded.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

import numpy as np

from .exceptions import MarketDataError
from .interfaces import MarketDataSource
from .models import Bar


@dataclass(frozen=True)
class MarketProfile:
    """Per-session histogram. Ephemeral, only `poc` is kept."""
    session_high: float
    session_low: float
    tick_size: float
    bins: np.ndarray        # Overlap counts, index 0 = highest-priced bin
    best_bin: int

    @property
    def bin_count(self) -> int:
        return len(self.bins)

    def bin_top(self, b: int) -> float:
        return self.session_high - b * self.tick_size

    def bin_bottom(self, b: int) -> float:
        return self.bin_top(b) - self.tick_size

    @property
    def poc(self) -> float:
        return self.bin_top(self.best_bin) - self.tick_size / 2.0


def build_profile(
    highs: Sequence[float],
    lows: Sequence[float],
    tick_size: float,
) -> Optional[MarketProfile]:
    """
    Build a session profile from bar highs/lows.

    Returns None when there are no bars or the range is smaller than one tick.
    """
    if tick_size <= 0:
        raise ValueError("tick_size must be positive")

    highs_arr = np.asarray(highs, dtype=float)
    lows_arr = np.asarray(lows, dtype=float)
    if highs_arr.size == 0 or highs_arr.size != lows_arr.size:
        return None

    session_high = float(highs_arr.max())
    session_low = float(lows_arr.min())

    bin_count = int(math.floor((session_high - session_low) / tick_size))
    if bin_count <= 0:
        return None

    tops = session_high - np.arange(bin_count) * tick_size
    bottoms = tops - tick_size

    # bins x bars overlap matrix
    overlaps = (highs_arr[np.newaxis, :] >= bottoms[:, np.newaxis]) & \
               (lows_arr[np.newaxis, :] <= tops[:, np.newaxis])
    counts = overlaps.sum(axis=1)

    # argmax returns the first maximum: ties favor the higher-priced bin
    best_bin = int(np.argmax(counts))

    return MarketProfile(
        session_high=session_high,
        session_low=session_low,
        tick_size=tick_size,
        bins=counts,
        best_bin=best_bin,
    )


@dataclass
class SessionState:
    """Durable session bookkeeping carried between ticks."""
    session_start_time: Optional[datetime] = None   # Start boundary of the open session
    last_session_poc: Optional[float] = None        # None until a session completes


class MarketProfileEngine:
    """
    Tracks the active session and refreshes the POC at session end.

    The session is anchored on its start boundary timestamp, not on a bar
    index, so the window survives a history that is capped at a fixed
    number of bars.
    """

    def __init__(
        self,
        tick_size: float,
        logger: Optional[logging.Logger] = None,
    ):
        if tick_size <= 0:
            raise ValueError("tick_size must be positive")
        self.tick_size = tick_size
        self.logger = logger or logging.getLogger(__name__)

    def on_session_start(self, state: SessionState, start_time: datetime) -> None:
        """Record the start boundary of a new session."""
        state.session_start_time = start_time
        self.logger.info(f"TPO session started at {start_time}")

    def on_session_end(
        self,
        state: SessionState,
        data: MarketDataSource,
        symbol: str,
        timeframe: str,
        end_time: datetime,
    ) -> Optional[float]:
        """
        Compute the profile of the bars opened in [session_start_time, end_time)
        and overwrite the last session POC.

        The session is closed either way. Guard failures (no session start,
        start bar no longer in history, flat range) leave the POC untouched
        and return None.
        """
        start_time = state.session_start_time
        state.session_start_time = None
        if start_time is None or end_time <= start_time:
            self.logger.debug("TPO update skipped: no session start recorded")
            return None

        try:
            bars = self._fetch_window(data, symbol, timeframe, start_time, end_time)
        except MarketDataError as e:
            self.logger.warning(f"TPO update skipped: {e}")
            return None

        profile = build_profile(
            [b.high for b in bars],
            [b.low for b in bars],
            self.tick_size,
        )
        if profile is None:
            self.logger.debug("TPO update skipped: session range below one tick")
            return None

        state.last_session_poc = profile.poc
        self.logger.info(
            f"TPO Updated: POC={profile.poc:.5f} "
            f"(high={profile.session_high}, low={profile.session_low}, bins={profile.bin_count})"
        )
        return profile.poc

    def _fetch_window(
        self,
        data: MarketDataSource,
        symbol: str,
        timeframe: str,
        start_time: datetime,
        end_time: datetime,
    ) -> List[Bar]:
        """
        Walk back from the newest closed bar until the session start is passed.

        Returns the window oldest-first. The oldest bar in history must lie at
        or before start_time, otherwise part of the session has been dropped.
        """
        total = data.bar_count(symbol, timeframe)
        window = []
        for offset in range(total):
            bar = data.bar_at(symbol, timeframe, offset)
            if bar.timestamp < start_time:
                break
            if bar.timestamp < end_time:
                window.append(bar)
            if bar.timestamp == start_time:
                break
        else:
            raise MarketDataError(f"Session start {start_time} is no longer in history")

        if not window:
            raise MarketDataError(f"No bars between {start_time} and {end_time}")
        window.reverse()
        return window
