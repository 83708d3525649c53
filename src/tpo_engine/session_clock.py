"""
Session Clock

Detects market-profile session boundaries from closed bar timestamps.

A boundary is a minute-of-day (00:00 = 0, 08:00 = 480). It is crossed by the
transition prev_bar -> curr_bar when some instant t with
prev_bar.timestamp < t <= curr_bar.timestamp falls on that minute-of-day.
Crossing is computed on full timestamps, so a boundary at midnight and gaps
spanning several days are handled the same way as any other boundary.

CALLER CONTRACT:
The clock is pure. Each closed bar must be observed once; the engine guards
this by comparing the newest closed bar timestamp against the last one it
evaluated (EngineState.last_bar_time) and skipping repeats. The transition it
feeds to the clock runs from that last evaluated bar, so a boundary bar that
could not be fetched is still seen on the next successful bar.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from .config import ProfileConfig
from .models import Bar


def minute_of_day(ts: datetime) -> int:
    """Minutes since midnight of a timestamp."""
    return ts.hour * 60 + ts.minute


def last_boundary(ts: datetime, boundary_minute: int) -> datetime:
    """Most recent instant at or before ts that falls on the boundary minute-of-day."""
    boundary = ts.replace(
        hour=boundary_minute // 60,
        minute=boundary_minute % 60,
        second=0,
        microsecond=0,
    )
    if boundary > ts:
        boundary -= timedelta(days=1)
    return boundary


def crossed_boundary(prev_ts: datetime, curr_ts: datetime, boundary_minute: int) -> bool:
    """True if the boundary minute-of-day lies in (prev_ts, curr_ts]."""
    if curr_ts <= prev_ts:
        return False
    return prev_ts < last_boundary(curr_ts, boundary_minute)


def is_session_start(prev_bar: Bar, curr_bar: Bar, start_minute: int) -> bool:
    """True exactly at the bar transition crossing the session start."""
    return crossed_boundary(prev_bar.timestamp, curr_bar.timestamp, start_minute)


def is_session_end(prev_bar: Bar, curr_bar: Bar, end_minute: int) -> bool:
    """True exactly at the bar transition crossing the session end."""
    return crossed_boundary(prev_bar.timestamp, curr_bar.timestamp, end_minute)


@dataclass(frozen=True)
class SessionClock:
    """Session boundary detector bound to configured start/end minutes."""
    start_minute: int
    end_minute: int

    @classmethod
    def from_config(cls, config: ProfileConfig) -> "SessionClock":
        return cls(start_minute=config.start_minute, end_minute=config.end_minute)

    def is_session_start(self, prev_bar: Bar, curr_bar: Bar) -> bool:
        return is_session_start(prev_bar, curr_bar, self.start_minute)

    def is_session_end(self, prev_bar: Bar, curr_bar: Bar) -> bool:
        return is_session_end(prev_bar, curr_bar, self.end_minute)

    def crossed_start(self, prev_ts: datetime, curr_ts: datetime) -> bool:
        return crossed_boundary(prev_ts, curr_ts, self.start_minute)

    def crossed_end(self, prev_ts: datetime, curr_ts: datetime) -> bool:
        return crossed_boundary(prev_ts, curr_ts, self.end_minute)

    def last_end(self, ts: datetime) -> datetime:
        """Most recent session end instant at or before ts."""
        return last_boundary(ts, self.end_minute)

    def last_start(self, ts: datetime) -> datetime:
        """Most recent session start instant at or before ts."""
        return last_boundary(ts, self.start_minute)
