"""
Tests for session boundary detection.
"""

import pytest
from datetime import datetime, timedelta

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.tpo_engine.config import ProfileConfig
from src.tpo_engine.models import Bar
from src.tpo_engine.session_clock import (
    SessionClock,
    crossed_boundary,
    last_boundary,
    minute_of_day,
)


def bar(ts):
    return Bar(timestamp=ts, open=1.0, high=1.0, low=1.0, close=1.0)


@pytest.fixture
def clock():
    return SessionClock.from_config(ProfileConfig(session="0000-0800"))


class TestCrossedBoundary:

    def test_minute_of_day(self):
        assert minute_of_day(datetime(2024, 3, 5, 8, 0)) == 480
        assert minute_of_day(datetime(2024, 3, 5, 0, 0)) == 0

    def test_bar_landing_on_boundary_crosses(self):
        prev = datetime(2024, 3, 5, 7, 45)
        curr = datetime(2024, 3, 5, 8, 0)
        assert crossed_boundary(prev, curr, 480)

    def test_bar_after_boundary_does_not_cross(self):
        prev = datetime(2024, 3, 5, 8, 0)
        curr = datetime(2024, 3, 5, 8, 15)
        assert not crossed_boundary(prev, curr, 480)

    def test_midnight_boundary(self):
        prev = datetime(2024, 3, 4, 23, 45)
        curr = datetime(2024, 3, 5, 0, 0)
        assert crossed_boundary(prev, curr, 0)

    def test_gap_over_boundary(self):
        prev = datetime(2024, 3, 4, 23, 0)
        curr = datetime(2024, 3, 5, 1, 0)
        assert crossed_boundary(prev, curr, 0)
        assert not crossed_boundary(prev, curr, 180)

    def test_weekend_gap_crosses_every_boundary(self):
        prev = datetime(2024, 3, 8, 21, 45)
        curr = datetime(2024, 3, 11, 1, 0)
        assert crossed_boundary(prev, curr, 0)
        assert crossed_boundary(prev, curr, 480)

    def test_same_or_older_bar_never_crosses(self):
        ts = datetime(2024, 3, 5, 8, 0)
        assert not crossed_boundary(ts, ts, 480)
        assert not crossed_boundary(ts, ts - timedelta(minutes=15), 480)

    def test_last_boundary(self):
        assert last_boundary(datetime(2024, 3, 5, 8, 0), 480) == datetime(2024, 3, 5, 8, 0)
        assert last_boundary(datetime(2024, 3, 5, 7, 45), 480) == datetime(2024, 3, 4, 8, 0)
        assert last_boundary(datetime(2024, 3, 5, 0, 15), 0) == datetime(2024, 3, 5, 0, 0)


class TestSessionClock:

    def test_from_config(self, clock):
        assert clock.start_minute == 0
        assert clock.end_minute == 480

    def test_start_detected_once_per_day(self, clock):
        start = datetime(2024, 3, 4, 22, 0)
        bars = [bar(start + i * timedelta(minutes=15)) for i in range(96)]

        starts = [i for i in range(1, len(bars)) if clock.is_session_start(bars[i - 1], bars[i])]
        ends = [i for i in range(1, len(bars)) if clock.is_session_end(bars[i - 1], bars[i])]

        assert [bars[i].timestamp for i in starts] == [datetime(2024, 3, 5, 0, 0)]
        assert [bars[i].timestamp for i in ends] == [datetime(2024, 3, 5, 8, 0)]

    def test_repeated_evaluation_of_same_bar_does_not_retrigger(self, clock):
        b = bar(datetime(2024, 3, 5, 0, 0))
        assert not clock.is_session_start(b, b)

    def test_transition_from_last_evaluated_bar(self, clock):
        # 08:00 bar never evaluated; the 07:45 -> 08:15 step still ends the session
        prev = datetime(2024, 3, 5, 7, 45)
        curr = datetime(2024, 3, 5, 8, 15)

        assert clock.crossed_end(prev, curr)
        assert not clock.crossed_start(prev, curr)
        assert clock.last_end(curr) == datetime(2024, 3, 5, 8, 0)
        assert clock.last_start(curr) == datetime(2024, 3, 5, 0, 0)
