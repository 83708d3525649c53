"""
Tests for the session market profile and POC.
"""

import pytest
import numpy as np
from datetime import datetime, timedelta

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.tpo_engine.market_profile import MarketProfileEngine, SessionState, build_profile
from src.tpo_engine.models import Bar
from src.tpo_engine.paper import PaperAccount, PaperMarketData


class TestBuildProfile:

    def test_reference_session(self):
        """[100,102], [101,103], [99,101] with tick 1.0."""
        profile = build_profile(
            highs=[102, 103, 101],
            lows=[100, 101, 99],
            tick_size=1.0,
        )

        assert profile.session_high == 103
        assert profile.session_low == 99
        assert profile.bin_count == 4
        # Bins: [102,103]=2, [101,102]=3, [100,101]=3, [99,100]=2
        assert list(profile.bins) == [2, 3, 3, 2]
        # Tie between bins 1 and 2 goes to the higher-priced bin
        assert profile.best_bin == 1
        assert profile.poc == pytest.approx(101.5)

    def test_deterministic(self):
        a = build_profile([102, 103, 101], [100, 101, 99], 1.0)
        b = build_profile([102, 103, 101], [100, 101, 99], 1.0)
        assert a.best_bin == b.best_bin
        assert a.poc == b.poc

    def test_range_below_one_tick_gives_no_profile(self):
        assert build_profile([100.5], [100.0], 1.0) is None

    def test_empty_window(self):
        assert build_profile([], [], 1.0) is None

    def test_invalid_tick_size(self):
        with pytest.raises(ValueError):
            build_profile([101], [100], 0.0)

    def test_poc_within_session_range(self):
        rng = np.random.default_rng(7)
        for _ in range(50):
            lows = rng.uniform(1900, 2100, size=rng.integers(1, 40))
            highs = lows + rng.uniform(0, 15, size=lows.size)
            profile = build_profile(highs, lows, 0.25)
            if profile is None:
                continue
            assert profile.session_low <= profile.poc <= profile.session_high


def _feed(bars, max_bars=None):
    account = PaperAccount()
    data = PaperMarketData(account, max_bars=max_bars)
    for b in bars:
        data.append_bar(b)
    return data


class TestMarketProfileEngine:

    SESSION_START = datetime(2024, 3, 5, 0, 0)
    SESSION_END = datetime(2024, 3, 5, 8, 0)

    @pytest.fixture
    def session_bars(self):
        ranges = [(100, 102), (101, 103), (99, 101)]
        bars = [
            Bar(timestamp=self.SESSION_START + i * timedelta(minutes=15), open=lo, high=hi, low=lo, close=hi)
            for i, (lo, hi) in enumerate(ranges)
        ]
        # Bar after the session, excluded from the window
        bars.append(Bar(timestamp=self.SESSION_END, open=200, high=250, low=150, close=200))
        return bars

    def test_session_end_updates_poc(self, session_bars):
        data = _feed(session_bars)
        engine = MarketProfileEngine(tick_size=1.0)
        state = SessionState()

        engine.on_session_start(state, self.SESSION_START)
        poc = engine.on_session_end(state, data, "XAUUSD", "M15", self.SESSION_END)

        assert poc == pytest.approx(101.5)
        assert state.last_session_poc == pytest.approx(101.5)
        assert state.session_start_time is None

    def test_no_session_start_skips_update(self, session_bars):
        data = _feed(session_bars)
        engine = MarketProfileEngine(tick_size=1.0)
        state = SessionState(last_session_poc=2030.0)

        assert engine.on_session_end(state, data, "XAUUSD", "M15", self.SESSION_END) is None
        assert state.last_session_poc == 2030.0

    def test_start_dropped_from_history_skips_update(self, session_bars):
        data = _feed(session_bars, max_bars=3)
        engine = MarketProfileEngine(tick_size=1.0)
        state = SessionState(session_start_time=self.SESSION_START, last_session_poc=2030.0)

        assert engine.on_session_end(state, data, "XAUUSD", "M15", self.SESSION_END) is None
        assert state.last_session_poc == 2030.0
        assert state.session_start_time is None

    def test_window_found_in_capped_history(self, session_bars):
        before = Bar(timestamp=self.SESSION_START - timedelta(minutes=15), open=90, high=91, low=90, close=91)
        data = _feed([before] + session_bars, max_bars=4)
        engine = MarketProfileEngine(tick_size=1.0)
        state = SessionState(session_start_time=self.SESSION_START)

        assert data.bar_count("XAUUSD", "M15") == 4
        assert engine.on_session_end(state, data, "XAUUSD", "M15", self.SESSION_END) == pytest.approx(101.5)

    def test_start_boundary_inside_gap(self, session_bars):
        # Start boundary at 23:00 with no bars until 00:00
        before = Bar(timestamp=datetime(2024, 3, 4, 20, 0), open=90, high=91, low=90, close=91)
        data = _feed([before] + session_bars)
        engine = MarketProfileEngine(tick_size=1.0)
        state = SessionState(session_start_time=datetime(2024, 3, 4, 23, 0))

        assert engine.on_session_end(state, data, "XAUUSD", "M15", self.SESSION_END) == pytest.approx(101.5)

    def test_poc_overwritten_each_session(self, session_bars):
        data = _feed(session_bars)
        engine = MarketProfileEngine(tick_size=1.0)
        state = SessionState(session_start_time=self.SESSION_START, last_session_poc=2030.0)

        engine.on_session_end(state, data, "XAUUSD", "M15", self.SESSION_END)
        assert state.last_session_poc == pytest.approx(101.5)
