"""
Tests for trend and envelope indicators.
"""

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.tpo_engine.exceptions import ConfigurationError, MarketDataError
from src.tpo_engine.indicators import (
    ENVELOPE,
    TREND,
    compute_envelope,
    compute_trend,
    ema,
    nadaraya_watson,
    nadaraya_watson_envelope,
    validate_indicator,
)


@pytest.fixture
def closes():
    np.random.seed(42)
    return pd.Series(2000 + np.cumsum(np.random.randn(300)))


class TestEMA:

    def test_constant_series(self):
        series = pd.Series([2050.0] * 50)
        assert ema(series, 32).iloc[-1] == pytest.approx(2050.0)

    def test_matches_recursive_definition(self):
        series = pd.Series([1.0, 2.0, 3.0, 4.0])
        alpha = 2 / (3 + 1)
        expected = 1.0
        for x in [2.0, 3.0, 4.0]:
            expected = alpha * x + (1 - alpha) * expected
        assert ema(series, 3).iloc[-1] == pytest.approx(expected)


class TestNadarayaWatson:

    def test_constant_series(self):
        series = pd.Series([100.0] * 40)
        est = nadaraya_watson(series, bandwidth=14, lookback=100)
        assert np.allclose(est, 100.0)

    def test_does_not_repaint(self, closes):
        full = nadaraya_watson(closes, 14, 100)
        partial = nadaraya_watson(closes.iloc[:200], 14, 100)
        assert full.iloc[199] == pytest.approx(partial.iloc[-1])

    def test_band_width(self, closes):
        upper, lower = nadaraya_watson_envelope(closes, 14, 0.005)
        est = nadaraya_watson(closes, 14, 100)
        assert upper.iloc[-1] == pytest.approx(est.iloc[-1] * 1.005)
        assert lower.iloc[-1] == pytest.approx(est.iloc[-1] * 0.995)


class TestHandles:

    def test_valid_handles(self):
        trend = validate_indicator("EMA", {"period": 32}, "XAUUSD", "M15")
        env = validate_indicator("NadarayaWatsonEnvelope", {"period": 14, "deviation": 0.005}, "XAUUSD", "M15")
        assert trend.kind == TREND
        assert env.kind == ENVELOPE
        assert trend.min_bars == 32

    def test_unknown_indicator(self):
        with pytest.raises(ConfigurationError):
            validate_indicator("RSI", {"period": 14}, "XAUUSD", "M15")

    def test_missing_param(self):
        with pytest.raises(ConfigurationError):
            validate_indicator("NadarayaWatsonEnvelope", {"period": 14}, "XAUUSD", "M15")

    def test_non_positive_period(self):
        with pytest.raises(ConfigurationError):
            validate_indicator("EMA", {"period": 0}, "XAUUSD", "M15")

    def test_insufficient_history(self):
        handle = validate_indicator("EMA", {"period": 200}, "XAUUSD", "M15")
        with pytest.raises(MarketDataError):
            compute_trend(handle, pd.Series([1.0] * 50))

    def test_kind_mismatch(self, closes):
        handle = validate_indicator("EMA", {"period": 14}, "XAUUSD", "M15")
        with pytest.raises(ConfigurationError):
            compute_envelope(handle, closes)

    def test_compute_values(self, closes):
        trend = validate_indicator("EMA", {"period": 32}, "XAUUSD", "M15")
        env = validate_indicator("NadarayaWatsonEnvelope", {"period": 14, "deviation": 0.005}, "XAUUSD", "M15")
        value = compute_trend(trend, closes)
        upper, lower = compute_envelope(env, closes)
        assert value == pytest.approx(ema(closes, 32).iloc[-1])
        assert upper > lower
