"""
Tests for the trend/envelope signal generator and POC filter.
"""

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.tpo_engine.models import Direction
from src.tpo_engine.signal_engine import SignalGenerator, SignalInputs


def inputs(close=2050.0, fast=2040.0, slow=2000.0, upper=2045.0, lower=2035.0, poc=2030.0):
    return SignalInputs(
        close=close,
        fast_trend=fast,
        slow_trend=slow,
        envelope_upper=upper,
        envelope_lower=lower,
        poc=poc,
    )


@pytest.fixture
def generator():
    return SignalGenerator()


class TestRawSignal:

    def test_buy(self, generator):
        assert generator.raw_signal(inputs()) is Direction.BUY

    def test_sell(self, generator):
        s = inputs(close=1990.0, fast=2000.0, slow=2010.0, upper=2005.0, lower=1995.0)
        assert generator.raw_signal(s) is Direction.SELL

    def test_inside_envelope_is_none(self, generator):
        assert generator.raw_signal(inputs(close=2044.0, fast=2040.0)) is Direction.NONE

    def test_mixed_trends_is_none(self, generator):
        assert generator.raw_signal(inputs(slow=2060.0)) is Direction.NONE

    def test_buy_checked_first(self, generator):
        # Degenerate envelope where both rules could match is resolved as BUY
        s = inputs(close=2050.0, fast=2040.0, slow=2040.0, upper=2045.0, lower=2060.0)
        assert generator.raw_signal(s) is Direction.BUY


class TestPocFilter:

    def test_buy_above_poc_accepted(self, generator):
        assert generator.evaluate(inputs(poc=2030.0)) is Direction.BUY

    def test_buy_below_poc_discarded(self, generator):
        assert generator.evaluate(inputs(poc=2060.0)) is Direction.NONE

    def test_buy_at_poc_accepted(self, generator):
        assert generator.evaluate(inputs(poc=2050.0)) is Direction.BUY

    def test_sell_above_poc_discarded(self, generator):
        s = inputs(close=1990.0, fast=2000.0, slow=2010.0, upper=2005.0, lower=1995.0, poc=1980.0)
        assert generator.evaluate(s) is Direction.NONE

    def test_sell_below_poc_accepted(self, generator):
        s = inputs(close=1990.0, fast=2000.0, slow=2010.0, upper=2005.0, lower=1995.0, poc=2000.0)
        assert generator.evaluate(s) is Direction.SELL

    def test_cold_start_discards_everything(self, generator):
        assert generator.evaluate(inputs(poc=None)) is Direction.NONE

    def test_side_effect_free(self, generator):
        s = inputs()
        assert generator.evaluate(s) is generator.evaluate(s)
