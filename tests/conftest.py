"""
Shared fixtures for the TPO engine tests.
"""

import pytest
import pandas as pd
from datetime import datetime, timedelta

import sys
from pathlib import Path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.tpo_engine.config import SystemConfig, PathConfig
from src.tpo_engine.engine import TradingEngine
from src.tpo_engine.exceptions import MarketDataError
from src.tpo_engine.models import Bar, SymbolSpec
from src.tpo_engine.paper import PaperAccount, PaperMarketData, PaperOrderGateway


M15 = timedelta(minutes=15)

# Tuesday, inside the trading window
START_TIME = datetime(2024, 3, 5, 3, 0)


class FixedIndicatorData(PaperMarketData):
    """Paper data source whose indicator values are set by the test."""

    def __init__(self, account, fast=2040.0, slow=2000.0, upper=2045.0, lower=2035.0, **kwargs):
        super().__init__(account, **kwargs)
        self.fast = fast
        self.slow = slow
        self.upper = upper
        self.lower = lower

    def trend_indicator_value(self, handle):
        self._require_bars(handle)
        return self.fast if handle.params["period"] == 32 else self.slow

    def envelope_indicator_values(self, handle):
        self._require_bars(handle)
        return self.upper, self.lower

    def _require_bars(self, handle):
        # Same history check as the real indicators
        if len(self.bars) < handle.min_bars:
            raise MarketDataError("Insufficient bars")


def make_bar(timestamp, close=2050.0, depth=2.0):
    """Bar whose high is its close; session profiles of such bars put the POC just below close."""
    return Bar(timestamp=timestamp, open=close, high=close, low=close - depth, close=close)


def history_frame(end_time, count=250, close=2050.0):
    """`count` M15 bars ending at end_time (bar open times)."""
    bars = [make_bar(end_time - (count - 1 - i) * M15, close) for i in range(count)]
    return pd.DataFrame({
        "timestamp": [b.timestamp for b in bars],
        "open": [b.open for b in bars],
        "high": [b.high for b in bars],
        "low": [b.low for b in bars],
        "close": [b.close for b in bars],
    })


@pytest.fixture
def config(tmp_path):
    """Default configuration with logs under tmp_path."""
    return SystemConfig(paths=PathConfig(base_dir=tmp_path / "engine_data"))


@pytest.fixture
def account():
    return PaperAccount(balance=10000.0)


@pytest.fixture
def spec():
    return SymbolSpec(name="XAUUSD", point=0.01, contract_size=100.0)


@pytest.fixture
def data(account, spec):
    """Fixed-indicator data source with 250 bars ending at START_TIME."""
    source = FixedIndicatorData(account, symbol_spec=spec, bars=history_frame(START_TIME))
    source.set_server_time(START_TIME + M15)
    source.set_tick(bid=2049.9, ask=2050.1)
    return source


@pytest.fixture
def gateway(account, spec):
    return PaperOrderGateway(account, contract_size=spec.contract_size)


@pytest.fixture
def engine(config, data, gateway):
    return TradingEngine(config, data, gateway)


@pytest.fixture
def advance():
    """Close a new bar at `timestamp` and move server time to its close."""
    def _advance(source, timestamp, close=2050.0):
        source.append_bar(make_bar(timestamp, close))
        source.set_server_time(timestamp + M15)
        source.set_tick(bid=close - 0.1, ask=close + 0.1)
    return _advance
