"""
Tests for the paper trading collaborators.
"""

import pytest
from datetime import datetime, timedelta

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.tpo_engine.exceptions import MarketDataError
from src.tpo_engine.models import Bar, Direction, OrderResult, Tick
from src.tpo_engine.paper import PaperAccount, PaperMarketData, PaperOrderGateway


T0 = datetime(2024, 3, 5, 0, 0)


def bar(i, close):
    return Bar(timestamp=T0 + i * timedelta(minutes=15), open=close, high=close + 1, low=close - 1, close=close)


@pytest.fixture
def account():
    return PaperAccount(balance=10000.0)


class TestMarketData:

    def test_bar_indexing_newest_first(self, account):
        data = PaperMarketData(account)
        for i, close in enumerate([100.0, 101.0, 102.0]):
            data.append_bar(bar(i, close))

        assert data.bar_count("XAUUSD", "M15") == 3
        assert data.latest_closed_bar("XAUUSD", "M15").close == 102.0
        assert data.bar_at("XAUUSD", "M15", 2).close == 100.0
        assert isinstance(data.bar_at("XAUUSD", "M15", 0).timestamp, datetime)

    def test_out_of_range(self, account):
        data = PaperMarketData(account)
        with pytest.raises(MarketDataError):
            data.latest_closed_bar("XAUUSD", "M15")

    def test_rejects_stale_bar(self, account):
        data = PaperMarketData(account)
        data.append_bar(bar(1, 100.0))
        with pytest.raises(ValueError):
            data.append_bar(bar(0, 100.0))

    def test_history_cap_drops_oldest(self, account):
        data = PaperMarketData(account, max_bars=2)
        for i, close in enumerate([100.0, 101.0, 102.0]):
            data.append_bar(bar(i, close))

        assert data.bar_count("XAUUSD", "M15") == 2
        assert data.bar_at("XAUUSD", "M15", 1).close == 101.0

    def test_bar_failure(self, account):
        data = PaperMarketData(account)
        data.append_bar(bar(0, 100.0))
        data.fail_bars = True
        with pytest.raises(MarketDataError):
            data.latest_closed_bar("XAUUSD", "M15")

    def test_server_time_defaults_to_last_bar(self, account):
        data = PaperMarketData(account)
        data.append_bar(bar(4, 100.0))
        assert data.server_time() == T0 + timedelta(hours=1)

        pinned = T0 + timedelta(hours=5)
        data.set_server_time(pinned)
        assert data.server_time() == pinned

    def test_tick_defaults_to_last_close(self, account):
        data = PaperMarketData(account)
        data.append_bar(bar(0, 2050.0))
        tick = data.current_tick("XAUUSD")
        assert tick.bid == tick.ask == 2050.0

    def test_account_failure(self, account):
        data = PaperMarketData(account)
        data.fail_account = True
        with pytest.raises(MarketDataError):
            data.current_balance()
        with pytest.raises(MarketDataError):
            data.current_equity()

    def test_default_symbol_spec(self, account):
        spec = PaperMarketData(account).symbol_spec("XAUUSD")
        assert spec.point == 0.01
        assert spec.contract_size == 100.0


class TestOrderGateway:

    def test_open_and_close_realizes_profit(self, account):
        gateway = PaperOrderGateway(account)
        execution = gateway.open_position("XAUUSD", Direction.BUY, 0.02, 2050.0, target_price=2051.5, magic=7)

        assert execution.is_success
        assert execution.ticket == 10001
        gateway.set_profit(execution.ticket, 12.5)
        assert account.equity == pytest.approx(10012.5)

        closed = gateway.close_position(execution.ticket)
        assert closed.is_success
        assert closed.profit == pytest.approx(12.5)
        assert account.balance == pytest.approx(10012.5)
        assert account.positions == {}

    def test_invalid_params(self, account):
        gateway = PaperOrderGateway(account)
        execution = gateway.open_position("XAUUSD", Direction.NONE, 0.02, 2050.0)
        assert execution.result == OrderResult.FAILED_INVALID_PARAMS

    def test_rejected_open(self, account):
        gateway = PaperOrderGateway(account)
        gateway.reject_opens = True
        execution = gateway.open_position("XAUUSD", Direction.BUY, 0.02, 2050.0)
        assert execution.result == OrderResult.FAILED_REJECTED
        assert account.positions == {}

    def test_rejected_close_for_one_ticket(self, account):
        gateway = PaperOrderGateway(account)
        kept = gateway.open_position("XAUUSD", Direction.BUY, 0.02, 2050.0).ticket
        other = gateway.open_position("XAUUSD", Direction.BUY, 0.02, 2050.0).ticket
        gateway.reject_close_tickets.add(kept)

        assert gateway.close_position(kept).result == OrderResult.FAILED_REJECTED
        assert gateway.close_position(other).is_success
        assert list(account.positions) == [kept]

    def test_close_unknown_ticket(self, account):
        gateway = PaperOrderGateway(account)
        assert gateway.close_position(99).result == OrderResult.FAILED_NOT_FOUND

    def test_filter_by_magic(self, account):
        gateway = PaperOrderGateway(account)
        gateway.open_position("XAUUSD", Direction.BUY, 0.02, 2050.0, magic=1)
        gateway.open_position("XAUUSD", Direction.SELL, 0.02, 2050.0, magic=2)

        assert len(gateway.open_positions()) == 2
        assert [p.magic for p in gateway.open_positions(magic=2)] == [2]

    def test_mark_to_market(self, account):
        gateway = PaperOrderGateway(account)
        buy = gateway.open_position("XAUUSD", Direction.BUY, 0.02, 2050.0).ticket
        sell = gateway.open_position("XAUUSD", Direction.SELL, 0.02, 2050.0).ticket

        gateway.mark_to_market(Tick(time=T0, bid=2051.0, ask=2051.2))

        assert account.positions[buy].current_profit == pytest.approx(2.0)
        assert account.positions[sell].current_profit == pytest.approx(-2.4)
