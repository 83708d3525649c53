"""
Paper Trading Collaborators

In-memory MarketDataSource / OrderGateway pair for dry runs and tests.

- PaperAccount: balance plus open positions; equity = balance + floating P/L
- PaperMarketData: pandas-backed closed-bar history with a settable quote,
  server time and an optional history cap
- PaperOrderGateway: immediate fills, ticket counter, realized P/L into balance,
  switchable rejections
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

import pandas as pd

from .exceptions import MarketDataError
from .indicators import IndicatorHandle, compute_envelope, compute_trend, validate_indicator
from .interfaces import MarketDataSource, OrderGateway
from .models import Bar, Direction, OrderExecution, OrderResult, Position, SymbolSpec, Tick


BAR_COLUMNS = ["timestamp", "open", "high", "low", "close"]


class PaperAccount:
    """Simulated trading account."""

    def __init__(self, balance: float = 10000.0):
        self.initial_balance = balance
        self.balance = balance
        self.positions: Dict[int, Position] = {}
        self.realized: List[OrderExecution] = []

    @property
    def floating_profit(self) -> float:
        return sum(p.current_profit for p in self.positions.values())

    @property
    def equity(self) -> float:
        return self.balance + self.floating_profit


class PaperMarketData(MarketDataSource):
    """
    Single-symbol closed-bar history.

    Bars are stored oldest-first; `bar_at(0)` is the last row.
    """

    def __init__(
        self,
        account: PaperAccount,
        symbol_spec: Optional[SymbolSpec] = None,
        bars: Optional[pd.DataFrame] = None,
        max_bars: Optional[int] = None,
    ):
        self.account = account
        self.spec = symbol_spec or SymbolSpec(name="XAUUSD", point=0.01, contract_size=100.0)
        self._bars = pd.DataFrame(columns=BAR_COLUMNS) if bars is None else bars[BAR_COLUMNS].reset_index(drop=True)
        self.max_bars = max_bars   # Oldest bars drop off beyond this, like a chart history limit
        self._trim()
        self._tick: Optional[Tick] = None
        self._now: Optional[datetime] = None
        self.fail_account = False
        self.fail_bars = False

    # ------------------------------------------------------------------
    # Feed control
    # ------------------------------------------------------------------

    def append_bar(self, bar: Bar) -> None:
        """Close a new bar."""
        if len(self._bars) and bar.timestamp <= self._bars["timestamp"].iloc[-1]:
            raise ValueError(f"Bar {bar.timestamp} is not newer than the last bar")
        row = pd.DataFrame([[bar.timestamp, bar.open, bar.high, bar.low, bar.close]], columns=BAR_COLUMNS)
        self._bars = row if self._bars.empty else pd.concat([self._bars, row], ignore_index=True)
        self._trim()

    def _trim(self) -> None:
        if self.max_bars is not None and len(self._bars) > self.max_bars:
            self._bars = self._bars.iloc[-self.max_bars:].reset_index(drop=True)

    def set_tick(self, bid: float, ask: float, time: Optional[datetime] = None) -> None:
        self._tick = Tick(time=time or self.server_time(), bid=bid, ask=ask)

    def set_server_time(self, now: Optional[datetime]) -> None:
        """Pin server time; None falls back to the newest bar time."""
        self._now = now

    @property
    def bars(self) -> pd.DataFrame:
        return self._bars

    # ------------------------------------------------------------------
    # MarketDataSource
    # ------------------------------------------------------------------

    def latest_closed_bar(self, symbol: str, timeframe: str) -> Bar:
        return self.bar_at(symbol, timeframe, 0)

    def bar_at(self, symbol: str, timeframe: str, index_from_newest: int) -> Bar:
        if self.fail_bars:
            raise MarketDataError("Bar history unavailable")
        n = len(self._bars)
        if not 0 <= index_from_newest < n:
            raise MarketDataError(f"Bar index {index_from_newest} out of range ({n} bars)")
        row = self._bars.iloc[n - 1 - index_from_newest]
        return Bar(
            timestamp=pd.Timestamp(row["timestamp"]).to_pydatetime(),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
        )

    def bar_count(self, symbol: str, timeframe: str) -> int:
        return len(self._bars)

    def current_balance(self) -> float:
        if self.fail_account:
            raise MarketDataError("Account information unavailable")
        return self.account.balance

    def current_equity(self) -> float:
        if self.fail_account:
            raise MarketDataError("Account information unavailable")
        return self.account.equity

    def create_indicator(
        self,
        symbol: str,
        timeframe: str,
        indicator_id: str,
        params: Dict[str, Any],
    ) -> IndicatorHandle:
        return validate_indicator(indicator_id, params, symbol, timeframe)

    def trend_indicator_value(self, handle: IndicatorHandle) -> float:
        return compute_trend(handle, self._closes())

    def envelope_indicator_values(self, handle: IndicatorHandle) -> Tuple[float, float]:
        return compute_envelope(handle, self._closes())

    def current_tick(self, symbol: str) -> Tick:
        if self._tick is not None:
            return self._tick
        close = self.latest_closed_bar(symbol, "").close
        return Tick(time=self.server_time(), bid=close, ask=close)

    def symbol_spec(self, symbol: str) -> SymbolSpec:
        return self.spec

    def server_time(self) -> datetime:
        if self._now is not None:
            return self._now
        if self._bars.empty:
            raise MarketDataError("No bars loaded")
        return pd.Timestamp(self._bars["timestamp"].iloc[-1]).to_pydatetime()

    def _closes(self) -> pd.Series:
        return self._bars["close"].astype(float)


class PaperOrderGateway(OrderGateway):
    """Immediate-fill simulated gateway."""

    def __init__(
        self,
        account: PaperAccount,
        contract_size: float = 100.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.account = account
        self.contract_size = contract_size
        self.logger = logger or logging.getLogger(__name__)
        self._ticket_counter = 10000

        self.reject_opens = False
        self.reject_closes = False
        self.reject_close_tickets: Set[int] = set()

    def open_position(
        self,
        symbol: str,
        direction: Direction,
        lot_size: float,
        entry_price: float,
        stop_price: Optional[float] = None,
        target_price: Optional[float] = None,
        magic: int = 0,
    ) -> OrderExecution:
        if direction is Direction.NONE or lot_size <= 0 or entry_price <= 0:
            return OrderExecution(
                result=OrderResult.FAILED_INVALID_PARAMS,
                symbol=symbol,
                direction=direction.value,
                error_message="Invalid order parameters",
            )
        if self.reject_opens:
            return OrderExecution(
                result=OrderResult.FAILED_REJECTED,
                symbol=symbol,
                direction=direction.value,
                error_message="Rejected by paper gateway",
            )

        self._ticket_counter += 1
        position = Position(
            ticket=self._ticket_counter,
            symbol=symbol,
            direction=direction,
            lot_size=lot_size,
            entry_price=entry_price,
            target_price=target_price or 0.0,
            current_profit=0.0,
            magic=magic,
            stop_price=stop_price,
        )
        self.account.positions[position.ticket] = position
        self.logger.debug(f"PAPER: opened {direction.value} {lot_size} {symbol} @ {entry_price}")

        return OrderExecution(
            result=OrderResult.SUCCESS,
            ticket=position.ticket,
            symbol=symbol,
            direction=direction.value,
            volume=lot_size,
            price=entry_price,
            stop_loss=stop_price or 0.0,
            take_profit=target_price or 0.0,
        )

    def close_position(self, ticket: int) -> OrderExecution:
        position = self.account.positions.get(ticket)
        if position is None:
            return OrderExecution(
                result=OrderResult.FAILED_NOT_FOUND,
                ticket=ticket,
                error_message=f"Position {ticket} not found",
            )
        if self.reject_closes or ticket in self.reject_close_tickets:
            return OrderExecution(
                result=OrderResult.FAILED_REJECTED,
                ticket=ticket,
                symbol=position.symbol,
                error_message="Rejected by paper gateway",
            )

        del self.account.positions[ticket]
        self.account.balance += position.current_profit
        execution = OrderExecution(
            result=OrderResult.SUCCESS,
            ticket=ticket,
            symbol=position.symbol,
            direction=position.direction.value,
            volume=position.lot_size,
            price=position.entry_price,
            profit=position.current_profit,
        )
        self.account.realized.append(execution)
        return execution

    def open_positions(self, magic: Optional[int] = None) -> List[Position]:
        return [
            p for p in self.account.positions.values()
            if magic is None or p.magic == magic
        ]

    # ------------------------------------------------------------------
    # Simulation helpers
    # ------------------------------------------------------------------

    def set_profit(self, ticket: int, profit: float) -> None:
        """Force a position's floating profit."""
        self.account.positions[ticket] = replace(self.account.positions[ticket], current_profit=profit)

    def mark_to_market(self, tick: Tick) -> None:
        """Revalue every position at the quote (bid for longs, ask for shorts)."""
        for ticket, p in list(self.account.positions.items()):
            exit_price = tick.bid if p.direction is Direction.BUY else tick.ask
            profit = p.direction.profit(p.entry_price, exit_price, p.lot_size * self.contract_size)
            self.account.positions[ticket] = replace(p, current_profit=profit)
