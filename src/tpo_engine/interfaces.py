"""
External Collaborator Interfaces

The engine talks to the outside world only through these two contracts:
- MarketDataSource: closed bars, quotes, account balance/equity, indicators
- OrderGateway: open/close positions, report open positions

Bar indexing is newest-first over CLOSED bars: index 0 is the most recently
closed bar. The in-progress bar is never exposed.

Data sources raise MarketDataError on failure. Gateways report order failures
through OrderExecution results and raise ExecutionError only when the broker
cannot be reached at all.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .indicators import IndicatorHandle
from .models import Bar, Direction, OrderExecution, Position, SymbolSpec, Tick


class MarketDataSource(ABC):
    """Abstract market data and account source."""

    @abstractmethod
    def latest_closed_bar(self, symbol: str, timeframe: str) -> Bar:
        """Most recently closed bar."""
        pass

    @abstractmethod
    def bar_at(self, symbol: str, timeframe: str, index_from_newest: int) -> Bar:
        """Closed bar by newest-first index."""
        pass

    @abstractmethod
    def bar_count(self, symbol: str, timeframe: str) -> int:
        """Number of closed bars available."""
        pass

    @abstractmethod
    def current_balance(self) -> float:
        pass

    @abstractmethod
    def current_equity(self) -> float:
        pass

    @abstractmethod
    def create_indicator(
        self,
        symbol: str,
        timeframe: str,
        indicator_id: str,
        params: Dict[str, Any],
    ) -> IndicatorHandle:
        """Create an indicator handle. Raises ConfigurationError if invalid."""
        pass

    @abstractmethod
    def trend_indicator_value(self, handle: IndicatorHandle) -> float:
        """Trend line value at the newest closed bar."""
        pass

    @abstractmethod
    def envelope_indicator_values(self, handle: IndicatorHandle) -> Tuple[float, float]:
        """(upper, lower) envelope values at the newest closed bar."""
        pass

    @abstractmethod
    def current_tick(self, symbol: str) -> Tick:
        pass

    @abstractmethod
    def symbol_spec(self, symbol: str) -> SymbolSpec:
        pass

    @abstractmethod
    def server_time(self) -> datetime:
        """Broker server time, used for calendar and trading-window rules."""
        pass


class OrderGateway(ABC):
    """Abstract order gateway."""

    @abstractmethod
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
        """Open a market position. Success carries the broker ticket."""
        pass

    @abstractmethod
    def close_position(self, ticket: int) -> OrderExecution:
        """Close a position by ticket."""
        pass

    @abstractmethod
    def open_positions(self, magic: Optional[int] = None) -> List[Position]:
        """Current open positions, optionally filtered by magic tag."""
        pass
