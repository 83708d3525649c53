"""
Domain Types

Value objects exchanged between the engine and its collaborators.
Positions are snapshots: they are fetched fresh from the gateway every
tick and never held across ticks.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class Direction(Enum):
    """Signal / position direction."""
    BUY = "BUY"
    SELL = "SELL"
    NONE = "NONE"

    @property
    def sign(self) -> int:
        """+1 for BUY, -1 for SELL, 0 for NONE."""
        return _DIRECTION_SIGN[self]

    def entry_price(self, tick: "Tick") -> float:
        """Market entry price: ask for BUY, bid for SELL."""
        if self is Direction.BUY:
            return tick.ask
        if self is Direction.SELL:
            return tick.bid
        raise ValueError("No entry price for Direction.NONE")

    def offset_price(self, price: float, distance: float) -> float:
        """Move a price `distance` in the profitable direction."""
        return price + self.sign * distance

    def profit(self, entry_price: float, exit_price: float, volume: float) -> float:
        """Profit in account currency for `volume` units (lots × contract size)."""
        return self.sign * (exit_price - entry_price) * volume


_DIRECTION_SIGN = {
    Direction.BUY: 1,
    Direction.SELL: -1,
    Direction.NONE: 0,
}


@dataclass(frozen=True)
class Bar:
    """Closed OHLC bar. `timestamp` is the bar open time."""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float


@dataclass(frozen=True)
class Tick:
    """Current quote."""
    time: datetime
    bid: float
    ask: float


@dataclass(frozen=True)
class SymbolSpec:
    """Instrument specification."""
    name: str
    point: float            # Minimal price increment
    contract_size: float    # Units per lot (100 oz for XAUUSD)


@dataclass(frozen=True)
class Position:
    """Open position snapshot as reported by the order gateway."""
    ticket: int
    symbol: str
    direction: Direction
    lot_size: float
    entry_price: float
    target_price: float
    current_profit: float
    magic: int
    stop_price: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "ticket": self.ticket,
            "symbol": self.symbol,
            "direction": self.direction.value,
            "lot_size": self.lot_size,
            "entry_price": self.entry_price,
            "target_price": self.target_price,
            "current_profit": self.current_profit,
            "magic": self.magic,
        }


class OrderResult(Enum):
    """Order execution result."""
    SUCCESS = "SUCCESS"
    FAILED_NO_CONNECTION = "FAILED_NO_CONNECTION"
    FAILED_INVALID_PARAMS = "FAILED_INVALID_PARAMS"
    FAILED_REJECTED = "FAILED_REJECTED"
    FAILED_NOT_FOUND = "FAILED_NOT_FOUND"


@dataclass
class OrderExecution:
    """Order execution result details."""
    result: OrderResult
    ticket: Optional[int] = None
    symbol: str = ""
    direction: str = ""
    volume: float = 0.0
    price: float = 0.0
    stop_loss: float = 0.0
    take_profit: float = 0.0
    profit: float = 0.0
    timestamp: Optional[datetime] = None
    error_message: Optional[str] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc)

    @property
    def is_success(self) -> bool:
        return self.result == OrderResult.SUCCESS

    def to_dict(self) -> dict:
        return {
            "result": self.result.value,
            "ticket": self.ticket,
            "symbol": self.symbol,
            "direction": self.direction,
            "volume": self.volume,
            "price": self.price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "profit": self.profit,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "error": self.error_message,
        }
