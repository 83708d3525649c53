"""
MetaTrader 5 Adapter

Live MarketDataSource / OrderGateway backed by the MetaTrader5 package.

Bar indexing: copy_rates_from_pos position 0 is the bar still forming, so
closed bar i maps to position i + 1.

Timestamps are broker server time. MT5 encodes them as epoch seconds of the
server wall clock, so they are decoded as naive datetimes.

Orders are market deals without a broker-side stop loss; the engine monitors
losses itself.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

try:
    import MetaTrader5 as mt5
    MT5_AVAILABLE = True
except ImportError:
    MT5_AVAILABLE = False

from config.broker_config import MT5Config

from .config import ExecutionConfig
from .exceptions import ExecutionError, MarketDataError
from .indicators import IndicatorHandle, compute_envelope, compute_trend, validate_indicator
from .interfaces import MarketDataSource, OrderGateway
from .models import Bar, Direction, OrderExecution, OrderResult, Position, SymbolSpec, Tick


# Bars pulled for indicator evaluation (EMA seeds from the oldest bar)
INDICATOR_HISTORY_BARS = 1000


def _server_datetime(epoch_seconds: int) -> datetime:
    return datetime.fromtimestamp(int(epoch_seconds), tz=timezone.utc).replace(tzinfo=None)


def _timeframe(timeframe: str) -> int:
    tf = getattr(mt5, f"TIMEFRAME_{timeframe}", None)
    if tf is None:
        raise MarketDataError(f"Unknown timeframe: {timeframe}")
    return tf


def connect(config: MT5Config, logger: Optional[logging.Logger] = None) -> None:
    """Initialize the terminal connection. Raises ExecutionError on failure."""
    logger = logger or logging.getLogger(__name__)
    if not MT5_AVAILABLE:
        raise ExecutionError("MetaTrader5 package not installed")

    config.validate()
    if not mt5.initialize(**config.initialize_kwargs()):
        raise ExecutionError(f"MT5 initialization failed: {mt5.last_error()}")

    terminal_info = mt5.terminal_info()
    if terminal_info is None:
        raise ExecutionError("Failed to get terminal info")
    logger.info(f"Connected to MT5: {terminal_info.name}")


def disconnect() -> None:
    if MT5_AVAILABLE:
        mt5.shutdown()


class MT5MarketData(MarketDataSource):
    """Market data and account information from the MT5 terminal."""

    def __init__(self, symbol: str, logger: Optional[logging.Logger] = None):
        if not MT5_AVAILABLE:
            raise ExecutionError("MetaTrader5 package not installed")
        self.symbol = symbol
        self.logger = logger or logging.getLogger(__name__)

    def _rates(self, symbol: str, timeframe: str, start_pos: int, count: int):
        rates = mt5.copy_rates_from_pos(symbol, _timeframe(timeframe), start_pos, count)
        if rates is None or len(rates) == 0:
            raise MarketDataError(f"Failed to load {symbol} {timeframe} bars: {mt5.last_error()}")
        return rates

    def latest_closed_bar(self, symbol: str, timeframe: str) -> Bar:
        return self.bar_at(symbol, timeframe, 0)

    def bar_at(self, symbol: str, timeframe: str, index_from_newest: int) -> Bar:
        if index_from_newest < 0:
            raise MarketDataError(f"Negative bar index {index_from_newest}")
        rate = self._rates(symbol, timeframe, index_from_newest + 1, 1)[0]
        return Bar(
            timestamp=_server_datetime(rate['time']),
            open=float(rate['open']),
            high=float(rate['high']),
            low=float(rate['low']),
            close=float(rate['close']),
        )

    def bar_count(self, symbol: str, timeframe: str) -> int:
        total = mt5.bars(symbol, _timeframe(timeframe))
        if total is None:
            raise MarketDataError(f"Failed to count {symbol} bars: {mt5.last_error()}")
        return max(int(total) - 1, 0)

    def _account(self):
        info = mt5.account_info()
        if info is None:
            raise MarketDataError(f"Account info unavailable: {mt5.last_error()}")
        return info

    def current_balance(self) -> float:
        return float(self._account().balance)

    def current_equity(self) -> float:
        return float(self._account().equity)

    def create_indicator(
        self,
        symbol: str,
        timeframe: str,
        indicator_id: str,
        params: Dict[str, Any],
    ) -> IndicatorHandle:
        _timeframe(timeframe)
        if mt5.symbol_info(symbol) is None:
            raise MarketDataError(f"Symbol {symbol} not found")
        return validate_indicator(indicator_id, params, symbol, timeframe)

    def _closes(self, handle: IndicatorHandle) -> pd.Series:
        count = min(
            max(INDICATOR_HISTORY_BARS, handle.min_bars, int(handle.params.get("lookback", 0))),
            self.bar_count(handle.symbol, handle.timeframe),
        )
        if count <= 0:
            raise MarketDataError(f"No closed bars for {handle.symbol}")
        rates = self._rates(handle.symbol, handle.timeframe, 1, count)
        return pd.Series(rates['close'], dtype=float)

    def trend_indicator_value(self, handle: IndicatorHandle) -> float:
        return compute_trend(handle, self._closes(handle))

    def envelope_indicator_values(self, handle: IndicatorHandle) -> Tuple[float, float]:
        return compute_envelope(handle, self._closes(handle))

    def current_tick(self, symbol: str) -> Tick:
        tick = mt5.symbol_info_tick(symbol)
        if tick is None:
            raise MarketDataError(f"No quote for {symbol}: {mt5.last_error()}")
        return Tick(time=_server_datetime(tick.time), bid=float(tick.bid), ask=float(tick.ask))

    def symbol_spec(self, symbol: str) -> SymbolSpec:
        info = mt5.symbol_info(symbol)
        if info is None:
            raise MarketDataError(f"Symbol {symbol} not found")
        if not info.visible and not mt5.symbol_select(symbol, True):
            raise MarketDataError(f"Failed to select symbol {symbol}")
        return SymbolSpec(name=symbol, point=float(info.point), contract_size=float(info.trade_contract_size))

    def server_time(self) -> datetime:
        return self.current_tick(self.symbol).time


class MT5OrderGateway(OrderGateway):
    """Market deal execution on the MT5 terminal."""

    def __init__(self, config: ExecutionConfig, logger: Optional[logging.Logger] = None):
        if not MT5_AVAILABLE:
            raise ExecutionError("MetaTrader5 package not installed")
        self.exec_config = config
        self.logger = logger or logging.getLogger(__name__)

    def _market_price(self, symbol: str, order_type: int) -> float:
        tick = mt5.symbol_info_tick(symbol)
        if tick is None:
            raise ExecutionError(f"No quote for {symbol}")
        return tick.ask if order_type == mt5.ORDER_TYPE_BUY else tick.bid

    def _send_with_retry(self, request: Dict[str, Any]):
        """order_send with retry on requote / no response. Returns the last result."""
        result = None
        for attempt in range(self.exec_config.max_order_retries):
            result = mt5.order_send(request)

            if result is None:
                self.logger.error(f"Order send returned None (attempt {attempt + 1})")
                time.sleep(self.exec_config.retry_delay_seconds)
                continue

            if result.retcode == mt5.TRADE_RETCODE_DONE:
                return result

            if result.retcode == mt5.TRADE_RETCODE_REQUOTE:
                self.logger.warning(f"Requote received (attempt {attempt + 1})")
                request["price"] = self._market_price(request["symbol"], request["type"])
                time.sleep(self.exec_config.retry_delay_seconds)
                continue

            self.logger.error(f"Order failed: {result.retcode}, {result.comment}")
            break
        return result

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
        if direction is Direction.NONE or lot_size <= 0:
            return OrderExecution(
                result=OrderResult.FAILED_INVALID_PARAMS,
                symbol=symbol,
                direction=direction.value,
                error_message="Invalid order parameters",
            )

        order_type = mt5.ORDER_TYPE_BUY if direction is Direction.BUY else mt5.ORDER_TYPE_SELL
        request = {
            "action": mt5.TRADE_ACTION_DEAL,
            "symbol": symbol,
            "volume": lot_size,
            "type": order_type,
            "price": entry_price,
            "sl": stop_price or 0.0,
            "tp": target_price or 0.0,
            "deviation": self.exec_config.slippage_points,
            "magic": magic,
            "comment": self.exec_config.order_comment,
            "type_time": mt5.ORDER_TIME_GTC,
            "type_filling": mt5.ORDER_FILLING_IOC,
        }

        try:
            result = self._send_with_retry(request)
        except ExecutionError as e:
            return OrderExecution(
                result=OrderResult.FAILED_NO_CONNECTION,
                symbol=symbol,
                direction=direction.value,
                error_message=str(e),
            )

        if result is not None and result.retcode == mt5.TRADE_RETCODE_DONE:
            return OrderExecution(
                result=OrderResult.SUCCESS,
                ticket=result.order,
                symbol=symbol,
                direction=direction.value,
                volume=result.volume,
                price=result.price,
                stop_loss=stop_price or 0.0,
                take_profit=target_price or 0.0,
            )

        return OrderExecution(
            result=OrderResult.FAILED_REJECTED,
            symbol=symbol,
            direction=direction.value,
            error_message=f"Retcode: {result.retcode if result else 'None'}",
        )

    def close_position(self, ticket: int) -> OrderExecution:
        position = mt5.positions_get(ticket=ticket)
        if position is None or len(position) == 0:
            return OrderExecution(
                result=OrderResult.FAILED_NOT_FOUND,
                ticket=ticket,
                error_message=f"Position {ticket} not found",
            )

        pos = position[0]
        order_type = mt5.ORDER_TYPE_SELL if pos.type == mt5.POSITION_TYPE_BUY else mt5.ORDER_TYPE_BUY

        try:
            request = {
                "action": mt5.TRADE_ACTION_DEAL,
                "symbol": pos.symbol,
                "volume": pos.volume,
                "type": order_type,
                "position": ticket,
                "price": self._market_price(pos.symbol, order_type),
                "deviation": self.exec_config.slippage_points,
                "magic": pos.magic,
                "comment": "CLOSE",
                "type_time": mt5.ORDER_TIME_GTC,
                "type_filling": mt5.ORDER_FILLING_IOC,
            }
            result = self._send_with_retry(request)
        except ExecutionError as e:
            return OrderExecution(
                result=OrderResult.FAILED_NO_CONNECTION,
                ticket=ticket,
                error_message=str(e),
            )

        if result is None or result.retcode != mt5.TRADE_RETCODE_DONE:
            return OrderExecution(
                result=OrderResult.FAILED_REJECTED,
                ticket=ticket,
                symbol=pos.symbol,
                error_message=f"Close failed: {result.retcode if result else 'None'}",
            )

        return OrderExecution(
            result=OrderResult.SUCCESS,
            ticket=ticket,
            symbol=pos.symbol,
            volume=pos.volume,
            price=result.price,
            profit=pos.profit,
        )

    def open_positions(self, magic: Optional[int] = None) -> List[Position]:
        positions = mt5.positions_get()
        if positions is None:
            raise ExecutionError(f"Failed to list positions: {mt5.last_error()}")

        result = []
        for pos in positions:
            if magic is not None and pos.magic != magic:
                continue
            result.append(Position(
                ticket=pos.ticket,
                symbol=pos.symbol,
                direction=Direction.BUY if pos.type == mt5.POSITION_TYPE_BUY else Direction.SELL,
                lot_size=pos.volume,
                entry_price=pos.price_open,
                target_price=pos.tp,
                current_profit=pos.profit,
                magic=pos.magic,
                stop_price=pos.sl or None,
            ))
        return result
