"""
Trading Engine - Per-Bar Decision Pipeline

Evaluates the strategy once per newly closed bar:

1. New-bar guard (EngineState.last_bar_time)
2. Session clock -> market profile update at session end
3. Risk governor: temporary halt, trading window, day/month rollover,
   equity floor, high water mark, fixed stop-loss breach
4. Position manager: close tagged positions at the profit target
5. New trade gate
6. Signal generator (trend + envelope + POC filter)
7. Order gateway: open the position

State is explicit: everything that survives between bars lives in the
EngineState returned by initialize() and passed into every on_bar() call.

on_bar() never raises for data or execution failures; each call site logs
the failure and the bar degrades to a no-op. Only initialization errors
(ConfigurationError) are fatal.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .config import SystemConfig
from .exceptions import ConfigurationError, EngineError, MarketDataError
from .indicators import IndicatorHandle
from .interfaces import MarketDataSource, OrderGateway
from .logging_module import TradeLogger
from .market_profile import MarketProfileEngine, SessionState
from .models import Bar, Direction, Position
from .position_manager import PositionManager
from .risk_engine import GovernorState, RiskGovernor, RiskState, TradePermission
from .session_clock import SessionClock
from .signal_engine import SignalGenerator, SignalInputs


FAST_TREND = "fast_trend"
SLOW_TREND = "slow_trend"
ENVELOPE = "envelope"


class TickOutcome(Enum):
    """What a single on_bar() evaluation ended with."""
    SKIPPED_SAME_BAR = "SKIPPED_SAME_BAR"
    HALTED = "HALTED"
    OUTSIDE_WINDOW = "OUTSIDE_WINDOW"
    EQUITY_HALTED = "EQUITY_HALTED"
    STOP_LOSS_HALT = "STOP_LOSS_HALT"
    DATA_ERROR = "DATA_ERROR"
    BLOCKED = "BLOCKED"
    NO_SIGNAL = "NO_SIGNAL"
    TRADE_OPENED = "TRADE_OPENED"
    ORDER_FAILED = "ORDER_FAILED"


@dataclass
class TickReport:
    """Observable result of one evaluation."""
    timestamp: Optional[datetime]
    outcome: TickOutcome = TickOutcome.NO_SIGNAL
    governor_state: Optional[GovernorState] = None
    signal: Direction = Direction.NONE
    permission: Optional[TradePermission] = None
    closed_tickets: List[int] = field(default_factory=list)
    opened_ticket: Optional[int] = None
    poc_updated: Optional[float] = None
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "outcome": self.outcome.value,
            "governor_state": self.governor_state.value if self.governor_state else None,
            "signal": self.signal.value,
            "permission": self.permission.value if self.permission else None,
            "closed_tickets": list(self.closed_tickets),
            "opened_ticket": self.opened_ticket,
            "poc_updated": self.poc_updated,
            "message": self.message,
        }


@dataclass
class EngineState:
    """All state carried between bars. Owned by the host driver."""
    risk: RiskState
    session: SessionState = field(default_factory=SessionState)
    handles: Dict[str, IndicatorHandle] = field(default_factory=dict)
    tick_size: float = 0.0
    last_bar_time: Optional[datetime] = None
    bars_processed: int = 0
    restarts: int = 0


class TradingEngine:
    """
    Strategy engine bound to one symbol/timeframe.

    The engine itself holds configuration and collaborators only.
    """

    def __init__(
        self,
        config: SystemConfig,
        data: MarketDataSource,
        gateway: OrderGateway,
        logger: Optional[logging.Logger] = None,
        trade_logger: Optional[TradeLogger] = None,
    ):
        ok, errors = config.validate()
        if not ok:
            raise ConfigurationError("Invalid configuration: " + "; ".join(errors))

        self.config = config
        self.data = data
        self.gateway = gateway
        self.logger = logger or logging.getLogger(__name__)
        self.trade_logger = trade_logger

        self.symbol = config.strategy.symbol
        self.timeframe = config.strategy.timeframe
        self.magic = config.execution.magic_number

        self.clock = SessionClock.from_config(config.profile)
        self.signals = SignalGenerator(self.logger)
        self.governor = RiskGovernor(config.risk, self.logger)
        self.position_manager = PositionManager(config.execution, gateway, self.logger, trade_logger)
        self.profile_engine: Optional[MarketProfileEngine] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> EngineState:
        """
        Validate indicators, derive the TPO tick size and seed risk state.

        Raises ConfigurationError if the engine cannot start.
        """
        self.logger.info("=" * 60)
        self.logger.info(f"TPO ENGINE - {self.symbol} {self.timeframe}")
        self.logger.info("=" * 60)

        handles = self._create_handles()

        try:
            spec = self.data.symbol_spec(self.symbol)
            balance = self.data.current_balance()
            now = self.data.server_time()
        except MarketDataError as e:
            raise ConfigurationError(f"Initialization failed: {e}") from e

        tick_size = self.config.profile.tpo_ticks * spec.point
        if tick_size <= 0:
            raise ConfigurationError(f"Invalid TPO tick size {tick_size} (point={spec.point})")
        self.profile_engine = MarketProfileEngine(tick_size, self.logger)

        risk = self.governor.create_state(balance, now)

        self.logger.info(f"Account balance: ${balance:,.2f}")
        self.logger.info(f"TPO session {self.config.profile.session}, tick size {tick_size}")
        self.logger.info(self.governor.describe_stop_loss_policy())
        self.logger.info(f"Lot size: {self.config.execution.lot_size}, "
                         f"daily trade limit: {self.config.risk.daily_trade_limit}, "
                         f"daily max profit: ${self.config.risk.daily_max_profit}")

        return EngineState(risk=risk, handles=handles, tick_size=tick_size)

    def reinitialize(self, state: EngineState) -> None:
        """
        Rebuild indicator handles after a stop-loss halt.

        Risk counters, halts, the equity high water mark and the session POC
        are preserved.
        """
        state.handles = self._create_handles()
        state.risk.pending_restart = False
        state.restarts += 1
        self.logger.info(f"Engine restarted. Current stop losses this month: "
                         f"{state.risk.stop_losses_this_month}")

    def _create_handles(self) -> Dict[str, IndicatorHandle]:
        strategy = self.config.strategy
        specs = {
            FAST_TREND: (strategy.trend_indicator, strategy.fast_trend_params()),
            SLOW_TREND: (strategy.trend_indicator, strategy.slow_trend_params()),
            ENVELOPE: (strategy.envelope_indicator, strategy.envelope_params()),
        }
        handles = {}
        for name, (indicator_id, params) in specs.items():
            try:
                handles[name] = self.data.create_indicator(self.symbol, self.timeframe, indicator_id, params)
            except MarketDataError as e:
                raise ConfigurationError(f"Failed to create {name} indicator: {e}") from e
        return handles

    # ------------------------------------------------------------------
    # Per-bar evaluation
    # ------------------------------------------------------------------

    def on_bar(self, state: EngineState, now: Optional[datetime] = None) -> TickReport:
        """Evaluate the newest closed bar. Never raises for data/execution failures."""
        try:
            latest = self.data.latest_closed_bar(self.symbol, self.timeframe)
        except MarketDataError as e:
            self.logger.warning(f"Failed to fetch latest bar: {e}")
            return self._bookkeeping_only(state, now, str(e))

        if state.last_bar_time is not None and latest.timestamp <= state.last_bar_time:
            return TickReport(timestamp=latest.timestamp, outcome=TickOutcome.SKIPPED_SAME_BAR)

        prev_time = state.last_bar_time
        state.last_bar_time = latest.timestamp
        state.bars_processed += 1
        report = TickReport(timestamp=latest.timestamp)

        report.poc_updated = self._track_session(state, prev_time, latest)

        if now is None:
            now = self._server_time(latest)
        risk = state.risk
        self._retry_force_close(state, report)

        # Step 1: temporary stop-loss halt
        if self.governor.is_temporarily_halted(risk, now):
            return self._finish(report, TickOutcome.HALTED, state, now)

        # Step 2: trading window
        if not self.governor.is_within_trading_window(now):
            return self._finish(report, TickOutcome.OUTSIDE_WINDOW, state, now)

        # Steps 3-4: calendar rollovers
        balance, equity = self._account_snapshot()
        self.governor.roll_calendar(risk, now, balance)

        # Steps 5-6: equity floor and high water mark
        if self._enforce_equity_floor(state, equity, report):
            return self._finish(report, TickOutcome.EQUITY_HALTED, state, now)

        positions = self._fetch_positions()
        if positions is None:
            return self._finish(report, TickOutcome.DATA_ERROR, state, now, "positions unavailable")

        # Step 7: fixed stop loss
        breach = self.governor.find_stop_loss_breach(risk, now, positions, self.magic)
        if breach is not None:
            all_closed, closed = self.position_manager.close_all(positions, "STOP_LOSS")
            report.closed_tickets.extend(closed)
            if breach.ticket not in closed:
                return self._finish(report, TickOutcome.ORDER_FAILED, state, now,
                                    "stop-loss close failed, retrying next bar")
            # The loss is realized once the breaching position is closed
            self.governor.record_stop_loss(risk, now)
            if not all_closed:
                risk.pending_force_close = True
                return self._finish(report, TickOutcome.STOP_LOSS_HALT, state, now,
                                    "some stop-loss closes failed, retrying next bar")
            return self._finish(report, TickOutcome.STOP_LOSS_HALT, state, now)

        # Profit targets
        closed = self.position_manager.manage(positions, balance)
        if closed:
            report.closed_tickets.extend(closed)
            positions = self._fetch_positions()
            if positions is None:
                return self._finish(report, TickOutcome.DATA_ERROR, state, now, "positions unavailable")

        # Step 8: new trade gate
        report.permission = self.governor.can_open_trade(risk, now, len(positions), balance)
        if report.permission != TradePermission.ALLOWED:
            return self._finish(report, TickOutcome.BLOCKED, state, now)

        inputs = self._collect_signal_inputs(state, latest)
        if inputs is None:
            return self._finish(report, TickOutcome.DATA_ERROR, state, now, "indicator data unavailable")

        report.signal = self.signals.evaluate(inputs)
        if report.signal is Direction.NONE:
            return self._finish(report, TickOutcome.NO_SIGNAL, state, now)

        if self.trade_logger:
            self.trade_logger.log_signal(report.signal, inputs, self.symbol, latest.timestamp)

        return self._open_trade(state, report, now)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _finish(
        self,
        report: TickReport,
        outcome: TickOutcome,
        state: EngineState,
        now: datetime,
        message: str = "",
    ) -> TickReport:
        report.outcome = outcome
        report.governor_state = self.governor.governor_state(state.risk, now)
        if message:
            report.message = message
        return report

    def _server_time(self, latest: Bar) -> datetime:
        try:
            return self.data.server_time()
        except MarketDataError as e:
            self.logger.warning(f"Server time unavailable, using bar time: {e}")
            return latest.timestamp

    def _bookkeeping_only(self, state: EngineState, now: Optional[datetime], message: str) -> TickReport:
        """Keep rollovers and the equity floor running when bar data is unavailable."""
        report = TickReport(timestamp=None, outcome=TickOutcome.DATA_ERROR, message=message)
        if now is None:
            try:
                now = self.data.server_time()
            except MarketDataError:
                return report

        self._retry_force_close(state, report)
        if self.governor.is_temporarily_halted(state.risk, now):
            return self._finish(report, TickOutcome.HALTED, state, now, message)

        balance, equity = self._account_snapshot()
        self.governor.roll_calendar(state.risk, now, balance)
        if self._enforce_equity_floor(state, equity, report):
            return self._finish(report, TickOutcome.EQUITY_HALTED, state, now, message)
        return self._finish(report, TickOutcome.DATA_ERROR, state, now, message)

    def _track_session(self, state: EngineState, prev_time: Optional[datetime], latest: Bar) -> Optional[float]:
        """
        Feed the transition from the last evaluated bar to the session clock.

        Returns a new POC if one was computed.
        """
        if prev_time is None:
            try:
                prev_time = self.data.bar_at(self.symbol, self.timeframe, 1).timestamp
            except MarketDataError as e:
                self.logger.debug(f"Session tracking skipped: {e}")
                return None

        if self.profile_engine is None:
            self.profile_engine = MarketProfileEngine(state.tick_size, self.logger)

        poc = None
        # End before start: a gap crossing both closes the old session first
        if self.clock.crossed_end(prev_time, latest.timestamp):
            poc = self.profile_engine.on_session_end(
                state.session, self.data, self.symbol, self.timeframe,
                self.clock.last_end(latest.timestamp),
            )
        if self.clock.crossed_start(prev_time, latest.timestamp):
            self.profile_engine.on_session_start(state.session, self.clock.last_start(latest.timestamp))
        return poc

    def _account_snapshot(self) -> Tuple[Optional[float], Optional[float]]:
        try:
            return self.data.current_balance(), self.data.current_equity()
        except MarketDataError as e:
            self.logger.warning(f"Account snapshot unavailable: {e}")
            return None, None

    def _fetch_positions(self) -> Optional[List[Position]]:
        try:
            return self.gateway.open_positions()
        except EngineError as e:
            self.logger.error(f"Failed to fetch open positions: {e}")
            return None

    def _enforce_equity_floor(
        self,
        state: EngineState,
        equity: Optional[float],
        report: TickReport,
    ) -> bool:
        """True while equity halted. Closes every position, retrying on later bars."""
        if not self.governor.check_equity(state.risk, equity):
            return False

        positions = self._fetch_positions()
        if positions:
            all_closed, closed = self.position_manager.close_all(positions, "EQUITY_HALT")
            report.closed_tickets.extend(closed)
            if not all_closed:
                self.logger.error("Equity halt: some positions failed to close, retrying next bar")
        return True

    def _retry_force_close(self, state: EngineState, report: TickReport) -> None:
        """Keep closing positions left open by a stop loss, halted or not."""
        if not state.risk.pending_force_close:
            return

        positions = self._fetch_positions()
        if positions is None:
            return
        all_closed, closed = self.position_manager.close_all(positions, "STOP_LOSS")
        report.closed_tickets.extend(closed)
        if all_closed:
            state.risk.pending_force_close = False
            self.logger.info("Stop-loss force close complete")
        else:
            self.logger.error("Stop loss: some positions failed to close, retrying next bar")

    def _collect_signal_inputs(self, state: EngineState, latest: Bar) -> Optional[SignalInputs]:
        try:
            bars = self.data.bar_count(self.symbol, self.timeframe)
            if bars < self.config.strategy.min_history_bars:
                self.logger.debug(f"Not enough bars: {bars} < {self.config.strategy.min_history_bars}")
                return None
            fast = self.data.trend_indicator_value(state.handles[FAST_TREND])
            slow = self.data.trend_indicator_value(state.handles[SLOW_TREND])
            upper, lower = self.data.envelope_indicator_values(state.handles[ENVELOPE])
        except MarketDataError as e:
            self.logger.warning(f"Failed to read indicators: {e}")
            return None

        return SignalInputs(
            close=latest.close,
            fast_trend=fast,
            slow_trend=slow,
            envelope_upper=upper,
            envelope_lower=lower,
            poc=state.session.last_session_poc,
        )

    def _open_trade(self, state: EngineState, report: TickReport, now: datetime) -> TickReport:
        direction = report.signal
        try:
            tick = self.data.current_tick(self.symbol)
            spec = self.data.symbol_spec(self.symbol)
        except MarketDataError as e:
            self.logger.warning(f"Quote unavailable, trade skipped: {e}")
            return self._finish(report, TickOutcome.DATA_ERROR, state, now, str(e))

        lot_size = self.config.execution.lot_size
        entry_price = direction.entry_price(tick)
        target_price = self.position_manager.initial_target_price(
            direction, entry_price, state.risk.trades_opened_today, spec.contract_size
        )

        try:
            execution = self.gateway.open_position(
                self.symbol,
                direction,
                lot_size,
                entry_price,
                stop_price=None,
                target_price=target_price,
                magic=self.magic,
            )
        except EngineError as e:
            self.logger.error(f"Order gateway unavailable: {e}")
            return self._finish(report, TickOutcome.ORDER_FAILED, state, now, str(e))

        if self.trade_logger:
            self.trade_logger.log_execution(execution)

        if not execution.is_success:
            self.logger.error(f"Failed to open {direction.value} position: {execution.error_message}")
            return self._finish(report, TickOutcome.ORDER_FAILED, state, now, execution.error_message or "")

        self.governor.record_trade_opened(state.risk)
        report.opened_ticket = execution.ticket
        self.logger.info(
            f"Trade opened: {direction.value} #{execution.ticket} {lot_size} {self.symbol} "
            f"@ {entry_price:.2f}, target {target_price:.2f} "
            f"(trade {state.risk.trades_opened_today}/{self.config.risk.daily_trade_limit} today)"
        )
        return self._finish(report, TickOutcome.TRADE_OPENED, state, now)
