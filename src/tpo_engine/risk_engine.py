"""
Risk Engine - Multi-Stage Halt Governor

CRITICAL COMPONENT - Decides whether the engine may trade at all.

States (derived from RiskState):
    ACTIVE             - Trading allowed, subject to daily gates
    SL_HALTED_TEMP     - Fixed stop loss hit; halted until halt_until
    SL_HALTED_MONTHLY  - Monthly stop-loss quota used up; halted until month rollover
    EQUITY_HALTED      - Equity fell below the drawdown floor; terminal for the process

Evaluation order per tick (the engine calls these in sequence):
    1. Temporary halt          -> skip the tick
    2. Trading window          -> skip the tick
    3. Day rollover            -> reset daily balance and trade count
    4. Month rollover          -> reset stop-loss count
    5. Equity drawdown         -> permanent halt, close everything
    6. High water mark update
    7. Fixed stop-loss breach  -> close everything, halt, maybe monthly halt
    8. New trade gate

The governor only changes state on confirmed facts: a trade is counted when
its open filled, a stop loss when the forced closes filled. Failed broker
calls leave every counter untouched.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .config import RiskConfig
from .models import Position


class GovernorState(Enum):
    """Risk governor states."""
    ACTIVE = "ACTIVE"
    SL_HALTED_TEMP = "SL_HALTED_TEMP"
    SL_HALTED_MONTHLY = "SL_HALTED_MONTHLY"
    EQUITY_HALTED = "EQUITY_HALTED"


class TradePermission(Enum):
    """Trade permission result."""
    ALLOWED = "ALLOWED"
    BLOCKED_EQUITY_HALT = "BLOCKED_EQUITY_HALT"
    BLOCKED_HALTED = "BLOCKED_HALTED"
    BLOCKED_POSITION_OPEN = "BLOCKED_POSITION_OPEN"
    BLOCKED_DAILY_LIMIT = "BLOCKED_DAILY_LIMIT"
    BLOCKED_MONTHLY_STOPS = "BLOCKED_MONTHLY_STOPS"
    BLOCKED_DAILY_PROFIT = "BLOCKED_DAILY_PROFIT"
    BLOCKED_NO_BALANCE = "BLOCKED_NO_BALANCE"


@dataclass
class RiskState:
    """
    Process-wide risk state. Memory resident: a new process starts from
    fresh state, without any earlier equity halt.
    """
    highest_equity_seen: float
    daily_starting_balance: float
    trades_opened_today: int = 0
    last_reset_day: Optional[date] = None
    stop_losses_this_month: int = 0
    last_reset_month: Optional[Tuple[int, int]] = None   # (year, month)
    halt_until: Optional[datetime] = None
    pending_restart: bool = False
    pending_force_close: bool = False   # Stop loss recorded, other closes still to retry
    equity_halted: bool = False
    halt_reason: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "highest_equity_seen": self.highest_equity_seen,
            "daily_starting_balance": self.daily_starting_balance,
            "trades_opened_today": self.trades_opened_today,
            "last_reset_day": self.last_reset_day.isoformat() if self.last_reset_day else None,
            "stop_losses_this_month": self.stop_losses_this_month,
            "last_reset_month": list(self.last_reset_month) if self.last_reset_month else None,
            "halt_until": self.halt_until.isoformat() if self.halt_until else None,
            "pending_restart": self.pending_restart,
            "pending_force_close": self.pending_force_close,
            "equity_halted": self.equity_halted,
            "halt_reason": self.halt_reason,
        }


class RiskGovernor:
    """
    Risk governor state machine.

    Holds configuration only; all mutable data lives in the RiskState passed
    to each call.
    """

    def __init__(self, config: RiskConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    def create_state(self, balance: float, now: datetime) -> RiskState:
        """Fresh state at engine start."""
        return RiskState(
            highest_equity_seen=balance,
            daily_starting_balance=balance,
            last_reset_day=now.date(),
            last_reset_month=(now.year, now.month),
        )

    def describe_stop_loss_policy(self) -> str:
        cfg = self.config
        if cfg.stop_loss_enabled:
            return (f"Fixed SL enabled: ${cfg.fixed_sl_dollars} with max "
                    f"{cfg.max_stop_losses_per_month} SL triggers per month")
        if cfg.fixed_sl_dollars > 0:
            return (f"SL disabled (max_stop_losses_per_month = 0, even though "
                    f"fixed_sl_dollars = {cfg.fixed_sl_dollars})")
        return "SL disabled (fixed_sl_dollars = 0)"

    # ------------------------------------------------------------------
    # Steps 1-2: tick admission
    # ------------------------------------------------------------------

    def is_temporarily_halted(self, state: RiskState, now: datetime) -> bool:
        """Step 1. Expired halts are cleared."""
        if state.halt_until is None:
            return False
        if now < state.halt_until:
            self.logger.info(f"Trading halted due to SL until {state.halt_until:%Y-%m-%d %H:%M}")
            return True
        self.logger.info("Stop-loss halt expired")
        state.halt_until = None
        return False

    def is_within_trading_window(self, now: datetime) -> bool:
        """Step 2. False if the hour falls in a blocked range for the weekday."""
        for start, end in self.config.trading_window.get(now.weekday(), ()):
            if start <= now.hour < end:
                return False
        return True

    # ------------------------------------------------------------------
    # Steps 3-4: calendar rollovers
    # ------------------------------------------------------------------

    def roll_calendar(self, state: RiskState, now: datetime, balance: Optional[float]) -> None:
        """Reset daily and monthly counters on calendar boundaries."""
        today = now.date()
        if state.last_reset_day != today:
            if balance is not None:
                state.daily_starting_balance = balance
            else:
                self.logger.warning("Balance unavailable at day rollover; keeping previous starting balance")
            state.trades_opened_today = 0
            state.last_reset_day = today
            self.logger.info(f"Daily counters reset - Day: {now:%A}")

        month = (now.year, now.month)
        if state.last_reset_month != month:
            state.stop_losses_this_month = 0
            state.last_reset_month = month
            self.logger.info(f"Monthly stop loss counter reset - Month: {now.month}")

    # ------------------------------------------------------------------
    # Steps 5-6: equity
    # ------------------------------------------------------------------

    def check_equity(self, state: RiskState, equity: Optional[float]) -> bool:
        """
        Steps 5-6. Returns True while the engine is equity halted.

        The halt is never cleared once entered.
        """
        if state.equity_halted:
            return True
        if equity is None:
            return False

        floor = state.highest_equity_seen * self.config.equity_halt_fraction
        if equity < floor:
            state.equity_halted = True
            state.halt_reason = (f"Equity {equity:.2f} below {self.config.equity_halt_fraction:.0%} "
                                 f"of highest equity {state.highest_equity_seen:.2f}")
            self.logger.critical(f"CRITICAL: {state.halt_reason}. Halting trading permanently.")
            return True

        if equity > state.highest_equity_seen:
            state.highest_equity_seen = equity
            self.logger.info(f"New highest equity: ${equity:,.2f}")
        return False

    # ------------------------------------------------------------------
    # Step 7: fixed stop loss
    # ------------------------------------------------------------------

    def stop_loss_monitoring_active(self, now: datetime) -> bool:
        return self.config.stop_loss_enabled and now.day >= self.config.sl_monitor_start_day

    def find_stop_loss_breach(
        self,
        state: RiskState,
        now: datetime,
        positions: List[Position],
        magic: int,
    ) -> Optional[Position]:
        """First tagged position whose loss reached the fixed stop, if any."""
        if not positions or not self.stop_loss_monitoring_active(now):
            return None

        for position in positions:
            if position.magic != magic:
                continue
            if position.current_profit <= -self.config.fixed_sl_dollars:
                self.logger.warning(
                    f"SL HIT: Position #{position.ticket} loss ${abs(position.current_profit):.2f} "
                    f"exceeds SL of ${self.config.fixed_sl_dollars}, "
                    f"stop losses this month before increment = {state.stop_losses_this_month}"
                )
                return position
        return None

    def record_stop_loss(self, state: RiskState, now: datetime) -> GovernorState:
        """Apply a stop loss whose forced closes have filled."""
        state.stop_losses_this_month += 1
        state.halt_until = now + timedelta(days=self.config.sl_halt_days)
        self.logger.warning(f"Trading halted for {self.config.sl_halt_days} days until "
                            f"{state.halt_until:%Y-%m-%d %H:%M}")

        if self.monthly_quota_reached(state):
            state.halt_reason = "Monthly stop-loss quota reached"
            self.logger.warning(f"Maximum {self.config.max_stop_losses_per_month} stop losses for this "
                                f"month reached. Trading halted until next month.")
            return GovernorState.SL_HALTED_MONTHLY

        state.pending_restart = True
        state.halt_reason = "Fixed stop loss hit"
        return GovernorState.SL_HALTED_TEMP

    def monthly_quota_reached(self, state: RiskState) -> bool:
        quota = self.config.max_stop_losses_per_month
        return quota > 0 and state.stop_losses_this_month >= quota

    # ------------------------------------------------------------------
    # Step 8: new trade gate
    # ------------------------------------------------------------------

    def can_open_trade(
        self,
        state: RiskState,
        now: datetime,
        open_position_count: int,
        balance: Optional[float],
    ) -> TradePermission:
        """Check if a new trade is allowed."""
        if state.equity_halted:
            return TradePermission.BLOCKED_EQUITY_HALT
        if state.halt_until is not None and now < state.halt_until:
            return TradePermission.BLOCKED_HALTED
        if open_position_count > 0:
            return TradePermission.BLOCKED_POSITION_OPEN
        if state.trades_opened_today >= self.config.daily_trade_limit:
            return TradePermission.BLOCKED_DAILY_LIMIT
        if self.monthly_quota_reached(state):
            return TradePermission.BLOCKED_MONTHLY_STOPS
        if balance is None or balance <= 0:
            return TradePermission.BLOCKED_NO_BALANCE

        daily_profit = balance - state.daily_starting_balance
        if daily_profit >= self.config.daily_max_profit:
            self.logger.info(f"Daily profit target reached. Profit={daily_profit:.2f}")
            return TradePermission.BLOCKED_DAILY_PROFIT

        return TradePermission.ALLOWED

    def record_trade_opened(self, state: RiskState) -> None:
        """Count a filled open."""
        state.trades_opened_today += 1

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def governor_state(self, state: RiskState, now: datetime) -> GovernorState:
        if state.equity_halted:
            return GovernorState.EQUITY_HALTED
        if self.monthly_quota_reached(state):
            return GovernorState.SL_HALTED_MONTHLY
        if state.halt_until is not None and now < state.halt_until:
            return GovernorState.SL_HALTED_TEMP
        return GovernorState.ACTIVE

    def get_status_summary(self, state: RiskState, now: datetime) -> Dict:
        """Get current risk status summary."""
        summary = state.to_dict()
        summary["governor_state"] = self.governor_state(state, now).value
        summary["daily_trade_limit"] = self.config.daily_trade_limit
        summary["max_stop_losses_per_month"] = self.config.max_stop_losses_per_month
        return summary
