"""
TPO Engine Configuration

Single source of truth for all engine parameters.
Defaults reproduce the reference XAUUSD M15 configuration.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple


# Weekday -> blocked [start_hour, end_hour) ranges. Monday = 0.
# Monday/Friday: no trading from 08:00. Other days: no trading 08:00-17:00.
DEFAULT_TRADING_WINDOW: Dict[int, Tuple[Tuple[int, int], ...]] = {
    0: ((8, 24),),
    1: ((8, 17),),
    2: ((8, 17),),
    3: ((8, 17),),
    4: ((8, 24),),
    5: ((8, 17),),
    6: ((8, 17),),
}


def parse_session(session: str) -> Tuple[int, int]:
    """
    Parse an "HHMM-HHMM" session string into minutes since midnight.

    Raises ValueError on malformed input.
    """
    try:
        start_str, end_str = session.split("-")
        start_h, start_m = int(start_str[:2]), int(start_str[2:])
        end_h, end_m = int(end_str[:2]), int(end_str[2:])
    except (ValueError, AttributeError):
        raise ValueError(f"Invalid session '{session}', expected HHMM-HHMM")

    if len(start_str) != 4 or len(end_str) != 4:
        raise ValueError(f"Invalid session '{session}', expected HHMM-HHMM")
    if not (0 <= start_h < 24 and 0 <= end_h < 24 and 0 <= start_m < 60 and 0 <= end_m < 60):
        raise ValueError(f"Invalid session '{session}', time out of range")

    return start_h * 60 + start_m, end_h * 60 + end_m


@dataclass(frozen=True)
class StrategyConfig:
    """Instrument and indicator parameters."""
    symbol: str = "XAUUSD"
    timeframe: str = "M15"

    # Trend filter (fast / slow)
    trend_indicator: str = "EMA"
    fast_trend_period: int = 32
    slow_trend_period: int = 200

    # Envelope filter
    envelope_indicator: str = "NadarayaWatsonEnvelope"
    envelope_period: int = 14
    envelope_deviation: float = 0.005
    envelope_lookback: int = 100

    @property
    def min_history_bars(self) -> int:
        """Bars required before a signal may be evaluated."""
        return self.slow_trend_period

    def fast_trend_params(self) -> Dict[str, Any]:
        return {"period": self.fast_trend_period}

    def slow_trend_params(self) -> Dict[str, Any]:
        return {"period": self.slow_trend_period}

    def envelope_params(self) -> Dict[str, Any]:
        return {
            "period": self.envelope_period,
            "deviation": self.envelope_deviation,
            "lookback": self.envelope_lookback,
        }


@dataclass(frozen=True)
class ProfileConfig:
    """Market profile (TPO) session parameters."""
    session: str = "0000-0800"     # Server time
    tpo_ticks: int = 25            # Multiplied by the symbol point

    @property
    def start_minute(self) -> int:
        return parse_session(self.session)[0]

    @property
    def end_minute(self) -> int:
        return parse_session(self.session)[1]


@dataclass(frozen=True)
class RiskConfig:
    """Risk governor parameters."""
    # Fixed stop-loss monitoring (0 disables)
    fixed_sl_dollars: float = 25.0
    max_stop_losses_per_month: int = 2
    sl_halt_days: int = 4
    sl_monitor_start_day: int = 16

    # Daily limits
    daily_max_profit: float = 6.0
    daily_trade_limit: int = 3

    # Permanent halt when equity < fraction × highest equity
    equity_halt_fraction: float = 0.5

    trading_window: Dict[int, Tuple[Tuple[int, int], ...]] = field(
        default_factory=lambda: dict(DEFAULT_TRADING_WINDOW)
    )

    @property
    def stop_loss_enabled(self) -> bool:
        return self.fixed_sl_dollars > 0 and self.max_stop_losses_per_month > 0


@dataclass(frozen=True)
class ExecutionConfig:
    """Order placement and profit-target parameters."""
    lot_size: float = 0.02
    magic_number: int = 1234501
    order_comment: str = "TPO_ENGINE"

    # Desired dollar profit per trade ordinal of the day
    trade_profit_targets: Tuple[float, ...] = (3.0, 2.0, 1.0)

    # Close when profit >= balance × fraction
    target_profit_fraction: float = 0.005

    slippage_points: int = 30
    max_order_retries: int = 3
    retry_delay_seconds: float = 1.0


@dataclass(frozen=True)
class PathConfig:
    """File paths for logs."""
    base_dir: Path = Path("tpo_engine_data")

    @property
    def logs_dir(self) -> Path:
        return self.base_dir / "logs"

    @property
    def trade_log(self) -> Path:
        return self.logs_dir / "trades.csv"

    @property
    def risk_log(self) -> Path:
        return self.logs_dir / "risk_state.csv"

    @property
    def system_log(self) -> Path:
        return self.logs_dir / "system.log"


@dataclass
class SystemConfig:
    """Master configuration - aggregates all configs."""
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    profile: ProfileConfig = field(default_factory=ProfileConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    paths: PathConfig = field(default_factory=PathConfig)

    # Host driver behavior
    dry_run: bool = True                  # SAFETY: paper collaborators by default
    verbose: bool = True
    poll_interval_seconds: float = 5.0

    def ensure_directories(self) -> None:
        """Create required directories."""
        self.paths.logs_dir.mkdir(parents=True, exist_ok=True)

    def validate(self) -> Tuple[bool, List[str]]:
        """Validate configuration. Returns (ok, errors)."""
        errors = []
        strategy, risk, execution = self.strategy, self.risk, self.execution

        if strategy.fast_trend_period <= 0 or strategy.slow_trend_period <= 0:
            errors.append("trend periods must be positive")
        if strategy.envelope_period <= 0 or strategy.envelope_lookback <= 0:
            errors.append("envelope period and lookback must be positive")
        if strategy.envelope_deviation < 0:
            errors.append("envelope_deviation must be >= 0")

        try:
            parse_session(self.profile.session)
        except ValueError as e:
            errors.append(str(e))
        if self.profile.tpo_ticks <= 0:
            errors.append("tpo_ticks must be positive")

        if risk.fixed_sl_dollars < 0:
            errors.append("fixed_sl_dollars must be >= 0")
        if risk.max_stop_losses_per_month < 0:
            errors.append("max_stop_losses_per_month must be >= 0")
        if risk.daily_trade_limit <= 0:
            errors.append("daily_trade_limit must be positive")
        if not 0 < risk.equity_halt_fraction < 1:
            errors.append("equity_halt_fraction must be between 0 and 1")
        if not 1 <= risk.sl_monitor_start_day <= 31:
            errors.append("sl_monitor_start_day must be a day of month")
        if risk.sl_halt_days < 0:
            errors.append("sl_halt_days must be >= 0")
        for weekday, ranges in risk.trading_window.items():
            if not 0 <= int(weekday) <= 6:
                errors.append(f"trading_window weekday {weekday} out of range")
            for start, end in ranges:
                if not 0 <= start < end <= 24:
                    errors.append(f"trading_window range {start}-{end} invalid")

        if execution.lot_size <= 0:
            errors.append("lot_size must be positive")
        if len(execution.trade_profit_targets) < risk.daily_trade_limit:
            errors.append("trade_profit_targets must cover every trade allowed per day")
        if any(t <= 0 for t in execution.trade_profit_targets):
            errors.append("trade_profit_targets must be positive")
        if execution.target_profit_fraction <= 0:
            errors.append("target_profit_fraction must be positive")

        return len(errors) == 0, errors

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SystemConfig":
        """Build configuration from a plain dict (e.g. parsed YAML)."""
        strategy = dict(data.get("strategy", {}))
        profile = dict(data.get("profile", {}))
        risk = dict(data.get("risk", {}))
        execution = dict(data.get("execution", {}))
        paths = dict(data.get("paths", {}))

        if "trading_window" in risk:
            risk["trading_window"] = {
                int(day): tuple(tuple(r) for r in ranges)
                for day, ranges in risk["trading_window"].items()
            }
        if "trade_profit_targets" in execution:
            execution["trade_profit_targets"] = tuple(execution["trade_profit_targets"])
        if "base_dir" in paths:
            paths["base_dir"] = Path(paths["base_dir"])

        return cls(
            strategy=StrategyConfig(**strategy),
            profile=ProfileConfig(**profile),
            risk=RiskConfig(**risk),
            execution=ExecutionConfig(**execution),
            paths=PathConfig(**paths),
            dry_run=data.get("dry_run", True),
            verbose=data.get("verbose", True),
            poll_interval_seconds=data.get("poll_interval_seconds", 5.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a YAML-friendly dict."""
        s, p, r, e = self.strategy, self.profile, self.risk, self.execution
        return {
            "strategy": {
                "symbol": s.symbol,
                "timeframe": s.timeframe,
                "trend_indicator": s.trend_indicator,
                "fast_trend_period": s.fast_trend_period,
                "slow_trend_period": s.slow_trend_period,
                "envelope_indicator": s.envelope_indicator,
                "envelope_period": s.envelope_period,
                "envelope_deviation": s.envelope_deviation,
                "envelope_lookback": s.envelope_lookback,
            },
            "profile": {
                "session": p.session,
                "tpo_ticks": p.tpo_ticks,
            },
            "risk": {
                "fixed_sl_dollars": r.fixed_sl_dollars,
                "max_stop_losses_per_month": r.max_stop_losses_per_month,
                "sl_halt_days": r.sl_halt_days,
                "sl_monitor_start_day": r.sl_monitor_start_day,
                "daily_max_profit": r.daily_max_profit,
                "daily_trade_limit": r.daily_trade_limit,
                "equity_halt_fraction": r.equity_halt_fraction,
                "trading_window": {
                    day: [list(rng) for rng in ranges]
                    for day, ranges in r.trading_window.items()
                },
            },
            "execution": {
                "lot_size": e.lot_size,
                "magic_number": e.magic_number,
                "order_comment": e.order_comment,
                "trade_profit_targets": list(e.trade_profit_targets),
                "target_profit_fraction": e.target_profit_fraction,
                "slippage_points": e.slippage_points,
                "max_order_retries": e.max_order_retries,
                "retry_delay_seconds": e.retry_delay_seconds,
            },
            "paths": {"base_dir": str(self.paths.base_dir)},
            "dry_run": self.dry_run,
            "verbose": self.verbose,
            "poll_interval_seconds": self.poll_interval_seconds,
        }


# Default configuration instance
DEFAULT_CONFIG = SystemConfig()
