"""
Settings loader for the TPO engine.

YAML front-end for src.tpo_engine.config.SystemConfig. Every key is optional;
missing keys fall back to the dataclass defaults.
"""

from pathlib import Path
from typing import Optional, Union
import yaml

from src.tpo_engine.config import SystemConfig
from src.tpo_engine.exceptions import ConfigurationError


DEFAULT_CONFIG_YAML = """\
strategy:
  symbol: XAUUSD
  timeframe: M15
  trend_indicator: EMA
  fast_trend_period: 32
  slow_trend_period: 200
  envelope_indicator: NadarayaWatsonEnvelope
  envelope_period: 14
  envelope_deviation: 0.005
  envelope_lookback: 100

profile:
  session: "0000-0800"     # Server time
  tpo_ticks: 25            # x symbol point

risk:
  fixed_sl_dollars: 25.0
  max_stop_losses_per_month: 2
  sl_halt_days: 4
  sl_monitor_start_day: 16
  daily_max_profit: 6.0
  daily_trade_limit: 3
  equity_halt_fraction: 0.5
  trading_window:          # weekday (Mon=0) -> blocked [start_hour, end_hour)
    0: [[8, 24]]
    1: [[8, 17]]
    2: [[8, 17]]
    3: [[8, 17]]
    4: [[8, 24]]
    5: [[8, 17]]
    6: [[8, 17]]

execution:
  lot_size: 0.02
  magic_number: 1234501
  order_comment: TPO_ENGINE
  trade_profit_targets: [3.0, 2.0, 1.0]
  target_profit_fraction: 0.005
  slippage_points: 30
  max_order_retries: 3
  retry_delay_seconds: 1.0

paths:
  base_dir: tpo_engine_data

dry_run: true
verbose: true
poll_interval_seconds: 5.0
"""


def load_settings(path: Optional[Union[str, Path]] = None) -> SystemConfig:
    """
    Load settings from a YAML file, or the built-in defaults if path is None.

    Raises ConfigurationError on unreadable or invalid settings.
    """
    try:
        if path is None:
            data = yaml.safe_load(DEFAULT_CONFIG_YAML)
        else:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read settings: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError("Settings file must contain a mapping")

    try:
        config = SystemConfig.from_dict(data)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e

    ok, errors = config.validate()
    if not ok:
        raise ConfigurationError("Invalid settings: " + "; ".join(errors))
    return config


def save_settings(config: SystemConfig, path: Union[str, Path]) -> None:
    """Save settings to a YAML file."""
    with open(path, 'w') as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
