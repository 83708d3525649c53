"""
Logging & Monitoring Module

Audit trail for the engine:
- Trade log (CSV): signals, executions, closes
- Risk state log (CSV): governor snapshots
- System log (console + file)

The CSV files are write-only audit records. Engine state is never
rebuilt from them.
"""

import csv
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from .config import PathConfig
from .models import Direction, OrderExecution
from .signal_engine import SignalInputs


LOGGER_NAME = "TPOEngine"


def setup_logging(paths: PathConfig, verbose: bool = True) -> logging.Logger:
    """
    Configure system logging.

    Returns configured logger.
    """
    paths.logs_dir.mkdir(parents=True, exist_ok=True)

    # Create logger
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Re-running setup replaces handlers instead of stacking them
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_format = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    console_handler.setFormatter(console_format)

    # File handler
    file_handler = logging.FileHandler(paths.system_log)
    file_handler.setLevel(logging.DEBUG)
    file_format = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    file_handler.setFormatter(file_format)

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    return logger


class _CsvLog:
    """Append-only CSV file with a fixed header."""

    HEADERS: list = []

    def __init__(self, log_path: Path):
        self.log_path = log_path
        self._ensure_headers()

    def _ensure_headers(self) -> None:
        """Ensure CSV has headers."""
        if not self.log_path.exists():
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, 'w', newline='') as f:
                writer = csv.writer(f)
                writer.writerow(self.HEADERS)

    def _write_row(self, row: Dict) -> None:
        """Write a row to CSV."""
        with open(self.log_path, 'a', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=self.HEADERS)
            writer.writerow(row)


class TradeLogger(_CsvLog):
    """
    CSV trade logger for audit trail.

    Logs signals, executions, and closures.
    """

    HEADERS = [
        "timestamp",
        "action",  # SIGNAL, EXECUTE, CLOSE
        "ticket",
        "symbol",
        "direction",
        "price",
        "target_price",
        "volume",
        "poc",
        "pnl",
        "result",
        "note",
    ]

    def log_signal(
        self,
        direction: Direction,
        inputs: SignalInputs,
        symbol: str,
        bar_time: Optional[datetime] = None,
    ) -> None:
        """Log an accepted signal."""
        row = {
            "timestamp": (bar_time or datetime.now(timezone.utc)).isoformat(),
            "action": "SIGNAL",
            "ticket": "",
            "symbol": symbol,
            "direction": direction.value,
            "price": inputs.close,
            "target_price": "",
            "volume": "",
            "poc": inputs.poc if inputs.poc is not None else "",
            "pnl": "",
            "result": "",
            "note": f"fast={inputs.fast_trend:.5f} slow={inputs.slow_trend:.5f} "
                    f"upper={inputs.envelope_upper:.5f} lower={inputs.envelope_lower:.5f}",
        }
        self._write_row(row)

    def log_execution(self, execution: OrderExecution) -> None:
        """Log an order execution."""
        row = {
            "timestamp": execution.timestamp.isoformat() if execution.timestamp else "",
            "action": "EXECUTE",
            "ticket": execution.ticket or "",
            "symbol": execution.symbol,
            "direction": execution.direction,
            "price": execution.price,
            "target_price": execution.take_profit,
            "volume": execution.volume,
            "poc": "",
            "pnl": "",
            "result": execution.result.value,
            "note": execution.error_message or "",
        }
        self._write_row(row)

    def log_close(self, execution: OrderExecution, reason: str) -> None:
        """Log a trade closure."""
        row = {
            "timestamp": execution.timestamp.isoformat() if execution.timestamp else "",
            "action": "CLOSE",
            "ticket": execution.ticket or "",
            "symbol": execution.symbol,
            "direction": execution.direction,
            "price": execution.price,
            "target_price": "",
            "volume": execution.volume,
            "poc": "",
            "pnl": execution.profit,
            "result": execution.result.value,
            "note": reason,
        }
        self._write_row(row)


class RiskLogger(_CsvLog):
    """
    CSV logger for risk state snapshots.
    """

    HEADERS = [
        "timestamp",
        "governor_state",
        "balance",
        "equity",
        "highest_equity_seen",
        "daily_starting_balance",
        "trades_opened_today",
        "stop_losses_this_month",
        "halt_until",
        "last_session_poc",
    ]

    def log_state(
        self,
        summary: Dict,
        balance: Optional[float] = None,
        equity: Optional[float] = None,
        poc: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """Log a RiskGovernor.get_status_summary() snapshot."""
        row = {
            "timestamp": (now or datetime.now(timezone.utc)).isoformat(),
            "governor_state": summary["governor_state"],
            "balance": f"{balance:.2f}" if balance is not None else "",
            "equity": f"{equity:.2f}" if equity is not None else "",
            "highest_equity_seen": f"{summary['highest_equity_seen']:.2f}",
            "daily_starting_balance": f"{summary['daily_starting_balance']:.2f}",
            "trades_opened_today": summary["trades_opened_today"],
            "stop_losses_this_month": summary["stop_losses_this_month"],
            "halt_until": summary["halt_until"] or "",
            "last_session_poc": f"{poc:.5f}" if poc is not None else "",
        }
        self._write_row(row)
