"""
Engine Runner - Host Driver

Owns the EngineState lifetime and drives the engine:
- initialize once at start
- poll the data source on an interval; the engine's new-bar guard turns
  polls into one evaluation per closed bar
- call reinitialize() before the next evaluation when the risk governor
  raised pending_restart
- write risk snapshots to the CSV audit log
- shut down gracefully on SIGINT / SIGTERM

SAFETY: config.dry_run defaults to True.
"""

import logging
import signal as os_signal
import time
from collections import Counter
from datetime import datetime
from typing import Optional

from .config import SystemConfig, DEFAULT_CONFIG
from .engine import EngineState, TickOutcome, TickReport, TradingEngine
from .exceptions import ConfigurationError, EngineError, MarketDataError
from .interfaces import MarketDataSource, OrderGateway
from .logging_module import RiskLogger, TradeLogger, setup_logging


class EngineRunner:
    """
    Polling host for a TradingEngine.

    Coordinates:
    - TradingEngine (per-bar pipeline)
    - TradeLogger / RiskLogger (audit trail)
    """

    def __init__(
        self,
        data: MarketDataSource,
        gateway: OrderGateway,
        config: SystemConfig = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or DEFAULT_CONFIG
        self.config.ensure_directories()

        # Logging
        self.logger = logger or setup_logging(self.config.paths, self.config.verbose)

        # CSV loggers
        self.trade_logger = TradeLogger(self.config.paths.trade_log)
        self.risk_logger = RiskLogger(self.config.paths.risk_log)

        self.data = data
        self.engine = TradingEngine(self.config, data, gateway, self.logger, self.trade_logger)

        # State
        self.state: Optional[EngineState] = None
        self._running = False

        # Statistics
        self._outcomes: Counter = Counter()
        self._closed_positions = 0

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown handlers."""
        def shutdown_handler(signum, frame):
            self.logger.info("Shutdown signal received...")
            self._running = False

        os_signal.signal(os_signal.SIGINT, shutdown_handler)
        os_signal.signal(os_signal.SIGTERM, shutdown_handler)

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> EngineState:
        """Initialize the engine. Raises ConfigurationError if it cannot start."""
        self.state = self.engine.initialize()
        self._log_risk_state(None)
        self.logger.info(f"Dry run mode: {self.config.dry_run}")
        self.logger.info("Initialization complete")
        return self.state

    def step(self, now: Optional[datetime] = None) -> TickReport:
        """Run one poll: restart if requested, then evaluate the newest bar."""
        if self.state is None:
            raise EngineError("Runner not started")

        if self.state.risk.pending_restart:
            try:
                self.engine.reinitialize(self.state)
            except ConfigurationError as e:
                self.logger.error(f"Restart failed, retrying next poll: {e}")
                report = TickReport(timestamp=None, outcome=TickOutcome.DATA_ERROR, message=str(e))
                self._outcomes[report.outcome] += 1
                return report

        report = self.engine.on_bar(self.state, now)
        self._outcomes[report.outcome] += 1
        self._closed_positions += len(report.closed_tickets)

        if report.outcome is not TickOutcome.SKIPPED_SAME_BAR:
            self.logger.debug(f"Bar {report.timestamp}: {report.outcome.value}")
            self._log_risk_state(now or report.timestamp)

        return report

    def run(self, max_polls: Optional[int] = None) -> None:
        """Main polling loop."""
        try:
            self.start()
        except ConfigurationError as e:
            self.logger.error(f"Initialization failed - aborting: {e}")
            return

        self._setup_signal_handlers()
        self.logger.info("Starting main loop...")
        self._running = True
        polls = 0

        while self._running:
            try:
                self.step()
            except Exception as e:
                self.logger.exception(f"Error in main loop: {e}")

            polls += 1
            if max_polls is not None and polls >= max_polls:
                break
            time.sleep(self.config.poll_interval_seconds)

        self._running = False
        self._shutdown()

    def stop(self) -> None:
        self._running = False

    def _now(self) -> Optional[datetime]:
        try:
            return self.data.server_time()
        except MarketDataError:
            return None

    def _log_risk_state(self, now: Optional[datetime]) -> None:
        if self.state is None:
            return
        now = now or self._now() or datetime.now()
        try:
            balance, equity = self.data.current_balance(), self.data.current_equity()
        except MarketDataError:
            balance, equity = None, None

        self.risk_logger.log_state(
            self.engine.governor.get_status_summary(self.state.risk, now),
            balance=balance,
            equity=equity,
            poc=self.state.session.last_session_poc,
            now=now,
        )

    def _shutdown(self) -> None:
        """Graceful shutdown."""
        self.logger.info("=" * 60)
        self.logger.info("ENGINE SHUTDOWN")
        self.logger.info("=" * 60)

        # Log statistics
        bars = self.state.bars_processed if self.state else 0
        self.logger.info(f"Bars processed: {bars}")
        self.logger.info(f"Trades opened: {self._outcomes[TickOutcome.TRADE_OPENED]}")
        self.logger.info(f"Positions closed: {self._closed_positions}")
        self.logger.info(f"Blocked bars: {self._outcomes[TickOutcome.BLOCKED]}")
        self.logger.info(f"Data errors: {self._outcomes[TickOutcome.DATA_ERROR]}")

        if self.state is not None:
            self._log_risk_state(None)
            self.logger.info(f"Highest equity seen: ${self.state.risk.highest_equity_seen:,.2f}")
            self.logger.info(f"Stop losses this month: {self.state.risk.stop_losses_this_month}")

        self.logger.info("Shutdown complete")

    def get_status(self) -> dict:
        """Get current runner status."""
        status = {
            "running": self._running,
            "dry_run": self.config.dry_run,
            "outcomes": {k.value: v for k, v in self._outcomes.items()},
            "positions_closed": self._closed_positions,
        }
        if self.state is not None:
            now = self._now() or self.state.last_bar_time or datetime.now()
            status["bars_processed"] = self.state.bars_processed
            status["restarts"] = self.state.restarts
            status["last_bar_time"] = self.state.last_bar_time.isoformat() if self.state.last_bar_time else None
            status["last_session_poc"] = self.state.session.last_session_poc
            status["risk_status"] = self.engine.governor.get_status_summary(self.state.risk, now)
        return status
