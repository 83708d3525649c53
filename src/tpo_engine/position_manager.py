"""
Position Manager - Profit Targets and Forced Closes

Responsibilities:
- Initial target price for a new entry from the per-trade dollar target
- Close tagged positions whose floating profit reached balance × fraction
- Close every open position on equity / stop-loss halts

Broker failures are logged and reported to the caller; they never raise.
"""

import logging
from typing import List, Optional, Tuple

from .config import ExecutionConfig
from .interfaces import OrderGateway
from .logging_module import TradeLogger
from .models import Direction, OrderExecution, Position


class PositionManager:
    """Manages open positions through the order gateway."""

    def __init__(
        self,
        config: ExecutionConfig,
        gateway: OrderGateway,
        logger: Optional[logging.Logger] = None,
        trade_logger: Optional[TradeLogger] = None,
    ):
        self.config = config
        self.gateway = gateway
        self.logger = logger or logging.getLogger(__name__)
        self.trade_logger = trade_logger

    def desired_profit(self, trade_index: int) -> float:
        """Dollar target for the trade_index-th trade of the day (0-based)."""
        targets = self.config.trade_profit_targets
        if not 0 <= trade_index < len(targets):
            raise ValueError(f"No profit target for trade index {trade_index}")
        return targets[trade_index]

    def initial_target_price(
        self,
        direction: Direction,
        entry_price: float,
        trade_index: int,
        contract_size: float,
    ) -> float:
        """
        Price at which the position would earn the desired dollar profit.

        distance = desired_profit / (lot_size × contract_size)
        """
        if direction is Direction.NONE:
            raise ValueError("Cannot compute a target for Direction.NONE")
        units = self.config.lot_size * contract_size
        if units <= 0:
            raise ValueError("lot_size × contract_size must be positive")
        distance = self.desired_profit(trade_index) / units
        return direction.offset_price(entry_price, distance)

    def profit_threshold(self, balance: float) -> float:
        return balance * self.config.target_profit_fraction

    def manage(self, positions: List[Position], balance: Optional[float]) -> List[int]:
        """
        Close tagged positions that reached the balance-relative profit target.

        Returns tickets that were closed successfully.
        """
        if balance is None or not positions:
            return []

        threshold = self.profit_threshold(balance)
        closed = []
        for position in positions:
            if position.magic != self.config.magic_number:
                continue
            if position.current_profit < threshold:
                continue

            execution = self.gateway.close_position(position.ticket)
            self._log_close(execution, "TARGET")
            if execution.is_success:
                self.logger.info(
                    f"Target profit reached - Ticket #{position.ticket} closed "
                    f"with profit ${position.current_profit:.2f} (threshold ${threshold:.2f})"
                )
                closed.append(position.ticket)
            else:
                self.logger.error(
                    f"Failed to close position #{position.ticket} at target: "
                    f"{execution.error_message}"
                )
        return closed

    def close_all(self, positions: List[Position], reason: str = "FORCE_CLOSE") -> Tuple[bool, List[int]]:
        """
        Close every position regardless of tag.

        Returns (all_filled, closed_tickets).
        """
        all_closed = True
        closed = []
        for position in positions:
            execution = self.gateway.close_position(position.ticket)
            self._log_close(execution, reason)
            if execution.is_success:
                self.logger.info(f"Closed position #{position.ticket} "
                                 f"(profit ${position.current_profit:.2f})")
                closed.append(position.ticket)
            else:
                all_closed = False
                self.logger.error(f"Failed to close position #{position.ticket}: "
                                  f"{execution.error_message}")
        return all_closed, closed

    def _log_close(self, execution: OrderExecution, reason: str) -> None:
        if self.trade_logger:
            self.trade_logger.log_close(execution, reason)
