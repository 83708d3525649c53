"""
TPO Engine - Session Profile Trend Trader

PIPELINE (once per closed bar):
1. Session Clock - detects session start/end from bar timestamps
2. Market Profile - computes the session POC at session end
3. Risk Governor - halts, trading window, rollovers, equity floor, fixed stop loss
4. Position Manager - balance-relative profit targets, forced closes
5. Signal Generator - fast/slow trend + envelope breakout, POC filter

The engine only talks to the outside world through MarketDataSource and
OrderGateway. Paper implementations live in `paper`, the MetaTrader 5
implementation in `mt5_adapter`.

SAFETY: System defaults to DRY RUN mode.
"""

from .config import (
    SystemConfig,
    StrategyConfig,
    ProfileConfig,
    RiskConfig,
    ExecutionConfig,
    PathConfig,
    DEFAULT_CONFIG,
)

from .exceptions import (
    EngineError,
    ConfigurationError,
    MarketDataError,
    ExecutionError,
)

from .models import (
    Direction,
    Bar,
    Tick,
    SymbolSpec,
    Position,
    OrderResult,
    OrderExecution,
)

from .interfaces import MarketDataSource, OrderGateway

from .session_clock import SessionClock
from .market_profile import MarketProfile, MarketProfileEngine, SessionState, build_profile
from .signal_engine import SignalGenerator, SignalInputs
from .risk_engine import RiskGovernor, RiskState, GovernorState, TradePermission
from .position_manager import PositionManager

from .engine import TradingEngine, EngineState, TickReport, TickOutcome
from .runner import EngineRunner

from .paper import PaperAccount, PaperMarketData, PaperOrderGateway

from .logging_module import setup_logging, TradeLogger, RiskLogger


__all__ = [
    # Config
    'SystemConfig',
    'StrategyConfig',
    'ProfileConfig',
    'RiskConfig',
    'ExecutionConfig',
    'PathConfig',
    'DEFAULT_CONFIG',
    # Errors
    'EngineError',
    'ConfigurationError',
    'MarketDataError',
    'ExecutionError',
    # Models
    'Direction',
    'Bar',
    'Tick',
    'SymbolSpec',
    'Position',
    'OrderResult',
    'OrderExecution',
    # Interfaces
    'MarketDataSource',
    'OrderGateway',
    # Components
    'SessionClock',
    'MarketProfile',
    'MarketProfileEngine',
    'SessionState',
    'build_profile',
    'SignalGenerator',
    'SignalInputs',
    'RiskGovernor',
    'RiskState',
    'GovernorState',
    'TradePermission',
    'PositionManager',
    # Engine
    'TradingEngine',
    'EngineState',
    'TickReport',
    'TickOutcome',
    'EngineRunner',
    # Paper trading
    'PaperAccount',
    'PaperMarketData',
    'PaperOrderGateway',
    # Logging
    'setup_logging',
    'TradeLogger',
    'RiskLogger',
]

__version__ = "1.0.0"
