"""
Engine exceptions.

Taxonomy:
- ConfigurationError: invalid settings or indicator handles. Fatal at startup.
- MarketDataError: missing history or a failed bar/indicator/account fetch.
  Recoverable, the current tick's action is skipped.
- ExecutionError: broker rejected or could not process an order.
  Recoverable, risk counters are left untouched.

Risk-policy halts are state transitions, never exceptions.
"""


class EngineError(Exception):
    """Base class for all engine errors."""
    pass


class ConfigurationError(EngineError):
    """Raised when configuration or indicator handles are invalid."""
    pass


class MarketDataError(EngineError):
    """Raised when market or account data cannot be obtained."""
    pass


class ExecutionError(EngineError):
    """Raised by gateways when an order cannot be processed at all."""
    pass
