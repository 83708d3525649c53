"""
TPO Gold Engine for MetaTrader 5.

An automated XAUUSD decision engine with:
- Session market profile (POC) filter
- Trend + envelope breakout signals
- Multi-stage risk governor (daily, monthly, drawdown halts)
- Balance-relative profit targets
"""

__version__ = "1.0.0"
