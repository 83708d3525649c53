"""
Indicators - Trend and Envelope Calculations

Vectorized pandas/numpy implementations shared by every market data source:
- EMA: exponential moving average (fast / slow trend lines)
- Nadaraya-Watson Envelope: Gaussian-kernel regression endpoint with
  proportional bands

Indicator handles are validated once at engine initialization; an unknown
indicator id or bad parameters is a configuration error.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

import numpy as np
import pandas as pd

from .exceptions import ConfigurationError, MarketDataError


TREND = "trend"
ENVELOPE = "envelope"


@dataclass(frozen=True)
class IndicatorHandle:
    """Validated reference to an indicator on one symbol/timeframe."""
    indicator_id: str
    kind: str
    symbol: str
    timeframe: str
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def min_bars(self) -> int:
        return int(self.params["period"])


def ema(closes: pd.Series, period: int) -> pd.Series:
    """
    Calculate Exponential Moving Average.

    Args:
        closes: Close price series
        period: EMA period

    Returns:
        EMA series
    """
    return closes.ewm(span=period, adjust=False).mean()


def gaussian_weights(bandwidth: float, length: int) -> np.ndarray:
    """Kernel weights for lags 0..length-1."""
    lags = np.arange(length, dtype=float)
    return np.exp(-(lags ** 2) / (2.0 * bandwidth ** 2))


def nadaraya_watson(closes: pd.Series, bandwidth: float, lookback: int) -> pd.Series:
    """
    Endpoint Nadaraya-Watson estimate.

    Each value only uses the current and previous `lookback - 1` closes, so
    history is never repainted.
    """
    values = closes.to_numpy(dtype=float)
    n = len(values)
    if n == 0:
        return pd.Series(dtype=float, index=closes.index)

    weights = gaussian_weights(bandwidth, min(lookback, n))
    numerator = np.convolve(values, weights)[:n]
    denominator = np.convolve(np.ones(n), weights)[:n]

    return pd.Series(numerator / denominator, index=closes.index)


def nadaraya_watson_envelope(
    closes: pd.Series,
    period: int,
    deviation: float,
    lookback: int = 100,
) -> Tuple[pd.Series, pd.Series]:
    """
    Calculate Nadaraya-Watson envelope bands.

    Args:
        closes: Close price series
        period: Kernel bandwidth in bars
        deviation: Band half-width as a fraction of the estimate
        lookback: Maximum bars in the kernel window

    Returns:
        Tuple of (upper_band, lower_band)
    """
    estimate = nadaraya_watson(closes, period, lookback)
    return estimate * (1.0 + deviation), estimate * (1.0 - deviation)


# Indicator id -> (kind, required params)
INDICATOR_REGISTRY: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "EMA": (TREND, ("period",)),
    "NadarayaWatsonEnvelope": (ENVELOPE, ("period", "deviation")),
}


def validate_indicator(
    indicator_id: str,
    params: Dict[str, Any],
    symbol: str,
    timeframe: str,
) -> IndicatorHandle:
    """Create a handle, raising ConfigurationError if it would be invalid."""
    if indicator_id not in INDICATOR_REGISTRY:
        raise ConfigurationError(f"Unknown indicator '{indicator_id}'")

    kind, required = INDICATOR_REGISTRY[indicator_id]
    missing = [p for p in required if p not in params]
    if missing:
        raise ConfigurationError(f"Indicator '{indicator_id}' missing params: {missing}")

    if int(params["period"]) <= 0:
        raise ConfigurationError(f"Indicator '{indicator_id}' period must be positive")
    if int(params.get("lookback", 1)) <= 0:
        raise ConfigurationError(f"Indicator '{indicator_id}' lookback must be positive")

    return IndicatorHandle(
        indicator_id=indicator_id,
        kind=kind,
        symbol=symbol,
        timeframe=timeframe,
        params=dict(params),
    )


def _require_history(handle: IndicatorHandle, closes: pd.Series) -> None:
    if len(closes) < handle.min_bars:
        raise MarketDataError(
            f"Insufficient bars for {handle.indicator_id}: "
            f"{len(closes)} < {handle.min_bars}"
        )


def compute_trend(handle: IndicatorHandle, closes: pd.Series) -> float:
    """Trend value at the newest close."""
    if handle.kind != TREND:
        raise ConfigurationError(f"{handle.indicator_id} is not a trend indicator")
    _require_history(handle, closes)
    return float(ema(closes, int(handle.params["period"])).iloc[-1])


def compute_envelope(handle: IndicatorHandle, closes: pd.Series) -> Tuple[float, float]:
    """(upper, lower) envelope values at the newest close."""
    if handle.kind != ENVELOPE:
        raise ConfigurationError(f"{handle.indicator_id} is not an envelope indicator")
    _require_history(handle, closes)
    upper, lower = nadaraya_watson_envelope(
        closes,
        period=int(handle.params["period"]),
        deviation=float(handle.params["deviation"]),
        lookback=int(handle.params.get("lookback", 100)),
    )
    return float(upper.iloc[-1]), float(lower.iloc[-1])
