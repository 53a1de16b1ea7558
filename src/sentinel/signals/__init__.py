"""Signal analysis: indicator computation and trend/breakout classification."""

from sentinel.signals.indicators import (
    IndicatorEngine,
    compute_ema,
    compute_obv,
    compute_rsi,
)
from sentinel.signals.trend import TrendClassifier, classify_breakout, classify_trend

__all__ = [
    "IndicatorEngine",
    "TrendClassifier",
    "classify_breakout",
    "classify_trend",
    "compute_ema",
    "compute_obv",
    "compute_rsi",
]
