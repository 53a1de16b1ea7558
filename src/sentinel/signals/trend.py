"""Trend and breakout classification from multi-timeframe indicators.

Trend combines momentum on the 1h series (RSI) with direction and volume
confirmation on the 4h series (EMA9 vs EMA12, OBV sign). Funding rate
beyond the threshold marks an otherwise valid trend as overheated.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from sentinel.config import AlertSettings
from sentinel.exceptions import InsufficientDataError
from sentinel.logging import get_logger
from sentinel.models import BreakoutLabel, TimeFrame, TrendLabel

if TYPE_CHECKING:
    from sentinel.data.store import MarketDataStore
    from sentinel.signals.indicators import IndicatorEngine

logger = get_logger(__name__)


def classify_trend(
    rsi: float,
    ema_fast: float,
    ema_slow: float,
    obv: float,
    funding_rate: float,
    settings: AlertSettings,
) -> TrendLabel:
    """Classify a symbol's trend from precomputed indicators.

    Bullish needs RSI above the bullish band, fast EMA above slow EMA and
    positive OBV; bearish is the mirror image. Anything else is Neutral.
    """
    threshold = settings.funding_rate_threshold

    if rsi > settings.rsi_bullish and ema_fast > ema_slow and obv > 0:
        if funding_rate > threshold:
            return TrendLabel.BULLISH_OVERHEATED
        return TrendLabel.BULLISH
    if rsi < settings.rsi_bearish and ema_fast < ema_slow and obv < 0:
        if funding_rate < -threshold:
            return TrendLabel.BEARISH_OVERHEATED
        return TrendLabel.BEARISH
    return TrendLabel.NEUTRAL


def classify_breakout(prices_newest_first: list[float], lookback: int = 3) -> BreakoutLabel:
    """Compare the newest price with the range of the ``lookback - 1`` prior prices.

    Raises:
        InsufficientDataError: fewer than ``lookback`` prices.
    """
    if lookback < 2 or len(prices_newest_first) < lookback:
        raise InsufficientDataError(
            f"Insufficient 1h data for breakout detection "
            f"({lookback} needed, got {len(prices_newest_first)})"
        )

    latest, *prior = prices_newest_first[:lookback]
    if latest > max(prior):
        return BreakoutLabel.BULLISH
    if latest < min(prior):
        return BreakoutLabel.BEARISH
    return BreakoutLabel.NONE


class TrendClassifier:
    """Computes trend and breakout labels for a symbol from stored rollups.

    Args:
        indicators: Indicator engine reading the rollup store.
        store: Rollup store, read directly for breakout prices.
        settings: RSI bands, EMA periods, funding threshold, breakout lookback.
    """

    def __init__(
        self,
        indicators: IndicatorEngine,
        store: MarketDataStore,
        settings: AlertSettings,
    ) -> None:
        self._indicators = indicators
        self._store = store
        self._settings = settings

    async def detect_trend(
        self, symbol: str, rsi_timeframe: TimeFrame = TimeFrame.H1
    ) -> TrendLabel:
        """Classify the trend of ``symbol``.

        RSI is read on ``rsi_timeframe`` (1h by default); EMAs and OBV always
        on 4h. All five inputs are fetched concurrently; any indicator
        failure (typically InsufficientDataError) propagates.
        """
        s = self._settings
        rsi, ema_fast, ema_slow, obv, funding_rate = await asyncio.gather(
            self._indicators.rsi(symbol, rsi_timeframe, s.rsi_period),
            self._indicators.ema(symbol, TimeFrame.H4, s.ema_fast_period),
            self._indicators.ema(symbol, TimeFrame.H4, s.ema_slow_period),
            self._indicators.obv(symbol, TimeFrame.H4),
            self._indicators.funding_rate(symbol),
        )
        label = classify_trend(rsi, ema_fast, ema_slow, obv, funding_rate, s)
        logger.debug(
            "trend_detected",
            symbol=symbol,
            trend=label.value,
            rsi=round(rsi, 2),
            ema_fast=ema_fast,
            ema_slow=ema_slow,
            obv=obv,
            funding_rate=funding_rate,
        )
        return label

    async def detect_breakout(self, symbol: str) -> BreakoutLabel:
        """Classify the breakout state of the newest 1h samples."""
        lookback = self._settings.breakout_lookback_candles
        prices = await self._store.get_recent_prices(symbol, TimeFrame.H1, lookback)
        return classify_breakout(prices, lookback)

    async def confirm_multi_timeframe(self, symbol: str) -> str:
        """Cross-check the trend with RSI read on 5m, 1h and 4h.

        Returns "Confirmed Bullish" when the 5m read is bullish and the 1h or
        4h read agrees, "Confirmed Bearish" for the mirror case, otherwise
        "No Confirmation".
        """
        trend_5m, trend_1h, trend_4h = await asyncio.gather(
            self.detect_trend(symbol, TimeFrame.M5),
            self.detect_trend(symbol, TimeFrame.H1),
            self.detect_trend(symbol, TimeFrame.H4),
        )
        if trend_5m.is_bullish and (trend_1h.is_bullish or trend_4h.is_bullish):
            return "Confirmed Bullish"
        if trend_5m.is_bearish and (trend_1h.is_bearish or trend_4h.is_bearish):
            return "Confirmed Bearish"
        return "No Confirmation"
