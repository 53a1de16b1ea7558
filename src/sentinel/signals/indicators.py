"""Technical indicators over rollup history: VWAP, RSI, EMA, OBV, funding rate.

The pure ``compute_*`` functions take plain price/volume lists so they can
be tested without a store. IndicatorEngine reads bounded slices of a
symbol's rollup series and feeds them to those functions.

Price lists passed to compute_rsi and compute_ema are NEWEST FIRST, the
order the store returns them in.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sentinel.exceptions import InsufficientDataError, NoDataError
from sentinel.models import TimeFrame, now_ms

if TYPE_CHECKING:
    from sentinel.config import StoreSettings
    from sentinel.data.store import MarketDataStore


def compute_rsi(prices_newest_first: list[float], period: int = 14) -> float:
    """Relative Strength Index over the newest ``period + 1`` prices.

    Gains and losses are plain sums of the pairwise moves divided by the
    period; the loss term is floored at 1 so a loss-free window does not
    divide by zero. This is not Wilder smoothing.

        RS  = avg_gain / max(avg_loss, 1)
        RSI = 100 - 100 / (1 + RS)

    Raises:
        InsufficientDataError: fewer than ``period + 1`` prices.
    """
    needed = period + 1
    if len(prices_newest_first) < needed:
        raise InsufficientDataError(
            f"Insufficient data for RSI ({needed} needed, got {len(prices_newest_first)})"
        )

    window = prices_newest_first[:needed]
    gains = 0.0
    losses = 0.0
    for newer, older in zip(window, window[1:]):
        diff = newer - older
        if diff > 0:
            gains += diff
        else:
            losses -= diff

    avg_gain = gains / period
    avg_loss = losses / period
    rs = avg_gain / max(avg_loss, 1.0)
    return 100.0 - 100.0 / (1.0 + rs)


def compute_ema(prices_newest_first: list[float], period: int) -> float:
    """Short-window EMA walking from the newest price toward older ones.

    Seeds with the newest price and applies ``2 / (period + 1)`` across the
    next ``period - 1`` older prices. An approximation over a short,
    reverse-ordered window rather than a full historical EMA; only its
    relative ordering between two periods is consumed.

    Raises:
        InsufficientDataError: fewer than ``period`` prices.
    """
    if len(prices_newest_first) < period:
        raise InsufficientDataError(
            f"Insufficient data for EMA ({period} needed, got {len(prices_newest_first)})"
        )

    multiplier = 2.0 / (period + 1)
    ema = prices_newest_first[0]
    for price in prices_newest_first[1:period]:
        ema = (price - ema) * multiplier + ema
    return ema


def compute_obv(series_oldest_first: list[tuple[float, float]]) -> float:
    """On-Balance Volume of a (price, volume) series ordered oldest first.

    Raises:
        NoDataError: empty series.
    """
    if not series_oldest_first:
        raise NoDataError("No data for OBV calculation")

    obv = 0.0
    for (prev_price, _), (price, volume) in zip(series_oldest_first, series_oldest_first[1:]):
        if price > prev_price:
            obv += volume
        elif price < prev_price:
            obv -= volume
    return obv


class IndicatorEngine:
    """Reads rollup history from the store and computes indicators per symbol.

    Args:
        store: Rollup store.
        store_settings: Provides timeframe durations for the VWAP freshness window.
    """

    def __init__(self, store: MarketDataStore, store_settings: StoreSettings) -> None:
        self._store = store
        self._store_settings = store_settings

    async def vwap(self, symbol: str, timeframe: TimeFrame = TimeFrame.M5) -> float:
        """Running VWAP stored on the latest sample of the timeframe.

        Raises:
            InsufficientDataError: no sample within the timeframe's own duration.
        """
        since = now_ms() - self._store_settings.duration_ms(timeframe)
        latest = await self._store.get_latest(symbol, timeframe, since_ms=since)
        if latest is None or not latest.vwap:
            raise InsufficientDataError(f"No VWAP data for {symbol} in {timeframe.value}")
        return latest.vwap

    async def rsi(
        self, symbol: str, timeframe: TimeFrame = TimeFrame.M5, period: int = 14
    ) -> float:
        prices = await self._store.get_recent_prices(symbol, timeframe, period + 1)
        return compute_rsi(prices, period)

    async def ema(
        self, symbol: str, timeframe: TimeFrame = TimeFrame.M5, period: int = 9
    ) -> float:
        prices = await self._store.get_recent_prices(symbol, timeframe, period * 2)
        return compute_ema(prices, period)

    async def obv(self, symbol: str, timeframe: TimeFrame = TimeFrame.M5) -> float:
        series = await self._store.get_series(symbol, timeframe)
        return compute_obv(series)

    async def funding_rate(self, symbol: str) -> float:
        """Latest stored funding rate; 0.0 when none exists.

        A missing funding rate must never block trend classification.
        """
        sample = await self._store.get_latest_funding_rate(symbol)
        return sample.rate if sample is not None else 0.0
