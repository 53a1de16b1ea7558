"""Alert decision engine: multi-signal gate over trend, flow and whale data.

For every symbol with a live tick, the engine reads the trend/breakout
state once, then for each evaluation timeframe (5m by default):

1. Gathers price average, volume average, order book, trade-tape whales and
   the latest funding rate concurrently, each failure isolated.
2. Aborts quietly when any required input is missing or funding is extreme.
3. Derives price change %, volume multiple and VWAP position.
4. Picks neutral or strong-trend thresholds and checks whale confirmation.
5. Fires a bullish or bearish alert when every condition of its side holds,
   subject to the per-symbol, per-direction alert cooldown.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sentinel.config import AlertSettings, StoreSettings
from sentinel.exceptions import DeliveryFailureError
from sentinel.logging import get_logger
from sentinel.models import (
    AlertDirection,
    AlertPayload,
    BreakoutLabel,
    TimeFrame,
    TradeSide,
    TrendLabel,
    WhaleTransaction,
)

if TYPE_CHECKING:
    from sentinel.alerts.cooldown import CooldownTracker
    from sentinel.data.store import MarketDataStore
    from sentinel.market_data.order_book import OrderBookService
    from sentinel.market_data.whales import WhaleTracker
    from sentinel.notify.base import Notifier
    from sentinel.signals.indicators import IndicatorEngine
    from sentinel.signals.trend import TrendClassifier

logger = get_logger(__name__)


@dataclass(frozen=True)
class Thresholds:
    """Gate thresholds for one trend regime."""

    price_pct: float
    volume_multiple: float
    imbalance: float


@dataclass(frozen=True)
class GateInputs:
    """Everything the alert gate looks at for one symbol and timeframe."""

    trend: TrendLabel
    breakout: BreakoutLabel
    price_change_pct: float
    volume_multiple: float
    imbalance: float
    price_above_vwap: bool
    bullish_whale: bool
    bearish_whale: bool


def select_thresholds(trend: TrendLabel, settings: AlertSettings) -> Thresholds:
    """Strong-trend thresholds for a bullish/bearish trend, neutral ones otherwise."""
    if trend is TrendLabel.NEUTRAL:
        return Thresholds(
            price_pct=settings.price_threshold_neutral,
            volume_multiple=settings.volume_threshold_neutral,
            imbalance=settings.imbalance_threshold_neutral,
        )
    return Thresholds(
        price_pct=settings.price_threshold_strong,
        volume_multiple=settings.volume_threshold_strong,
        imbalance=settings.imbalance_threshold_strong,
    )


def evaluate_gate(inputs: GateInputs, thresholds: Thresholds) -> AlertDirection | None:
    """Return the alert direction whose every condition holds, or None.

    Bullish: (strong bullish trend, or neutral trend with a bullish
    breakout), price up at least the threshold, volume at least the
    multiple, bid-heavy book, price above VWAP, and a buy-side whale.
    Bearish mirrors it: price down, ask-heavy book (imbalance below the
    reciprocal threshold), price at or below VWAP, and a sell-side whale.
    """
    neutral = inputs.trend is TrendLabel.NEUTRAL
    volume_ok = inputs.volume_multiple >= thresholds.volume_multiple

    bullish_setup = inputs.trend.is_bullish or (
        neutral and inputs.breakout is BreakoutLabel.BULLISH
    )
    if (
        bullish_setup
        and inputs.price_change_pct >= thresholds.price_pct
        and volume_ok
        and inputs.imbalance > thresholds.imbalance
        and inputs.price_above_vwap
        and inputs.bullish_whale
    ):
        return AlertDirection.BULLISH

    bearish_setup = inputs.trend.is_bearish or (
        neutral and inputs.breakout is BreakoutLabel.BEARISH
    )
    if (
        bearish_setup
        and inputs.price_change_pct <= -thresholds.price_pct
        and volume_ok
        and inputs.imbalance < 1 / thresholds.imbalance
        and not inputs.price_above_vwap
        and inputs.bearish_whale
    ):
        return AlertDirection.BEARISH

    return None


def _settled(symbol: str, name: str, result: object) -> object | None:
    """Unwrap one gather(return_exceptions=True) slot, logging a failure."""
    if isinstance(result, BaseException):
        logger.debug(
            "alert_input_failed",
            symbol=symbol,
            input=name,
            error=str(result),
            error_type=type(result).__name__,
        )
        return None
    return result


class AlertEngine:
    """Evaluates the alert gate for a symbol and dispatches fired alerts.

    Args:
        store: Rollup and signal store.
        indicators: Indicator engine (RSI for the payload).
        classifier: Trend and breakout classifier.
        order_books: Cached order-book snapshots.
        whales: Whale detection and stored-whale lookups.
        notifier: Alert delivery channel.
        cooldown: Directional alert cooldown, keyed by "symbol:direction".
        settings: Alert thresholds.
        store_settings: Timeframe durations for the averaging windows.
    """

    def __init__(
        self,
        store: MarketDataStore,
        indicators: IndicatorEngine,
        classifier: TrendClassifier,
        order_books: OrderBookService,
        whales: WhaleTracker,
        notifier: Notifier,
        cooldown: CooldownTracker,
        settings: AlertSettings,
        store_settings: StoreSettings,
    ) -> None:
        self._store = store
        self._indicators = indicators
        self._classifier = classifier
        self._order_books = order_books
        self._whales = whales
        self._notifier = notifier
        self._cooldown = cooldown
        self._settings = settings
        self._store_settings = store_settings

    async def analyze_symbol(self, symbol: str) -> list[AlertPayload]:
        """Run the gate for every evaluation timeframe of a symbol.

        Trend, breakout and 1h RSI are required; their InsufficientDataError
        propagates so the caller can skip the symbol for this batch.

        Returns:
            Payloads of the alerts fired (and not suppressed by cooldown).
        """
        trend, breakout, rsi_1h = await asyncio.gather(
            self._classifier.detect_trend(symbol),
            self._classifier.detect_breakout(symbol),
            self._indicators.rsi(symbol, TimeFrame.H1, self._settings.rsi_period),
        )

        fired: list[AlertPayload] = []
        for timeframe in self._settings.evaluation_timeframes:
            payload = await self.evaluate(symbol, timeframe, trend, breakout, rsi_1h)
            if payload is not None:
                fired.append(payload)
        return fired

    async def evaluate(
        self,
        symbol: str,
        timeframe: TimeFrame,
        trend: TrendLabel,
        breakout: BreakoutLabel,
        rsi_1h: float,
    ) -> AlertPayload | None:
        """Evaluate the gate on one timeframe and dispatch the alert if it fires."""
        window_ms = self._store_settings.duration_ms(timeframe)
        results = await asyncio.gather(
            self._store.get_average(symbol, timeframe, window_ms, "price"),
            self._store.get_average(symbol, timeframe, window_ms, "volume"),
            self._order_books.get_order_book_strength(symbol),
            self._whales.fetch_whale_trades(symbol),
            self._store.get_latest_funding_rate(symbol),
            return_exceptions=True,
        )
        price_avg = _settled(symbol, "price_average", results[0])
        volume_avg = _settled(symbol, "volume_average", results[1])
        book = _settled(symbol, "order_book", results[2])
        trade_whales = _settled(symbol, "whale_trades", results[3]) or []
        funding = _settled(symbol, "funding_rate", results[4])

        if not price_avg or not volume_avg or book is None or funding is None:
            logger.debug(
                "alert_inputs_unavailable",
                symbol=symbol,
                timeframe=timeframe.value,
                price_avg=bool(price_avg),
                volume_avg=bool(volume_avg),
                order_book=book is not None,
                funding_rate=funding is not None,
            )
            return None

        if abs(funding.rate) > self._settings.funding_rate_threshold:
            logger.info(
                "alert_skipped_extreme_funding",
                symbol=symbol,
                funding_rate=funding.rate,
            )
            return None

        latest = await self._store.get_latest(symbol, timeframe)
        if latest is None:
            return None

        price_change_pct = (latest.price - price_avg) / price_avg * 100
        volume_multiple = latest.volume / volume_avg
        price_above_vwap = latest.price > latest.vwap

        try:
            order_whales = await self._whales.detect_whale_orders(
                symbol, last_price=latest.price, snapshot=book
            )
        except Exception as exc:
            logger.warning("whale_order_detection_failed", symbol=symbol, error=str(exc))
            order_whales = []

        stored_sides = await self._whales.recent_whale_sides(symbol)
        live_whales: list[WhaleTransaction] = [*order_whales, *trade_whales]

        inputs = GateInputs(
            trend=trend,
            breakout=breakout,
            price_change_pct=price_change_pct,
            volume_multiple=volume_multiple,
            imbalance=book.imbalance,
            price_above_vwap=price_above_vwap,
            bullish_whale=TradeSide.BUY in stored_sides
            or any(w.side is TradeSide.BUY for w in live_whales),
            bearish_whale=TradeSide.SELL in stored_sides
            or any(w.side is TradeSide.SELL for w in live_whales),
        )
        direction = evaluate_gate(inputs, select_thresholds(trend, self._settings))
        if direction is None:
            return None

        if not await self._cooldown.should_alert(f"{symbol}:{direction.value}"):
            logger.info("alert_suppressed_cooldown", symbol=symbol, direction=direction.value)
            return None

        whale_side = TradeSide.BUY if direction is AlertDirection.BULLISH else TradeSide.SELL
        payload = AlertPayload(
            symbol=symbol,
            direction=direction,
            current_price=latest.price,
            price_change_pct=price_change_pct,
            volume_multiple=volume_multiple,
            order_book_imbalance=book.imbalance,
            vwap=latest.vwap,
            funding_rate=funding.rate,
            rsi_1h=rsi_1h,
            breakout_label=breakout,
            whale_data=next((w for w in live_whales if w.side is whale_side), None),
        )
        logger.info(
            "alert_fired",
            symbol=symbol,
            direction=direction.value,
            timeframe=timeframe.value,
            trend=trend.value,
            breakout=breakout.value,
            price_change_pct=round(price_change_pct, 2),
            volume_multiple=round(volume_multiple, 2),
            imbalance=round(book.imbalance, 2),
        )

        try:
            await self._notifier.send(payload)
        except DeliveryFailureError as exc:
            logger.error("alert_delivery_failed", symbol=symbol, error=str(exc))
        return payload
