"""Whale detection from order-book levels and the public trade tape.

A level or trade is a whale when ``size x price`` reaches the USD
threshold. Order-book whales are persisted in one batched insert per
detection and announced through the notifier, at most once per symbol per
cooldown window.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sentinel.config import AlertSettings
from sentinel.exceptions import DeliveryFailureError, InsufficientDataError
from sentinel.logging import get_logger
from sentinel.models import (
    AlertPayload,
    OrderBookSnapshot,
    TimeFrame,
    TradeSide,
    WhaleTransaction,
    now_ms,
)

if TYPE_CHECKING:
    from sentinel.alerts.cooldown import CooldownTracker
    from sentinel.data.store import MarketDataStore
    from sentinel.exchange.client import MarketDataFeed
    from sentinel.market_data.order_book import OrderBookService
    from sentinel.notify.base import Notifier

logger = get_logger(__name__)


def find_whale_levels(
    snapshot: OrderBookSnapshot,
    last_price: float,
    threshold_usd: float,
) -> list[WhaleTransaction]:
    """Order-book levels whose USD value at ``last_price`` reaches the threshold.

    Bid levels become buy candidates, ask levels sell candidates.
    """
    ts = now_ms()
    levels = [(TradeSide.BUY, price, size) for price, size in snapshot.bids]
    levels += [(TradeSide.SELL, price, size) for price, size in snapshot.asks]
    return [
        WhaleTransaction(
            symbol=snapshot.symbol,
            side=side,
            amount=size,
            timestamp_ms=ts,
            price=price,
        )
        for side, price, size in levels
        if size * last_price >= threshold_usd
    ]


def find_whale_trades(
    symbol: str, trades: list[dict], threshold_usd: float
) -> list[WhaleTransaction]:
    """Trade-tape entries whose ``amount x price`` reaches the threshold."""
    ts = now_ms()
    result: list[WhaleTransaction] = []
    for trade in trades:
        if trade.get("side") not in ("buy", "sell"):
            continue
        if trade["amount"] * trade["price"] >= threshold_usd:
            result.append(
                WhaleTransaction(
                    symbol=symbol,
                    side=TradeSide(trade["side"]),
                    amount=trade["amount"],
                    timestamp_ms=ts,
                    price=trade["price"],
                )
            )
    return result


class WhaleTracker:
    """Detects, records and announces whale activity.

    Args:
        feed: Market-data feed for the trade tape.
        store: Persists whale transactions; source of the latest traded price.
        order_books: Cached order-book snapshots.
        notifier: Channel for whale sub-signal notifications.
        cooldown: Whale notification cooldown, keyed by symbol. Independent
            of the directional alert cooldown.
        settings: Whale threshold and confirmation window.
    """

    def __init__(
        self,
        feed: MarketDataFeed,
        store: MarketDataStore,
        order_books: OrderBookService,
        notifier: Notifier,
        cooldown: CooldownTracker,
        settings: AlertSettings,
    ) -> None:
        self._feed = feed
        self._store = store
        self._order_books = order_books
        self._notifier = notifier
        self._cooldown = cooldown
        self._settings = settings

    async def detect_whale_orders(
        self,
        symbol: str,
        *,
        last_price: float | None = None,
        snapshot: OrderBookSnapshot | None = None,
    ) -> list[WhaleTransaction]:
        """Find whale levels in the symbol's order book, notify and persist them.

        Args:
            symbol: Symbol to inspect.
            last_price: Latest traded price; read from the 5m rollup when omitted.
            snapshot: Pre-fetched snapshot; fetched through the cache when omitted.

        Returns:
            The qualifying levels as WhaleTransaction candidates.

        Raises:
            InsufficientDataError: no latest price is known for the symbol.
        """
        if last_price is None:
            latest = await self._store.get_latest(symbol, TimeFrame.M5)
            if latest is None:
                raise InsufficientDataError(f"No price data for {symbol}")
            last_price = latest.price
        if snapshot is None:
            snapshot = await self._order_books.get_order_book_strength(symbol)

        candidates = find_whale_levels(snapshot, last_price, self._settings.whale_threshold_usd)
        if not candidates:
            return []

        for candidate in candidates:
            if await self._cooldown.should_alert(symbol):
                await self._announce(candidate, last_price)

        await self._store.insert_whale_transactions(candidates)
        logger.info(
            "whale_orders_logged",
            symbol=symbol,
            count=len(candidates),
            buys=sum(1 for c in candidates if c.side is TradeSide.BUY),
            sells=sum(1 for c in candidates if c.side is TradeSide.SELL),
        )
        return candidates

    async def fetch_whale_trades(self, symbol: str) -> list[WhaleTransaction]:
        """Whale-sized trades from the public trade tape."""
        trades = await self._feed.fetch_trades(symbol)
        return find_whale_trades(symbol, trades, self._settings.whale_threshold_usd)

    async def recent_whale_sides(self, symbol: str) -> set[TradeSide]:
        """Sides of whale transactions stored within the confirmation window."""
        since = now_ms() - self._settings.whale_window_minutes * 60 * 1000
        return await self._store.get_recent_whale_sides(symbol, since)

    async def _announce(self, whale: WhaleTransaction, last_price: float) -> None:
        payload = AlertPayload(
            symbol=whale.symbol,
            current_price=last_price,
            whale_data=whale,
        )
        try:
            await self._notifier.send(payload)
        except DeliveryFailureError as exc:
            logger.error("whale_notification_failed", symbol=whale.symbol, error=str(exc))
