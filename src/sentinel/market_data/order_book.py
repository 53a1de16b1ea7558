"""Order-book snapshots with imbalance, cached for a short freshness window.

One logical snapshot per symbol lives in the store and is overwritten on
every refresh. Reads younger than the freshness window are served from the
store; older ones trigger a refetch through the feed.
"""

from sentinel.config import AlertSettings
from sentinel.data.store import MarketDataStore
from sentinel.exceptions import InvalidDataError
from sentinel.exchange.client import MarketDataFeed
from sentinel.logging import get_logger
from sentinel.models import OrderBookSnapshot, now_ms

logger = get_logger(__name__)


def compute_imbalance(
    bids: list[tuple[float, float]], asks: list[tuple[float, float]]
) -> float:
    """Total bid size over total ask size, with the denominator floored at 1."""
    bid_volume = sum(size for _, size in bids)
    ask_volume = sum(size for _, size in asks)
    return bid_volume / max(ask_volume, 1.0)


def build_snapshot(symbol: str, book: dict, timestamp_ms: int | None = None) -> OrderBookSnapshot:
    """Build a snapshot from a ccxt-style ``{"bids": [...], "asks": [...]}`` book.

    Raises:
        InvalidDataError: either side is empty or a level is malformed.
    """
    try:
        bids = [(float(level[0]), float(level[1])) for level in book.get("bids") or []]
        asks = [(float(level[0]), float(level[1])) for level in book.get("asks") or []]
    except (IndexError, TypeError, ValueError) as exc:
        raise InvalidDataError(f"Malformed order book for {symbol}") from exc
    if not bids or not asks:
        raise InvalidDataError(f"Invalid or empty order book for {symbol}")

    best_bid = bids[0][0]
    best_ask = asks[0][0]
    return OrderBookSnapshot(
        symbol=symbol,
        bids=bids,
        asks=asks,
        imbalance=compute_imbalance(bids, asks),
        best_bid=best_bid,
        best_ask=best_ask,
        spread=best_ask - best_bid,
        timestamp_ms=timestamp_ms if timestamp_ms is not None else now_ms(),
    )


class OrderBookService:
    """Fetches, persists and serves order-book snapshots.

    Args:
        feed: Market-data feed (retries rate limits itself).
        store: Persists the single live snapshot per symbol.
        settings: Freshness window.
        depth: Levels fetched per side.
    """

    def __init__(
        self,
        feed: MarketDataFeed,
        store: MarketDataStore,
        settings: AlertSettings,
        depth: int = 10,
    ) -> None:
        self._feed = feed
        self._store = store
        self._settings = settings
        self._depth = depth

    async def refresh_order_book(self, symbol: str) -> OrderBookSnapshot:
        """Fetch a fresh book, compute its imbalance and replace the stored snapshot."""
        book = await self._feed.fetch_order_book(symbol, self._depth)
        snapshot = build_snapshot(symbol, book)
        await self._store.upsert_order_book(snapshot)
        logger.debug(
            "order_book_refreshed",
            symbol=symbol,
            imbalance=round(snapshot.imbalance, 4),
            spread=snapshot.spread,
        )
        return snapshot

    async def get_order_book_strength(self, symbol: str) -> OrderBookSnapshot:
        """Stored snapshot if fresher than the window, else a refreshed one."""
        cached = await self._store.get_order_book(symbol)
        freshness_ms = self._settings.order_book_freshness_seconds * 1000
        if cached is not None and cached.age_ms() < freshness_ms:
            return cached
        return await self.refresh_order_book(symbol)
