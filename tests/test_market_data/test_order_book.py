"""Tests for order-book snapshots, imbalance and the freshness cache."""

from unittest.mock import AsyncMock

import pytest

from sentinel.config import AlertSettings
from sentinel.data import MarketDataStore
from sentinel.exceptions import InvalidDataError
from sentinel.market_data import OrderBookService, build_snapshot, compute_imbalance
from sentinel.models import now_ms

SYMBOL = "BTC/USDT"

BOOK = {
    "bids": [[100.0, 30.0], [99.5, 20.0]],
    "asks": [[100.5, 10.0], [101.0, 10.0]],
}


class TestComputeImbalance:
    def test_bid_heavy(self) -> None:
        bids = [(100.0, 30.0), (99.5, 20.0)]
        asks = [(100.5, 10.0), (101.0, 10.0)]
        assert compute_imbalance(bids, asks) == 2.5

    def test_thin_ask_side_floors_denominator(self) -> None:
        assert compute_imbalance([(100.0, 3.0)], [(100.5, 0.2)]) == 3.0


class TestBuildSnapshot:
    def test_fields(self) -> None:
        snapshot = build_snapshot(SYMBOL, BOOK, timestamp_ms=1234)

        assert snapshot.best_bid == 100.0
        assert snapshot.best_ask == 100.5
        assert snapshot.spread == pytest.approx(0.5)
        assert snapshot.imbalance == 2.5
        assert snapshot.timestamp_ms == 1234

    @pytest.mark.parametrize(
        "book",
        [
            {"bids": [], "asks": [[100.5, 1.0]]},
            {"bids": [[100.0, 1.0]], "asks": []},
            {"bids": [["x", 1.0]], "asks": [[100.5, 1.0]]},
            {},
        ],
    )
    def test_invalid_books_raise(self, book: dict) -> None:
        with pytest.raises(InvalidDataError):
            build_snapshot(SYMBOL, book)


class TestOrderBookService:
    """Tests for refresh and the freshness window, against a real store."""

    @pytest.fixture()
    def feed(self) -> AsyncMock:
        feed = AsyncMock()
        feed.fetch_order_book = AsyncMock(return_value=BOOK)
        return feed

    @pytest.mark.asyncio()
    async def test_refresh_persists_snapshot(
        self, feed: AsyncMock, store: MarketDataStore, alert_settings: AlertSettings
    ) -> None:
        service = OrderBookService(feed, store, alert_settings, depth=10)

        snapshot = await service.refresh_order_book(SYMBOL)

        feed.fetch_order_book.assert_awaited_once_with(SYMBOL, 10)
        stored = await store.get_order_book(SYMBOL)
        assert stored is not None
        assert stored.imbalance == snapshot.imbalance

    @pytest.mark.asyncio()
    async def test_fresh_snapshot_served_from_store(
        self, feed: AsyncMock, store: MarketDataStore, alert_settings: AlertSettings
    ) -> None:
        service = OrderBookService(feed, store, alert_settings)
        await store.upsert_order_book(build_snapshot(SYMBOL, BOOK, timestamp_ms=now_ms() - 1000))

        snapshot = await service.get_order_book_strength(SYMBOL)

        assert snapshot.imbalance == 2.5
        feed.fetch_order_book.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_stale_snapshot_is_refetched(
        self, feed: AsyncMock, store: MarketDataStore, alert_settings: AlertSettings
    ) -> None:
        service = OrderBookService(feed, store, alert_settings)
        stale_book = {"bids": [[100.0, 1.0]], "asks": [[100.5, 1.0]]}
        await store.upsert_order_book(
            build_snapshot(SYMBOL, stale_book, timestamp_ms=now_ms() - 6 * 60 * 1000)
        )

        snapshot = await service.get_order_book_strength(SYMBOL)

        assert snapshot.imbalance == 2.5
        feed.fetch_order_book.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_invalid_feed_book_propagates(
        self, feed: AsyncMock, store: MarketDataStore, alert_settings: AlertSettings
    ) -> None:
        feed.fetch_order_book.side_effect = InvalidDataError("empty")
        service = OrderBookService(feed, store, alert_settings)

        with pytest.raises(InvalidDataError):
            await service.get_order_book_strength(SYMBOL)
