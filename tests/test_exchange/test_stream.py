"""Tests for the ticker stream parser, reconnect policy and REST poller."""

import json
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from sentinel.config import FeedSettings
from sentinel.exceptions import ConnectivityExhaustedError
from sentinel.exchange import TickerPoller, TickerStream, parse_ticker_batch
from sentinel.models import Tick

PAYLOAD = [
    {"s": "BTCUSDT", "c": "50000.10", "v": "1234.5"},
    {"s": "ETHBTC", "c": "0.05", "v": "10"},
    {"s": "SOLUSDT", "c": "150.0", "v": "99"},
    {"s": "BADUSDT", "c": "not-a-number", "v": "1"},
    {"s": "USDT", "c": "1", "v": "1"},
    {"c": "1", "v": "1"},
]


class TestParseTickerBatch:
    def test_keeps_quote_asset_pairs_with_unified_symbols(self) -> None:
        assert parse_ticker_batch(PAYLOAD) == [
            Tick(symbol="BTC/USDT", price=50000.10, volume=1234.5),
            Tick(symbol="SOL/USDT", price=150.0, volume=99.0),
        ]

    def test_other_quote_asset(self) -> None:
        assert parse_ticker_batch(PAYLOAD, quote_asset="BTC") == [
            Tick(symbol="ETH/BTC", price=0.05, volume=10.0)
        ]

    def test_non_list_payload(self) -> None:
        assert parse_ticker_batch({"e": "error"}) == []


class TestTickerStream:
    """Reconnect behaviour with the socket consumer mocked out."""

    @pytest.mark.asyncio()
    async def test_reconnect_ceiling_raises(self) -> None:
        settings = FeedSettings(reconnect_max_attempts=3, reconnect_base_delay=5.0)
        sleep = AsyncMock()
        stream = TickerStream(settings, AsyncMock(), sleep=sleep)

        with patch.object(
            stream, "_consume", AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))
        ) as consume:
            with pytest.raises(ConnectivityExhaustedError):
                await stream.run()

        assert consume.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [5.0, 10.0, 15.0]
        assert stream.reconnect_attempts == 3

    @pytest.mark.asyncio()
    async def test_stop_ends_run_without_error(self) -> None:
        sleep = AsyncMock()
        stream = TickerStream(FeedSettings(), AsyncMock(), sleep=sleep)
        calls: list[int] = []

        async def consume(session: aiohttp.ClientSession) -> None:
            calls.append(1)
            if len(calls) == 1:
                raise aiohttp.ClientConnectionError("refused")
            await stream.stop()

        with patch.object(stream, "_consume", AsyncMock(side_effect=consume)):
            await stream.run()

        assert len(calls) == 2
        sleep.assert_awaited_once_with(5.0)

    @pytest.mark.asyncio()
    async def test_dispatch_forwards_parsed_ticks(self) -> None:
        on_batch = AsyncMock()
        stream = TickerStream(FeedSettings(), on_batch)

        await stream._dispatch(json.dumps(PAYLOAD))

        ticks = on_batch.await_args.args[0]
        assert [t.symbol for t in ticks] == ["BTC/USDT", "SOL/USDT"]

    @pytest.mark.asyncio()
    async def test_dispatch_ignores_bad_json(self) -> None:
        on_batch = AsyncMock()
        stream = TickerStream(FeedSettings(), on_batch)

        await stream._dispatch("{not json")

        on_batch.assert_not_awaited()


class TestTickerPoller:
    @pytest.mark.asyncio()
    async def test_poll_once_forwards_tickers(self) -> None:
        tick = Tick(symbol="BTC/USDT", price=50000.0, volume=10.0)
        feed = AsyncMock()
        feed.fetch_all_tickers = AsyncMock(return_value={"BTC/USDT": tick})
        on_batch = AsyncMock()

        await TickerPoller(feed, on_batch).poll_once()

        on_batch.assert_awaited_once_with([tick])

    @pytest.mark.asyncio()
    async def test_poll_failure_is_logged_not_raised(self) -> None:
        feed = AsyncMock()
        feed.fetch_all_tickers = AsyncMock(side_effect=RuntimeError("exchange down"))
        on_batch = AsyncMock()

        await TickerPoller(feed, on_batch).poll_once()

        on_batch.assert_not_awaited()
