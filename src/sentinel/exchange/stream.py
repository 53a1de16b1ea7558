"""Ticker batch sources: the Binance all-market websocket and a REST poller.

Both hand lists of Tick to an async ``on_batch`` callback. The websocket
source reconnects with linear backoff (``reconnect_base_delay x attempt``)
and raises ConnectivityExhaustedError once the attempt ceiling is reached.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable

import aiohttp

from sentinel.config import FeedSettings
from sentinel.exceptions import ConnectivityExhaustedError
from sentinel.exchange.client import MarketDataFeed
from sentinel.logging import get_logger
from sentinel.models import Tick

logger = get_logger(__name__)

BatchHandler = Callable[[list[Tick]], Awaitable[object]]


def parse_ticker_batch(payload: object, quote_asset: str = "USDT") -> list[Tick]:
    """Convert a ``!ticker@arr`` message into ticks for quote-asset pairs.

    Binance sends raw market ids ("BTCUSDT"); they are mapped to unified
    symbols ("BTC/USDT") so stream and REST data share one keyspace.
    Entries with missing or non-numeric fields are skipped.

    Args:
        payload: Decoded JSON message (a list of 24hr ticker dicts).
        quote_asset: Quote currency to keep.

    Returns:
        Ticks in stream order.
    """
    if not isinstance(payload, list):
        return []

    ticks: list[Tick] = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        market_id = entry.get("s")
        if not isinstance(market_id, str) or not market_id.endswith(quote_asset):
            continue
        base = market_id[: -len(quote_asset)]
        if not base:
            continue
        try:
            price = float(entry["c"])
            volume = float(entry["v"])  # base-asset 24h volume
        except (KeyError, TypeError, ValueError):
            continue
        ticks.append(Tick(symbol=f"{base}/{quote_asset}", price=price, volume=volume))
    return ticks


class TickerStream:
    """Persistent websocket feed delivering batched ticker arrays.

    Usage:
        stream = TickerStream(settings.feed, pipeline.submit_batch)
        await stream.run()  # returns after stop(); raises when reconnects are exhausted
    """

    def __init__(
        self,
        settings: FeedSettings,
        on_batch: BatchHandler,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._on_batch = on_batch
        self._sleep = sleep
        self._running = False
        self._attempts = 0
        self._ws: aiohttp.ClientWebSocketResponse | None = None

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    async def run(self) -> None:
        """Connect and consume until stopped.

        Raises:
            ConnectivityExhaustedError: the reconnect ceiling was reached.
        """
        self._running = True
        async with aiohttp.ClientSession() as session:
            while self._running:
                if self._attempts >= self._settings.reconnect_max_attempts:
                    logger.critical(
                        "ticker_stream_reconnects_exhausted",
                        attempts=self._attempts,
                    )
                    raise ConnectivityExhaustedError(
                        f"Ticker stream failed after {self._attempts} reconnect attempts"
                    )

                try:
                    await self._consume(session)
                except asyncio.CancelledError:
                    raise
                except (aiohttp.ClientError, OSError) as exc:
                    logger.error("ticker_stream_error", error=str(exc))

                if not self._running:
                    break

                self._attempts += 1
                delay = self._settings.reconnect_base_delay * self._attempts
                logger.warning(
                    "ticker_stream_disconnected",
                    attempt=self._attempts,
                    reconnect_in=delay,
                )
                await self._sleep(delay)

    async def stop(self) -> None:
        """Stop consuming and close the socket."""
        self._running = False
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()

    async def _consume(self, session: aiohttp.ClientSession) -> None:
        async with session.ws_connect(self._settings.stream_url, heartbeat=30) as ws:
            self._ws = ws
            self._attempts = 0
            logger.info("ticker_stream_connected", url=self._settings.stream_url)

            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self._dispatch(msg.data)
                elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                    break
        self._ws = None

    async def _dispatch(self, raw: str) -> None:
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("ticker_stream_bad_message", size=len(raw))
            return
        ticks = parse_ticker_batch(payload, self._settings.quote_asset)
        if ticks:
            await self._on_batch(ticks)


class TickerPoller:
    """REST fallback source polling fetch_all_tickers() on a fixed interval."""

    def __init__(
        self,
        feed: MarketDataFeed,
        on_batch: BatchHandler,
        interval: float = 5.0,
    ) -> None:
        self._feed = feed
        self._on_batch = on_batch
        self._interval = interval
        self._running = False

    async def run(self) -> None:
        """Poll until stopped. Failed polls are logged and retried next interval."""
        self._running = True
        logger.info("ticker_poller_started", interval=self._interval)
        while self._running:
            await self.poll_once()
            if self._running:
                await asyncio.sleep(self._interval)

    async def poll_once(self) -> None:
        try:
            tickers = await self._feed.fetch_all_tickers()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("ticker_poll_failed", exc_info=True)
            return
        if tickers:
            await self._on_batch(list(tickers.values()))

    async def stop(self) -> None:
        self._running = False
        logger.info("ticker_poller_stopped")
