"""Binance market-data client via ccxt async.

Wraps ccxt.async_support.binance (spot tickers, order books, trades) and
ccxt.async_support.binanceusdm (perpetual funding rates). Every call goes
through the rate-limit retry policy with its own, per-call retry state.
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar

import ccxt.async_support as ccxt_async

from sentinel.config import FeedSettings
from sentinel.exceptions import InvalidDataError
from sentinel.exchange.client import MarketDataFeed
from sentinel.logging import get_logger
from sentinel.models import Tick
from sentinel.retry import RetryPolicy, call_with_retry

logger = get_logger(__name__)

T = TypeVar("T")


def to_perp_symbol(symbol: str) -> str:
    """Map a spot symbol to its linear perpetual ("BTC/USDT" -> "BTC/USDT:USDT")."""
    if ":" in symbol:
        return symbol
    _, quote = symbol.split("/", 1)
    return f"{symbol}:{quote}"


class BinanceClient(MarketDataFeed):
    """Concrete Binance feed client using ccxt async."""

    def __init__(self, settings: FeedSettings) -> None:
        self._settings = settings

        config: dict = {
            "apiKey": settings.api_key.get_secret_value(),
            "secret": settings.api_secret.get_secret_value(),
            "enableRateLimit": True,
        }
        self._spot = ccxt_async.binance(dict(config))
        self._futures = ccxt_async.binanceusdm(dict(config))
        self._policy = RetryPolicy.rate_limited(
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
        )

    async def connect(self) -> None:
        """Load spot and USD-M futures markets."""
        logger.info("connecting_to_binance")
        spot_markets = await self._spot.load_markets()
        futures_markets = await self._futures.load_markets()
        logger.info(
            "binance_connected",
            spot_markets=len(spot_markets),
            futures_markets=len(futures_markets),
        )

    async def close(self) -> None:
        """Clean up ccxt async resources. CRITICAL: must be called to avoid resource leaks."""
        logger.info("closing_binance_connection")
        await self._spot.close()
        await self._futures.close()
        logger.info("binance_connection_closed")

    async def _call(
        self,
        description: str,
        operation: Callable[[], Awaitable[T]],
        symbol: str | None = None,
    ) -> T:
        return await call_with_retry(
            operation, self._policy, description=description, symbol=symbol
        )

    async def fetch_all_tickers(self) -> dict[str, Tick]:
        """Fetch every spot ticker and keep the quote-asset pairs with a last price."""
        tickers = await self._call("fetch_all_tickers", self._spot.fetch_tickers)
        suffix = f"/{self._settings.quote_asset}"

        result: dict[str, Tick] = {}
        for symbol, data in tickers.items():
            if not symbol.endswith(suffix):
                continue
            last = data.get("last")
            if last is None:
                continue
            result[symbol] = Tick(
                symbol=symbol,
                price=float(last),
                volume=float(data.get("baseVolume") or 0.0),
            )
        logger.debug("fetched_all_tickers", count=len(result))
        return result

    async def fetch_order_book(self, symbol: str, depth: int) -> dict:
        """Fetch a bounded-depth order book, rejecting books with an empty side."""

        async def _fetch() -> dict:
            book = await self._spot.fetch_order_book(symbol, depth)
            if not book or not book.get("bids") or not book.get("asks"):
                raise InvalidDataError(f"Invalid or empty order book for {symbol}")
            return book

        return await self._call("fetch_order_book", _fetch, symbol)

    async def fetch_trades(self, symbol: str) -> list[dict]:
        """Fetch recent trades reduced to amount, price and side."""
        trades = await self._call(
            "fetch_trades", lambda: self._spot.fetch_trades(symbol), symbol
        )
        return [
            {
                "amount": float(t["amount"]),
                "price": float(t["price"]),
                "side": t.get("side"),
            }
            for t in trades
            if t.get("amount") is not None and t.get("price") is not None
        ]

    async def fetch_funding_rate(self, symbol: str) -> float:
        """Fetch the current funding rate of the symbol's USD-M perpetual."""
        perp_symbol = to_perp_symbol(symbol)

        async def _fetch() -> float:
            funding = await self._futures.fetch_funding_rate(perp_symbol)
            rate = funding.get("fundingRate") if funding else None
            if rate is None:
                raise InvalidDataError(f"Invalid funding rate data for {perp_symbol}")
            return float(rate)

        return await self._call("fetch_funding_rate", _fetch, symbol)
