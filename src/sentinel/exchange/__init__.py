"""Market-data feed layer: abstract feed, Binance client and ticker batch sources."""

from sentinel.exchange.binance_client import BinanceClient
from sentinel.exchange.client import MarketDataFeed
from sentinel.exchange.stream import TickerPoller, TickerStream, parse_ticker_batch

__all__ = [
    "BinanceClient",
    "MarketDataFeed",
    "TickerPoller",
    "TickerStream",
    "parse_ticker_batch",
]
