"""Abstract market-data feed interface.

The pipeline, the indicator layer and the whale provider depend only on
this interface, keeping Binance/ccxt specifics in the concrete client.
Implementations apply the retry wrapper at every call site.
"""

from abc import ABC, abstractmethod

from sentinel.models import Tick


class MarketDataFeed(ABC):
    """Abstract base class for market-data feed clients."""

    @abstractmethod
    async def connect(self) -> None:
        """Initialize connection and load markets."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources (CRITICAL for ccxt async)."""
        ...

    @abstractmethod
    async def fetch_all_tickers(self) -> dict[str, Tick]:
        """Latest price and volume for every quote-asset symbol, keyed by symbol."""
        ...

    @abstractmethod
    async def fetch_order_book(self, symbol: str, depth: int) -> dict:
        """Fetch the top ``depth`` levels per side.

        Returns a dict with ``bids`` and ``asks`` lists of [price, size],
        best level first.

        Raises:
            InvalidDataError: either side is empty.
        """
        ...

    @abstractmethod
    async def fetch_trades(self, symbol: str) -> list[dict]:
        """Recent public trades as dicts with keys: amount, price, side."""
        ...

    @abstractmethod
    async def fetch_funding_rate(self, symbol: str) -> float:
        """Current funding rate of the symbol's perpetual contract.

        Raises:
            InvalidDataError: the exchange returned no rate.
        """
        ...
