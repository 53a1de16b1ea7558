"""Shared data models for the market sentinel.

Prices, volumes and indicator values are floats: they are market-data
analytics compared against ratio thresholds, never settled amounts.
Timestamps are Unix milliseconds throughout.
"""

import time
from dataclasses import dataclass, field
from enum import Enum


def now_ms() -> int:
    """Current wall-clock time in Unix milliseconds."""
    return int(time.time() * 1000)


class TimeFrame(str, Enum):
    """Rollup/lookback timeframes. Each maps to its own rollup table."""

    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"

    @property
    def table(self) -> str:
        """Name of the rollup table backing this timeframe."""
        return f"rollup_{self.value}"

    @property
    def duration_ms(self) -> int:
        """Default duration of the timeframe in milliseconds."""
        return _DEFAULT_DURATIONS_MS[self]


_DEFAULT_DURATIONS_MS: dict[TimeFrame, int] = {
    TimeFrame.M5: 5 * 60 * 1000,
    TimeFrame.M15: 15 * 60 * 1000,
    TimeFrame.M30: 30 * 60 * 1000,
    TimeFrame.H1: 60 * 60 * 1000,
    TimeFrame.H4: 4 * 60 * 60 * 1000,
    TimeFrame.D1: 24 * 60 * 60 * 1000,
}


class TradeSide(str, Enum):
    """Side of a whale order or trade."""

    BUY = "buy"
    SELL = "sell"


class TrendLabel(str, Enum):
    """Discrete trend classification for a symbol."""

    BULLISH = "Bullish"
    BULLISH_OVERHEATED = "Bullish (Overheated)"
    BEARISH = "Bearish"
    BEARISH_OVERHEATED = "Bearish (Overheated)"
    NEUTRAL = "Neutral"

    @property
    def is_bullish(self) -> bool:
        return self in (TrendLabel.BULLISH, TrendLabel.BULLISH_OVERHEATED)

    @property
    def is_bearish(self) -> bool:
        return self in (TrendLabel.BEARISH, TrendLabel.BEARISH_OVERHEATED)


class BreakoutLabel(str, Enum):
    """Breakout state of the newest 1h sample versus the prior ones."""

    BULLISH = "Bullish Breakout"
    BEARISH = "Bearish Breakout"
    NONE = "No Breakout"


class AlertDirection(str, Enum):
    """Direction of a fired alert."""

    BULLISH = "bullish"
    BEARISH = "bearish"


@dataclass(frozen=True)
class Tick:
    """One entry of a feed batch: the latest price and volume of a symbol."""

    symbol: str
    price: float
    volume: float


@dataclass(frozen=True)
class Sample:
    """One rollup row. Immutable once written."""

    symbol: str
    timeframe: TimeFrame
    price: float
    volume: float
    cumulative_value: float
    cumulative_volume: float
    vwap: float
    timestamp_ms: int


@dataclass
class OrderBookSnapshot:
    """The current order book of a symbol. Overwritten on refresh."""

    symbol: str
    bids: list[tuple[float, float]]  # (price, size), best first
    asks: list[tuple[float, float]]
    imbalance: float
    best_bid: float
    best_ask: float
    spread: float
    timestamp_ms: int = field(default_factory=now_ms)

    def age_ms(self, at_ms: int | None = None) -> int:
        """Milliseconds elapsed since the snapshot was taken."""
        return (at_ms if at_ms is not None else now_ms()) - self.timestamp_ms


@dataclass(frozen=True)
class WhaleTransaction:
    """An order-book level or trade whose USD notional reached the whale threshold."""

    symbol: str
    side: TradeSide
    amount: float  # base-asset quantity
    timestamp_ms: int = field(default_factory=now_ms)
    price: float | None = None


@dataclass(frozen=True)
class FundingRateSample:
    """Latest funding rate observation for a symbol."""

    symbol: str
    rate: float
    timestamp_ms: int


@dataclass
class AlertPayload:
    """Structured notification handed to the notifier.

    Directional alerts fill every market field; whale sub-signal
    notifications carry only the price and ``whale_data``.
    """

    symbol: str
    current_price: float
    direction: AlertDirection | None = None
    price_change_pct: float | None = None
    volume_multiple: float | None = None
    order_book_imbalance: float | None = None
    vwap: float | None = None
    funding_rate: float | None = None
    rsi_1h: float | None = None
    breakout_label: BreakoutLabel | None = None
    whale_data: WhaleTransaction | None = None
