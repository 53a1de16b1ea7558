"""Market microstructure signals: order-book snapshots and whale detection."""

from sentinel.market_data.order_book import OrderBookService, build_snapshot, compute_imbalance
from sentinel.market_data.whales import WhaleTracker, find_whale_levels, find_whale_trades

__all__ = [
    "OrderBookService",
    "WhaleTracker",
    "build_snapshot",
    "compute_imbalance",
    "find_whale_levels",
    "find_whale_trades",
]
