"""Persistence layer.

Provides the SQLite database manager, the typed rollup/signal store,
and the periodic retention sweeper.
"""

from sentinel.data.database import SentinelDatabase
from sentinel.data.retention import RetentionSweeper
from sentinel.data.store import MarketDataStore

__all__ = [
    "MarketDataStore",
    "RetentionSweeper",
    "SentinelDatabase",
]
