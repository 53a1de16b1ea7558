"""Async SQLite database manager for rollups and market-signal tables.

Uses aiosqlite for non-blocking database operations with WAL mode. The
retention sweeper opens its own SentinelDatabase on the same file, so its
DELETEs run on a separate connection thread from ingestion; WAL keeps
ingestion reads unblocked while a purge batch commits.
"""

import os
from typing import Self

import aiosqlite

from sentinel.logging import get_logger
from sentinel.models import TimeFrame

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_ROLLUP_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS {table} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol TEXT NOT NULL,
    price REAL NOT NULL,
    volume REAL NOT NULL,
    cumulative_value REAL NOT NULL DEFAULT 0,
    cumulative_volume REAL NOT NULL DEFAULT 0,
    vwap REAL NOT NULL DEFAULT 0,
    timestamp_ms INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_{table}_symbol_ts
    ON {table}(symbol, timestamp_ms);

CREATE INDEX IF NOT EXISTS idx_{table}_ts
    ON {table}(timestamp_ms);
"""

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS order_book (
    symbol TEXT PRIMARY KEY,
    bids TEXT NOT NULL,
    asks TEXT NOT NULL,
    imbalance REAL NOT NULL,
    best_bid REAL,
    best_ask REAL,
    spread REAL,
    timestamp_ms INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS whale_transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol TEXT NOT NULL,
    side TEXT NOT NULL CHECK (side IN ('buy', 'sell')),
    amount REAL NOT NULL,
    timestamp_ms INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS funding_rates (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol TEXT NOT NULL,
    funding_rate REAL NOT NULL,
    timestamp_ms INTEGER NOT NULL
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_whale_symbol_ts
    ON whale_transactions(symbol, timestamp_ms);

CREATE INDEX IF NOT EXISTS idx_funding_symbol_ts
    ON funding_rates(symbol, timestamp_ms);

CREATE INDEX IF NOT EXISTS idx_whale_ts
    ON whale_transactions(timestamp_ms);

CREATE INDEX IF NOT EXISTS idx_funding_ts
    ON funding_rates(timestamp_ms);

CREATE INDEX IF NOT EXISTS idx_order_book_ts
    ON order_book(timestamp_ms);
"""


class SentinelDatabase:
    """Async SQLite connection manager.

    Manages database lifecycle including schema creation (one rollup table
    per TimeFrame plus the order book, whale and funding tables), WAL mode
    configuration, and clean resource cleanup.

    Usage:
        async with SentinelDatabase("data/sentinel.db") as database:
            store = MarketDataStore(database, settings.store)
    """

    def __init__(self, db_path: str = "data/sentinel.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open database connection, configure pragmas, and create schema.

        Creates the parent directory if it does not exist.
        """
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")
        # The sweeper holds the write lock for one purge batch at a time
        await self._connection.execute("PRAGMA busy_timeout=5000")

        await self._create_tables()
        await self._ensure_schema_version()

        logger.info("sentinel_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("sentinel_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        assert self._connection is not None
        for timeframe in TimeFrame:
            await self._connection.executescript(
                _ROLLUP_TABLE_SQL.format(table=timeframe.table)
            )
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT version FROM schema_version LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
