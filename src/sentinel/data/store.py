"""Typed SQLite read/write abstraction for rollups and market-signal tables.

Provides MarketDataStore with typed methods for appending rollup samples,
reading windowed aggregates, and persisting order-book snapshots, whale
transactions and funding rates. All SQL is isolated behind this interface.

Every read carries an explicit ``timestamp_ms >= cutoff`` predicate; the
cutoff is the caller's window or, for unbounded reads, the table's
retention horizon.
"""

import asyncio
import json
from collections.abc import Iterable
from typing import Literal

from sentinel.config import StoreSettings
from sentinel.data.database import SentinelDatabase
from sentinel.exceptions import InvalidDataError
from sentinel.logging import get_logger
from sentinel.models import (
    FundingRateSample,
    OrderBookSnapshot,
    Sample,
    TimeFrame,
    TradeSide,
    WhaleTransaction,
    now_ms,
)

logger = get_logger(__name__)

_AVERAGE_FIELDS = {"price", "volume"}


class MarketDataStore:
    """Async SQLite store for timeframe rollups and market signals.

    Wraps SentinelDatabase with typed read/write methods. All SQL access
    goes through self._database.db (the aiosqlite Connection). The store
    never assumes exclusive access: other readers may share the file.

    Usage:
        async with SentinelDatabase("data/sentinel.db") as database:
            store = MarketDataStore(database, settings.store)
            await store.append_tick("BTC/USDT", 50_000.0, 12.5)
    """

    def __init__(self, database: SentinelDatabase, settings: StoreSettings) -> None:
        self._database = database
        self._settings = settings
        self._series_locks: dict[tuple[str, TimeFrame], asyncio.Lock] = {}

    # ──────────────────────────────────────────────
    # Rollups
    # ──────────────────────────────────────────────

    async def append_sample(
        self,
        symbol: str,
        price: float,
        volume: float,
        timeframe: TimeFrame,
        *,
        timestamp_ms: int | None = None,
    ) -> Sample:
        """Append one rollup row for a symbol and timeframe.

        Seeds the cumulative value/volume from the most recent prior row of
        the same series (zero for an empty series). In "bucket" anchoring the
        chain restarts when the prior row belongs to an earlier timeframe
        bucket, so VWAP is the volume-weighted price of the current bucket.

        The prior-row read and the insert run under a per-series lock, so
        overlapping batches that write the same symbol extend one chain.

        Raises:
            InvalidDataError: price is not positive or volume is negative.
        """
        if price <= 0 or volume < 0:
            raise InvalidDataError(
                f"Rejected sample for {symbol}: price={price} volume={volume}"
            )

        ts = timestamp_ms if timestamp_ms is not None else now_ms()
        db = self._database.db
        table = timeframe.table

        async with self._series_lock(symbol, timeframe):
            cursor = await db.execute(
                f"SELECT cumulative_value, cumulative_volume, timestamp_ms FROM {table} "
                "WHERE symbol = ? ORDER BY timestamp_ms DESC, id DESC LIMIT 1",
                (symbol,),
            )
            prev = await cursor.fetchone()

            seed_value, seed_volume = 0.0, 0.0
            if prev is not None and self._continues_chain(timeframe, prev[2], ts):
                seed_value, seed_volume = prev[0], prev[1]

            cumulative_value = seed_value + price * volume
            cumulative_volume = seed_volume + volume
            vwap = cumulative_value / cumulative_volume if cumulative_volume else price

            await db.execute(
                f"INSERT INTO {table} "
                "(symbol, price, volume, cumulative_value, cumulative_volume, vwap, timestamp_ms) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (symbol, price, volume, cumulative_value, cumulative_volume, vwap, ts),
            )
            await db.commit()

        return Sample(
            symbol=symbol,
            timeframe=timeframe,
            price=price,
            volume=volume,
            cumulative_value=cumulative_value,
            cumulative_volume=cumulative_volume,
            vwap=vwap,
            timestamp_ms=ts,
        )

    async def append_tick(
        self,
        symbol: str,
        price: float,
        volume: float,
        *,
        timestamp_ms: int | None = None,
    ) -> list[Sample]:
        """Write one tick to every timeframe.

        The six writes touch independent tables and run concurrently.
        All six rows carry the same timestamp.

        Raises:
            InvalidDataError: price is not positive or volume is negative.
        """
        if price <= 0 or volume < 0:
            raise InvalidDataError(
                f"Rejected tick for {symbol}: price={price} volume={volume}"
            )
        ts = timestamp_ms if timestamp_ms is not None else now_ms()
        return list(
            await asyncio.gather(
                *(
                    self.append_sample(symbol, price, volume, tf, timestamp_ms=ts)
                    for tf in TimeFrame
                )
            )
        )

    def _series_lock(self, symbol: str, timeframe: TimeFrame) -> asyncio.Lock:
        return self._series_locks.setdefault((symbol, timeframe), asyncio.Lock())

    def _continues_chain(self, timeframe: TimeFrame, prev_ts: int, ts: int) -> bool:
        if self._settings.vwap_anchor == "running":
            return True
        duration = self._settings.duration_ms(timeframe)
        return prev_ts // duration == ts // duration

    async def get_average(
        self,
        symbol: str,
        timeframe: TimeFrame,
        lookback_ms: int,
        field: Literal["price", "volume"] = "price",
        *,
        at_ms: int | None = None,
    ) -> float:
        """Arithmetic mean of ``field`` over samples in ``[at - lookback, at]``.

        Returns 0.0 when no rows qualify.
        """
        if field not in _AVERAGE_FIELDS:
            raise ValueError(f"Cannot average field {field!r}")
        end = at_ms if at_ms is not None else now_ms()
        cursor = await self._database.db.execute(
            f"SELECT AVG({field}) FROM {timeframe.table} "
            "WHERE symbol = ? AND timestamp_ms >= ? AND timestamp_ms <= ?",
            (symbol, end - lookback_ms, end),
        )
        row = await cursor.fetchone()
        if row is None or row[0] is None:
            return 0.0
        return float(row[0])

    async def get_latest(
        self,
        symbol: str,
        timeframe: TimeFrame,
        *,
        since_ms: int | None = None,
    ) -> Sample | None:
        """Most recent sample of a series, or None.

        Args:
            since_ms: Oldest acceptable timestamp. Defaults to the retention horizon.
        """
        cutoff = since_ms if since_ms is not None else self._retention_cutoff(timeframe.value)
        cursor = await self._database.db.execute(
            "SELECT symbol, price, volume, cumulative_value, cumulative_volume, vwap, timestamp_ms "
            f"FROM {timeframe.table} WHERE symbol = ? AND timestamp_ms >= ? "
            "ORDER BY timestamp_ms DESC, id DESC LIMIT 1",
            (symbol, cutoff),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return Sample(
            symbol=row[0],
            timeframe=timeframe,
            price=row[1],
            volume=row[2],
            cumulative_value=row[3],
            cumulative_volume=row[4],
            vwap=row[5],
            timestamp_ms=row[6],
        )

    async def get_recent_prices(
        self, symbol: str, timeframe: TimeFrame, limit: int
    ) -> list[float]:
        """Up to ``limit`` most recent prices, newest first."""
        cursor = await self._database.db.execute(
            f"SELECT price FROM {timeframe.table} WHERE symbol = ? AND timestamp_ms >= ? "
            "ORDER BY timestamp_ms DESC, id DESC LIMIT ?",
            (symbol, self._retention_cutoff(timeframe.value), limit),
        )
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def get_series(
        self, symbol: str, timeframe: TimeFrame
    ) -> list[tuple[float, float]]:
        """Full retained (price, volume) series, oldest first."""
        cursor = await self._database.db.execute(
            f"SELECT price, volume FROM {timeframe.table} WHERE symbol = ? AND timestamp_ms >= ? "
            "ORDER BY timestamp_ms ASC, id ASC",
            (symbol, self._retention_cutoff(timeframe.value)),
        )
        rows = await cursor.fetchall()
        return [(row[0], row[1]) for row in rows]

    # ──────────────────────────────────────────────
    # Order book
    # ──────────────────────────────────────────────

    async def upsert_order_book(self, snapshot: OrderBookSnapshot) -> None:
        """Replace the single live order-book row for the snapshot's symbol."""
        await self._database.db.execute(
            "INSERT INTO order_book "
            "(symbol, bids, asks, imbalance, best_bid, best_ask, spread, timestamp_ms) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(symbol) DO UPDATE SET "
            "bids = excluded.bids, asks = excluded.asks, imbalance = excluded.imbalance, "
            "best_bid = excluded.best_bid, best_ask = excluded.best_ask, "
            "spread = excluded.spread, timestamp_ms = excluded.timestamp_ms",
            (
                snapshot.symbol,
                json.dumps(snapshot.bids),
                json.dumps(snapshot.asks),
                snapshot.imbalance,
                snapshot.best_bid,
                snapshot.best_ask,
                snapshot.spread,
                snapshot.timestamp_ms,
            ),
        )
        await self._database.db.commit()

    async def get_order_book(self, symbol: str) -> OrderBookSnapshot | None:
        """Return the stored snapshot for a symbol, if one survived retention."""
        cursor = await self._database.db.execute(
            "SELECT symbol, bids, asks, imbalance, best_bid, best_ask, spread, timestamp_ms "
            "FROM order_book WHERE symbol = ? AND timestamp_ms >= ?",
            (symbol, self._retention_cutoff("order_book")),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return OrderBookSnapshot(
            symbol=row[0],
            bids=[(float(p), float(s)) for p, s in json.loads(row[1])],
            asks=[(float(p), float(s)) for p, s in json.loads(row[2])],
            imbalance=row[3],
            best_bid=row[4],
            best_ask=row[5],
            spread=row[6],
            timestamp_ms=row[7],
        )

    # ──────────────────────────────────────────────
    # Whale transactions
    # ──────────────────────────────────────────────

    async def insert_whale_transactions(
        self, transactions: Iterable[WhaleTransaction]
    ) -> int:
        """Append whale transactions in one batched insert. Returns the row count."""
        data = [(t.symbol, t.side.value, t.amount, t.timestamp_ms) for t in transactions]
        if not data:
            return 0

        await self._database.db.executemany(
            "INSERT INTO whale_transactions (symbol, side, amount, timestamp_ms) "
            "VALUES (?, ?, ?, ?)",
            data,
        )
        await self._database.db.commit()
        logger.debug("inserted_whale_transactions", symbol=data[0][0], count=len(data))
        return len(data)

    async def get_recent_whale_sides(self, symbol: str, since_ms: int) -> set[TradeSide]:
        """Sides of whale transactions stored for a symbol since ``since_ms``."""
        cursor = await self._database.db.execute(
            "SELECT DISTINCT side FROM whale_transactions "
            "WHERE symbol = ? AND timestamp_ms >= ?",
            (symbol, since_ms),
        )
        rows = await cursor.fetchall()
        return {TradeSide(row[0]) for row in rows}

    # ──────────────────────────────────────────────
    # Funding rates
    # ──────────────────────────────────────────────

    async def insert_funding_rate(
        self, symbol: str, rate: float, *, timestamp_ms: int | None = None
    ) -> None:
        """Append a funding rate observation."""
        ts = timestamp_ms if timestamp_ms is not None else now_ms()
        await self._database.db.execute(
            "INSERT INTO funding_rates (symbol, funding_rate, timestamp_ms) VALUES (?, ?, ?)",
            (symbol, rate, ts),
        )
        await self._database.db.commit()

    async def get_latest_funding_rate(self, symbol: str) -> FundingRateSample | None:
        """Most recent retained funding rate for a symbol, or None."""
        cursor = await self._database.db.execute(
            "SELECT symbol, funding_rate, timestamp_ms FROM funding_rates "
            "WHERE symbol = ? AND timestamp_ms >= ? "
            "ORDER BY timestamp_ms DESC, id DESC LIMIT 1",
            (symbol, self._retention_cutoff("funding_rates")),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return FundingRateSample(symbol=row[0], rate=row[1], timestamp_ms=row[2])

    # ──────────────────────────────────────────────
    # Retention
    # ──────────────────────────────────────────────

    async def purge_expired(self, *, at_ms: int | None = None) -> dict[str, int]:
        """Delete rows older than each table's retention horizon.

        Deletes in batches of ``purge_batch_size`` rows, committing after each
        batch, so a writer on another connection never waits behind one long
        transaction.

        Returns a mapping of table name to deleted row count.
        """
        end = at_ms if at_ms is not None else now_ms()
        targets: list[tuple[str, str]] = [(tf.table, tf.value) for tf in TimeFrame]
        targets += [
            ("order_book", "order_book"),
            ("whale_transactions", "whale_transactions"),
            ("funding_rates", "funding_rates"),
        ]

        deleted: dict[str, int] = {}
        db = self._database.db
        batch = self._settings.purge_batch_size
        for table, key in targets:
            cutoff = end - self._settings.retention_ms(key)
            deleted[table] = 0
            while True:
                cursor = await db.execute(
                    f"DELETE FROM {table} WHERE rowid IN "
                    f"(SELECT rowid FROM {table} WHERE timestamp_ms < ? LIMIT ?)",
                    (cutoff, batch),
                )
                await db.commit()
                deleted[table] += cursor.rowcount
                if cursor.rowcount < batch:
                    break
        return deleted

    def _retention_cutoff(self, key: str) -> int:
        return now_ms() - self._settings.retention_ms(key)
