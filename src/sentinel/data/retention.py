"""Periodic retention sweep for rollup and signal tables.

Runs as its own asyncio task on a fixed interval, over its own
SentinelDatabase connection to the store's file. aiosqlite serializes every
statement of a connection on one worker thread, so sharing the ingestion
connection would queue appends behind the purge. Each purge batch is a
short transaction; ingestion writes wait at most one batch for the lock.
"""

import asyncio

from sentinel.config import StoreSettings
from sentinel.data.database import SentinelDatabase
from sentinel.data.store import MarketDataStore
from sentinel.logging import get_logger

logger = get_logger(__name__)


class RetentionSweeper:
    """Deletes expired rows every ``sweep_interval_seconds`` until stopped.

    Args:
        settings: Store settings; ``db_path`` names the file to sweep.
    """

    def __init__(self, settings: StoreSettings) -> None:
        self._interval = settings.sweep_interval_seconds
        self._database = SentinelDatabase(settings.db_path)
        self._store = MarketDataStore(self._database, settings)
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]

    @property
    def database(self) -> SentinelDatabase:
        return self._database

    async def start(self) -> None:
        """Open the sweeper's connection and begin sweeping in the background."""
        if self._running:
            logger.warning("retention_sweeper_already_running")
            return
        await self._database.connect()
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("retention_sweeper_started", interval=self._interval)

    async def stop(self) -> None:
        """Stop the sweeper gracefully and close its connection."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self._database.close()
        logger.info("retention_sweeper_stopped")

    async def sweep_once(self) -> dict[str, int]:
        """Run a single sweep and log the per-table deletions.

        Requires start() to have opened the connection.
        """
        deleted = await self._store.purge_expired()
        logger.info("retention_sweep_complete", deleted=sum(deleted.values()), tables=deleted)
        return deleted

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.error("retention_sweep_failed", exc_info=True)
