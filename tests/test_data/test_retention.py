"""Tests for RetentionSweeper lifecycle and sweeps over its own connection."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from sentinel.config import StoreSettings
from sentinel.data import MarketDataStore, RetentionSweeper, SentinelDatabase
from sentinel.models import TimeFrame, now_ms


@pytest.fixture()
def sweep_settings(database: SentinelDatabase, tmp_path) -> StoreSettings:
    """Settings pointing the sweeper at the file the ingestion fixture opened."""
    return StoreSettings(db_path=str(tmp_path / "sentinel.db"), sweep_interval_seconds=300)


class TestRetentionSweeper:
    @pytest.mark.asyncio()
    async def test_sweep_deletes_rows_written_by_ingestion(
        self, store: MarketDataStore, sweep_settings: StoreSettings
    ) -> None:
        now = now_ms()
        for price, age_ms in [(100.0, 2 * 3_600_000), (101.0, 1000)]:
            await store.append_sample(
                "BTC/USDT", price, 1.0, TimeFrame.M5, timestamp_ms=now - age_ms
            )
        sweeper = RetentionSweeper(sweep_settings)

        await sweeper.start()
        try:
            deleted = await sweeper.sweep_once()
        finally:
            await sweeper.stop()

        assert deleted["rollup_5m"] == 1
        series = await store.get_series("BTC/USDT", TimeFrame.M5)
        assert series == [(101.0, 1.0)]

    @pytest.mark.asyncio()
    async def test_uses_its_own_connection(
        self, database: SentinelDatabase, sweep_settings: StoreSettings
    ) -> None:
        sweeper = RetentionSweeper(sweep_settings)

        await sweeper.start()
        try:
            assert sweeper.database.db is not database.db
        finally:
            await sweeper.stop()

        with pytest.raises(RuntimeError):
            sweeper.database.db

    @pytest.mark.asyncio()
    async def test_failed_sweep_does_not_stop_loop(self, sweep_settings: StoreSettings) -> None:
        settings = sweep_settings.model_copy(update={"sweep_interval_seconds": 0.01})
        sweeper = RetentionSweeper(settings)
        sweeper._store.purge_expired = AsyncMock(  # type: ignore[method-assign]
            side_effect=[RuntimeError("disk I/O error"), {"rollup_5m": 0}, {"rollup_5m": 0}]
        )

        await sweeper.start()
        try:
            for _ in range(100):
                if sweeper._store.purge_expired.await_count >= 2:
                    break
                await asyncio.sleep(0.01)
        finally:
            await sweeper.stop()

        assert sweeper._store.purge_expired.await_count >= 2

    @pytest.mark.asyncio()
    async def test_start_and_stop(self, sweep_settings: StoreSettings) -> None:
        sweeper = RetentionSweeper(sweep_settings)
        sweeper._store.purge_expired = AsyncMock(return_value={})  # type: ignore[method-assign]

        await sweeper.start()
        await sweeper.stop()

        # The loop sleeps before its first sweep, so stopping immediately purges nothing
        sweeper._store.purge_expired.assert_not_awaited()
