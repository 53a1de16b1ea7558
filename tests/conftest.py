"""Shared test fixtures for the crypto market sentinel."""

from collections.abc import AsyncIterator, Callable

import pytest
import pytest_asyncio

from sentinel.config import (
    AlertSettings,
    AppSettings,
    FeedSettings,
    NotifierSettings,
    StoreSettings,
)
from sentinel.data import MarketDataStore, SentinelDatabase
from sentinel.models import TimeFrame, now_ms


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults (dummy API keys, dummy webhook)."""
    return AppSettings(
        log_level="DEBUG",
        feed=FeedSettings(
            api_key="test-api-key",  # type: ignore[arg-type]
            api_secret="test-api-secret",  # type: ignore[arg-type]
        ),
        notifier=NotifierSettings(
            webhook_url="https://discord.test/api/webhooks/1/token",  # type: ignore[arg-type]
        ),
    )


@pytest.fixture
def store_settings() -> StoreSettings:
    return StoreSettings(vwap_anchor="bucket")


@pytest.fixture
def alert_settings() -> AlertSettings:
    return AlertSettings()


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncIterator[SentinelDatabase]:
    """A connected SentinelDatabase in a temporary directory."""
    async with SentinelDatabase(str(tmp_path / "sentinel.db")) as db:
        yield db


@pytest.fixture
def store(database: SentinelDatabase, store_settings: StoreSettings) -> MarketDataStore:
    return MarketDataStore(database, store_settings)


@pytest.fixture
def past_bucket() -> Callable[..., int]:
    """Start of a completed timeframe bucket, ``buckets_back`` buckets ago.

    Reads are bounded by the retention horizon relative to the wall clock,
    so test rows must be stamped close to now; a past bucket start keeps a
    handful of rows inside one bucket and behind the current time.
    """

    def _start(timeframe: TimeFrame = TimeFrame.M5, buckets_back: int = 1) -> int:
        duration = timeframe.duration_ms
        return (now_ms() // duration - buckets_back) * duration

    return _start
