"""Ingestion pipeline: throttled tick batches fanned out to rollups and analysis.

Each accepted batch runs three stages:
  1. WRITE: append every tick to all six timeframe rollups (sequential per
     symbol, concurrent across timeframes)
  2. FUNDING: refresh the perpetual funding rate for every written symbol
  3. ANALYZE: run the alert engine for every written symbol

Stages 2 and 3 fan out one task per symbol under a shared semaphore and are
joined with gather(return_exceptions=True), so one symbol's failure never
cancels its siblings.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from sentinel.config import PipelineSettings
from sentinel.exceptions import InsufficientDataError, InvalidDataError
from sentinel.logging import get_logger, symbol_context
from sentinel.models import AlertPayload, Tick

if TYPE_CHECKING:
    from sentinel.alerts.engine import AlertEngine
    from sentinel.data.store import MarketDataStore
    from sentinel.exchange.client import MarketDataFeed

logger = get_logger(__name__)


class BatchThrottle:
    """Admits at most one batch per ``interval`` seconds; the rest are dropped."""

    def __init__(self, interval: float = 5.0) -> None:
        self._interval = interval
        self._last_accepted: float | None = None

    def try_acquire(self, now: float | None = None) -> bool:
        at = now if now is not None else time.monotonic()
        if self._last_accepted is not None and at - self._last_accepted < self._interval:
            return False
        self._last_accepted = at
        return True


class Pipeline:
    """Receives ticker batches and drives storage, funding refresh and analysis.

    Args:
        store: Rollup and signal store.
        feed: Market-data feed, used for funding-rate refresh.
        engine: Alert engine evaluated per symbol.
        settings: Throttle window, symbol cap and fan-out concurrency.
        quote_asset: Only symbols quoted in this asset are processed.
    """

    def __init__(
        self,
        store: MarketDataStore,
        feed: MarketDataFeed,
        engine: AlertEngine,
        settings: PipelineSettings,
        quote_asset: str = "USDT",
    ) -> None:
        self._store = store
        self._feed = feed
        self._engine = engine
        self._settings = settings
        self._suffix = f"/{quote_asset}"
        self._throttle = BatchThrottle(settings.throttle_seconds)
        self._semaphore = asyncio.Semaphore(settings.analysis_concurrency)
        self._tasks: set[asyncio.Task] = set()  # type: ignore[type-arg]

    async def submit_batch(self, ticks: list[Tick], now: float | None = None) -> bool:
        """Accept a batch for background processing unless throttled.

        Returns:
            True if the batch was accepted, False if it was dropped.
        """
        if not self._throttle.try_acquire(now):
            logger.debug("batch_throttled", size=len(ticks))
            return False

        selected = self._select(ticks)
        task = asyncio.create_task(self.process_batch(selected))
        self._tasks.add(task)
        task.add_done_callback(self._on_batch_done)
        return True

    async def drain(self) -> None:
        """Wait for every batch still in flight."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def process_batch(self, ticks: list[Tick]) -> list[AlertPayload]:
        """Write, refresh funding and analyze one batch.

        Returns:
            The alerts fired for this batch.
        """
        written: list[str] = []
        for tick in ticks:
            try:
                await self._store.append_tick(tick.symbol, tick.price, tick.volume)
            except InvalidDataError as exc:
                logger.debug("tick_rejected", symbol=tick.symbol, error=str(exc))
                continue
            written.append(tick.symbol)

        if not written:
            return []

        await self._fan_out(written, self.refresh_funding_rate, "funding_refresh_failed")
        results = await self._fan_out(
            written, self._engine.analyze_symbol, "symbol_analysis_failed"
        )

        alerts = [payload for result in results if isinstance(result, list) for payload in result]
        logger.info("batch_processed", symbols=len(written), alerts=len(alerts))
        return alerts

    async def refresh_funding_rate(self, symbol: str) -> float:
        rate = await self._feed.fetch_funding_rate(symbol)
        await self._store.insert_funding_rate(symbol, rate)
        return rate

    def _select(self, ticks: list[Tick]) -> list[Tick]:
        latest: dict[str, Tick] = {}
        for tick in ticks:
            if tick.symbol.endswith(self._suffix):
                latest[tick.symbol] = tick
        selected = list(latest.values())[: self._settings.max_symbols_per_batch]
        if len(latest) > len(selected):
            logger.debug("batch_truncated", received=len(latest), kept=len(selected))
        return selected

    async def _fan_out(
        self,
        symbols: list[str],
        operation: Callable[[str], Awaitable[object]],
        failure_event: str,
    ) -> list[object]:
        async def _bounded(symbol: str) -> object:
            async with self._semaphore:
                with symbol_context(symbol):
                    return await operation(symbol)

        results = await asyncio.gather(
            *(_bounded(symbol) for symbol in symbols), return_exceptions=True
        )
        for symbol, result in zip(symbols, results):
            if isinstance(result, InsufficientDataError):
                logger.debug("symbol_skipped", symbol=symbol, reason=str(result))
            elif isinstance(result, Exception):
                logger.warning(
                    failure_event,
                    symbol=symbol,
                    error=str(result),
                    error_type=type(result).__name__,
                )
        return list(results)

    def _on_batch_done(self, task: asyncio.Task) -> None:  # type: ignore[type-arg]
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("batch_failed", error=str(exc), error_type=type(exc).__name__)
