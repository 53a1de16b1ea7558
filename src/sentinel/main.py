"""Entry point for the crypto market sentinel.

Wires all components together and runs the ticker source until a shutdown
signal arrives. SIGINT/SIGTERM stop the source gracefully; exhausting the
websocket reconnect ceiling terminates the process with exit code 1.

Component wiring order (in _build_components):
1. BinanceClient (market-data feed)
2. MarketDataStore (rollups and signal tables)
3. Notifier (Discord webhook or log-only)
4. IndicatorEngine and TrendClassifier
5. OrderBookService and WhaleTracker (whale cooldown)
6. AlertEngine (alert cooldown)
7. Pipeline (throttle and fan-out)
8. RetentionSweeper (own database connection)
9. TickerStream or TickerPoller
"""

import asyncio
import signal
import sys
from typing import Any

from sentinel.alerts import AlertEngine, CooldownTracker
from sentinel.config import AppSettings
from sentinel.data import MarketDataStore, RetentionSweeper, SentinelDatabase
from sentinel.exceptions import ConnectivityExhaustedError
from sentinel.exchange import BinanceClient, TickerPoller, TickerStream
from sentinel.logging import get_logger, setup_logging
from sentinel.market_data import OrderBookService, WhaleTracker
from sentinel.notify import create_notifier
from sentinel.pipeline import Pipeline
from sentinel.signals import IndicatorEngine, TrendClassifier


def _build_components(settings: AppSettings, database: SentinelDatabase) -> dict[str, Any]:
    """Build all sentinel components from settings.

    Note: Does NOT connect the feed or start any background task; run()
    owns the lifecycle.
    """
    logger = get_logger("sentinel.main")

    feed = BinanceClient(settings.feed)
    if not settings.feed.api_key.get_secret_value():
        logger.info("no_api_keys_configured", note="Public market data endpoints only.")

    store = MarketDataStore(database, settings.store)
    notifier = create_notifier(settings.notifier)

    indicators = IndicatorEngine(store, settings.store)
    classifier = TrendClassifier(indicators, store, settings.alerts)

    order_books = OrderBookService(
        feed, store, settings.alerts, depth=settings.feed.order_book_depth
    )
    whales = WhaleTracker(
        feed,
        store,
        order_books,
        notifier,
        CooldownTracker(settings.alerts.whale_cooldown_seconds),
        settings.alerts,
    )

    engine = AlertEngine(
        store=store,
        indicators=indicators,
        classifier=classifier,
        order_books=order_books,
        whales=whales,
        notifier=notifier,
        cooldown=CooldownTracker(settings.alerts.alert_cooldown_seconds),
        settings=settings.alerts,
        store_settings=settings.store,
    )

    pipeline = Pipeline(
        store, feed, engine, settings.pipeline, quote_asset=settings.feed.quote_asset
    )
    sweeper = RetentionSweeper(settings.store)

    source: TickerStream | TickerPoller
    if settings.feed.use_stream:
        source = TickerStream(settings.feed, pipeline.submit_batch)
    else:
        source = TickerPoller(feed, pipeline.submit_batch, interval=settings.feed.poll_interval)

    return {
        "feed": feed,
        "store": store,
        "notifier": notifier,
        "engine": engine,
        "pipeline": pipeline,
        "sweeper": sweeper,
        "source": source,
    }


def _setup_signal_handlers(source: TickerStream | TickerPoller) -> None:
    """Register SIGINT/SIGTERM to stop the ticker source gracefully.

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("sentinel.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        asyncio.create_task(source.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


async def run(settings: AppSettings | None = None) -> None:
    """Run the sentinel until the ticker source stops.

    Raises:
        ConnectivityExhaustedError: the websocket reconnect ceiling was reached.
    """
    settings = settings or AppSettings()
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("sentinel.main")

    async with SentinelDatabase(settings.store.db_path) as database:
        components = _build_components(settings, database)
        source = components["source"]
        _setup_signal_handlers(source)

        logger.info(
            "sentinel_starting",
            source="stream" if settings.feed.use_stream else "poll",
            throttle_seconds=settings.pipeline.throttle_seconds,
            max_symbols=settings.pipeline.max_symbols_per_batch,
            evaluation_timeframes=[tf.value for tf in settings.alerts.evaluation_timeframes],
        )

        try:
            await components["feed"].connect()
            await components["sweeper"].start()
            await source.run()
        finally:
            await components["sweeper"].stop()
            await components["pipeline"].drain()
            await components["notifier"].close()
            await components["feed"].close()
            logger.info("sentinel_stopped")


def main() -> None:
    """Synchronous entry point."""
    try:
        asyncio.run(run())
    except ConnectivityExhaustedError as exc:
        get_logger("sentinel.main").critical("sentinel_exiting", reason=str(exc))
        sys.exit(1)


if __name__ == "__main__":
    main()
