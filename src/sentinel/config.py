"""Configuration system using pydantic-settings with environment variable loading.

All values are read once at startup; there is no runtime reconfiguration.
"""

from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from sentinel.models import TimeFrame


def _default_durations() -> dict[TimeFrame, int]:
    return {tf: tf.duration_ms // 1000 for tf in TimeFrame}


def _default_retention() -> dict[str, int]:
    return {
        TimeFrame.M5.value: 60 * 60,  # 1h
        TimeFrame.M15.value: 6 * 60 * 60,  # 6h
        TimeFrame.M30.value: 12 * 60 * 60,  # 12h
        TimeFrame.H1.value: 24 * 60 * 60,  # 1d
        TimeFrame.H4.value: 3 * 24 * 60 * 60,  # 3d
        TimeFrame.D1.value: 7 * 24 * 60 * 60,  # 7d
        "order_book": 10 * 60,
        "whale_transactions": 7 * 24 * 60 * 60,
        "funding_rates": 24 * 60 * 60,
    }


class FeedSettings(BaseSettings):
    """Binance market-data feed settings."""

    model_config = SettingsConfigDict(env_prefix="FEED_")

    api_key: SecretStr = SecretStr("")
    api_secret: SecretStr = SecretStr("")
    stream_url: str = "wss://stream.binance.com:9443/ws/!ticker@arr"
    use_stream: bool = True  # False = poll fetch_all_tickers() instead
    poll_interval: float = 5.0  # seconds, polling mode only
    quote_asset: str = "USDT"
    order_book_depth: int = 10
    max_retries: int = 3
    retry_base_delay: float = 1.0  # seconds; delay grows linearly per retry
    reconnect_max_attempts: int = 10
    reconnect_base_delay: float = 5.0  # seconds x attempt


class StoreSettings(BaseSettings):
    """Rollup store settings: location, VWAP anchoring and retention."""

    model_config = SettingsConfigDict(env_prefix="STORE_")

    db_path: str = "data/sentinel.db"
    # "bucket": cumulative sums restart at each timeframe bucket boundary.
    # "running": sums chain forever from whatever row survives retention.
    vwap_anchor: Literal["bucket", "running"] = "bucket"
    timeframe_durations: dict[TimeFrame, int] = Field(default_factory=_default_durations)  # seconds
    retention_seconds: dict[str, int] = Field(default_factory=_default_retention)
    sweep_interval_seconds: float = 300.0
    # Rows deleted per purge transaction; bounds how long the write lock is held
    purge_batch_size: int = 5000

    def duration_ms(self, timeframe: TimeFrame) -> int:
        """Duration of a timeframe in milliseconds, honoring overrides."""
        seconds = self.timeframe_durations.get(timeframe)
        if seconds is None:
            return timeframe.duration_ms
        return seconds * 1000

    def retention_ms(self, key: str) -> int:
        """Retention horizon for a rollup timeframe value or auxiliary table."""
        seconds = self.retention_seconds.get(key)
        if seconds is None:
            seconds = _default_retention()[key]
        return seconds * 1000


class AlertSettings(BaseSettings):
    """Signal thresholds for the trend classifier and the alert gate.

    The neutral RSI band is the open interval between ``rsi_bearish`` and
    ``rsi_bullish``.
    """

    model_config = SettingsConfigDict(env_prefix="ALERT_")

    # Regime thresholds: price change %, volume multiple, order book imbalance
    price_threshold_strong: float = 6.0
    price_threshold_neutral: float = 4.0
    volume_threshold_strong: float = 5.0
    volume_threshold_neutral: float = 3.0
    imbalance_threshold_strong: float = 2.0
    imbalance_threshold_neutral: float = 1.5

    # Whale tracking
    whale_threshold_usd: float = 50_000.0
    whale_window_minutes: int = 10
    whale_cooldown_seconds: float = 60.0

    # Funding rate: 0.1% marks an overheated market and voids alerts
    funding_rate_threshold: float = 0.001

    # Trend classification
    rsi_period: int = 14
    rsi_bullish: float = 60.0
    rsi_bearish: float = 40.0
    ema_fast_period: int = 9
    ema_slow_period: int = 12
    breakout_lookback_candles: int = 3

    order_book_freshness_seconds: float = 300.0
    alert_cooldown_seconds: float = 0.0  # 0: every batch re-evaluates and may re-fire
    evaluation_timeframes: list[TimeFrame] = Field(default_factory=lambda: [TimeFrame.M5])


class PipelineSettings(BaseSettings):
    """Ingestion throttle and fan-out limits."""

    model_config = SettingsConfigDict(env_prefix="PIPELINE_")

    throttle_seconds: float = 5.0
    max_symbols_per_batch: int = 400
    analysis_concurrency: int = 50


class NotifierSettings(BaseSettings):
    """Discord webhook delivery settings."""

    model_config = SettingsConfigDict(env_prefix="DISCORD_")

    webhook_url: SecretStr = SecretStr("")
    max_attempts: int = 3
    retry_pause_seconds: float = 2.0
    timeout_seconds: float = 10.0


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    feed: FeedSettings = FeedSettings()
    store: StoreSettings = StoreSettings()
    alerts: AlertSettings = AlertSettings()
    pipeline: PipelineSettings = PipelineSettings()
    notifier: NotifierSettings = NotifierSettings()
