"""Multi-timeframe pump/dump alerting for USDT spot markets."""

__version__ = "0.1.0"
