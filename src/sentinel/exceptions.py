"""Custom exceptions for the market sentinel.

Every failure the pipeline distinguishes lives here so the feed client,
the store, the indicator layer and the notifier can share them without
importing each other.
"""


class SentinelError(Exception):
    """Base exception for all sentinel errors."""


class RateLimitedError(SentinelError):
    """Raised when the upstream feed signals throttling.

    Transient: retried with linear backoff before being propagated.
    """


class InsufficientDataError(SentinelError):
    """Raised when a rollup window holds too few samples for an indicator.

    Expected in steady state (fresh symbols, short windows). Callers skip
    the symbol or indicator for the current cycle.
    """


class NoDataError(InsufficientDataError):
    """Raised when a rollup series is empty."""


class InvalidDataError(SentinelError):
    """Raised when an external payload is malformed or empty."""


class DeliveryFailureError(SentinelError):
    """Raised when a notification could not be delivered after all attempts."""


class ConnectivityExhaustedError(SentinelError):
    """Raised when the ticker stream exhausted its reconnect budget. Fatal."""
