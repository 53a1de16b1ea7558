"""Bounded retry loop for unreliable external calls.

The policy is a plain value object so the same loop serves the feed
(linear backoff on rate limits only) and the notifier (fixed pause on any
failure). Each call site owns its own retry state: nothing is shared
between symbols or between concurrent calls.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import ccxt.async_support as ccxt_async

from sentinel.exceptions import RateLimitedError
from sentinel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def is_rate_limited(exc: BaseException) -> bool:
    """Return True for failures that signal upstream throttling.

    ccxt raises RateLimitExceeded when the exchange answers 429/418. Its base
    class differs between ccxt releases (DDoSProtection in older ones,
    NetworkError in newer ones), so both classes are listed. The package's
    own RateLimitedError covers feeds that are not ccxt-backed.
    """
    return isinstance(
        exc,
        (RateLimitedError, ccxt_async.RateLimitExceeded, ccxt_async.DDoSProtection),
    )


def linear_delay(base_delay: float) -> Callable[[int], float]:
    """Delay function growing linearly with the retry number (1-based).

    With max_retries=3 and retries_remaining counting down from 3, this is
    ``base_delay * (max_retries + 1 - retries_remaining)``.
    """
    return lambda retry_number: base_delay * retry_number


def fixed_delay(delay: float) -> Callable[[int], float]:
    """Delay function returning the same pause for every retry."""
    return lambda retry_number: delay


@dataclass(frozen=True)
class RetryPolicy:
    """How an operation is retried.

    Args:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1).
        delay_fn: Maps the 1-based retry number to a delay in seconds.
        is_retryable: Classifies a failure as retryable.
    """

    max_retries: int = 3
    delay_fn: Callable[[int], float] = field(default_factory=lambda: linear_delay(1.0))
    is_retryable: Callable[[BaseException], bool] = is_rate_limited

    @classmethod
    def rate_limited(cls, max_retries: int = 3, base_delay: float = 1.0) -> RetryPolicy:
        """Policy for feed calls: linear backoff, rate-limit failures only."""
        return cls(
            max_retries=max_retries,
            delay_fn=linear_delay(base_delay),
            is_retryable=is_rate_limited,
        )

    @classmethod
    def any_failure(cls, max_attempts: int = 3, pause: float = 2.0) -> RetryPolicy:
        """Policy retrying every Exception with a fixed pause."""
        return cls(
            max_retries=max(max_attempts - 1, 0),
            delay_fn=fixed_delay(pause),
            is_retryable=lambda exc: isinstance(exc, Exception),
        )


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    description: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **log_context: object,
) -> T:
    """Run ``operation`` under ``policy``.

    Non-retryable failures and the failure of the final attempt propagate
    unchanged so callers see the original exception type and traceback.
    The sleep blocks only the calling task.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        policy: Retry policy.
        description: Short name of the call site, used in log events.
        sleep: Awaitable sleep, injectable for tests.
        **log_context: Extra key/values (e.g. symbol) attached to retry warnings.

    Returns:
        The operation's result.
    """
    retries_remaining = policy.max_retries
    while True:
        try:
            return await operation()
        except Exception as exc:
            if retries_remaining <= 0 or not policy.is_retryable(exc):
                raise
            retry_number = policy.max_retries + 1 - retries_remaining
            delay = policy.delay_fn(retry_number)
            logger.warning(
                "retrying_after_failure",
                call=description,
                retry=retry_number,
                max_retries=policy.max_retries,
                delay=delay,
                error=str(exc),
                error_type=type(exc).__name__,
                **log_context,
            )
            retries_remaining -= 1
            await sleep(delay)
