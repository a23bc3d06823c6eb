"""
Retry helpers with exponential backoff and jitter.

Errors that carry ``retryable = False`` stop the retry loop at once.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .types import RetryConfig

T = TypeVar("T")

DEFAULT_RETRY_CONFIG = RetryConfig()


def add_jitter(delay: float, rng: random.Random | None = None) -> float:
    """Scale ``delay`` by a uniform factor in [0.5, 1.0]."""
    source = rng or random
    return delay * (0.5 + source.random() * 0.5)


def backoff_delay(config: RetryConfig, attempt: int) -> float:
    """Un-jittered delay after the given (1-based) failed attempt."""
    return min(
        config.initial_delay * config.backoff_multiplier ** (attempt - 1),
        config.max_delay,
    )


def is_retryable(error: BaseException) -> bool:
    return getattr(error, "retryable", True) is not False


async def retry_with_condition(
    fn: Callable[[], Awaitable[T]],
    should_retry: Callable[[BaseException, int], bool],
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Call ``fn`` until it succeeds, ``should_retry`` declines or attempts run out.

    Args:
        fn: Zero-argument coroutine factory
        should_retry: Predicate over (error, attempt number)
        config: Backoff settings
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        The first successful result

    Raises:
        The last error raised by ``fn``
    """
    for attempt in range(1, config.max_attempts + 1):
        try:
            return await fn()
        except Exception as error:
            if not should_retry(error, attempt) or attempt >= config.max_attempts:
                raise
            await sleep(add_jitter(backoff_delay(config, attempt)))

    raise RuntimeError("retry loop exited without result")  # max_attempts < 1


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Retry ``fn`` unless an error is explicitly marked non-retryable."""
    return await retry_with_condition(fn, lambda error, _: is_retryable(error), config, sleep)


async def retry_with_timeout(
    fn: Callable[[], Awaitable[T]],
    timeout: float,
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
) -> T:
    """Bound the whole retry sequence by ``timeout`` seconds."""
    return await asyncio.wait_for(retry_with_backoff(fn, config), timeout=timeout)


__all__ = [
    "DEFAULT_RETRY_CONFIG",
    "add_jitter",
    "backoff_delay",
    "is_retryable",
    "retry_with_backoff",
    "retry_with_condition",
    "retry_with_timeout",
]
