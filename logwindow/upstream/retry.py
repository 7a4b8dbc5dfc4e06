"""
Retry Policy: Exponential Backoff with Jitter

Implements the upstream client's retry strategy:
- Exponential backoff: 100ms x 2^n
- Full jitter: random(0, backoff) to prevent thundering herd
- Only errors flagged retryable (transport, 429, 5xx) are retried

The cache core never retries; this lives with the upstream client. When
attempts run out the last error is returned unchanged so callers see the
real failure rather than a wrapper.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from logwindow.core import constants as C
from logwindow.core.config import ReliabilityConfig
from logwindow.core.errors import UpstreamFetchError
from logwindow.core.types import Result

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration."""

    max_retries: int = C.RETRY_MAX_ATTEMPTS - 1
    base_delay_ms: int = C.RETRY_BASE_MS
    max_delay_ms: int = C.RETRY_MAX_DELAY_MS
    exponential_base: float = 2.0
    jitter: bool = True  # Full jitter

    @classmethod
    def default(cls) -> RetryPolicy:
        return cls()

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        return cls(max_retries=0)

    @classmethod
    def from_config(cls, config: ReliabilityConfig) -> RetryPolicy:
        # retry_max_attempts counts the first call
        return cls(
            max_retries=max(0, config.retry_max_attempts - 1),
            base_delay_ms=config.retry_base_ms,
            max_delay_ms=config.retry_max_delay_ms,
        )


@dataclass
class RetryStats:
    """Retry attempt statistics."""
    total_attempts: int = 0
    failed_attempts: int = 0
    total_delay_ms: float = 0.0
    last_error: Optional[str] = None


async def retry_with_backoff(
    func: Callable[[], Awaitable[Result[T, UpstreamFetchError]]],
    policy: Optional[RetryPolicy] = None,
    stats: Optional[RetryStats] = None,
) -> Result[T, UpstreamFetchError]:
    """
    Run a fallible upstream call, retrying retryable failures.

    Args:
        func: Zero-argument coroutine factory returning a Result
        policy: Retry configuration (default if None)
        stats: Optional accumulator for attempt accounting

    Returns:
        The first Ok, or the last Err once retries are exhausted or a
        non-retryable error is seen
    """
    if policy is None:
        policy = RetryPolicy.default()
    if stats is None:
        stats = RetryStats()

    attempt = 0
    while True:
        stats.total_attempts += 1
        result = await func()
        if result.is_ok():
            return result

        error = result.error
        stats.failed_attempts += 1
        stats.last_error = str(error)

        if not error.retryable or attempt >= policy.max_retries:
            return result

        delay = calculate_backoff(
            attempt=attempt,
            base_delay_ms=policy.base_delay_ms,
            max_delay_ms=policy.max_delay_ms,
            exponential_base=policy.exponential_base,
            jitter=policy.jitter,
        )
        stats.total_delay_ms += delay
        logger.debug(f"Attempt {attempt + 1} failed ({error.code.name}), retrying in {delay:.0f}ms")
        await asyncio.sleep(delay / 1000)
        attempt += 1


def calculate_backoff(
    attempt: int,
    base_delay_ms: int,
    max_delay_ms: int,
    exponential_base: float,
    jitter: bool,
) -> float:
    """
    Calculate backoff delay with optional jitter.

    Full jitter: random(0, min(cap, base * 2^attempt))
    """
    delay = min(max_delay_ms, base_delay_ms * (exponential_base ** attempt))

    if jitter:
        delay = random.uniform(0, delay)

    return delay
