"""Bounded retry and polling helpers for calls to external services."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


def _always_retry(error: BaseException) -> bool:
    return True


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff policy.

    ``max_attempts`` counts the first call, so ``max_attempts=3`` means the
    operation runs at most three times with two backoff sleeps in between.
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 10.0
    retryable: Callable[[BaseException], bool] = _always_retry

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Return the sleep before retry number ``attempt`` (1-based)."""

        return min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    description: str = "operation",
    sleep: Optional[Sleeper] = None,
) -> T:
    """Run ``operation`` until it succeeds or ``policy`` is exhausted.

    Non-retryable errors and the error of the last attempt propagate unchanged.
    """

    sleeper = sleep or asyncio.sleep
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as error:
            if attempt >= policy.max_attempts or not policy.retryable(error):
                raise
            wait_s = policy.delay_for(attempt)
            LOGGER.warning(
                "%s failed (attempt %s/%s): %s. Retrying in %.2fs...",
                description,
                attempt,
                policy.max_attempts,
                error,
                wait_s,
            )
            await sleeper(wait_s)
            attempt += 1


async def poll_until(
    probe: Callable[[], Awaitable[T]],
    is_ready: Callable[[T], bool],
    *,
    interval: float,
    max_attempts: int,
    sleep: Optional[Sleeper] = None,
) -> tuple[bool, T]:
    """Call ``probe`` every ``interval`` seconds until ``is_ready`` accepts it.

    Returns ``(ready, last_value)``; the caller decides how to report a timeout.
    Errors raised by ``probe`` are treated as "not ready yet" except on the
    final attempt, where they propagate.
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    sleeper = sleep or asyncio.sleep
    last: T | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            last = await probe()
        except Exception as error:
            if attempt == max_attempts:
                raise
            LOGGER.debug("Readiness probe failed (attempt %s/%s): %s", attempt, max_attempts, error)
        else:
            if is_ready(last):
                return True, last
        if attempt < max_attempts:
            await sleeper(interval)
    return False, last  # type: ignore[return-value]


__all__ = ["RetryPolicy", "poll_until", "retry_async"]
