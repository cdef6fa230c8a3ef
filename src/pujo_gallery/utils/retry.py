"""Bounded retry with exponential backoff for upstream calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_exponential_backoff(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 2,
    initial_delay: float = 0.5,
    max_delay: float = 8.0,
    exponential_base: float = 2.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    description: str = "operation",
) -> T:
    """Await `func` until it succeeds or `max_retries` extra attempts are spent.

    Args:
        func: Zero-argument coroutine factory to retry
        max_retries: Attempts after the first one
        initial_delay: Seconds to wait before the first retry
        max_delay: Upper bound on the wait between attempts
        exponential_base: Growth factor of the wait
        exceptions: Exception types that trigger a retry; others propagate at once
        description: Label used in log lines

    Returns:
        The value returned by the successful attempt

    Raises:
        The exception raised by the last attempt
    """
    delay = initial_delay
    attempts = max(0, max_retries) + 1

    for attempt in range(1, attempts + 1):
        try:
            result = await func()
        except exceptions as e:
            if attempt == attempts:
                logger.error("%s failed after %d attempts: %s", description, attempts, e)
                raise
            logger.warning(
                "%s attempt %d/%d failed: %s. Retrying in %.2fs",
                description,
                attempt,
                attempts,
                e,
                delay,
            )
            await asyncio.sleep(delay)
            delay = min(delay * exponential_base, max_delay)
        else:
            if attempt > 1:
                logger.info("%s succeeded on attempt %d/%d", description, attempt, attempts)
            return result

    # Unreachable: the loop either returns or re-raises.
    raise RuntimeError("Unexpected retry logic error")
