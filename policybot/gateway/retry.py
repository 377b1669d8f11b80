"""Rate-limit retry with a cancellable wait.

A rate-limited call is retried (the *same* request, e.g. the same page) after
waiting for the advertised reset. When the reset time is unknown or already
past, the wait falls back to exponential backoff. Any other error is raised
immediately. The wait is an ``asyncio.sleep``, so cancelling the task or
hitting an ``asyncio.wait_for`` deadline interrupts it at once.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

from policybot.config import DEFAULT_BACKOFF_BASE
from policybot.errors import MaxRetriesError, RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS = 5


def retry_delay(
    reset_at: float | None, attempt: int, backoff_base: float, now: float
) -> float:
    """Seconds to wait before retry number ``attempt + 1`` (``attempt`` is 0-based)."""
    if reset_at is not None and reset_at > now:
        return reset_at - now
    return backoff_base * (2 ** attempt)


async def call_with_retry(
    call: Callable[[], Awaitable[T]],
    operation: str = "",
    max_attempts: int = MAX_ATTEMPTS,
    backoff_base: float = DEFAULT_BACKOFF_BASE,
    clock: Callable[[], float] = time.time,
) -> T:
    """Await ``call()``, retrying on ``RateLimitError`` up to ``max_attempts`` times."""
    for attempt in range(max_attempts):
        try:
            return await call()
        except RateLimitError as e:
            if attempt == max_attempts - 1:
                raise MaxRetriesError(
                    f"max retries reached ({max_attempts} attempts): {e.message}",
                    operation=e.operation or operation,
                    repository=e.repository,
                    ref=e.ref,
                    path=e.path,
                    status=e.status,
                ) from e

            delay = retry_delay(e.reset_at, attempt, backoff_base, clock())
            logger.debug(
                "%s rate limited, waiting %.2fs (attempt %d/%d)",
                operation or "request", delay, attempt + 1, max_attempts,
            )
            await asyncio.sleep(delay)

    raise RuntimeError("retry loop exited without a result")
