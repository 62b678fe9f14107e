"""Async per-key rate limiting and opt-in retry helpers."""

from __future__ import annotations

import asyncio
from collections import deque
import logging
import random
import time
from typing import Awaitable, Callable, TypeVar

from ..errors import RateLimitError, is_retryable


T = TypeVar("T")

GLOBAL_RPM_KEY = "__global__"

logger = logging.getLogger(__name__)


class AsyncRateLimiter:
    """Token bucket style limiter using a 60-second rolling window.

    Enforces per-key RPM limits and, when ``global_rpm`` is positive, a
    global RPM cap across all keys.
    """

    def __init__(self, global_rpm: int = 0) -> None:
        self._queues: dict[str, deque[float]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._global_rpm = global_rpm

    async def _acquire_one(self, key: str, rpm: int) -> None:
        """Wait until a call token is available for a single key."""
        if rpm <= 0:
            return

        queue = self._queues.setdefault(key, deque())
        lock = self._locks.setdefault(key, asyncio.Lock())

        async with lock:
            while True:
                now = time.monotonic()
                while queue and now - queue[0] > 60.0:
                    queue.popleft()

                if len(queue) < rpm:
                    queue.append(now)
                    return

                wait_seconds = max(0.01, 60.0 - (now - queue[0]))
                await asyncio.sleep(wait_seconds)

    async def acquire(self, key: str, rpm: int | None) -> None:
        """Wait until both the per-key and global rate limits allow a call."""
        await self._acquire_one(GLOBAL_RPM_KEY, self._global_rpm)
        await self._acquire_one(key, rpm or 0)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    should_retry: Callable[[BaseException], bool] = is_retryable,
) -> T:
    """Retry an awaitable factory using exponential backoff with jitter.

    Only exceptions accepted by ``should_retry`` are retried; a rate-limit
    ``retry_after`` hint extends the wait.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as exc:
            if not should_retry(exc):
                raise
            attempt += 1
            if attempt > max_retries:
                raise
            sleep_seconds = min(max_delay, base_delay * (2 ** (attempt - 1)))
            if isinstance(exc, RateLimitError) and exc.retry_after:
                sleep_seconds = max(sleep_seconds, exc.retry_after)
            jitter = random.uniform(0.0, 0.25 * sleep_seconds)
            logger.warning(
                "Retryable failure (%s), attempt %d/%d, sleeping %.2fs",
                type(exc).__name__,
                attempt,
                max_retries,
                sleep_seconds + jitter,
            )
            await asyncio.sleep(sleep_seconds + jitter)
