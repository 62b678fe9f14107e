"""Shared helpers: stats, rate limiting, locking, logging and time."""

from .locks import AsyncRWLock
from .logging_config import setup_logging
from .rate_limiter import AsyncRateLimiter, retry_with_backoff
from .stats import GenerationStats, StatsAccumulator
from .timeutil import utc_now

__all__ = [
    "AsyncRWLock",
    "setup_logging",
    "AsyncRateLimiter",
    "retry_with_backoff",
    "GenerationStats",
    "StatsAccumulator",
    "utc_now",
]
