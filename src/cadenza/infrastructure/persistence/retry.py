# Hey future me - this is THE FIX for "database is locked" errors during scans!
#
# SQLite has ONE writer at a time. With 8 scan workers upserting artists, albums and tracks
# concurrently, one of them will occasionally hit "database is locked" even with the 30s busy
# timeout (long orphan sweeps, an external sqlite3 shell holding a lock, ...). Those locks are
# TEMPORARY - waiting and retrying almost always works.
#
# USAGE:
#   @with_db_retry(max_attempts=3)
#   async def upsert_track(self, ...) -> str:
#       ...
"""Database retry utilities for handling SQLite lock errors."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def is_lock_error(error: OperationalError) -> bool:
    """Check whether an OperationalError is a transient lock/busy condition."""
    message = str(error).lower()
    return "locked" in message or "busy" in message


def with_db_retry(
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 5.0,
    backoff_factor: float = 2.0,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for retrying database operations on lock errors.

    The backoff is exponential: 0.5s -> 1s -> 2s (capped at max_delay).
    Only "locked"/"busy" OperationalErrors are retried, everything else is
    raised immediately.

    Args:
        max_attempts: Maximum attempts including the first one
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay cap in seconds
        backoff_factor: Multiply delay by this each retry

    Returns:
        Decorated coroutine function with automatic retry logic.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            delay = initial_delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except OperationalError as e:
                    if not is_lock_error(e) or attempt == max_attempts:
                        if attempt > 1:
                            logger.error(
                                "Database locked after %d attempts, giving up: %s",
                                attempt,
                                func.__qualname__,
                            )
                        raise
                    logger.warning(
                        "Database locked (attempt %d/%d), retrying in %.1fs: %s",
                        attempt,
                        max_attempts,
                        delay,
                        func.__qualname__,
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * backoff_factor, max_delay)
            # Only reachable with max_attempts < 1
            return await func(*args, **kwargs)

        return wrapper

    return decorator
