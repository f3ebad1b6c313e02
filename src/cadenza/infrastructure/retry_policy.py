"""Reusable retry-with-backoff-and-jitter policy for outbound provider calls.

Hey future me - every external call in metadata enrichment (MusicBrainz search, Wikidata
entity fetch, Last.fm scrape, Cover Art Archive, image downloads) goes through ONE policy
object instead of hand-rolled loops at each call site:

    attempt 1 -> fail -> sleep base * 2^0 + jitter
    attempt 2 -> fail -> sleep base * 2^1 + jitter
    attempt 3 -> fail -> ProviderError (a MetadataError, scoped to the current item)

Only transient failures are retried (transport errors, 5xx, 429). A 400 won't get better
by asking again.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import httpx

from cadenza.domain.exceptions import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def full_jitter(delay: float) -> float:
    """Random extra delay in [0, delay)."""
    return random.uniform(0, delay)


def is_transient_http_error(error: BaseException) -> bool:
    """Transport failures, 5xx and 429 are worth another attempt."""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status >= 500 or status == 429
    return isinstance(error, httpx.TransportError)


@dataclass
class RetryPolicy:
    """Exponential backoff with jitter.

    Attributes:
        max_attempts: Total attempts including the first one
        base_delay: Delay before the first retry in seconds
        multiplier: Growth factor per retry
        jitter: Maps the computed delay to an extra random delay
        should_retry: Decides whether an exception is transient
        sleep: Awaitable sleep (swapped out in tests)
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    jitter: Callable[[float], float] = full_jitter
    should_retry: Callable[[BaseException], bool] = is_transient_http_error
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (1-based)."""
        delay = self.base_delay * (self.multiplier ** (attempt - 1))
        return delay + self.jitter(delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        provider: str,
        description: str,
    ) -> T:
        """Run an operation under this policy.

        Args:
            operation: Zero-argument coroutine factory (called once per attempt)
            provider: Provider name for error messages ("musicbrainz", "lastfm", ...)
            description: What is being fetched, for logs

        Returns:
            The operation's result

        Raises:
            ProviderError: When attempts are exhausted or the error is not transient
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except Exception as e:
                if not self.should_retry(e):
                    raise ProviderError(provider, f"{description} failed: {e}") from e
                if attempt == self.max_attempts:
                    raise ProviderError(
                        provider,
                        f"{description} failed after {attempt} attempts: {e}",
                    ) from e
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s: %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    provider,
                    description,
                    attempt,
                    self.max_attempts,
                    delay,
                    e,
                )
                await self.sleep(delay)
        raise ProviderError(provider, f"{description}: no attempts configured")
