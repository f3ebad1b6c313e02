"""Shared HTTP client pool for connection reuse across services.

Hey future me - this is the CENTRAL http client for everything that isn't a dedicated API
client: Wikidata entity lookups, Last.fm page scrapes and image downloads. Instead of a new
httpx.AsyncClient per request (no keep-alive, leaked sockets), use this pool.

Usage:
    client = await HttpClientPool.get_client()
    response = await client.get("https://www.wikidata.org/wiki/Special:EntityData/Q1.json")

Call HttpClientPool.close() at shutdown (LibraryCore.close() does).
"""

import asyncio
import logging
from typing import ClassVar

import httpx

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Cadenza/0.1 (+https://github.com/cadenza-music/cadenza)"


class HttpClientPool:
    """Singleton HTTP client pool for connection reuse."""

    _client: ClassVar[httpx.AsyncClient | None] = None
    _lock: ClassVar[asyncio.Lock | None] = None

    DEFAULT_TIMEOUT: ClassVar[float] = 30.0
    DEFAULT_MAX_KEEPALIVE: ClassVar[int] = 20
    DEFAULT_MAX_CONNECTIONS: ClassVar[int] = 50

    @classmethod
    async def _ensure_lock(cls) -> asyncio.Lock:
        """Ensure lock exists (lazy, asyncio.Lock needs a running loop)."""
        if cls._lock is None:
            cls._lock = asyncio.Lock()
        return cls._lock

    @classmethod
    async def get_client(cls, timeout: float | None = None) -> httpx.AsyncClient:
        """Get the shared HTTP client instance.

        Config params only apply on FIRST call.

        Args:
            timeout: Request timeout in seconds (default: 30.0)

        Returns:
            Shared httpx.AsyncClient instance
        """
        lock = await cls._ensure_lock()

        async with lock:
            if cls._client is None:
                effective_timeout = timeout or cls.DEFAULT_TIMEOUT
                cls._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(effective_timeout),
                    limits=httpx.Limits(
                        max_keepalive_connections=cls.DEFAULT_MAX_KEEPALIVE,
                        max_connections=cls.DEFAULT_MAX_CONNECTIONS,
                    ),
                    headers={"User-Agent": DEFAULT_USER_AGENT},
                    http2=True,
                    # Wikimedia and CAA answer with redirects to the actual media host
                    follow_redirects=True,
                )
                logger.info(
                    "HTTP client pool initialized (timeout=%.1fs)", effective_timeout
                )

            return cls._client

    @classmethod
    async def close(cls) -> None:
        """Close the shared HTTP client and release all connections."""
        lock = await cls._ensure_lock()

        async with lock:
            if cls._client is not None:
                await cls._client.aclose()
                cls._client = None
                logger.info("HTTP client pool closed")
