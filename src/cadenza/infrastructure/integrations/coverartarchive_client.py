"""CoverArtArchive HTTP client implementation.

Hey future me - CoverArtArchive (CAA) is THE official artwork source for MusicBrainz
releases. GET /release/{mbid} returns JSON with an images array; the entry flagged
"front": true is the front cover and its "image" field is the full-size URL.

GOTCHA: Not all releases have artwork! 404 is normal, not an error.
"""

import asyncio
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class CoverArtArchiveClient:
    """HTTP client for CoverArtArchive API."""

    API_BASE_URL = "https://coverartarchive.org"

    # CAA has no strict rate limit like MB, 200ms between requests keeps us polite
    RATE_LIMIT_DELAY = 0.2

    def __init__(self) -> None:
        """Initialize CoverArtArchive client (no settings needed, CAA is public)."""
        self._client: httpx.AsyncClient | None = None
        self._last_request_time: float = 0.0
        self._rate_limit_lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client.

        Follow redirects is important - CAA answers with 307s to archive.org.
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.API_BASE_URL,
                headers={
                    "User-Agent": "Cadenza/0.1 (https://github.com/cadenza-music/cadenza)",
                    "Accept": "application/json",
                },
                timeout=30.0,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "CoverArtArchiveClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _rate_limited_request(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """Make a rate-limited request to CoverArtArchive."""
        async with self._rate_limit_lock:
            current_time = asyncio.get_running_loop().time()
            time_since_last = current_time - self._last_request_time

            if time_since_last < self.RATE_LIMIT_DELAY:
                await asyncio.sleep(self.RATE_LIMIT_DELAY - time_since_last)

            client = await self._get_client()
            response = await client.request(method, url, **kwargs)

            self._last_request_time = asyncio.get_running_loop().time()

            return response

    async def get_front_image_url(self, release_mbid: str) -> str | None:
        """Get the full-size front cover URL of a release.

        Args:
            release_mbid: MusicBrainz Release ID

        Returns:
            Image URL, or None when the release has no front cover

        Raises:
            httpx.HTTPError: On transport errors or non-404 error statuses
        """
        response = await self._rate_limited_request("GET", f"/release/{release_mbid}")
        if response.status_code == 404:
            logger.debug("No artwork found for release %s", release_mbid)
            return None
        response.raise_for_status()
        data = response.json()

        for image in data.get("images", []):
            if image.get("front") and image.get("image"):
                return str(image["image"])
        return None
