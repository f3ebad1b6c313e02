"""Last.fm artist image scraper.

Hey future me - this is the LAST resort of the artist image waterfall. No API key, we
fetch the public "+images" gallery page and grep the CDN thumbnails out of the HTML.
Thumbnails come in avatar170s or 300x300 size; swapping that path segment for 770x770
gives the large rendition. If Last.fm changes the markup this quietly returns None,
which is fine for a last resort.
"""

import logging
import re
from urllib.parse import quote

import httpx

from cadenza.infrastructure.integrations.http_pool import HttpClientPool

logger = logging.getLogger(__name__)

LASTFM_IMAGES_URL = "https://www.last.fm/music/{artist}/+images"
LARGE_SIZE = "770x770"

# Tried in order, first match wins
THUMBNAIL_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(r"https://lastfm\.freetls\.fastly\.net/i/u/avatar170s/[a-f0-9]+"),
        "avatar170s",
    ),
    (
        re.compile(r"https://lastfm\.freetls\.fastly\.net/i/u/300x300/[a-f0-9]+"),
        "300x300",
    ),
)


def extract_large_image_url(html: str) -> str | None:
    """Find the first thumbnail URL in a Last.fm page and upscale it."""
    for pattern, size in THUMBNAIL_PATTERNS:
        match = pattern.search(html)
        if match:
            return match.group(0).replace(size, LARGE_SIZE) + ".jpg"
    return None


class LastFmImageScraper:
    """Scrapes artist images from Last.fm gallery pages."""

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        """Initialize with an optional client (defaults to the shared pool)."""
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await HttpClientPool.get_client()

    async def find_artist_image(self, artist_name: str) -> str | None:
        """Look up a large artist image URL.

        Args:
            artist_name: Artist display name

        Returns:
            Image URL or None if the page has none

        Raises:
            httpx.HTTPError: On transport errors or non-404 error statuses
        """
        client = await self._get_client()
        url = LASTFM_IMAGES_URL.format(artist=quote(artist_name, safe=""))
        response = await client.get(url)
        if response.status_code == 404:
            logger.debug("Last.fm has no page for artist '%s'", artist_name)
            return None
        response.raise_for_status()
        return extract_large_image_url(response.text)
