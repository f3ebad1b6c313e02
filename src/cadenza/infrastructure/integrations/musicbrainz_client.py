"""MusicBrainz HTTP client implementation with rate limiting."""

import asyncio
from typing import Any, cast

import httpx

from cadenza.config.settings import MusicBrainzSettings


def lucene_quote(value: str) -> str:
    """Quote a value for a Lucene phrase query."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class MusicBrainzClient:
    """HTTP client for MusicBrainz API operations with rate limiting."""

    API_BASE_URL = "https://musicbrainz.org/ws/2"
    RATE_LIMIT_DELAY = 1.0  # 1 request per second as per MusicBrainz guidelines

    # Hey future me, MusicBrainz is STRICT about rate limiting - 1 req/sec, NO EXCEPTIONS!
    # The lock + _last_request_time keep even concurrent callers compliant. Violate it and
    # they IP-ban you for hours.
    def __init__(self, settings: MusicBrainzSettings) -> None:
        """
        Initialize MusicBrainz client.

        Args:
            settings: MusicBrainz configuration settings
        """
        self.settings = settings
        self._client: httpx.AsyncClient | None = None
        self._last_request_time: float = 0.0
        self._rate_limit_lock = asyncio.Lock()

    # Listen future me, MusicBrainz REQUIRES a User-Agent with app name, version AND contact,
    # formatted "AppName/Version ( contact )". Without it requests get rejected with 403.
    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            user_agent = (
                f"{self.settings.app_name}/{self.settings.app_version} "
                f"( {self.settings.contact} )"
            )

            self._client = httpx.AsyncClient(
                base_url=self.API_BASE_URL,
                headers={
                    "User-Agent": user_agent,
                    "Accept": "application/json",
                },
                timeout=30.0,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "MusicBrainzClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # Yo future me, _last_request_time is updated AFTER the request completes, not before.
    # Slow responses would otherwise let the next request start early and break the 1 req/sec.
    async def _rate_limited_request(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """
        Make a rate-limited request to MusicBrainz API.

        Args:
            method: HTTP method
            url: Request URL
            **kwargs: Additional request parameters

        Returns:
            HTTP response

        Raises:
            httpx.HTTPError: If the request fails
        """
        async with self._rate_limit_lock:
            current_time = asyncio.get_running_loop().time()
            time_since_last = current_time - self._last_request_time

            if time_since_last < self.RATE_LIMIT_DELAY:
                await asyncio.sleep(self.RATE_LIMIT_DELAY - time_since_last)

            client = await self._get_client()
            response = await client.request(method, url, **kwargs)

            self._last_request_time = asyncio.get_running_loop().time()

            return response

    # Hey future me, search results come back sorted by MB's relevance score and we take the
    # FIRST hit, no second-guessing. The quoting matters: without it "The Beatles" becomes
    # "the OR beatles".
    async def search_artist(self, name: str, limit: int = 5) -> list[dict[str, Any]]:
        """
        Search for artists by name.

        Args:
            name: Artist name
            limit: Maximum number of results

        Returns:
            List of artist matches (best first)

        Raises:
            httpx.HTTPError: If the request fails
        """
        response = await self._rate_limited_request(
            "GET",
            "/artist",
            params={
                "query": f"artist:{lucene_quote(name)}",
                "fmt": "json",
                "limit": limit,
            },
        )
        response.raise_for_status()
        data = response.json()

        return cast(list[dict[str, Any]], data.get("artists", []))

    async def lookup_artist_url_relations(self, artist_id: str) -> list[dict[str, Any]]:
        """
        Get an artist's URL relations (image, wikidata, official homepage, ...).

        Args:
            artist_id: MusicBrainz artist ID

        Returns:
            Relation dicts; empty when the artist is unknown

        Raises:
            httpx.HTTPError: If the request fails
        """
        try:
            response = await self._rate_limited_request(
                "GET",
                f"/artist/{artist_id}",
                params={"fmt": "json", "inc": "url-rels"},
            )
            response.raise_for_status()
            data = response.json()
            return cast(list[dict[str, Any]], data.get("relations", []))
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return []
            raise

    async def search_release(
        self, title: str, artist: str, limit: int = 5
    ) -> list[dict[str, Any]]:
        """
        Search for releases by title and artist.

        Args:
            title: Release (album) title
            artist: Artist name
            limit: Maximum number of results

        Returns:
            List of release matches (best first)

        Raises:
            httpx.HTTPError: If the request fails
        """
        query_parts = [f"release:{lucene_quote(title)}"]
        if artist:
            query_parts.append(f"artist:{lucene_quote(artist)}")

        response = await self._rate_limited_request(
            "GET",
            "/release",
            params={
                "query": " AND ".join(query_parts),
                "fmt": "json",
                "limit": limit,
            },
        )
        response.raise_for_status()
        data = response.json()

        return cast(list[dict[str, Any]], data.get("releases", []))
