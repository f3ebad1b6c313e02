"""Wikidata and Wikimedia Commons helpers.

Hey future me - MusicBrainz artists often carry a "wikidata" URL relation
(https://www.wikidata.org/wiki/Q1299). The entity JSON for that QID has the portrait
under claims.P18 ("image") as a bare Commons FILENAME, not a URL. Commons serves files
from a path derived from the MD5 of the underscored filename:

    name   = "Foo Bar.jpg" -> "Foo_Bar.jpg"
    digest = md5(name).hexdigest()
    url    = https://upload.wikimedia.org/wikipedia/commons/{digest[0]}/{digest[0:2]}/{name}

The same path trick turns commons.wikimedia.org/wiki/File:... page links into direct
media URLs.
"""

import hashlib
import logging
from typing import Any
from urllib.parse import quote, unquote, urlparse

import httpx

from cadenza.infrastructure.integrations.http_pool import HttpClientPool

logger = logging.getLogger(__name__)

COMMONS_UPLOAD_BASE = "https://upload.wikimedia.org/wikipedia/commons"
WIKIDATA_ENTITY_URL = "https://www.wikidata.org/wiki/Special:EntityData/{qid}.json"


def commons_media_url(filename: str) -> str:
    """Build the direct upload URL for a Commons filename."""
    name = filename.strip().replace(" ", "_")
    digest = hashlib.md5(name.encode("utf-8")).hexdigest()
    return f"{COMMONS_UPLOAD_BASE}/{digest[0]}/{digest[0:2]}/{quote(name)}"


def resolve_media_url(url: str) -> str:
    """Turn page-style links into directly downloadable media URLs.

    Handles Wayback Machine captures (returns the archived original) and
    Commons File: pages. Anything else is returned unchanged.

    Args:
        url: URL found in a relation or tag

    Returns:
        Direct media URL
    """
    if "web.archive.org/web/" in url and "/http" in url:
        url = "http" + url.rsplit("/http", 1)[1]

    marker = "commons.wikimedia.org/wiki/File:"
    if marker in url:
        filename = unquote(url.split("File:", 1)[1])
        return commons_media_url(filename)

    return url


def qid_from_url(url: str) -> str | None:
    """Extract the QID from a wikidata.org entity URL."""
    segment = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
    if segment.startswith("Q") and segment[1:].isdigit():
        return segment
    return None


def extract_p18_filename(entity_json: dict[str, Any], qid: str) -> str | None:
    """Pull the first P18 image filename out of an entity document."""
    try:
        claims = entity_json["entities"][qid]["claims"]
        value = claims["P18"][0]["mainsnak"]["datavalue"]["value"]
    except (KeyError, IndexError, TypeError):
        return None
    return value if isinstance(value, str) and value else None


class WikidataClient:
    """Minimal Wikidata entity reader for artist images."""

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        """Initialize with an optional client (defaults to the shared pool)."""
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await HttpClientPool.get_client()

    async def get_image_url(self, qid: str) -> str | None:
        """Get the Commons media URL of an entity's P18 image.

        Args:
            qid: Wikidata entity ID like "Q1299"

        Returns:
            Direct media URL or None when the entity has no image

        Raises:
            httpx.HTTPError: On transport errors or non-404 error statuses
        """
        client = await self._get_client()
        response = await client.get(WIKIDATA_ENTITY_URL.format(qid=qid))
        if response.status_code == 404:
            logger.debug("Wikidata entity %s not found", qid)
            return None
        response.raise_for_status()

        filename = extract_p18_filename(response.json(), qid)
        if filename is None:
            return None
        return commons_media_url(filename)
