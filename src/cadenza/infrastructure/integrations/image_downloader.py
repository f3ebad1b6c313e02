"""Image downloads for artist portraits and album covers."""

import asyncio
import logging
from pathlib import Path

import httpx

from cadenza.domain.value_objects import cover_extension_for_mime
from cadenza.infrastructure.integrations.http_pool import HttpClientPool

logger = logging.getLogger(__name__)


class ImageDownloader:
    """Downloads remote images into a local directory.

    The file extension follows the response Content-Type (png, webp, gif, else jpg).
    Raises httpx.HTTPStatusError on non-2xx so the retry policy can judge the failure.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await HttpClientPool.get_client()

    async def download(self, url: str, target_dir: Path, stem: str) -> Path:
        """Download an image to target_dir/{stem}.{ext}.

        Args:
            url: Image URL
            target_dir: Directory to write into (created if missing)
            stem: Filename without extension

        Returns:
            Path of the written file
        """
        client = await self._get_client()
        response = await client.get(url)
        response.raise_for_status()

        mime = response.headers.get("content-type", "")
        extension = cover_extension_for_mime(mime)
        target = target_dir / f"{stem}.{extension}"
        data = response.content

        def _write() -> None:
            target_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.debug("Downloaded %d bytes from %s to %s", len(data), url, target)
        return target
