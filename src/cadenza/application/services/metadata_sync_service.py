"""External metadata enrichment for artists and albums.

Hey future me - this is the service that talks to the outside world. It fills in what local
tags can't give us: MusicBrainz ids, artist portraits, release years and front covers.

Artist flow:
    MB artist search (first hit) -> store MBID
    image waterfall, first URL wins:
        1. MB url-rels "image" relation (Commons page links resolved to media URLs)
        2. MB url-rels "wikidata" relation -> entity P18 -> Commons media URL
        3. Last.fm +images page scrape
    download to {avatar_dir}/artist_{id}.{ext}; download failed -> keep the remote URL

Album flow:
    MB release search by title + artist (first hit) -> store release + release group id,
    fill the year if still unknown -> CAA front cover -> {cover_dir}/{album_id}.{ext}

Every outbound call runs under ONE RetryPolicy. A provider that keeps failing raises
ProviderError for THAT item; batches record it as last_error and move on.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cadenza.config import Settings
from cadenza.domain.entities import Album, Artist
from cadenza.domain.exceptions import (
    DomainException,
    EntityNotFoundException,
    MetadataError,
    OperationInProgressError,
)
from cadenza.domain.value_objects import ImageRef
from cadenza.infrastructure.integrations import (
    CoverArtArchiveClient,
    ImageDownloader,
    LastFmImageScraper,
    MusicBrainzClient,
    WikidataClient,
    qid_from_url,
    resolve_media_url,
)
from cadenza.infrastructure.observability import set_correlation_id
from cadenza.infrastructure.persistence import CatalogStore, StatusStore
from cadenza.infrastructure.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

SYNC_BUSY_MESSAGE = "A sync task is already in progress"


def parse_release_year(date: str | None) -> int | None:
    """Year from a MusicBrainz date ("1999", "1999-03", "1999-03-01")."""
    if not date:
        return None
    try:
        return int(date.split("-", 1)[0])
    except ValueError:
        return None


def find_relation_url(relations: list[dict[str, Any]], relation_type: str) -> str | None:
    """URL of the first url-rel of the given type."""
    for relation in relations:
        if relation.get("type") == relation_type:
            resource = (relation.get("url") or {}).get("resource")
            if resource:
                return str(resource)
    return None


# =============================================================================
# ARTIST IMAGE WATERFALL
# =============================================================================


@dataclass
class ArtistImageContext:
    """What the image strategies get to look at."""

    artist: Artist
    relations: list[dict[str, Any]] = field(default_factory=list)


class ArtistImageStrategy(ABC):
    """One source of artist image URLs."""

    provider: str = "unknown"

    @abstractmethod
    async def find(self, context: ArtistImageContext) -> str | None:
        """Return an image URL or None."""


class MusicBrainzImageRelationStrategy(ArtistImageStrategy):
    """MusicBrainz "image" url relation."""

    provider = "musicbrainz"

    async def find(self, context: ArtistImageContext) -> str | None:
        url = find_relation_url(context.relations, "image")
        return resolve_media_url(url) if url else None


class WikidataImageStrategy(ArtistImageStrategy):
    """Wikidata P18 image of the artist's linked entity."""

    provider = "wikidata"

    def __init__(self, client: WikidataClient) -> None:
        self._client = client

    async def find(self, context: ArtistImageContext) -> str | None:
        url = find_relation_url(context.relations, "wikidata")
        if url is None:
            return None
        qid = qid_from_url(url)
        if qid is None:
            return None
        return await self._client.get_image_url(qid)


class LastFmImageStrategy(ArtistImageStrategy):
    """Last.fm gallery page scrape."""

    provider = "lastfm"

    def __init__(self, scraper: LastFmImageScraper) -> None:
        self._scraper = scraper

    async def find(self, context: ArtistImageContext) -> str | None:
        return await self._scraper.find_artist_image(context.artist.name)


# =============================================================================
# RESULTS
# =============================================================================


@dataclass
class ArtistSyncResult:
    """Outcome of enriching one artist."""

    artist_id: str
    musicbrainz_id: str | None = None
    image: ImageRef | None = None


@dataclass
class AlbumSyncResult:
    """Outcome of enriching one album."""

    album_id: str
    musicbrainz_id: str | None = None
    release_year: int | None = None
    cover: ImageRef | None = None


@dataclass
class BatchSyncResult:
    """Summary of a batch run."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    last_error: str | None = None


# =============================================================================
# SERVICE
# =============================================================================


class MetadataSyncService:
    """Enrich catalog artists and albums from external providers."""

    def __init__(
        self,
        settings: Settings,
        catalog: CatalogStore,
        status_store: StatusStore,
        musicbrainz: MusicBrainzClient,
        cover_art: CoverArtArchiveClient,
        image_strategies: list[ArtistImageStrategy] | None = None,
        downloader: ImageDownloader | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the enrichment service.

        Args:
            settings: Application settings (storage dirs, timeouts, retry tuning)
            catalog: Catalog persistence
            status_store: Pollable status rows
            musicbrainz: MusicBrainz client
            cover_art: Cover Art Archive client
            image_strategies: Artist image waterfall (defaults to MB relation,
                Wikidata, Last.fm)
            downloader: Image downloader
            retry_policy: Retry policy for outbound calls (defaults from settings)
            sleep: Awaitable used for the inter-item delay
        """
        self.settings = settings
        self._catalog = catalog
        self._status = status_store
        self._musicbrainz = musicbrainz
        self._cover_art = cover_art
        self._image_strategies = image_strategies or [
            MusicBrainzImageRelationStrategy(),
            WikidataImageStrategy(WikidataClient()),
            LastFmImageStrategy(LastFmImageScraper()),
        ]
        self._downloader = downloader or ImageDownloader()
        self._retry = retry_policy or RetryPolicy(
            max_attempts=settings.metadata_sync.retry_max_attempts,
            base_delay=settings.metadata_sync.retry_base_delay,
        )
        self._sleep = sleep
        self._batch_active = False

    # =========================================================================
    # SINGLE ITEMS
    # =========================================================================

    async def sync_artist(self, artist_id: str) -> ArtistSyncResult:
        """Look up an artist's MusicBrainz id and image.

        Raises:
            EntityNotFoundException: If the artist id is unknown
            MetadataError: If MusicBrainz fails after retries
        """
        artist = await self._catalog.get_artist(artist_id)
        if artist is None:
            raise EntityNotFoundException("Artist", artist_id)

        result = ArtistSyncResult(artist_id=artist_id)
        matches = await self._retry.run(
            lambda: self._musicbrainz.search_artist(artist.name, limit=1),
            "musicbrainz",
            f"artist search '{artist.name}'",
        )

        relations: list[dict[str, Any]] = []
        if matches:
            mbid = str(matches[0]["id"])
            result.musicbrainz_id = mbid
            await self._catalog.update_artist_enrichment(artist_id, mbid)
            relations = await self._retry.run(
                lambda: self._musicbrainz.lookup_artist_url_relations(mbid),
                "musicbrainz",
                f"url relations of {mbid}",
            )
        else:
            logger.info("No MusicBrainz match for artist '%s'", artist.name)

        # A local image (scanned folder.jpg, recovered download) always beats a remote one
        if artist.image.path:
            return result

        image_url = await self._find_artist_image(ArtistImageContext(artist, relations))
        if image_url is None:
            logger.info("No image found for artist '%s'", artist.name)
            return result

        image = await self._store_image(
            image_url, "avatars", f"artist_{artist_id}", self.settings.storage.avatar_path
        )
        await self._catalog.set_artist_image(artist_id, image)
        result.image = image
        return result

    async def _find_artist_image(self, context: ArtistImageContext) -> str | None:
        for strategy in self._image_strategies:
            try:
                url = await self._retry.run(
                    lambda s=strategy: s.find(context),
                    strategy.provider,
                    f"image lookup for '{context.artist.name}'",
                )
            except MetadataError as e:
                logger.warning("Image source %s failed: %s", strategy.provider, e.message)
                continue
            if url:
                logger.debug("Image for '%s' from %s", context.artist.name, strategy.provider)
                return url
        return None

    async def sync_album(self, album_id: str) -> AlbumSyncResult:
        """Look up an album's release, year and front cover.

        Raises:
            EntityNotFoundException: If the album id is unknown
            MetadataError: If MusicBrainz or Cover Art Archive fail after retries
        """
        context = await self._catalog.get_album_context(album_id)
        if context is None:
            raise EntityNotFoundException("Album", album_id)
        album = context.album

        result = AlbumSyncResult(album_id=album_id, release_year=album.release_year)
        releases = await self._retry.run(
            lambda: self._musicbrainz.search_release(
                album.title, context.artist_name, limit=1
            ),
            "musicbrainz",
            f"release search '{album.title}'",
        )
        if not releases:
            logger.info(
                "No MusicBrainz release for '%s' by '%s'", album.title, context.artist_name
            )
            return result

        release = releases[0]
        release_id = str(release["id"])
        release_group_id = (release.get("release-group") or {}).get("id")
        year = parse_release_year(release.get("date"))
        await self._catalog.update_album_enrichment(
            album_id, release_id, release_group_id, year
        )
        result.musicbrainz_id = release_id
        result.release_year = album.release_year if album.release_year is not None else year

        if album.has_cover:
            return result

        cover_url = await self._retry.run(
            lambda: self._cover_art.get_front_image_url(release_id),
            "coverartarchive",
            f"front cover of {release_id}",
        )
        if cover_url is None:
            return result

        cover = await self._store_image(
            cover_url, "covers", album_id, self.settings.storage.cover_path
        )
        await self._catalog.set_album_cover(album_id, cover)
        result.cover = cover
        return result

    async def _store_image(
        self, url: str, subdir: str, stem: str, target_dir: Path
    ) -> ImageRef:
        """Download an image; fall back to the remote URL if that fails."""
        try:
            saved = await self._retry.run(
                lambda: self._downloader.download(url, target_dir, stem),
                "download",
                url,
            )
        except MetadataError as e:
            logger.warning("Keeping remote image URL, download failed: %s", e.message)
            return ImageRef(url=url)
        return ImageRef(path=f"{subdir}/{saved.name}")

    # =========================================================================
    # BATCHES
    # =========================================================================

    async def sync_all_artists(self, missing_only: bool = False) -> BatchSyncResult:
        """Enrich every artist (or only those without an image).

        Raises:
            OperationInProgressError: If a sync batch is already running
        """
        await self._claim_batch()
        try:
            artists = await self._catalog.list_artists(missing_image_only=missing_only)
            return await self._run_batch(
                "artist", [(a.id, a.name) for a in artists], self.sync_artist
            )
        finally:
            self._batch_active = False

    async def sync_all_albums(self) -> BatchSyncResult:
        """Enrich every album still missing a release id or cover.

        Raises:
            OperationInProgressError: If a sync batch is already running
        """
        await self._claim_batch()
        try:
            albums: list[Album] = await self._catalog.list_albums_for_enrichment()
            return await self._run_batch(
                "album", [(a.id, a.title) for a in albums], self.sync_album
            )
        finally:
            self._batch_active = False

    async def _claim_batch(self) -> None:
        # Flag first (no await in between), then the persisted row for other processes
        if self._batch_active:
            raise OperationInProgressError(SYNC_BUSY_MESSAGE)
        self._batch_active = True
        claimed = False
        try:
            status = await self._status.get_artist_sync_status()
            if status.is_running:
                raise OperationInProgressError(SYNC_BUSY_MESSAGE)
            claimed = True
        finally:
            if not claimed:
                self._batch_active = False

    # Listen up, the per-item timeout wraps the WHOLE item (search + relations + image +
    # download, retries included). A hanging provider costs one item, not the batch.
    async def _run_batch(
        self,
        kind: str,
        items: list[tuple[str, str]],
        sync_one: Callable[[str], Awaitable[Any]],
    ) -> BatchSyncResult:
        correlation_id = set_correlation_id()
        sync_settings = self.settings.metadata_sync
        result = BatchSyncResult(total=len(items))
        logger.info("Starting %s sync of %d items (run %s)", kind, len(items), correlation_id)

        await self._status.start_artist_sync(len(items))
        try:
            for index, (item_id, label) in enumerate(items, start=1):
                error: str | None = None
                try:
                    await asyncio.wait_for(sync_one(item_id), timeout=sync_settings.item_timeout)
                    result.succeeded += 1
                except TimeoutError:
                    error = (
                        f"{kind} '{label}' timed out after {sync_settings.item_timeout:.0f}s"
                    )
                except DomainException as e:
                    error = f"{kind} '{label}': {e.message}"
                except Exception as e:
                    logger.exception("Unexpected error syncing %s '%s'", kind, label)
                    error = f"{kind} '{label}': {e}"

                if error is not None:
                    result.failed += 1
                    result.last_error = error
                    logger.warning("Sync failed: %s", error)
                await self._status.update_artist_sync_progress(index, last_error=error)

                if index < len(items):
                    await self._sleep(sync_settings.inter_item_delay)
        finally:
            await self._status.finish_artist_sync()

        logger.info(
            "Finished %s sync: %d succeeded, %d failed",
            kind,
            result.succeeded,
            result.failed,
        )
        return result
