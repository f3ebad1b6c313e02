"""Reorganize the physical library to match the canonical layout.

Hey future me - the organizer is the scanner's evil twin: it walks the SAME tree, but instead
of copying tags into the DB it moves files so the tree matches the tags:

    /music/downloads/x/01 song.flac   ->   /music/Artist/Album/Song.flac
    /music/downloads/x/01 song.lrc    ->   /music/Artist/Album/Song.lrc      (sidecar)
    /music/downloads/x/cover.jpg      ->   /music/Artist/Album/cover.jpg     (album art)

Then two cleanup passes:
    - asset recovery: artist_{id}.jpg / {album_id}.png downloaded by metadata sync into the
      data dir get moved into the library as folder.jpg / cover.png
    - loose lyrics: .lrc files dumped in the library ROOT get matched to a track by the first
      word of their name and moved next to it

RULES: never overwrite, never abort the whole pass for one bad file. Collisions are skipped
and listed in the result so nothing gets stranded silently.
"""

import asyncio
import contextlib
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from cadenza.application.services.library_scanner_service import (
    collect_audio_files,
    path_as_text,
    validate_library_root,
)
from cadenza.application.services.operation_lock import StructuralOperationLock
from cadenza.config import Settings
from cadenza.domain.exceptions import DomainException, StorageError
from cadenza.domain.value_objects import (
    IMAGE_EXTENSIONS,
    ImageRef,
    album_dir,
    artist_dir,
    canonical_track_path,
    relative_to_root,
)
from cadenza.infrastructure.file_mover import move_file
from cadenza.infrastructure.observability import set_correlation_id
from cadenza.infrastructure.persistence import CatalogStore, Database, StatusStore
from cadenza.infrastructure.tagging import TagExtractor

logger = logging.getLogger(__name__)

ORGANIZE_BUSY_MESSAGE = "A scan or reorganization is already in progress"

# Same-stem files that travel with their audio file
SIDECAR_EXTENSIONS: tuple[str, ...] = ("lrc", "jpg", "png", "jpeg", "txt", "pdf")

# Directory-scoped album art that travels with the album
ALBUM_ART_NAMES: tuple[str, ...] = tuple(
    f"{stem}.{ext}"
    for stem in ("cover", "folder", "front", "album")
    for ext in ("jpg", "jpeg", "png")
)

AVATAR_FILE_PATTERN = re.compile(r"^artist_(?P<artist_id>.+)\.(?P<ext>[A-Za-z0-9]+)$")
KEYWORD_SEPARATORS = re.compile(r"[-_ ]")
MIN_KEYWORD_LENGTH = 2


class FileOutcome(str, Enum):
    """What happened to one audio file."""

    MOVED = "moved"
    UNCHANGED = "unchanged"
    COLLISION = "collision"


@dataclass
class Collision:
    """A file that was not moved because its destination was taken."""

    source: str
    destination: str


@dataclass
class OrganizeResult:
    """Summary of one reorganization pass."""

    total_files: int = 0
    moved: int = 0
    unchanged: int = 0
    failed: int = 0
    collisions: list[Collision] = field(default_factory=list)
    assets_recovered: int = 0
    lyrics_relocated: int = 0
    duration_seconds: float = 0.0


class Organizer:
    """Move audio files, sidecars and cached assets into the canonical tree."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        status_store: StatusStore,
        lock: StructuralOperationLock,
        tag_extractor: TagExtractor,
    ) -> None:
        self.settings = settings
        self._database = database
        self._status = status_store
        self._lock = lock
        self._tag_extractor = tag_extractor

    async def organize(self, library_root: Path) -> OrganizeResult:
        """Reorganize a library root.

        Args:
            library_root: Directory to reorganize

        Returns:
            OrganizeResult including the collision report

        Raises:
            OperationInProgressError: If a scan or reorganization is running
            InvalidLibraryPathError: If library_root is not a directory
        """
        async with self._lock.hold("organize", ORGANIZE_BUSY_MESSAGE):
            correlation_id = set_correlation_id()
            started = time.monotonic()
            root = validate_library_root(library_root)
            catalog = CatalogStore(self._database)

            files = await asyncio.to_thread(collect_audio_files, root)
            logger.info(
                "Starting library reorganization of %s: %d audio files (run %s)",
                root,
                len(files),
                correlation_id,
            )
            result = OrganizeResult(total_files=len(files))
            flush_every = self.settings.scan.progress_flush_every

            await self._status.start_scan(len(files))
            try:
                for index, path in enumerate(files, start=1):
                    try:
                        outcome = await self._organize_file(root, path, catalog, result)
                    except DomainException as e:
                        result.failed += 1
                        logger.warning("Failed to organize %s: %s", path, e.message)
                    except OSError as e:
                        result.failed += 1
                        logger.warning("Failed to organize %s: %s", path, e)
                    else:
                        if outcome is FileOutcome.MOVED:
                            result.moved += 1
                        elif outcome is FileOutcome.UNCHANGED:
                            result.unchanged += 1
                    if index % flush_every == 0 or index == len(files):
                        await self._status.update_scan_progress(index)

                result.assets_recovered = await self._recover_assets(root, catalog)
                result.lyrics_relocated = await self._relocate_loose_lyrics(
                    root, catalog, result
                )
            finally:
                await self._status.finish_scan()

            result.duration_seconds = time.monotonic() - started
            if result.collisions:
                logger.warning(
                    "Reorganization skipped %d files whose destination already exists",
                    len(result.collisions),
                )
            logger.info(
                "Library reorganization finished: %d moved, %d unchanged, %d failed, "
                "%d assets recovered, %d lyric files relocated in %.1fs",
                result.moved,
                result.unchanged,
                result.failed,
                result.assets_recovered,
                result.lyrics_relocated,
                result.duration_seconds,
            )
            return result

    # =========================================================================
    # AUDIO FILES + SIDECARS
    # =========================================================================

    async def _organize_file(
        self, root: Path, path: Path, catalog: CatalogStore, result: OrganizeResult
    ) -> FileOutcome:
        tags = await self._tag_extractor.extract(path)
        destination = canonical_track_path(
            root, path, tags.raw_artist, tags.raw_album, tags.raw_title
        )

        if destination == path:
            await self._move_sidecars(root, path, destination, catalog)
            return FileOutcome.UNCHANGED

        if destination.exists():
            logger.info("Skipping %s: %s already exists", path, destination)
            result.collisions.append(Collision(str(path), str(destination)))
            return FileOutcome.COLLISION

        await asyncio.to_thread(destination.parent.mkdir, parents=True, exist_ok=True)
        await move_file(path, destination)
        updated = await catalog.update_track_path(
            path_as_text(path), path_as_text(destination)
        )
        if not updated:
            logger.debug("Moved %s which is not in the catalog yet", path)
        await self._move_sidecars(root, path, destination, catalog)
        logger.debug("Moved %s -> %s", path, destination)
        return FileOutcome.MOVED

    async def _move_sidecars(
        self, root: Path, source_audio: Path, dest_audio: Path, catalog: CatalogStore
    ) -> None:
        for ext in SIDECAR_EXTENSIONS:
            await self._move_if_free(
                source_audio.with_suffix(f".{ext}"), dest_audio.with_suffix(f".{ext}")
            )

        source_dir = source_audio.parent
        dest_dir = dest_audio.parent
        if source_dir == dest_dir:
            return
        for name in ALBUM_ART_NAMES:
            old = source_dir / name
            new = dest_dir / name
            if await self._move_if_free(old, new):
                await self._repoint_album_cover(root, dest_audio, old, new, catalog)

    async def _move_if_free(self, source: Path, destination: Path) -> bool:
        """Move a sidecar unless it is missing or the destination is taken."""
        if source == destination or not source.is_file() or destination.exists():
            return False
        try:
            await move_file(source, destination)
        except StorageError as e:
            logger.warning("Failed to move %s: %s", source, e.message)
            return False
        return True

    async def _repoint_album_cover(
        self,
        root: Path,
        dest_audio: Path,
        old: Path,
        new: Path,
        catalog: CatalogStore,
    ) -> None:
        """Follow a moved album-art file with the album's cover reference."""
        track = await catalog.get_track_by_path(path_as_text(dest_audio))
        if track is None or track.album_id is None:
            return
        album = await catalog.get_album(track.album_id)
        if album is None or album.cover.path != relative_to_root(old, root):
            return
        await catalog.set_album_cover(album.id, ImageRef(path=relative_to_root(new, root)))

    # =========================================================================
    # ASSET RECOVERY
    # =========================================================================

    async def _recover_assets(self, root: Path, catalog: CatalogStore) -> int:
        recovered = 0
        for cache_file in await asyncio.to_thread(
            _list_cached_images, self.settings.storage.avatar_path
        ):
            try:
                if await self._recover_avatar(root, cache_file, catalog):
                    recovered += 1
            except DomainException as e:
                logger.warning("Failed to recover avatar %s: %s", cache_file, e.message)

        for cache_file in await asyncio.to_thread(
            _list_cached_images, self.settings.storage.cover_path
        ):
            try:
                if await self._recover_cover(root, cache_file, catalog):
                    recovered += 1
            except DomainException as e:
                logger.warning("Failed to recover cover %s: %s", cache_file, e.message)
        return recovered

    async def _recover_avatar(
        self, root: Path, cache_file: Path, catalog: CatalogStore
    ) -> bool:
        match = AVATAR_FILE_PATTERN.match(cache_file.name)
        if match is None:
            return False
        artist = await catalog.get_artist(match.group("artist_id"))
        if artist is None:
            logger.debug("Avatar %s belongs to no known artist", cache_file.name)
            return False

        destination = artist_dir(root, artist.name) / f"folder.{match.group('ext').lower()}"
        await self._adopt_cache_file(cache_file, destination)
        await catalog.set_artist_image(
            artist.id, ImageRef(path=relative_to_root(destination, root))
        )
        logger.info("Recovered artist image for '%s' -> %s", artist.name, destination)
        return True

    async def _recover_cover(
        self, root: Path, cache_file: Path, catalog: CatalogStore
    ) -> bool:
        context = await catalog.get_album_context(cache_file.stem)
        if context is None:
            logger.debug("Cover %s belongs to no known album", cache_file.name)
            return False

        destination = (
            album_dir(root, context.artist_name, context.album.title)
            / f"cover{cache_file.suffix.lower()}"
        )
        await self._adopt_cache_file(cache_file, destination)
        await catalog.set_album_cover(
            context.album.id, ImageRef(path=relative_to_root(destination, root))
        )
        logger.info(
            "Recovered cover for '%s' -> %s", context.album.title, destination
        )
        return True

    @staticmethod
    async def _adopt_cache_file(cache_file: Path, destination: Path) -> None:
        """Move a cached image into place, or discard it if the spot is taken."""
        if destination.exists():
            with contextlib.suppress(OSError):
                await asyncio.to_thread(cache_file.unlink)
            return
        await asyncio.to_thread(destination.parent.mkdir, parents=True, exist_ok=True)
        await move_file(cache_file, destination)

    # =========================================================================
    # LOOSE LYRICS
    # =========================================================================

    async def _relocate_loose_lyrics(
        self, root: Path, catalog: CatalogStore, result: OrganizeResult
    ) -> int:
        relocated = 0
        lyric_files = await asyncio.to_thread(_list_root_lyrics, root)
        for lyric_file in lyric_files:
            keyword = lyric_keyword(lyric_file.stem)
            if keyword is None:
                continue
            track = await catalog.find_track_by_keyword(keyword)
            if track is None:
                logger.debug("No track matches loose lyric file %s", lyric_file.name)
                continue

            destination = Path(track.path).parent / lyric_file.name
            if destination == lyric_file:
                continue
            if destination.exists():
                result.collisions.append(Collision(str(lyric_file), str(destination)))
                continue
            try:
                await asyncio.to_thread(
                    destination.parent.mkdir, parents=True, exist_ok=True
                )
                await move_file(lyric_file, destination)
            except (StorageError, OSError) as e:
                logger.warning("Failed to relocate %s: %s", lyric_file, e)
                continue
            logger.info("Relocated loose lyrics %s -> %s", lyric_file.name, destination.parent)
            relocated += 1
        return relocated


def lyric_keyword(stem: str) -> str | None:
    """First token of a lyric filename, used to find its track.

    "汪苏泷 - 万有引力" -> "汪苏泷". Tokens shorter than 2 UTF-8 bytes match too much
    and are rejected, so one ASCII letter is out but one CJK character is kept.
    """
    keyword = KEYWORD_SEPARATORS.split(stem, maxsplit=1)[0].strip()
    if len(keyword.encode("utf-8")) < MIN_KEYWORD_LENGTH:
        return None
    return keyword


def _list_cached_images(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(
        p
        for p in directory.iterdir()
        if p.is_file() and p.suffix.lower().lstrip(".") in IMAGE_EXTENSIONS
    )


def _list_root_lyrics(root: Path) -> list[Path]:
    return sorted(
        p for p in root.iterdir() if p.is_file() and p.suffix.lower() == ".lrc"
    )
