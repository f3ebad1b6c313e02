"""Album cover and artist image discovery during a scan.

Hey future me - covers are resolved ONCE per album: the first scanned track of an album that
yields any image wins, every later track sees album.cover set and skips straight away.
Sources, in order:

    1. Embedded picture   primary tag block first, then any other block
    2. Directory image    cover.* > folder.* > front.* > album.* > art.*, then <stem>.<img>,
                          then "the only image in this folder"

The winner is written to {root}/{Artist}/{Album}/cover.{ext} (the canonical spot the
organizer also uses) and the DB stores the path RELATIVE to the library root.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from cadenza.domain.exceptions import StorageError
from cadenza.domain.ports import TagBlock
from cadenza.domain.value_objects import (
    ImageRef,
    album_dir,
    cover_extension_for_mime,
    is_image_file,
    relative_to_root,
)
from cadenza.infrastructure.observability import format_oserror_message
from cadenza.infrastructure.persistence import CatalogStore

logger = logging.getLogger(__name__)

COVER_PREFIXES: tuple[str, ...] = ("cover.", "folder.", "front.", "album.", "art.")
ARTIST_IMAGE_PREFIXES: tuple[str, ...] = ("folder.", "artist.", "logo.")
ARTIST_IMAGE_SEARCH_DEPTH = 2


class CoverOutcome(str, Enum):
    """What happened to the album cover for one file."""

    PERSISTED = "persisted"
    SKIPPED = "skipped"


@dataclass
class CoverImage:
    """Image bytes plus the extension they should be saved with."""

    data: bytes
    extension: str


def extension_for_file(path: Path) -> str:
    """Cover extension for an image file on disk (jpeg -> jpg, unknown -> jpg)."""
    suffix = path.suffix.lower().lstrip(".")
    if suffix in {"png", "webp"}:
        return suffix
    return "jpg"


def _list_images(directory: Path) -> list[Path]:
    try:
        return sorted(
            p for p in directory.iterdir() if p.is_file() and is_image_file(p)
        )
    except OSError as e:
        logger.debug("Cannot list %s: %s", directory, e)
        return []


def find_prefixed_image(directory: Path, prefixes: tuple[str, ...]) -> Path | None:
    """First image whose lower-cased name starts with a prefix, prefixes in priority order."""
    images = _list_images(directory)
    for prefix in prefixes:
        for image in images:
            if image.name.lower().startswith(prefix):
                return image
    return None


class CoverStrategy(ABC):
    """One place a cover may be found."""

    @abstractmethod
    def find(self, path: Path, tag_blocks: list[TagBlock]) -> CoverImage | None:
        """Return cover image data for the audio file or None."""


class EmbeddedPictureStrategy(CoverStrategy):
    """Picture stored inside the audio file's tags."""

    def find(self, path: Path, tag_blocks: list[TagBlock]) -> CoverImage | None:
        # tag_blocks[0] is the primary block, so plain iteration already prefers it
        for block in tag_blocks:
            pictures = block.pictures()
            if pictures:
                picture = pictures[0]
                return CoverImage(
                    data=picture.data,
                    extension=cover_extension_for_mime(picture.mime),
                )
        return None


class DirectoryImageStrategy(CoverStrategy):
    """Image file next to the audio file."""

    def find(self, path: Path, tag_blocks: list[TagBlock]) -> CoverImage | None:
        directory = path.parent
        candidate = find_prefixed_image(directory, COVER_PREFIXES)

        if candidate is None:
            images = _list_images(directory)
            stem_matches = [image for image in images if image.stem == path.stem]
            if stem_matches:
                candidate = stem_matches[0]
            elif len(images) == 1:
                candidate = images[0]

        if candidate is None:
            return None
        try:
            data = candidate.read_bytes()
        except OSError as e:
            logger.debug("Cannot read cover candidate %s: %s", candidate, e)
            return None
        if not data:
            return None
        return CoverImage(data=data, extension=extension_for_file(candidate))


class CoverResolver:
    """Find, persist and record album covers and artist images."""

    def __init__(
        self,
        catalog: CatalogStore,
        music_root: Path,
        strategies: list[CoverStrategy] | None = None,
    ) -> None:
        self._catalog = catalog
        self._music_root = music_root
        self._strategies = strategies or [
            EmbeddedPictureStrategy(),
            DirectoryImageStrategy(),
        ]

    async def resolve(
        self, album_id: str, path: Path, tag_blocks: list[TagBlock]
    ) -> CoverOutcome:
        """Make sure the album has a cover, using this audio file as the source.

        Args:
            album_id: Album the file belongs to
            path: Audio file path
            tag_blocks: Tag blocks already read from the file

        Returns:
            PERSISTED when a cover was recorded, SKIPPED otherwise

        Raises:
            StorageError: If the cover file could not be written
        """
        context = await self._catalog.get_album_context(album_id)
        if context is None or context.album.has_cover:
            return CoverOutcome.SKIPPED

        image = await asyncio.to_thread(self._find, path, tag_blocks)
        if image is None:
            return CoverOutcome.SKIPPED

        target = (
            album_dir(self._music_root, context.artist_name, context.album.title)
            / f"cover.{image.extension}"
        )
        await asyncio.to_thread(self._write_if_absent, target, image.data)

        relative = relative_to_root(target, self._music_root)
        await self._catalog.set_album_cover(album_id, ImageRef(path=relative))
        logger.debug("Recorded cover %s for album %s", relative, album_id)
        return CoverOutcome.PERSISTED

    def _find(self, path: Path, tag_blocks: list[TagBlock]) -> CoverImage | None:
        for strategy in self._strategies:
            image = strategy.find(path, tag_blocks)
            if image is not None:
                return image
        return None

    @staticmethod
    def _write_if_absent(target: Path, data: bytes) -> None:
        try:
            if target.is_file() and target.stat().st_size > 0:
                return
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(format_oserror_message(e, "write cover", target)) from e

    # Yo, this is the artist side: folder.jpg / artist.png / logo.* in the album dir or
    # one level up (the artist dir in a canonical tree). Never climbs above the library root.
    async def backfill_artist_image(self, artist_id: str, path: Path) -> bool:
        """Record an on-disk artist image if the artist has none yet.

        Returns:
            True if an image reference was recorded
        """
        artist = await self._catalog.get_artist(artist_id)
        if artist is None or artist.image.has_image:
            return False

        image = await asyncio.to_thread(self._find_artist_image, path)
        if image is None:
            return False

        relative = relative_to_root(image, self._music_root)
        await self._catalog.set_artist_image(artist_id, ImageRef(path=relative))
        logger.debug("Recorded artist image %s for artist %s", relative, artist_id)
        return True

    def _find_artist_image(self, path: Path) -> Path | None:
        directory = path.parent
        for _ in range(ARTIST_IMAGE_SEARCH_DEPTH):
            if directory == self._music_root or self._music_root not in directory.parents:
                break
            found = find_prefixed_image(directory, ARTIST_IMAGE_PREFIXES)
            if found is not None:
                return found
            directory = directory.parent
        return None
