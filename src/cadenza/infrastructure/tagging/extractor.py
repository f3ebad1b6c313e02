"""Tag extraction: technical properties plus first-non-empty field resolution."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

from cadenza.domain.entities import UNKNOWN_ALBUM, UNKNOWN_ARTIST
from cadenza.domain.exceptions import TagReadError
from cadenza.domain.ports import AudioProbe, TagBlock

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ExtractedTags:
    """Everything the scan pipeline needs from one audio file."""

    path: Path
    duration: int
    bitrate: int | None
    format: str
    size: int
    title: str
    artist: str
    album: str
    track_number: int | None = None
    year: int | None = None
    tag_blocks: list[TagBlock] = field(default_factory=list)
    # Raw tag values before defaults were applied - the organizer needs to know
    # whether the file is actually tagged or just fell back to "Unknown Artist"
    raw_title: str | None = None
    raw_artist: str | None = None
    raw_album: str | None = None


def first_present(blocks: list[TagBlock], getter: Callable[[TagBlock], T | None]) -> T | None:
    """Return the first non-empty value of a field across tag blocks."""
    for block in blocks:
        value = getter(block)
        if value is not None and value != "":
            return value
    return None


class TagExtractor:
    """Read technical properties and tag fields from one audio file.

    Hey future me - the field rule is "first non-empty wins" across ALL blocks in container
    order. An MP3 with an empty TIT2 but a filled APEv2 Title gets the APE title. Only when
    every block is silent do the defaults kick in (stem / Unknown Artist / Unknown Album).
    """

    def __init__(self, probe: AudioProbe) -> None:
        self._probe = probe

    async def extract(self, path: Path) -> ExtractedTags:
        """Extract tags without blocking the event loop.

        Raises:
            TagReadError: If the container is unreadable or corrupt
        """
        return await asyncio.to_thread(self.extract_sync, path)

    def extract_sync(self, path: Path) -> ExtractedTags:
        """Blocking variant of extract() for callers already in a worker thread."""
        try:
            size = path.stat().st_size
        except OSError as e:
            raise TagReadError(path, str(e)) from e

        probed = self._probe.probe(path)
        blocks = probed.tag_blocks

        raw_title = first_present(blocks, lambda b: b.title())
        raw_artist = first_present(blocks, lambda b: b.artist())
        raw_album = first_present(blocks, lambda b: b.album())

        extracted = ExtractedTags(
            path=path,
            duration=probed.duration,
            bitrate=probed.bitrate,
            format=path.suffix.lower().lstrip("."),
            size=size,
            title=raw_title or path.stem,
            artist=raw_artist or UNKNOWN_ARTIST,
            album=raw_album or UNKNOWN_ALBUM,
            track_number=first_present(blocks, lambda b: b.track()),
            year=first_present(blocks, lambda b: b.year()),
            tag_blocks=blocks,
            raw_title=raw_title,
            raw_artist=raw_artist,
            raw_album=raw_album,
        )
        logger.debug(
            "Extracted %s: %s / %s / %s (%d blocks)",
            path.name,
            extracted.artist,
            extracted.album,
            extracted.title,
            len(blocks),
        )
        return extracted
