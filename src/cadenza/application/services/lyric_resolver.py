"""Lyric discovery for scanned tracks.

Hey future me - lyrics can live in three places and we try them in a fixed order, first hit
wins:

    1. Sibling .lrc      /music/A/B/Song.flac -> /music/A/B/Song.lrc
    2. Mirror tree       /music/succeed/A/B/Song.lrc, then any .lrc in /music/succeed/A/B/
                         whose name starts with "Song" (downloaders love "Song (Live).lrc")
    3. Embedded tags     USLT / LYRICS / ©lyr from any tag block

External files are a zoo of encodings. Chinese lyric sites still hand out GBK and Big5, so
decode_lyrics() tries UTF-8 first, then GBK strictly, then Big5 with replacement chars. It
NEVER raises - a garbled lyric is better than a failed scan.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from cadenza.domain.entities import LyricsSource
from cadenza.domain.ports import TagBlock

logger = logging.getLogger(__name__)

LYRICS_EXTENSION = ".lrc"


def decode_lyrics(raw: bytes) -> str:
    """Decode lyric file bytes with encoding recovery.

    Args:
        raw: File content

    Returns:
        Decoded text with null bytes removed
    """
    for encoding in ("utf-8-sig", "gbk"):
        try:
            text = raw.decode(encoding)
            break
        except UnicodeDecodeError:
            continue
    else:
        text = raw.decode("big5", errors="replace")
    return text.replace("\x00", "")


def read_lyrics_file(path: Path) -> str | None:
    """Read and decode a lyric file; unreadable or blank files count as a miss."""
    try:
        raw = path.read_bytes()
    except OSError as e:
        logger.debug("Cannot read lyric file %s: %s", path, e)
        return None
    text = decode_lyrics(raw)
    return text if text.strip() else None


@dataclass
class ResolvedLyrics:
    """Lyric text and where it was found."""

    text: str | None = None
    source: LyricsSource = LyricsSource.NONE

    @property
    def found(self) -> bool:
        return self.text is not None


class LyricStrategy(ABC):
    """One place lyrics may be found."""

    source: LyricsSource = LyricsSource.FILE

    @abstractmethod
    def find(self, path: Path, tag_blocks: list[TagBlock]) -> str | None:
        """Return lyric text for the audio file or None."""


class SiblingLrcStrategy(LyricStrategy):
    """Same directory, same stem, .lrc extension."""

    def find(self, path: Path, tag_blocks: list[TagBlock]) -> str | None:
        candidate = path.with_suffix(LYRICS_EXTENSION)
        if not candidate.is_file():
            return None
        return read_lyrics_file(candidate)


class MirrorDirectoryLrcStrategy(LyricStrategy):
    """Parallel lyric tree below the library root."""

    def __init__(self, music_root: Path, mirror_dir: str) -> None:
        self._music_root = music_root
        self._mirror_root = music_root / mirror_dir

    def find(self, path: Path, tag_blocks: list[TagBlock]) -> str | None:
        try:
            relative = path.relative_to(self._music_root)
        except ValueError:
            return None

        exact = (self._mirror_root / relative).with_suffix(LYRICS_EXTENSION)
        if exact.is_file():
            text = read_lyrics_file(exact)
            if text is not None:
                return text

        mirrored_dir = exact.parent
        if not mirrored_dir.is_dir():
            return None
        stem = path.stem
        try:
            candidates = sorted(mirrored_dir.iterdir())
        except OSError as e:
            logger.debug("Cannot list lyric mirror %s: %s", mirrored_dir, e)
            return None
        for candidate in candidates:
            if (
                candidate.is_file()
                and candidate.suffix.lower() == LYRICS_EXTENSION
                and candidate.name.startswith(stem)
            ):
                text = read_lyrics_file(candidate)
                if text is not None:
                    return text
        return None


class EmbeddedLyricsStrategy(LyricStrategy):
    """Lyrics field of the first tag block that has one."""

    source = LyricsSource.EMBEDDED

    def find(self, path: Path, tag_blocks: list[TagBlock]) -> str | None:
        for block in tag_blocks:
            text = block.lyrics()
            if text and text.strip():
                return text.replace("\x00", "")
        return None


class LyricResolver:
    """Run lyric strategies in order until one finds text."""

    def __init__(self, strategies: list[LyricStrategy]) -> None:
        self._strategies = strategies

    @classmethod
    def default(cls, music_root: Path, mirror_dir: str) -> "LyricResolver":
        """Sibling file, then mirror tree, then embedded tags."""
        return cls(
            [
                SiblingLrcStrategy(),
                MirrorDirectoryLrcStrategy(music_root, mirror_dir),
                EmbeddedLyricsStrategy(),
            ]
        )

    def resolve(self, path: Path, tag_blocks: list[TagBlock]) -> ResolvedLyrics:
        """Find lyrics for an audio file (blocking, call from a worker thread).

        Args:
            path: Audio file path
            tag_blocks: Tag blocks already read from the file

        Returns:
            ResolvedLyrics, with source NONE when nothing was found
        """
        for strategy in self._strategies:
            text = strategy.find(path, tag_blocks)
            if text is not None:
                return ResolvedLyrics(text=text, source=strategy.source)
        return ResolvedLyrics()
