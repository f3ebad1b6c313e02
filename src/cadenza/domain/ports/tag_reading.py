"""Ports for reading audio containers.

Hey future me - the scanner must NOT care whether a file carries ID3 frames, Vorbis comments,
MP4 atoms or an APEv2 footer. Every concrete tag format is wrapped in a TagBlock that answers
the same seven questions. A container may carry several blocks (MP3 with ID3 + APEv2), the probe
returns them in the order the container declares them and extraction takes the FIRST non-empty
answer per field.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class EmbeddedPicture:
    """Image payload stored inside a tag block."""

    data: bytes
    mime: str = "image/jpeg"
    # ID3 APIC / FLAC picture type, 3 = front cover
    picture_type: int = 3


class TagBlock(ABC):
    """Uniform read access to one tag block of an audio container."""

    # Short label for logs ("id3", "vorbis", "mp4", "ape")
    kind: str = "unknown"

    @abstractmethod
    def title(self) -> str | None:
        """Track title."""

    @abstractmethod
    def artist(self) -> str | None:
        """Track artist."""

    @abstractmethod
    def album(self) -> str | None:
        """Album title."""

    @abstractmethod
    def track(self) -> int | None:
        """Track number within the release."""

    @abstractmethod
    def year(self) -> int | None:
        """Release year."""

    @abstractmethod
    def lyrics(self) -> str | None:
        """Unsynchronized lyric text."""

    @abstractmethod
    def pictures(self) -> list[EmbeddedPicture]:
        """Embedded images in declaration order."""


@dataclass
class ProbedAudio:
    """Technical properties plus tag blocks of one audio file."""

    duration: int
    bitrate: int | None
    tag_blocks: list[TagBlock] = field(default_factory=list)


class AudioProbe(ABC):
    """Capability that opens an audio container."""

    @abstractmethod
    def probe(self, path: Path) -> ProbedAudio:
        """Read technical properties and tag blocks (blocking).

        Raises:
            TagReadError: If the container cannot be parsed
        """
