"""Domain entities."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from cadenza.domain.value_objects import ImageRef

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"


# Hey future me, LyricsSource tells the UI (and the lyric sync worker) WHERE the text came from.
# FILE means an external .lrc we found next to the track or in the mirror tree, EMBEDDED means
# it was pulled out of a tag block. NONE is stored when nothing was found - never leave it NULL.
class LyricsSource(str, Enum):
    """Origin of a track's lyric text."""

    NONE = "none"
    FILE = "file"
    EMBEDDED = "embedded"


# Yo, SyncStatus is the lyric-sync lifecycle. The scanner only ever writes NONE or PENDING;
# PROCESSING/COMPLETED/FAILED belong to the (external) lyric sync worker. The upsert rule is:
# lyrics changed -> back to PENDING, lyrics identical -> whatever the worker left there.
class SyncStatus(str, Enum):
    """Lyric synchronization state of a track."""

    NONE = "none"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Artist:
    """Artist entity representing a music artist."""

    id: str
    name: str
    musicbrainz_id: str | None = None
    # image.path = relative path under the library root or data dir, image.url = remote fallback
    image: ImageRef = field(default_factory=ImageRef)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        """Validate artist data."""
        if not self.name or not self.name.strip():
            raise ValueError("Artist name cannot be empty")


@dataclass
class Album:
    """Album entity representing a music album."""

    id: str
    title: str
    artist_id: str
    release_year: int | None = None
    cover: ImageRef = field(default_factory=ImageRef)
    musicbrainz_id: str | None = None
    musicbrainz_release_group_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def has_cover(self) -> bool:
        """Check if a cover reference was recorded."""
        return self.cover.has_image


@dataclass
class Track:
    """Track entity representing one audio file in the catalog."""

    id: str
    title: str
    artist_id: str
    album_id: str | None
    path: str
    duration: int = 0
    track_number: int | None = None
    disc_number: int = 1
    bitrate: int | None = None
    format: str = ""
    size: int = 0
    bpm: int | None = None
    musicbrainz_track_id: str | None = None
    lyrics: str | None = None
    lyrics_source: LyricsSource = LyricsSource.NONE
    sync_status: SyncStatus = SyncStatus.NONE
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


# Listen up, these two status objects are what the (excluded) HTTP layer polls. They are
# read models of singleton rows - there is exactly ONE scan status and ONE artist sync status.
@dataclass
class ScanStatus:
    """Pollable state of the scan / reorganize pipeline."""

    is_running: bool = False
    current: int = 0
    total: int = 0
    last_run_at: datetime | None = None

    def get_progress_percent(self) -> float:
        """Calculate progress percentage."""
        if self.total == 0:
            return 0.0
        return (self.current / self.total) * 100.0


@dataclass
class ArtistSyncStatus:
    """Pollable state of the metadata enrichment batch."""

    is_running: bool = False
    current: int = 0
    total: int = 0
    last_run_at: datetime | None = None
    last_error: str | None = None


__all__ = [
    "UNKNOWN_ALBUM",
    "UNKNOWN_ARTIST",
    "Album",
    "Artist",
    "ArtistSyncStatus",
    "LyricsSource",
    "ScanStatus",
    "SyncStatus",
    "Track",
]
