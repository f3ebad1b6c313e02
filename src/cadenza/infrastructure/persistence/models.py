"""SQLAlchemy ORM models for the Cadenza catalog."""

import uuid
from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy import (
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# Hey future me, utc_now() ensures ALL timestamps are UTC! Never use datetime.now() without
# timezone - that's "naive" datetime and bites you the moment the server moves timezones.
def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Listen up, the artist NAME is the natural key. The scanner upserts by name (ON CONFLICT) so
# re-scans and concurrent workers converge on ONE row per artist. image_url holds either a
# relative path (local file) or a remote URL (download failed, see ImageRef.from_column).
class ArtistModel(Base):
    """SQLAlchemy model for Artist entity."""

    __tablename__ = "artists"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    musicbrainz_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True, index=True
    )
    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    albums: Mapped[list["AlbumModel"]] = relationship(
        "AlbumModel", back_populates="artist", cascade="all, delete-orphan"
    )
    tracks: Mapped[list["TrackModel"]] = relationship(
        "TrackModel", back_populates="artist", cascade="all, delete-orphan"
    )


# Yo, (title, artist_id) is the album natural key - "Greatest Hits" by two different artists are
# two albums. release_year is FILL-ONCE: the upsert uses COALESCE(existing, incoming) so the
# first known year sticks forever, both for scans and for MusicBrainz enrichment.
class AlbumModel(Base):
    """SQLAlchemy model for Album entity."""

    __tablename__ = "albums"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    artist_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("artists.id", ondelete="CASCADE"),
        nullable=False,
    )
    release_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cover_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    musicbrainz_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True, index=True
    )
    musicbrainz_release_group_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    artist: Mapped["ArtistModel"] = relationship("ArtistModel", back_populates="albums")
    tracks: Mapped[list["TrackModel"]] = relationship(
        "TrackModel", back_populates="album"
    )

    __table_args__ = (
        UniqueConstraint("title", "artist_id", name="uq_albums_title_artist"),
        Index("ix_albums_artist_id", "artist_id"),
    )


# Hey future me, PATH is the track natural key - one row per file on disk. The organizer
# rewrites it after moves (matching on the old path string) and the orphan sweep deletes rows
# whose path vanished. lyrics_source / sync_status are plain strings (see domain enums).
class TrackModel(Base):
    """SQLAlchemy model for Track entity."""

    __tablename__ = "tracks"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    title: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    album_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("albums.id", ondelete="SET NULL"), nullable=True
    )
    artist_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("artists.id", ondelete="CASCADE"), nullable=False
    )
    duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    track_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    disc_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    path: Mapped[str] = mapped_column(String(2048), nullable=False, unique=True)
    bitrate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    format: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    size: Mapped[int] = mapped_column(sa.BigInteger, nullable=False, default=0)
    bpm: Mapped[int | None] = mapped_column(Integer, nullable=True)
    musicbrainz_track_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    lyrics: Mapped[str | None] = mapped_column(Text, nullable=True)
    lyrics_source: Mapped[str] = mapped_column(
        String(16), nullable=False, default="none", server_default="none"
    )
    sync_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="none", server_default="none"
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    artist: Mapped["ArtistModel"] = relationship("ArtistModel", back_populates="tracks")
    album: Mapped["AlbumModel | None"] = relationship(
        "AlbumModel", back_populates="tracks"
    )

    __table_args__ = (
        Index("ix_tracks_album_id", "album_id"),
        Index("ix_tracks_artist_id", "artist_id"),
        Index("ix_tracks_sync_status", "sync_status"),
    )


# Listen up, the two status tables are SINGLETONS - always exactly one row with id=1.
# StatusStore creates the row lazily and every update targets id=1. The HTTP layer polls these.
class ScanStatusModel(Base):
    """Singleton row tracking the scan / reorganize pipeline."""

    __tablename__ = "scan_status"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    is_scanning: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=False, server_default=sa.false()
    )
    current_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_scan_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )


class ArtistSyncStatusModel(Base):
    """Singleton row tracking the metadata enrichment batch."""

    __tablename__ = "artist_sync_status"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    is_syncing: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=False, server_default=sa.false()
    )
    current_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_sync_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
