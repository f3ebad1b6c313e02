"""Catalog persistence: natural-key upserts for artists, albums and tracks."""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from cadenza.domain.entities import Album, Artist, LyricsSource, SyncStatus, Track
from cadenza.domain.exceptions import DatabaseError
from cadenza.domain.value_objects import ImageRef
from cadenza.infrastructure.persistence.database import Database
from cadenza.infrastructure.persistence.models import (
    AlbumModel,
    ArtistModel,
    TrackModel,
    utc_now,
)
from cadenza.infrastructure.persistence.retry import with_db_retry

logger = logging.getLogger(__name__)

ORPHAN_SWEEP_BATCH_SIZE = 500


@dataclass
class TrackUpsert:
    """Field set written for one scanned file."""

    path: str
    title: str
    artist_id: str
    album_id: str | None
    duration: int
    bitrate: int | None
    format: str
    size: int
    track_number: int | None = None
    lyrics: str | None = None
    lyrics_source: LyricsSource = LyricsSource.NONE


@dataclass
class AlbumContext:
    """Album plus the owning artist's name (what path building needs)."""

    album: Album
    artist_name: str


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _to_artist(model: ArtistModel) -> Artist:
    return Artist(
        id=model.id,
        name=model.name,
        musicbrainz_id=model.musicbrainz_id,
        image=ImageRef.from_column(model.image_url),
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _to_album(model: AlbumModel) -> Album:
    return Album(
        id=model.id,
        title=model.title,
        artist_id=model.artist_id,
        release_year=model.release_year,
        cover=ImageRef.from_column(model.cover_path),
        musicbrainz_id=model.musicbrainz_id,
        musicbrainz_release_group_id=model.musicbrainz_release_group_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _to_track(model: TrackModel) -> Track:
    return Track(
        id=model.id,
        title=model.title,
        artist_id=model.artist_id,
        album_id=model.album_id,
        path=model.path,
        duration=model.duration,
        track_number=model.track_number,
        disc_number=model.disc_number,
        bitrate=model.bitrate,
        format=model.format,
        size=model.size,
        bpm=model.bpm,
        musicbrainz_track_id=model.musicbrainz_track_id,
        lyrics=model.lyrics,
        lyrics_source=LyricsSource(model.lyrics_source),
        sync_status=SyncStatus(model.sync_status),
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class CatalogStore:
    """Idempotent persistence of the catalog.

    Hey future me - every write here is an UPSERT keyed on a natural key (artist name,
    album title+artist, track path). That is what makes re-scans idempotent AND what lets
    8 concurrent scan workers race on the same artist without creating duplicates: the
    loser of the race hits ON CONFLICT and gets the winner's id back.

    The artist/album caches belong to ONE instance. The scan coordinator builds a fresh
    CatalogStore per run, so a cache never outlives its scan (cold per invocation). Ids only
    enter the cache AFTER their transaction committed - a rolled back insert can't poison it.
    """

    def __init__(self, database: Database) -> None:
        self._db = database
        self._artist_cache: dict[str, str] = {}
        self._album_cache: dict[tuple[str, str], str] = {}

    # =========================================================================
    # DIALECT HELPERS
    # =========================================================================

    def _insert(self, table: Any) -> Any:
        """Dialect-specific INSERT that supports ON CONFLICT."""
        if self._db.dialect_name == "postgresql":
            return postgresql.insert(table)
        if self._db.dialect_name == "sqlite":
            return sqlite.insert(table)
        raise DatabaseError(
            f"Upserts are not supported on dialect {self._db.dialect_name!r}"
        )

    # =========================================================================
    # SCAN UPSERTS
    # =========================================================================

    async def get_or_create_artist(self, name: str) -> str:
        """Return the id of the artist with this name, creating it if needed."""
        cached = self._artist_cache.get(name)
        if cached is not None:
            return cached
        try:
            artist_id = await self._upsert_artist(name)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to upsert artist {name!r}: {e}") from e
        self._artist_cache[name] = artist_id
        return artist_id

    @with_db_retry(max_attempts=3)
    async def _upsert_artist(self, name: str) -> str:
        table = ArtistModel.__table__
        now = utc_now()
        stmt = self._insert(table).values(
            id=str(uuid.uuid4()), name=name, created_at=now, updated_at=now
        )
        # DO UPDATE (not DO NOTHING) so RETURNING yields the existing row's id
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.name],
            set_={"name": stmt.excluded.name},
        ).returning(table.c.id)
        async with self._db.session_scope() as session:
            result = await session.execute(stmt)
            return str(result.scalar_one())

    async def get_or_create_album(
        self, title: str, artist_id: str, year: int | None
    ) -> str:
        """Return the id of (title, artist), creating it if needed.

        The year is written only when the stored year is still NULL.
        """
        key = (title, artist_id)
        cached = self._album_cache.get(key)
        if cached is not None:
            return cached
        try:
            album_id = await self._upsert_album(title, artist_id, year)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to upsert album {title!r}: {e}") from e
        self._album_cache[key] = album_id
        return album_id

    @with_db_retry(max_attempts=3)
    async def _upsert_album(self, title: str, artist_id: str, year: int | None) -> str:
        table = AlbumModel.__table__
        now = utc_now()
        stmt = self._insert(table).values(
            id=str(uuid.uuid4()),
            title=title,
            artist_id=artist_id,
            release_year=year,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.title, table.c.artist_id],
            set_={
                "release_year": func.coalesce(
                    table.c.release_year, stmt.excluded.release_year
                )
            },
        ).returning(table.c.id)
        async with self._db.session_scope() as session:
            result = await session.execute(stmt)
            return str(result.scalar_one())

    # Listen up, the sync_status rule is the subtle part of this upsert:
    #   stored lyrics IS DISTINCT FROM incoming -> 'pending', removal included
    #   otherwise                                -> keep whatever the lyric worker set
    # IS DISTINCT FROM is NULL-safe, plain <> would silently skip NULL -> text changes.
    async def upsert_track(self, fields: TrackUpsert) -> str:
        """Insert or update the track stored at fields.path.

        One statement in one transaction: a failure leaves any prior row untouched.

        Returns:
            Track id (existing id on conflict)

        Raises:
            DatabaseError: If the write fails after lock retries
        """
        try:
            return await self._upsert_track(fields)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to upsert track {fields.path}: {e}") from e

    @with_db_retry(max_attempts=3)
    async def _upsert_track(self, fields: TrackUpsert) -> str:
        table = TrackModel.__table__
        now = utc_now()
        initial_status = SyncStatus.PENDING if fields.lyrics else SyncStatus.NONE
        stmt = self._insert(table).values(
            id=str(uuid.uuid4()),
            path=fields.path,
            title=fields.title,
            artist_id=fields.artist_id,
            album_id=fields.album_id,
            duration=fields.duration,
            bitrate=fields.bitrate,
            format=fields.format,
            size=fields.size,
            track_number=fields.track_number,
            disc_number=1,
            lyrics=fields.lyrics,
            lyrics_source=fields.lyrics_source.value,
            sync_status=initial_status.value,
            created_at=now,
            updated_at=now,
        )
        excluded = stmt.excluded
        lyrics_changed = table.c.lyrics.is_distinct_from(excluded.lyrics)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.path],
            set_={
                "title": excluded.title,
                "artist_id": excluded.artist_id,
                "album_id": excluded.album_id,
                "duration": excluded.duration,
                "bitrate": excluded.bitrate,
                "format": excluded.format,
                "size": excluded.size,
                "track_number": excluded.track_number,
                "lyrics": excluded.lyrics,
                "lyrics_source": excluded.lyrics_source,
                "sync_status": case(
                    (lyrics_changed, SyncStatus.PENDING.value),
                    else_=table.c.sync_status,
                ),
                "updated_at": now,
            },
        ).returning(table.c.id)
        async with self._db.session_scope() as session:
            result = await session.execute(stmt)
            return str(result.scalar_one())

    # Hey future me, the sweep walks the table in id order with keyset pagination so a
    # 200k track library never lands in memory at once. The exists() checks are blocking
    # stat() calls - one to_thread per batch keeps the event loop free.
    async def orphan_sweep(self, batch_size: int = ORPHAN_SWEEP_BATCH_SIZE) -> int:
        """Delete tracks whose file no longer exists on disk.

        Returns:
            Number of deleted rows
        """
        removed = 0
        last_id = ""
        while True:
            async with self._db.session_scope() as session:
                rows = (
                    await session.execute(
                        select(TrackModel.id, TrackModel.path)
                        .where(TrackModel.id > last_id)
                        .order_by(TrackModel.id)
                        .limit(batch_size)
                    )
                ).all()
            if not rows:
                break
            last_id = rows[-1][0]

            paths = [row[1] for row in rows]
            exists = await asyncio.to_thread(
                lambda: [Path(p).exists() for p in paths]
            )
            orphan_ids = [row[0] for row, present in zip(rows, exists) if not present]
            if orphan_ids:
                await self._delete_tracks(orphan_ids)
                removed += len(orphan_ids)

        if removed:
            logger.info("Orphan sweep removed %d tracks", removed)
        return removed

    @with_db_retry(max_attempts=3)
    async def _delete_tracks(self, track_ids: list[str]) -> None:
        async with self._db.session_scope() as session:
            await session.execute(delete(TrackModel).where(TrackModel.id.in_(track_ids)))

    # =========================================================================
    # READS
    # =========================================================================

    async def count_tracks(self) -> int:
        """Authoritative number of catalog tracks."""
        async with self._db.session_scope() as session:
            result = await session.execute(select(func.count()).select_from(TrackModel))
            return int(result.scalar_one())

    async def get_track(self, track_id: str) -> Track | None:
        """Get a track by id."""
        async with self._db.session_scope() as session:
            model = await session.get(TrackModel, track_id)
            return _to_track(model) if model else None

    async def get_track_by_path(self, path: str) -> Track | None:
        """Get a track by its file path."""
        async with self._db.session_scope() as session:
            result = await session.execute(
                select(TrackModel).where(TrackModel.path == path)
            )
            model = result.scalar_one_or_none()
            return _to_track(model) if model else None

    async def get_artist(self, artist_id: str) -> Artist | None:
        """Get an artist by id."""
        async with self._db.session_scope() as session:
            model = await session.get(ArtistModel, artist_id)
            return _to_artist(model) if model else None

    async def get_album(self, album_id: str) -> Album | None:
        """Get an album by id."""
        async with self._db.session_scope() as session:
            model = await session.get(AlbumModel, album_id)
            return _to_album(model) if model else None

    async def get_album_context(self, album_id: str) -> AlbumContext | None:
        """Get an album together with its artist's name."""
        async with self._db.session_scope() as session:
            result = await session.execute(
                select(AlbumModel, ArtistModel.name)
                .join(ArtistModel, AlbumModel.artist_id == ArtistModel.id)
                .where(AlbumModel.id == album_id)
            )
            row = result.first()
            if row is None:
                return None
            return AlbumContext(album=_to_album(row[0]), artist_name=row[1])

    async def list_artists(self, missing_image_only: bool = False) -> list[Artist]:
        """List artists, optionally only those without an image reference."""
        stmt = select(ArtistModel).order_by(ArtistModel.name)
        if missing_image_only:
            stmt = stmt.where(
                or_(ArtistModel.image_url.is_(None), ArtistModel.image_url == "")
            )
        async with self._db.session_scope() as session:
            result = await session.execute(stmt)
            return [_to_artist(model) for model in result.scalars().all()]

    async def list_albums_for_enrichment(self) -> list[Album]:
        """Albums still missing a provider id or a cover."""
        stmt = (
            select(AlbumModel)
            .where(
                or_(
                    AlbumModel.musicbrainz_id.is_(None),
                    AlbumModel.cover_path.is_(None),
                )
            )
            .order_by(AlbumModel.title)
        )
        async with self._db.session_scope() as session:
            result = await session.execute(stmt)
            return [_to_album(model) for model in result.scalars().all()]

    # Yo, this is the loose-lyric matcher: the first track whose title OR path contains the
    # keyword, case-insensitively. The keyword comes from a filename, so LIKE wildcards in it
    # are escaped - "100%" must not match everything.
    async def find_track_by_keyword(self, keyword: str) -> Track | None:
        """Find the first track whose title or path contains a keyword."""
        pattern = f"%{_escape_like(keyword)}%"
        stmt = (
            select(TrackModel)
            .where(
                or_(
                    TrackModel.title.ilike(pattern, escape="\\"),
                    TrackModel.path.ilike(pattern, escape="\\"),
                )
            )
            .order_by(TrackModel.path)
            .limit(1)
        )
        async with self._db.session_scope() as session:
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            return _to_track(model) if model else None

    # =========================================================================
    # TARGETED WRITES
    # =========================================================================

    @with_db_retry(max_attempts=3)
    async def update_track_path(self, old_path: str, new_path: str) -> int:
        """Repoint a track after its file moved.

        Returns:
            Number of updated rows (0 when the file was never scanned)
        """
        async with self._db.session_scope() as session:
            result = await session.execute(
                update(TrackModel)
                .where(TrackModel.path == old_path)
                .values(path=new_path, updated_at=utc_now())
            )
            return int(result.rowcount or 0)

    @with_db_retry(max_attempts=3)
    async def set_album_cover(self, album_id: str, cover: ImageRef) -> None:
        """Record an album's cover reference."""
        async with self._db.session_scope() as session:
            await session.execute(
                update(AlbumModel)
                .where(AlbumModel.id == album_id)
                .values(cover_path=cover.to_column(), updated_at=utc_now())
            )

    @with_db_retry(max_attempts=3)
    async def set_artist_image(self, artist_id: str, image: ImageRef) -> None:
        """Record an artist's image reference."""
        async with self._db.session_scope() as session:
            await session.execute(
                update(ArtistModel)
                .where(ArtistModel.id == artist_id)
                .values(image_url=image.to_column(), updated_at=utc_now())
            )

    @with_db_retry(max_attempts=3)
    async def update_artist_enrichment(self, artist_id: str, musicbrainz_id: str) -> None:
        """Record the provider id found for an artist."""
        async with self._db.session_scope() as session:
            await session.execute(
                update(ArtistModel)
                .where(ArtistModel.id == artist_id)
                .values(musicbrainz_id=musicbrainz_id, updated_at=utc_now())
            )

    @with_db_retry(max_attempts=3)
    async def update_album_enrichment(
        self,
        album_id: str,
        musicbrainz_id: str,
        release_group_id: str | None,
        year: int | None,
    ) -> None:
        """Record provider ids and fill the release year if it is still unknown."""
        async with self._db.session_scope() as session:
            await session.execute(
                update(AlbumModel)
                .where(AlbumModel.id == album_id)
                .values(
                    musicbrainz_id=musicbrainz_id,
                    musicbrainz_release_group_id=release_group_id,
                    release_year=func.coalesce(AlbumModel.release_year, year),
                    updated_at=utc_now(),
                )
            )
