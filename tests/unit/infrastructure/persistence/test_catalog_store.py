"""Tests for CatalogStore upsert semantics against a real SQLite database."""

import asyncio
from pathlib import Path

from sqlalchemy import update

from cadenza.domain.entities import LyricsSource, SyncStatus
from cadenza.domain.value_objects import ImageRef
from cadenza.infrastructure.persistence import CatalogStore, Database, TrackUpsert
from cadenza.infrastructure.persistence.models import TrackModel


def _fields(path: str, artist_id: str, album_id: str, **overrides: object) -> TrackUpsert:
    values: dict[str, object] = {
        "path": path,
        "title": "Song",
        "artist_id": artist_id,
        "album_id": album_id,
        "duration": 200,
        "bitrate": 320,
        "format": "flac",
        "size": 1234,
    }
    values.update(overrides)
    return TrackUpsert(**values)  # type: ignore[arg-type]


async def _set_sync_status(database: Database, track_id: str, status: SyncStatus) -> None:
    async with database.session_scope() as session:
        await session.execute(
            update(TrackModel).where(TrackModel.id == track_id).values(sync_status=status.value)
        )


class TestArtistAndAlbumUpserts:
    async def test_artist_is_created_once(self, database: Database) -> None:
        first = await CatalogStore(database).get_or_create_artist("Artist")
        # A second store has a cold cache and must hit ON CONFLICT
        second = await CatalogStore(database).get_or_create_artist("Artist")

        assert first == second
        assert len(await CatalogStore(database).list_artists()) == 1

    async def test_concurrent_creation_converges(self, database: Database) -> None:
        stores = [CatalogStore(database) for _ in range(5)]

        ids = await asyncio.gather(*(s.get_or_create_artist("Same") for s in stores))

        assert len(set(ids)) == 1

    async def test_album_year_fill_once_null_first(self, database: Database) -> None:
        artist_id = await CatalogStore(database).get_or_create_artist("A")
        album_id = await CatalogStore(database).get_or_create_album("X", artist_id, None)
        await CatalogStore(database).get_or_create_album("X", artist_id, 2020)

        album = await CatalogStore(database).get_album(album_id)
        assert album is not None
        assert album.release_year == 2020

    async def test_album_year_fill_once_year_first(self, database: Database) -> None:
        artist_id = await CatalogStore(database).get_or_create_artist("A")
        album_id = await CatalogStore(database).get_or_create_album("X", artist_id, 2020)
        await CatalogStore(database).get_or_create_album("X", artist_id, None)
        await CatalogStore(database).get_or_create_album("X", artist_id, 1999)

        album = await CatalogStore(database).get_album(album_id)
        assert album is not None
        assert album.release_year == 2020

    async def test_enrichment_does_not_overwrite_year(self, catalog: CatalogStore) -> None:
        artist_id = await catalog.get_or_create_artist("A")
        album_id = await catalog.get_or_create_album("X", artist_id, 2020)

        await catalog.update_album_enrichment(album_id, "rel-1", "rg-1", 1970)

        album = await catalog.get_album(album_id)
        assert album is not None
        assert album.release_year == 2020
        assert album.musicbrainz_id == "rel-1"
        assert album.musicbrainz_release_group_id == "rg-1"


class TestTrackUpsert:
    async def test_first_insert_status_follows_lyrics(self, catalog: CatalogStore) -> None:
        artist_id = await catalog.get_or_create_artist("A")
        album_id = await catalog.get_or_create_album("X", artist_id, None)

        with_lyrics = await catalog.upsert_track(
            _fields("/m/1.flac", artist_id, album_id, lyrics="la", lyrics_source=LyricsSource.FILE)
        )
        without = await catalog.upsert_track(_fields("/m/2.flac", artist_id, album_id))

        track = await catalog.get_track(with_lyrics)
        assert track is not None
        assert track.sync_status is SyncStatus.PENDING
        assert track.lyrics_source is LyricsSource.FILE
        other = await catalog.get_track(without)
        assert other is not None
        assert other.sync_status is SyncStatus.NONE

    async def test_changed_lyrics_reset_to_pending(
        self, catalog: CatalogStore, database: Database
    ) -> None:
        artist_id = await catalog.get_or_create_artist("A")
        album_id = await catalog.get_or_create_album("X", artist_id, None)
        track_id = await catalog.upsert_track(_fields("/m/1.flac", artist_id, album_id, lyrics="v1"))
        await _set_sync_status(database, track_id, SyncStatus.COMPLETED)

        await catalog.upsert_track(_fields("/m/1.flac", artist_id, album_id, lyrics="v2"))

        track = await catalog.get_track(track_id)
        assert track is not None
        assert track.lyrics == "v2"
        assert track.sync_status is SyncStatus.PENDING

    async def test_identical_lyrics_keep_status(
        self, catalog: CatalogStore, database: Database
    ) -> None:
        artist_id = await catalog.get_or_create_artist("A")
        album_id = await catalog.get_or_create_album("X", artist_id, None)
        track_id = await catalog.upsert_track(_fields("/m/1.flac", artist_id, album_id, lyrics="v1"))
        await _set_sync_status(database, track_id, SyncStatus.COMPLETED)

        again = await catalog.upsert_track(
            _fields("/m/1.flac", artist_id, album_id, lyrics="v1", title="Renamed")
        )

        track = await catalog.get_track(track_id)
        assert again == track_id
        assert track is not None
        assert track.title == "Renamed"
        assert track.sync_status is SyncStatus.COMPLETED

    async def test_null_to_text_counts_as_change(
        self, catalog: CatalogStore, database: Database
    ) -> None:
        artist_id = await catalog.get_or_create_artist("A")
        album_id = await catalog.get_or_create_album("X", artist_id, None)
        track_id = await catalog.upsert_track(_fields("/m/1.flac", artist_id, album_id))
        await _set_sync_status(database, track_id, SyncStatus.FAILED)

        await catalog.upsert_track(_fields("/m/1.flac", artist_id, album_id, lyrics="new"))

        track = await catalog.get_track(track_id)
        assert track is not None
        assert track.sync_status is SyncStatus.PENDING

    async def test_removed_lyrics_reset_to_pending(
        self, catalog: CatalogStore, database: Database
    ) -> None:
        artist_id = await catalog.get_or_create_artist("A")
        album_id = await catalog.get_or_create_album("X", artist_id, None)
        track_id = await catalog.upsert_track(_fields("/m/1.flac", artist_id, album_id, lyrics="v1"))
        await _set_sync_status(database, track_id, SyncStatus.COMPLETED)

        await catalog.upsert_track(_fields("/m/1.flac", artist_id, album_id, lyrics=None))

        track = await catalog.get_track(track_id)
        assert track is not None
        assert track.sync_status is SyncStatus.PENDING

    async def test_upsert_overwrites_technical_fields(self, catalog: CatalogStore) -> None:
        artist_id = await catalog.get_or_create_artist("A")
        album_id = await catalog.get_or_create_album("X", artist_id, None)
        track_id = await catalog.upsert_track(_fields("/m/1.mp3", artist_id, album_id))

        await catalog.upsert_track(
            _fields("/m/1.mp3", artist_id, album_id, duration=201, bitrate=128, size=99, track_number=4)
        )

        track = await catalog.get_track(track_id)
        assert track is not None
        assert (track.duration, track.bitrate, track.size, track.track_number) == (201, 128, 99, 4)
        assert await catalog.count_tracks() == 1


class TestOrphanSweep:
    async def test_deletes_rows_without_files(self, catalog: CatalogStore, tmp_path: Path) -> None:
        artist_id = await catalog.get_or_create_artist("A")
        album_id = await catalog.get_or_create_album("X", artist_id, None)
        kept = tmp_path / "kept.flac"
        kept.write_bytes(b"x")
        for i in range(7):
            await catalog.upsert_track(_fields(str(tmp_path / f"gone{i}.flac"), artist_id, album_id))
        await catalog.upsert_track(_fields(str(kept), artist_id, album_id))

        removed = await catalog.orphan_sweep(batch_size=3)

        assert removed == 7
        assert await catalog.count_tracks() == 1
        assert await catalog.get_track_by_path(str(kept)) is not None


class TestTargetedWrites:
    async def test_update_track_path(self, catalog: CatalogStore) -> None:
        artist_id = await catalog.get_or_create_artist("A")
        track_id = await catalog.upsert_track(_fields("/old/a.flac", artist_id, None))  # type: ignore[arg-type]

        assert await catalog.update_track_path("/old/a.flac", "/new/a.flac") == 1
        assert await catalog.update_track_path("/nowhere.flac", "/x.flac") == 0
        track = await catalog.get_track(track_id)
        assert track is not None
        assert track.path == "/new/a.flac"

    async def test_find_track_by_keyword_escapes_wildcards(self, catalog: CatalogStore) -> None:
        artist_id = await catalog.get_or_create_artist("A")
        await catalog.upsert_track(_fields("/m/b.flac", artist_id, None, title="Plain"))  # type: ignore[arg-type]
        await catalog.upsert_track(_fields("/m/a.flac", artist_id, None, title="100% Pure"))  # type: ignore[arg-type]

        hit = await catalog.find_track_by_keyword("100%")
        assert hit is not None
        assert hit.title == "100% Pure"
        assert await catalog.find_track_by_keyword("plain") is not None
        assert await catalog.find_track_by_keyword("%") is not None
        assert await catalog.find_track_by_keyword("zzz") is None

    async def test_list_artists_missing_image_only(self, catalog: CatalogStore) -> None:
        with_image = await catalog.get_or_create_artist("Has")
        await catalog.get_or_create_artist("Lacks")
        await catalog.set_artist_image(with_image, ImageRef(url="https://img/x.jpg"))

        missing = await catalog.list_artists(missing_image_only=True)

        assert [a.name for a in missing] == ["Lacks"]
        everyone = await catalog.list_artists()
        assert [a.name for a in everyone] == ["Has", "Lacks"]
        assert everyone[0].image.url == "https://img/x.jpg"

    async def test_album_context_and_enrichment_listing(self, catalog: CatalogStore) -> None:
        artist_id = await catalog.get_or_create_artist("Artist")
        album_id = await catalog.get_or_create_album("Album", artist_id, None)

        context = await catalog.get_album_context(album_id)
        assert context is not None
        assert context.artist_name == "Artist"
        assert [a.id for a in await catalog.list_albums_for_enrichment()] == [album_id]

        await catalog.update_album_enrichment(album_id, "rel", None, None)
        await catalog.set_album_cover(album_id, ImageRef(path="Artist/Album/cover.jpg"))
        assert await catalog.list_albums_for_enrichment() == []
