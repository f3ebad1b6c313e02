"""Tests for MetadataSyncService.

Provider clients are AsyncMocks; the catalog and status rows are real (SQLite).
"""

import asyncio
from pathlib import Path
from typing import Any

import httpx
import pytest

from cadenza.application.services.metadata_sync_service import (
    ArtistImageContext,
    ArtistImageStrategy,
    MetadataSyncService,
    find_relation_url,
    parse_release_year,
)
from cadenza.config import Settings
from cadenza.domain.exceptions import (
    EntityNotFoundException,
    OperationInProgressError,
    ProviderError,
)
from cadenza.domain.value_objects import ImageRef
from cadenza.infrastructure.persistence import CatalogStore, StatusStore
from cadenza.infrastructure.retry_policy import RetryPolicy


class StaticStrategy(ArtistImageStrategy):
    """Image strategy returning a fixed URL or raising a fixed error."""

    def __init__(
        self, provider: str, url: str | None = None, error: Exception | None = None
    ) -> None:
        self.provider = provider
        self.url = url
        self.error = error
        self.calls = 0

    async def find(self, context: ArtistImageContext) -> str | None:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.url


async def _no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def musicbrainz(mocker: Any) -> Any:
    client = mocker.AsyncMock()
    client.search_artist.return_value = [{"id": "mb-artist"}]
    client.lookup_artist_url_relations.return_value = []
    client.search_release.return_value = []
    return client


@pytest.fixture
def cover_art(mocker: Any) -> Any:
    client = mocker.AsyncMock()
    client.get_front_image_url.return_value = None
    return client


@pytest.fixture
def downloader(mocker: Any) -> Any:
    fake = mocker.AsyncMock()

    async def download(url: str, target_dir: Path, stem: str) -> Path:
        return target_dir / f"{stem}.jpg"

    fake.download.side_effect = download
    return fake


@pytest.fixture
def make_service(
    settings: Settings,
    catalog: CatalogStore,
    status_store: StatusStore,
    musicbrainz: Any,
    cover_art: Any,
    downloader: Any,
) -> Any:
    def build(strategies: list[ArtistImageStrategy] | None = None) -> MetadataSyncService:
        return MetadataSyncService(
            settings,
            catalog,
            status_store,
            musicbrainz,
            cover_art,
            image_strategies=strategies or [StaticStrategy("none")],
            downloader=downloader,
            retry_policy=RetryPolicy(max_attempts=2, base_delay=0.0, sleep=_no_sleep),
            sleep=_no_sleep,
        )

    return build


class TestHelpers:
    @pytest.mark.parametrize(
        ("date", "year"), [("1999", 1999), ("1999-03-01", 1999), ("", None), (None, None)]
    )
    def test_parse_release_year(self, date: str | None, year: int | None) -> None:
        assert parse_release_year(date) == year

    def test_find_relation_url(self) -> None:
        relations = [
            {"type": "official homepage", "url": {"resource": "https://band.test"}},
            {"type": "wikidata", "url": {"resource": "https://www.wikidata.org/wiki/Q1"}},
        ]
        assert find_relation_url(relations, "wikidata") == "https://www.wikidata.org/wiki/Q1"
        assert find_relation_url(relations, "image") is None


class TestSyncArtist:
    async def test_waterfall_falls_through_failures(
        self, make_service: Any, catalog: CatalogStore
    ) -> None:
        artist_id = await catalog.get_or_create_artist("Artist")
        broken = StaticStrategy("musicbrainz", error=httpx.ConnectError("down"))
        empty = StaticStrategy("wikidata")
        scraper = StaticStrategy("lastfm", url="https://img.test/artist.jpg")

        result = await make_service([broken, empty, scraper]).sync_artist(artist_id)

        assert broken.calls == 2
        assert empty.calls == 1
        assert result.musicbrainz_id == "mb-artist"
        assert result.image == ImageRef(path=f"avatars/artist_{artist_id}.jpg")
        artist = await catalog.get_artist(artist_id)
        assert artist is not None
        assert artist.musicbrainz_id == "mb-artist"
        assert artist.image.path == f"avatars/artist_{artist_id}.jpg"

    async def test_first_source_wins(self, make_service: Any, catalog: CatalogStore) -> None:
        artist_id = await catalog.get_or_create_artist("Artist")
        first = StaticStrategy("musicbrainz", url="https://img.test/first.jpg")
        second = StaticStrategy("wikidata", url="https://img.test/second.jpg")

        await make_service([first, second]).sync_artist(artist_id)

        assert second.calls == 0

    async def test_failed_download_keeps_remote_url(
        self, make_service: Any, catalog: CatalogStore, downloader: Any
    ) -> None:
        artist_id = await catalog.get_or_create_artist("Artist")
        request = httpx.Request("GET", "https://img.test/a.jpg")
        downloader.download.side_effect = httpx.HTTPStatusError(
            "forbidden", request=request, response=httpx.Response(403, request=request)
        )

        await make_service([StaticStrategy("lastfm", url="https://img.test/a.jpg")]).sync_artist(
            artist_id
        )

        artist = await catalog.get_artist(artist_id)
        assert artist is not None
        assert artist.image == ImageRef(url="https://img.test/a.jpg")

    async def test_local_image_is_not_replaced(
        self, make_service: Any, catalog: CatalogStore
    ) -> None:
        artist_id = await catalog.get_or_create_artist("Artist")
        await catalog.set_artist_image(artist_id, ImageRef(path="Artist/folder.jpg"))
        strategy = StaticStrategy("lastfm", url="https://img.test/a.jpg")

        result = await make_service([strategy]).sync_artist(artist_id)

        assert strategy.calls == 0
        assert result.image is None
        assert result.musicbrainz_id == "mb-artist"

    async def test_no_match_still_tries_scraper(
        self, make_service: Any, catalog: CatalogStore, musicbrainz: Any
    ) -> None:
        artist_id = await catalog.get_or_create_artist("Obscure")
        musicbrainz.search_artist.return_value = []
        strategy = StaticStrategy("lastfm")

        result = await make_service([strategy]).sync_artist(artist_id)

        assert result.musicbrainz_id is None
        assert strategy.calls == 1
        musicbrainz.lookup_artist_url_relations.assert_not_called()

    async def test_unknown_artist(self, make_service: Any) -> None:
        with pytest.raises(EntityNotFoundException):
            await make_service().sync_artist("missing")


class TestSyncAlbum:
    async def test_release_year_and_cover(
        self,
        make_service: Any,
        catalog: CatalogStore,
        musicbrainz: Any,
        cover_art: Any,
    ) -> None:
        artist_id = await catalog.get_or_create_artist("The Beatles")
        album_id = await catalog.get_or_create_album("Abbey Road", artist_id, None)
        musicbrainz.search_release.return_value = [
            {"id": "rel-1", "date": "1969-09-26", "release-group": {"id": "rg-1"}}
        ]
        cover_art.get_front_image_url.return_value = "https://caa.test/front.jpg"

        result = await make_service().sync_album(album_id)

        musicbrainz.search_release.assert_awaited_once_with(
            "Abbey Road", "The Beatles", limit=1
        )
        assert result.release_year == 1969
        assert result.cover == ImageRef(path=f"covers/{album_id}.jpg")
        album = await catalog.get_album(album_id)
        assert album is not None
        assert (album.musicbrainz_id, album.musicbrainz_release_group_id) == ("rel-1", "rg-1")
        assert album.release_year == 1969

    async def test_known_year_is_kept(
        self, make_service: Any, catalog: CatalogStore, musicbrainz: Any
    ) -> None:
        artist_id = await catalog.get_or_create_artist("A")
        album_id = await catalog.get_or_create_album("B", artist_id, 2009)
        musicbrainz.search_release.return_value = [{"id": "rel-2", "date": "2019"}]

        result = await make_service().sync_album(album_id)

        assert result.release_year == 2009
        album = await catalog.get_album(album_id)
        assert album is not None
        assert album.release_year == 2009

    async def test_existing_cover_skips_cover_art(
        self, make_service: Any, catalog: CatalogStore, musicbrainz: Any, cover_art: Any
    ) -> None:
        artist_id = await catalog.get_or_create_artist("A")
        album_id = await catalog.get_or_create_album("B", artist_id, None)
        await catalog.set_album_cover(album_id, ImageRef(path="A/B/cover.jpg"))
        musicbrainz.search_release.return_value = [{"id": "rel-3"}]

        await make_service().sync_album(album_id)

        cover_art.get_front_image_url.assert_not_called()


class TestBatches:
    async def test_failure_is_recorded_and_batch_continues(
        self,
        make_service: Any,
        catalog: CatalogStore,
        status_store: StatusStore,
        musicbrainz: Any,
    ) -> None:
        for name in ("Alpha", "Bravo", "Charlie"):
            await catalog.get_or_create_artist(name)

        async def search(name: str, limit: int = 5) -> list[dict[str, Any]]:
            if name == "Bravo":
                raise ProviderError("musicbrainz", "rate limited")
            return [{"id": f"mb-{name}"}]

        musicbrainz.search_artist.side_effect = search

        result = await make_service().sync_all_artists()

        assert (result.total, result.succeeded, result.failed) == (3, 2, 1)
        assert result.last_error is not None and "Bravo" in result.last_error
        status = await status_store.get_artist_sync_status()
        assert not status.is_running
        assert status.current == 3
        assert status.last_error == result.last_error

    async def test_item_timeout(
        self,
        make_service: Any,
        catalog: CatalogStore,
        settings: Settings,
        musicbrainz: Any,
    ) -> None:
        settings.metadata_sync.item_timeout = 0.05
        await catalog.get_or_create_artist("Slow")

        async def hang(name: str, limit: int = 5) -> list[dict[str, Any]]:
            await asyncio.sleep(5)
            return []

        musicbrainz.search_artist.side_effect = hang

        result = await make_service().sync_all_artists()

        assert result.failed == 1
        assert result.last_error is not None and "timed out" in result.last_error

    async def test_missing_only_filter(
        self, make_service: Any, catalog: CatalogStore, musicbrainz: Any
    ) -> None:
        has_image = await catalog.get_or_create_artist("Pictured")
        await catalog.get_or_create_artist("Faceless")
        await catalog.set_artist_image(has_image, ImageRef(url="https://img.test/p.jpg"))

        result = await make_service().sync_all_artists(missing_only=True)

        assert result.total == 1
        assert musicbrainz.search_artist.await_args.args[0] == "Faceless"

    async def test_album_batch(
        self, make_service: Any, catalog: CatalogStore, musicbrainz: Any
    ) -> None:
        artist_id = await catalog.get_or_create_artist("A")
        await catalog.get_or_create_album("One", artist_id, None)
        await catalog.get_or_create_album("Two", artist_id, None)

        result = await make_service().sync_all_albums()

        assert (result.total, result.succeeded) == (2, 2)
        assert musicbrainz.search_release.await_count == 2

    async def test_running_batch_rejects_another(
        self, make_service: Any, status_store: StatusStore
    ) -> None:
        await status_store.start_artist_sync(total=10)
        service = make_service()

        with pytest.raises(OperationInProgressError):
            await service.sync_all_artists()
        with pytest.raises(OperationInProgressError):
            await service.sync_all_albums()

        await status_store.finish_artist_sync()
        assert (await service.sync_all_artists()).total == 0
