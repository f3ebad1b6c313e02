"""Shared fixtures.

Hey future me - every test that touches the DB gets its OWN SQLite file under tmp_path,
so tests never see each other's rows. Audio files in service tests are plain files with
fake bytes; the FakeAudioProbe hands out tag blocks registered per path instead of parsing
anything.
"""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest

from cadenza.config import Settings
from cadenza.domain.exceptions import TagReadError
from cadenza.domain.ports import AudioProbe, EmbeddedPicture, ProbedAudio, TagBlock
from cadenza.infrastructure.persistence import CatalogStore, Database, StatusStore


class FakeTagBlock(TagBlock):
    """In-memory tag block."""

    kind = "fake"

    def __init__(
        self,
        title: str | None = None,
        artist: str | None = None,
        album: str | None = None,
        track: int | None = None,
        year: int | None = None,
        lyrics: str | None = None,
        pictures: list[EmbeddedPicture] | None = None,
    ) -> None:
        self._title = title
        self._artist = artist
        self._album = album
        self._track = track
        self._year = year
        self._lyrics = lyrics
        self._pictures = pictures or []

    def title(self) -> str | None:
        return self._title

    def artist(self) -> str | None:
        return self._artist

    def album(self) -> str | None:
        return self._album

    def track(self) -> int | None:
        return self._track

    def year(self) -> int | None:
        return self._year

    def lyrics(self) -> str | None:
        return self._lyrics

    def pictures(self) -> list[EmbeddedPicture]:
        return self._pictures


class FakeAudioProbe(AudioProbe):
    """Probe that returns registered blocks; unregistered files get no tags."""

    def __init__(self) -> None:
        self.blocks: dict[Path, list[TagBlock]] = {}
        self.broken: set[Path] = set()

    def register(self, path: Path, *blocks: TagBlock) -> None:
        self.blocks[path] = list(blocks)

    def probe(self, path: Path) -> ProbedAudio:
        if path in self.broken:
            raise TagReadError(path, "corrupt container")
        return ProbedAudio(duration=180, bitrate=320, tag_blocks=self.blocks.get(path, []))


@pytest.fixture
def fake_block() -> type[FakeTagBlock]:
    """The FakeTagBlock class (conftest classes can't be imported by tests)."""
    return FakeTagBlock


@pytest.fixture
def fake_probe() -> FakeAudioProbe:
    return FakeAudioProbe()


@pytest.fixture
def music_root(tmp_path: Path) -> Path:
    root = tmp_path / "music"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def settings(tmp_path: Path, music_root: Path) -> Settings:
    """Settings pointing at tmp_path with no waiting between provider calls."""
    return Settings(
        _env_file=None,
        database={"url": f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}"},
        storage={"music_path": music_root, "data_path": tmp_path / "data"},
        metadata_sync={"inter_item_delay": 0.0, "retry_base_delay": 0.0},
    )


@pytest.fixture
async def database(settings: Settings) -> AsyncGenerator[Database, None]:
    db = Database(settings)
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def catalog(database: Database) -> CatalogStore:
    return CatalogStore(database)


@pytest.fixture
async def status_store(database: Database) -> StatusStore:
    store = StatusStore(database)
    await store.ensure_rows()
    return store


def write_audio(path: Path, payload: bytes = b"not really audio") -> Path:
    """Create a placeholder audio file (content is never parsed by the fake probe)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)
    return path


@pytest.fixture
def make_audio() -> Callable[..., Path]:
    """Factory fixture for placeholder audio files."""
    return write_audio
