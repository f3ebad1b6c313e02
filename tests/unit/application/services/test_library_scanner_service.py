"""Tests for ScanCoordinator.

Hey future me - these run the real pipeline (CatalogStore on SQLite, resolvers on tmp files)
with only the tag probe faked. The concurrency tests use a probe that sleeps in its worker
thread and counts how many calls overlap.
"""

import threading
import time
from pathlib import Path
from typing import Any

import pytest

from cadenza.application.services.library_scanner_service import (
    ScanCoordinator,
    collect_audio_files,
)
from cadenza.application.services.operation_lock import StructuralOperationLock
from cadenza.config import Settings
from cadenza.domain.entities import LyricsSource
from cadenza.domain.exceptions import (
    EntityNotFoundException,
    InvalidLibraryPathError,
    OperationInProgressError,
    TagReadError,
)
from cadenza.domain.ports import EmbeddedPicture, ProbedAudio
from cadenza.infrastructure.persistence import CatalogStore, Database, StatusStore
from cadenza.infrastructure.tagging import TagExtractor


class SlowProbe:
    """Probe that records peak overlap and can fail every call."""

    def __init__(self, delay: float = 0.02, fail: bool = False) -> None:
        self.delay = delay
        self.fail = fail
        self.calls = 0
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def probe(self, path: Path) -> ProbedAudio:
        with self._lock:
            self.calls += 1
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(self.delay)
            if self.fail:
                raise TagReadError(path, "corrupt")
            return ProbedAudio(duration=100, bitrate=256, tag_blocks=[])
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def lock() -> StructuralOperationLock:
    return StructuralOperationLock()


@pytest.fixture
def make_scanner(
    settings: Settings,
    database: Database,
    status_store: StatusStore,
    lock: StructuralOperationLock,
) -> Any:
    def build(probe: Any) -> ScanCoordinator:
        return ScanCoordinator(settings, database, status_store, lock, TagExtractor(probe))

    return build


class TestCollectAudioFiles:
    def test_recursive_and_filtered(self, music_root: Path, make_audio: Any) -> None:
        make_audio(music_root / "b.mp3")
        make_audio(music_root / "A" / "x" / "a.flac")
        (music_root / "A" / "cover.jpg").write_bytes(b"img")

        files = collect_audio_files(music_root)

        assert files == [music_root / "A" / "x" / "a.flac", music_root / "b.mp3"]


class TestScan:
    async def test_imports_tagged_files(
        self,
        make_scanner: Any,
        fake_probe: Any,
        fake_block: Any,
        make_audio: Any,
        music_root: Path,
        catalog: CatalogStore,
        status_store: StatusStore,
    ) -> None:
        for n in (1, 2, 3):
            path = make_audio(music_root / "In" / f"{n:02d}.flac")
            fake_probe.register(
                path, fake_block(title=f"Song {n}", artist="Artist", album="Album", year=2001)
            )

        result = await make_scanner(fake_probe).scan(music_root)

        assert (result.total_files, result.processed, result.failed) == (3, 3, 0)
        assert not result.aborted
        assert await catalog.count_tracks() == 3
        assert [a.name for a in await catalog.list_artists()] == ["Artist"]
        status = await status_store.get_scan_status()
        assert not status.is_running
        assert status.current == 3

    async def test_rescan_is_idempotent(
        self,
        make_scanner: Any,
        fake_probe: Any,
        fake_block: Any,
        make_audio: Any,
        music_root: Path,
        catalog: CatalogStore,
    ) -> None:
        path = make_audio(music_root / "song.mp3")
        fake_probe.register(path, fake_block(title="T", artist="A", album="B"))
        scanner = make_scanner(fake_probe)

        await scanner.scan(music_root)
        first = await catalog.get_track_by_path(str(path))
        await scanner.scan(music_root)
        second = await catalog.get_track_by_path(str(path))

        assert first is not None and second is not None
        assert first.id == second.id
        assert (second.title, second.album_id, second.artist_id) == (
            first.title,
            first.album_id,
            first.artist_id,
        )
        assert (second.lyrics, second.lyrics_source, second.sync_status) == (
            first.lyrics,
            first.lyrics_source,
            first.sync_status,
        )
        assert second.title == "T"
        assert await catalog.count_tracks() == 1
        assert len(await catalog.list_artists()) == 1

    async def test_vanished_files_are_swept(
        self,
        make_scanner: Any,
        fake_probe: Any,
        make_audio: Any,
        music_root: Path,
        catalog: CatalogStore,
        status_store: StatusStore,
    ) -> None:
        keep = make_audio(music_root / "keep.mp3")
        gone = make_audio(music_root / "gone.mp3")
        scanner = make_scanner(fake_probe)
        await scanner.scan(music_root)

        gone.unlink()
        result = await scanner.scan(music_root)

        assert result.orphans_removed == 1
        assert await catalog.get_track_by_path(str(keep)) is not None
        assert await catalog.get_track_by_path(str(gone)) is None
        assert (await status_store.get_scan_status()).current == 1

    async def test_lyrics_and_embedded_cover(
        self,
        make_scanner: Any,
        fake_probe: Any,
        fake_block: Any,
        make_audio: Any,
        music_root: Path,
        catalog: CatalogStore,
    ) -> None:
        path = make_audio(music_root / "dump" / "track.flac")
        path.with_suffix(".lrc").write_text("[00:01]words", encoding="utf-8")
        picture = EmbeddedPicture(data=b"\x89PNG cover", mime="image/png")
        fake_probe.register(
            path, fake_block(title="T", artist="Art", album="Alb", pictures=[picture])
        )

        await make_scanner(fake_probe).scan(music_root)

        track = await catalog.get_track_by_path(str(path))
        assert track is not None
        assert track.lyrics == "[00:01]words"
        assert track.lyrics_source is LyricsSource.FILE
        assert track.album_id is not None
        album = await catalog.get_album(track.album_id)
        assert album is not None
        assert album.cover.path == "Art/Alb/cover.png"
        assert (music_root / "Art" / "Alb" / "cover.png").read_bytes() == b"\x89PNG cover"

    async def test_bad_file_does_not_stop_scan(
        self,
        make_scanner: Any,
        fake_probe: Any,
        make_audio: Any,
        music_root: Path,
    ) -> None:
        make_audio(music_root / "good.mp3")
        bad = make_audio(music_root / "bad.mp3")
        fake_probe.broken.add(bad)

        result = await make_scanner(fake_probe).scan(music_root)

        assert (result.processed, result.failed, result.aborted) == (1, 1, False)


class TestScanConcurrency:
    async def test_in_flight_units_never_exceed_limit(
        self, make_scanner: Any, settings: Settings, make_audio: Any, music_root: Path
    ) -> None:
        settings.scan.concurrency = 2
        for n in range(12):
            make_audio(music_root / f"{n:02d}.mp3")
        probe = SlowProbe()

        result = await make_scanner(probe).scan(music_root)

        assert result.processed == 12
        assert probe.peak <= 2

    async def test_failure_limit_stops_launching(
        self,
        make_scanner: Any,
        settings: Settings,
        make_audio: Any,
        music_root: Path,
        status_store: StatusStore,
    ) -> None:
        settings.scan.max_failures = 10
        for n in range(60):
            make_audio(music_root / f"{n:02d}.mp3")
        probe = SlowProbe(delay=0.001, fail=True)

        result = await make_scanner(probe).scan(music_root)

        assert result.aborted
        assert result.failed >= 10
        assert result.processed == 0
        assert probe.calls < 60
        assert not (await status_store.get_scan_status()).is_running

    async def test_tripped_breaker_still_sweeps_and_finishes(
        self,
        make_scanner: Any,
        settings: Settings,
        fake_probe: Any,
        make_audio: Any,
        music_root: Path,
        catalog: CatalogStore,
        status_store: StatusStore,
    ) -> None:
        settings.scan.max_failures = 10
        scanner = make_scanner(fake_probe)
        stale = make_audio(music_root / "stale.mp3")
        await scanner.scan(music_root)
        stale.unlink()
        for n in range(40):
            path = make_audio(music_root / f"{n:02d}.mp3")
            if n % 2:
                fake_probe.broken.add(path)

        result = await scanner.scan(music_root)

        assert result.aborted
        assert result.failed >= 10
        assert result.processed > 0
        assert result.processed + result.failed < 40
        assert result.orphans_removed == 1
        assert await catalog.get_track_by_path(str(stale)) is None
        status = await status_store.get_scan_status()
        assert not status.is_running
        assert status.last_run_at is not None


class TestScanGuards:
    async def test_busy_lock_rejects_scan(
        self,
        make_scanner: Any,
        fake_probe: Any,
        lock: StructuralOperationLock,
        music_root: Path,
    ) -> None:
        lock.try_acquire("organize")

        with pytest.raises(OperationInProgressError, match="already in progress"):
            await make_scanner(fake_probe).scan(music_root)

        assert lock.active_operation == "organize"

    async def test_invalid_root_releases_lock(
        self,
        make_scanner: Any,
        fake_probe: Any,
        lock: StructuralOperationLock,
        tmp_path: Path,
    ) -> None:
        with pytest.raises(InvalidLibraryPathError):
            await make_scanner(fake_probe).scan(tmp_path / "missing")

        assert not lock.is_active()


class TestRescanTrack:
    async def test_unknown_track(self, make_scanner: Any, fake_probe: Any) -> None:
        with pytest.raises(EntityNotFoundException):
            await make_scanner(fake_probe).rescan_track("no-such-id")

    async def test_picks_up_new_lyrics(
        self,
        make_scanner: Any,
        fake_probe: Any,
        make_audio: Any,
        music_root: Path,
        catalog: CatalogStore,
    ) -> None:
        path = make_audio(music_root / "song.mp3")
        scanner = make_scanner(fake_probe)
        await scanner.scan(music_root)
        track = await catalog.get_track_by_path(str(path))
        assert track is not None and track.lyrics is None

        path.with_suffix(".lrc").write_text("new words", encoding="utf-8")
        same_id = await scanner.rescan_track(track.id)

        refreshed = await catalog.get_track(same_id)
        assert same_id == track.id
        assert refreshed is not None
        assert refreshed.lyrics == "new words"
