# Hey future me - this service scans the local music directory and imports files into the DB!
# Key features:
# 1. BOUNDED CONCURRENCY - a semaphore caps how many files are processed at once (fds, DB conns)
# 2. IDEMPOTENT - every write is a natural-key upsert, scanning twice changes nothing
# 3. CIRCUIT BREAKER - after N failures we stop LAUNCHING work, in-flight units still finish
# 4. ORPHAN SWEEP - rows whose file vanished are deleted after all files were processed
# The goal: a catalog that mirrors the tree, even if a few files are garbage.
"""Library scanner service for importing local music files into the database."""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path

from cadenza.application.services.cover_resolver import CoverResolver
from cadenza.application.services.lyric_resolver import LyricResolver
from cadenza.application.services.operation_lock import StructuralOperationLock
from cadenza.config import Settings
from cadenza.domain.exceptions import (
    DomainException,
    EntityNotFoundException,
    InternalError,
    InvalidLibraryPathError,
)
from cadenza.domain.value_objects import is_audio_file
from cadenza.infrastructure.observability import set_correlation_id
from cadenza.infrastructure.persistence import (
    CatalogStore,
    Database,
    StatusStore,
    TrackUpsert,
)
from cadenza.infrastructure.tagging import TagExtractor

logger = logging.getLogger(__name__)

SCAN_BUSY_MESSAGE = "A scan is already in progress"


def validate_library_root(root_path: Path) -> Path:
    """Resolve a library root and make sure it is a directory.

    Raises:
        InvalidLibraryPathError: If the path is missing or not a directory
    """
    root = Path(root_path).expanduser().resolve()
    if not root.exists():
        raise InvalidLibraryPathError(root, "path does not exist")
    if not root.is_dir():
        raise InvalidLibraryPathError(root, "path is not a directory")
    return root


def collect_audio_files(root: Path) -> list[Path]:
    """Recursively list audio files below root (blocking, run in a thread)."""
    files: list[Path] = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            path = Path(dirpath) / filename
            if is_audio_file(path):
                files.append(path)
    files.sort()
    return files


def path_as_text(path: Path) -> str:
    """Path as storable text.

    Raises:
        InternalError: If the filename is not valid Unicode (undecodable bytes)
    """
    text = str(path)
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise InternalError(f"Path is not valid text: {path!r}") from e
    return text


@dataclass
class ScanResult:
    """Summary of one scan run."""

    total_files: int = 0
    processed: int = 0
    failed: int = 0
    aborted: bool = False
    orphans_removed: int = 0
    duration_seconds: float = 0.0


@dataclass
class ScanPipeline:
    """Per-run collaborators. A new one is built for every scan so caches start cold."""

    root: Path
    catalog: CatalogStore
    lyrics: LyricResolver
    covers: CoverResolver


class ScanCoordinator:
    """Scan a library tree into the catalog.

    Hey future me - the control flow of scan() in one picture:

        lock -> validate root -> list files -> status(running, 0/N)
          -> for each file: [breaker open? stop] launch unit (semaphore slot)
                            [window full?] wait for a unit, count it
          -> drain the rest -> reconcile progress with COUNT(*) -> orphan sweep
          -> status(not running)   <- ALWAYS, even if the sweep blows up

    Progress counts SUCCESSES only and hits the DB every few files; the final COUNT(*)
    overwrites it with the truth.
    """

    def __init__(
        self,
        settings: Settings,
        database: Database,
        status_store: StatusStore,
        lock: StructuralOperationLock,
        tag_extractor: TagExtractor,
    ) -> None:
        """Initialize scanner.

        Args:
            settings: Application settings (scan tuning, storage paths)
            database: Database the catalog lives in
            status_store: Pollable status rows
            lock: Structural operation lock shared with the organizer
            tag_extractor: Tag reader
        """
        self.settings = settings
        self._database = database
        self._status = status_store
        self._lock = lock
        self._tag_extractor = tag_extractor

    def _build_pipeline(self, root: Path) -> ScanPipeline:
        catalog = CatalogStore(self._database)
        return ScanPipeline(
            root=root,
            catalog=catalog,
            lyrics=LyricResolver.default(root, self.settings.storage.lyrics_mirror_dir),
            covers=CoverResolver(catalog, root),
        )

    async def scan(self, root_path: Path) -> ScanResult:
        """Scan a library root into the catalog.

        Args:
            root_path: Directory to scan

        Returns:
            ScanResult with counts and duration

        Raises:
            OperationInProgressError: If a scan or reorganization is running
            InvalidLibraryPathError: If root_path is not a directory
        """
        async with self._lock.hold("scan", SCAN_BUSY_MESSAGE):
            correlation_id = set_correlation_id()
            started = time.monotonic()
            root = validate_library_root(root_path)

            files = await asyncio.to_thread(collect_audio_files, root)
            logger.info(
                "Starting library scan of %s: %d audio files (run %s)",
                root,
                len(files),
                correlation_id,
            )

            pipeline = self._build_pipeline(root)
            result = ScanResult(total_files=len(files))
            await self._status.start_scan(len(files))
            try:
                await self._run_units(files, pipeline, result)

                result.orphans_removed = await pipeline.catalog.orphan_sweep()

                # Published progress is the live row count, so it runs after the sweep
                total_tracks = await pipeline.catalog.count_tracks()
                await self._status.update_scan_progress(total_tracks)
            finally:
                await self._status.finish_scan()

            result.duration_seconds = time.monotonic() - started
            logger.info(
                "Library scan finished: %d processed, %d failed, %d orphans removed%s in %.1fs",
                result.processed,
                result.failed,
                result.orphans_removed,
                " (aborted by failure limit)" if result.aborted else "",
                result.duration_seconds,
            )
            return result

    async def _run_units(
        self, files: list[Path], pipeline: ScanPipeline, result: ScanResult
    ) -> None:
        scan_settings = self.settings.scan
        semaphore = asyncio.Semaphore(scan_settings.concurrency)
        in_flight: set[asyncio.Task[bool]] = set()

        async def run_unit(path: Path) -> bool:
            async with semaphore:
                try:
                    await self._process(pipeline, path)
                    return True
                except DomainException as e:
                    logger.warning("Failed to process %s: %s", path, e.message)
                    return False
                except Exception:
                    logger.exception("Unexpected error processing %s", path)
                    return False

        async def record(done: set[asyncio.Task[bool]]) -> None:
            for task in done:
                if task.result():
                    result.processed += 1
                    if result.processed % scan_settings.progress_flush_every == 0:
                        await self._status.update_scan_progress(result.processed)
                else:
                    result.failed += 1

        for path in files:
            if result.failed >= scan_settings.max_failures:
                result.aborted = True
                logger.error(
                    "Stopping scan after %d failures, draining %d running units",
                    result.failed,
                    len(in_flight),
                )
                break
            in_flight.add(asyncio.create_task(run_unit(path)))
            if len(in_flight) >= scan_settings.in_flight_window:
                done, in_flight = await asyncio.wait(
                    in_flight, return_when=asyncio.FIRST_COMPLETED
                )
                await record(done)

        while in_flight:
            done, in_flight = await asyncio.wait(
                in_flight, return_when=asyncio.FIRST_COMPLETED
            )
            await record(done)

    async def process_file(self, path: Path) -> str:
        """Run the per-file pipeline for one file against the configured music root.

        Returns:
            Track id
        """
        root = Path(self.settings.storage.music_path).expanduser().resolve()
        return await self._process(self._build_pipeline(root), Path(path))

    async def _process(self, pipeline: ScanPipeline, path: Path) -> str:
        path_text = path_as_text(path)
        tags = await self._tag_extractor.extract(path)
        lyrics = await asyncio.to_thread(pipeline.lyrics.resolve, path, tags.tag_blocks)

        catalog = pipeline.catalog
        artist_id = await catalog.get_or_create_artist(tags.artist)
        album_id = await catalog.get_or_create_album(tags.album, artist_id, tags.year)
        track_id = await catalog.upsert_track(
            TrackUpsert(
                path=path_text,
                title=tags.title,
                artist_id=artist_id,
                album_id=album_id,
                duration=tags.duration,
                bitrate=tags.bitrate,
                format=tags.format,
                size=tags.size,
                track_number=tags.track_number,
                lyrics=lyrics.text,
                lyrics_source=lyrics.source,
            )
        )

        await pipeline.covers.resolve(album_id, path, tags.tag_blocks)
        await pipeline.covers.backfill_artist_image(artist_id, path)
        return track_id

    # Yo, single-track rescan is what the UI's "refresh this track" button calls. It does NOT
    # take the structural lock: it touches one row, and blocking it behind an hour-long scan
    # would be silly. Upserts are idempotent so racing a scan on the same file is harmless.
    async def rescan_track(self, track_id: str) -> str:
        """Re-run the per-file pipeline for one catalog track.

        Raises:
            EntityNotFoundException: If the track id is unknown
        """
        catalog = CatalogStore(self._database)
        track = await catalog.get_track(track_id)
        if track is None:
            raise EntityNotFoundException("Track", track_id)
        logger.info("Rescanning track %s (%s)", track_id, track.path)
        return await self.process_file(Path(track.path))
