"""Singleton status rows for the scan pipeline and the enrichment batch."""

import logging

from sqlalchemy import select, update

from cadenza.domain.entities import ArtistSyncStatus, ScanStatus
from cadenza.infrastructure.persistence.database import Database
from cadenza.infrastructure.persistence.models import (
    ArtistSyncStatusModel,
    ScanStatusModel,
    utc_now,
)
from cadenza.infrastructure.persistence.retry import with_db_retry

logger = logging.getLogger(__name__)

SINGLETON_ID = 1


class StatusStore:
    """Read and write the two pollable status rows.

    Hey future me - both tables hold exactly ONE row (id=1). ensure_rows() creates them on
    startup; every other method just UPDATEs id=1. The scanner writes progress here, the HTTP
    layer (not part of this package) polls get_scan_status() / get_artist_sync_status().
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def ensure_rows(self) -> None:
        """Create the singleton rows if they don't exist yet."""
        async with self._db.session_scope() as session:
            if await session.get(ScanStatusModel, SINGLETON_ID) is None:
                session.add(ScanStatusModel(id=SINGLETON_ID))
            if await session.get(ArtistSyncStatusModel, SINGLETON_ID) is None:
                session.add(ArtistSyncStatusModel(id=SINGLETON_ID))

    # Listen up, if the process died mid-scan the row still says is_scanning=TRUE and the UI
    # shows a scan that will never finish. Call this ONCE at startup, before any scan can run.
    async def reset_stale_flags(self) -> None:
        """Clear running flags left behind by a crashed process."""
        await self.ensure_rows()
        async with self._db.session_scope() as session:
            scan = await session.execute(
                update(ScanStatusModel)
                .where(ScanStatusModel.is_scanning.is_(True))
                .values(is_scanning=False)
            )
            sync = await session.execute(
                update(ArtistSyncStatusModel)
                .where(ArtistSyncStatusModel.is_syncing.is_(True))
                .values(is_syncing=False)
            )
        if scan.rowcount or sync.rowcount:
            logger.warning("Reset stale running flags left over from a previous run")

    # =========================================================================
    # SCAN STATUS
    # =========================================================================

    async def get_scan_status(self) -> ScanStatus:
        """Current scan / reorganize status."""
        async with self._db.session_scope() as session:
            result = await session.execute(
                select(ScanStatusModel).where(ScanStatusModel.id == SINGLETON_ID)
            )
            model = result.scalar_one_or_none()
            if model is None:
                return ScanStatus()
            return ScanStatus(
                is_running=model.is_scanning,
                current=model.current_count,
                total=model.total_count,
                last_run_at=model.last_scan_at,
            )

    @with_db_retry(max_attempts=3)
    async def start_scan(self, total: int) -> None:
        """Mark the pipeline running with a fresh counter."""
        await self.ensure_rows()
        async with self._db.session_scope() as session:
            await session.execute(
                update(ScanStatusModel)
                .where(ScanStatusModel.id == SINGLETON_ID)
                .values(is_scanning=True, current_count=0, total_count=total)
            )

    @with_db_retry(max_attempts=3)
    async def update_scan_progress(self, current: int) -> None:
        """Persist the progress counter."""
        async with self._db.session_scope() as session:
            await session.execute(
                update(ScanStatusModel)
                .where(ScanStatusModel.id == SINGLETON_ID)
                .values(current_count=current)
            )

    @with_db_retry(max_attempts=3)
    async def finish_scan(self) -> None:
        """Clear the running flag and stamp the completion time."""
        async with self._db.session_scope() as session:
            await session.execute(
                update(ScanStatusModel)
                .where(ScanStatusModel.id == SINGLETON_ID)
                .values(is_scanning=False, last_scan_at=utc_now())
            )

    # =========================================================================
    # ARTIST SYNC STATUS
    # =========================================================================

    async def get_artist_sync_status(self) -> ArtistSyncStatus:
        """Current enrichment batch status."""
        async with self._db.session_scope() as session:
            result = await session.execute(
                select(ArtistSyncStatusModel).where(
                    ArtistSyncStatusModel.id == SINGLETON_ID
                )
            )
            model = result.scalar_one_or_none()
            if model is None:
                return ArtistSyncStatus()
            return ArtistSyncStatus(
                is_running=model.is_syncing,
                current=model.current_count,
                total=model.total_count,
                last_run_at=model.last_sync_at,
                last_error=model.last_error,
            )

    @with_db_retry(max_attempts=3)
    async def start_artist_sync(self, total: int) -> None:
        """Mark the enrichment batch running and clear the previous error."""
        await self.ensure_rows()
        async with self._db.session_scope() as session:
            await session.execute(
                update(ArtistSyncStatusModel)
                .where(ArtistSyncStatusModel.id == SINGLETON_ID)
                .values(is_syncing=True, current_count=0, total_count=total, last_error=None)
            )

    @with_db_retry(max_attempts=3)
    async def update_artist_sync_progress(
        self, current: int, last_error: str | None = None
    ) -> None:
        """Persist batch progress, recording an error when one occurred."""
        values: dict[str, object] = {"current_count": current}
        if last_error is not None:
            values["last_error"] = last_error
        async with self._db.session_scope() as session:
            await session.execute(
                update(ArtistSyncStatusModel)
                .where(ArtistSyncStatusModel.id == SINGLETON_ID)
                .values(**values)
            )

    @with_db_retry(max_attempts=3)
    async def finish_artist_sync(self) -> None:
        """Clear the running flag and stamp the completion time."""
        async with self._db.session_scope() as session:
            await session.execute(
                update(ArtistSyncStatusModel)
                .where(ArtistSyncStatusModel.id == SINGLETON_ID)
                .values(is_syncing=False, last_sync_at=utc_now())
            )
