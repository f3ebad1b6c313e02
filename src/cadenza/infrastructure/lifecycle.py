"""Composition root: build, start and close the library core.

Every long-lived object is created HERE and nowhere else, and handed to the services that
need it. The important one is the StructuralOperationLock: scanner and organizer must get
the SAME instance, otherwise the mutual exclusion between them is gone.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy.engine import make_url

from cadenza.application.services.library_organizer_service import Organizer
from cadenza.application.services.library_scanner_service import ScanCoordinator
from cadenza.application.services.metadata_sync_service import MetadataSyncService
from cadenza.application.services.operation_lock import StructuralOperationLock
from cadenza.config import Settings, get_settings
from cadenza.domain.exceptions import ConfigurationError
from cadenza.infrastructure.integrations import (
    CoverArtArchiveClient,
    HttpClientPool,
    MusicBrainzClient,
)
from cadenza.infrastructure.observability import configure_logging
from cadenza.infrastructure.persistence import CatalogStore, Database, StatusStore
from cadenza.infrastructure.tagging import MutagenAudioProbe, TagExtractor

logger = logging.getLogger(__name__)


def sqlite_database_path(settings: Settings) -> Path | None:
    """File path of a SQLite database URL (None for other backends and :memory:)."""
    url = make_url(settings.database.url)
    if url.get_backend_name() != "sqlite":
        return None
    if not url.database or url.database == ":memory:":
        return None
    return Path(url.database)


# Hey future me, this validates SQLite paths BEFORE we try creating the DB engine. SQLite needs
# to create temp files (-journal, -wal) in the same directory as the .db file, so we check the
# directory is writable. We DON'T pre-create the .db file - SQLite handles that.
def validate_sqlite_path(settings: Settings) -> None:
    """Make sure a SQLite database directory exists and is writable.

    Raises:
        ConfigurationError: If the directory can't be created or written
    """
    db_path = sqlite_database_path(settings)
    if db_path is None:
        return

    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to create SQLite database directory '{db_path.parent}': {exc}. "
            "Update CADENZA_DATABASE__URL or adjust directory permissions."
        ) from exc

    try:
        test_file = db_path.parent / f".{db_path.stem}_write_test"
        test_file.write_bytes(b"test")
        test_file.unlink()
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to write files in database directory '{db_path.parent}': {exc}. "
            "SQLite requires write permissions to create database and journal files."
        ) from exc


class LibraryCore:
    """All services of the library core, wired to one database and one lock."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.database = Database(settings)
        self.status_store = StatusStore(self.database)
        self.operation_lock = StructuralOperationLock()

        tag_extractor = TagExtractor(MutagenAudioProbe())
        self.scanner = ScanCoordinator(
            settings, self.database, self.status_store, self.operation_lock, tag_extractor
        )
        self.organizer = Organizer(
            settings, self.database, self.status_store, self.operation_lock, tag_extractor
        )

        self.musicbrainz = MusicBrainzClient(settings.musicbrainz)
        self.cover_art = CoverArtArchiveClient()
        self.metadata_sync = MetadataSyncService(
            settings,
            CatalogStore(self.database),
            self.status_store,
            self.musicbrainz,
            self.cover_art,
        )

    async def start(self) -> None:
        """Create directories and tables, clear flags left by a crashed run."""
        self.settings.ensure_directories()
        await self.database.create_tables()
        await self.status_store.reset_stale_flags()
        logger.info("Library core ready (database: %s)", self.database.dialect_name)

    async def close(self) -> None:
        """Release HTTP clients and database connections."""
        await self.musicbrainz.close()
        await self.cover_art.close()
        await HttpClientPool.close()
        await self.database.close()
        logger.info("Library core closed")


# Listen future me, everything before `yield` is startup, everything after is shutdown. The
# try/finally makes sure connections get closed even when a command blows up halfway.
@asynccontextmanager
async def library_core(settings: Settings | None = None) -> AsyncGenerator[LibraryCore, None]:
    """Build and start a LibraryCore, closing it on exit."""
    settings = settings or get_settings()
    configure_logging(
        log_level=settings.observability.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    validate_sqlite_path(settings)

    core = LibraryCore(settings)
    try:
        await core.start()
        yield core
    finally:
        await core.close()
