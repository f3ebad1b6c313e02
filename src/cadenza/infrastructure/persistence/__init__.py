"""Persistence layer: database, ORM models, catalog and status stores."""

from cadenza.infrastructure.persistence.catalog_store import (
    AlbumContext,
    CatalogStore,
    TrackUpsert,
)
from cadenza.infrastructure.persistence.database import Database
from cadenza.infrastructure.persistence.models import (
    AlbumModel,
    ArtistModel,
    ArtistSyncStatusModel,
    Base,
    ScanStatusModel,
    TrackModel,
)
from cadenza.infrastructure.persistence.status_store import StatusStore

__all__ = [
    "AlbumContext",
    "AlbumModel",
    "ArtistModel",
    "ArtistSyncStatusModel",
    "Base",
    "CatalogStore",
    "Database",
    "ScanStatusModel",
    "StatusStore",
    "TrackModel",
    "TrackUpsert",
]
