"""Configuration module for Cadenza."""

from .settings import (
    DatabaseSettings,
    MetadataSyncSettings,
    MusicBrainzSettings,
    ObservabilitySettings,
    ScanSettings,
    Settings,
    StorageSettings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "MetadataSyncSettings",
    "MusicBrainzSettings",
    "ObservabilitySettings",
    "ScanSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
]
