"""Application settings loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = "sqlite+aiosqlite:///./cadenza.db"
    echo: bool = False
    pool_pre_ping: bool = True
    # Only used for PostgreSQL - SQLite ignores pooling entirely
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 3600


# Hey future me, music_path is the library ROOT. Everything the organizer writes lands below it
# and every path we store relative (cover_path, image_url) is relative to it. data_path is OUR
# private area - downloaded avatars and covers land there first and the organizer pulls them
# into the library tree later. Don't point data_path inside music_path or the scanner will try
# to ingest cover images as "files" (it won't, extension filter, but it's still messy).
class StorageSettings(BaseModel):
    """Filesystem locations used by the library core."""

    music_path: Path = Path("./music")
    data_path: Path = Path("./data")
    # Parallel lyric tree under music_path: {music_path}/succeed/<relative path>.lrc
    lyrics_mirror_dir: str = "succeed"

    @property
    def avatar_path(self) -> Path:
        """Directory holding downloaded artist images."""
        return self.data_path / "avatars"

    @property
    def cover_path(self) -> Path:
        """Directory holding downloaded album covers."""
        return self.data_path / "covers"


class ScanSettings(BaseModel):
    """Library scan tuning."""

    concurrency: int = Field(default=8, ge=1, le=64)
    max_failures: int = Field(default=10, ge=1)
    in_flight_window: int = Field(default=10, ge=1)
    progress_flush_every: int = Field(default=5, ge=1)


class MetadataSyncSettings(BaseModel):
    """External metadata enrichment tuning."""

    item_timeout: float = 30.0
    inter_item_delay: float = 1.5
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = 1.0


class MusicBrainzSettings(BaseModel):
    """MusicBrainz API identification (User-Agent is mandatory for MB)."""

    app_name: str = "Cadenza"
    app_version: str = "0.1.0"
    contact: str = "https://github.com/cadenza-music/cadenza"


class ObservabilitySettings(BaseModel):
    """Logging configuration."""

    log_level: str = "INFO"
    log_json_format: bool = False

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {value}")
        return level


# Listen up, nested groups are populated from env with the double underscore delimiter:
#   CADENZA_DATABASE__URL=postgresql+asyncpg://...
#   CADENZA_SCAN__CONCURRENCY=4
#   CADENZA_STORAGE__MUSIC_PATH=/music
# Tests just pass dicts: Settings(database={"url": "sqlite+aiosqlite:///..."}).
class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_prefix="CADENZA_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "cadenza"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    scan: ScanSettings = Field(default_factory=ScanSettings)
    metadata_sync: MetadataSyncSettings = Field(default_factory=MetadataSyncSettings)
    musicbrainz: MusicBrainzSettings = Field(default_factory=MusicBrainzSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    def ensure_directories(self) -> None:
        """Create storage directories that the core writes into."""
        for path in (self.storage.avatar_path, self.storage.cover_path):
            path.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
