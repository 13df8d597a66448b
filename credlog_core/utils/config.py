"""
Configuration management using Pydantic Settings.

Each concern of the ingestion pipeline gets its own settings class with an
environment prefix. Supports environment variables, .env files, and
programmatic configuration.
"""

from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WatcherConfig(BaseSettings):
    """Configuration for the directory watcher."""

    directory: Path = Field(default=Path("./data"), description="Directory watched for credential dumps")
    suffix: str = Field(default=".txt", description="Filename suffix of candidate files")
    settle_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Wait before reading a newly created file (best effort)"
    )

    model_config = SettingsConfigDict(
        env_prefix="WATCHER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow"
    )


class StorageConfig(BaseSettings):
    """Configuration for the relational store."""

    sqlite_path: Path = Field(default=Path("./data/credlog.db"), description="SQLite database path")
    pool_size: int = Field(default=10, ge=1, description="Maximum concurrent connection leases")
    busy_timeout_seconds: float = Field(
        default=30.0,
        ge=0.0,
        description="How long a connection waits on a locked database"
    )

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow"
    )


class IngestionConfig(BaseSettings):
    """Configuration for file ingestion."""

    batch_size: int = Field(default=1000, ge=1, description="Entries committed per atomic batch")
    max_workers: int = Field(default=4, ge=1, description="Concurrent file workers")
    queue_size: int = Field(default=256, ge=1, description="Pending files held before producers wait")
    file_timeout_seconds: float = Field(default=300.0, gt=0, description="Time budget for a single file")
    directory_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Time budget for a whole-directory import"
    )
    progress_every: int = Field(default=10000, ge=1, description="Log progress every N entries")

    model_config = SettingsConfigDict(
        env_prefix="INGESTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow"
    )


class CredlogSettings(BaseSettings):
    """
    Unified configuration for credlog-core.

    Combines all sub-configurations into a single settings object.
    """

    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)

    # General settings
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow"
    )


_settings: Optional[CredlogSettings] = None


def get_settings() -> CredlogSettings:
    """Get the process-wide settings instance, loading it on first use."""
    global _settings
    if _settings is None:
        _settings = CredlogSettings()
    return _settings


def load_config_from_dict(config_dict: Dict[str, Any]) -> CredlogSettings:
    """
    Build settings from a plain dictionary.

    Each top-level key ("watcher", "storage", "ingestion") maps to the
    keyword arguments of the matching config class.
    """
    return CredlogSettings(
        watcher=WatcherConfig(**config_dict.get("watcher", {})),
        storage=StorageConfig(**config_dict.get("storage", {})),
        ingestion=IngestionConfig(**config_dict.get("ingestion", {})),
        debug=config_dict.get("debug", False),
        log_level=config_dict.get("log_level", "INFO"),
    )
