"""
Common utilities module.

Provides shared utilities:
- Configuration (Pydantic Settings-based)
- Logging (structured logging with secret masking)
- Async worker pool and concurrent batch helpers
"""

from credlog_core.utils.config import (
    WatcherConfig,
    StorageConfig,
    IngestionConfig,
    CredlogSettings,
    get_settings,
    load_config_from_dict
)
from credlog_core.utils.logger import get_logger
from credlog_core.utils.async_batch import process_batch_concurrent, WorkerPool

__all__ = [
    # Config
    "WatcherConfig",
    "StorageConfig",
    "IngestionConfig",
    "CredlogSettings",
    "get_settings",
    "load_config_from_dict",
    # Logging
    "get_logger",
    # Async
    "process_batch_concurrent",
    "WorkerPool",
]
