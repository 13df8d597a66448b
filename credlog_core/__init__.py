"""
credlog-core: Ingestion pipeline for plain-text credential dumps.

Watches a directory for dump files, parses each line into a
(url, username, password) triple, and stores the entries in SQLite in
batched transactions. A ledger of processed filenames keeps ingestion
idempotent across restarts.

Modules:
    extractors: Line splitting, sanitizing and the line parser
    ingestion: Directory watcher, batch writer and the coordinator
    storage: Entry store, processed-file ledger and duplicate resolution
    security: Path and file-type validation
    utils: Configuration, logging, worker pool
    models: Shared transient models
"""

__version__ = "0.1.0"

# Import key classes for convenience
from credlog_core import errors, extractors, storage, ingestion, security, utils, models

__all__ = [
    "errors",
    "extractors",
    "storage",
    "ingestion",
    "security",
    "utils",
    "models",
    "__version__",
]
