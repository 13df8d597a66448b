"""
Storage layer for credential entries and the processed-file ledger.

Provides the pooled SQLite entry store, the SQLModel-backed ledger, the
duplicate resolver, and the pydantic schemas shared with API consumers.
"""

from credlog_core.storage.schemas import (
    CredentialEntry,
    ProcessedFileRecord,
    IngestionReport,
    DuplicateReport,
    WatcherStatus
)
from credlog_core.storage.sqlite import CredentialStore, INSERT_ENTRY_SQL
from credlog_core.storage.ledger import ProcessedFileEntry, ProcessedLedger
from credlog_core.storage.duplicates import DuplicateResolver

__all__ = [
    # Schemas
    "CredentialEntry",
    "ProcessedFileRecord",
    "IngestionReport",
    "DuplicateReport",
    "WatcherStatus",
    # Entry store
    "CredentialStore",
    "INSERT_ENTRY_SQL",
    # Ledger
    "ProcessedFileEntry",
    "ProcessedLedger",
    # Maintenance
    "DuplicateResolver",
]
