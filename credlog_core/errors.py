"""
Exception hierarchy for credlog-core.

Each pipeline stage raises a specific error type so callers can tell a
directory problem from a store failure or an abandoned run.
"""
from __future__ import annotations


class CredlogError(Exception):
    """Base exception for all credlog-core failures."""


class DirectoryError(CredlogError):
    """Raised when the watched directory cannot be created, read or watched."""


class SourceFileError(CredlogError):
    """Raised when a dump file is missing or cannot be read."""


class IngestionInProgress(CredlogError):
    """Raised when a file is requested while another run for it is in flight."""


class StoreError(CredlogError):
    """Raised for connection, lease, flush, ledger or transaction failures."""


class BatchFlushError(StoreError):
    """
    Raised when a batch of entries could not be committed.

    Attributes:
        committed: Entries persisted by earlier, already-flushed batches.
            The entries of the failed batch are not included.
    """

    def __init__(self, message: str, committed: int = 0):
        super().__init__(message)
        self.committed = committed


class IngestionTimeout(CredlogError, TimeoutError):
    """
    Raised when a file or directory run exceeds its time budget or is cancelled.

    Already-flushed batches are not rolled back; ``committed`` reports them
    when known.
    """

    def __init__(self, message: str, committed: int = 0):
        super().__init__(message)
        self.committed = committed


__all__ = [
    "CredlogError",
    "DirectoryError",
    "SourceFileError",
    "IngestionInProgress",
    "StoreError",
    "BatchFlushError",
    "IngestionTimeout",
]
