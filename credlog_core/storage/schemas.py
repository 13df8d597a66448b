"""
Pydantic schemas for stored rows and pipeline reports.

These are the shapes handed to the external API layer.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, computed_field


class CredentialEntry(BaseModel):
    """One stored credential row."""

    id: int = Field(..., description="Identifier assigned in insertion order")
    url: str = Field(..., description="Site or app URL")
    username: str = Field(..., description="Account name")
    password: str = Field(..., description="Password text")
    created: str = Field(..., description="Ingestion date (YYYY-MM-DD)")

    @classmethod
    def from_row(cls, row) -> "CredentialEntry":
        """Create from an ``(id, url, username, password, created)`` row."""
        return cls(id=row[0], url=row[1], username=row[2], password=row[3], created=row[4])


class ProcessedFileRecord(BaseModel):
    """Ledger record for a file that has been ingested."""

    filename: str = Field(..., description="Base name of the ingested file")
    processed_at: datetime = Field(..., description="When the file was last recorded")
    entries_added: int = Field(..., ge=0, description="Entries inserted by the last recorded run")


class IngestionReport(BaseModel):
    """Report generated after a directory import."""

    total_files: int = Field(..., description="Candidate files found in the directory")
    skipped_files: int = Field(..., description="Files already present in the ledger")
    total_entries: int = Field(..., description="Entries inserted across all files")
    errors: int = Field(..., description="Files whose run failed")
    duration_seconds: float = Field(..., description="Total import time")
    files_processed: List[str] = Field(default_factory=list, description="Filenames ingested in this run")
    error_files: List[Dict[str, str]] = Field(default_factory=list, description="Files that caused errors")

    @property
    def attempted_files(self) -> int:
        return self.total_files - self.skipped_files

    @property
    def success_rate(self) -> float:
        """Successful runs as a percentage of attempted files."""
        if self.attempted_files == 0:
            return 0.0
        return ((self.attempted_files - self.errors) / self.attempted_files) * 100

    @property
    def entries_per_file(self) -> float:
        """Average entries per successfully ingested file."""
        successful = self.attempted_files - self.errors
        if successful <= 0:
            return 0.0
        return self.total_entries / successful


class DuplicateReport(BaseModel):
    """Result of a duplicate-resolution pass."""

    found: int = Field(..., description="Rows that are not the retained member of their group")
    removed: Optional[int] = Field(None, description="Rows deleted (remove mode only)")
    rows: List[CredentialEntry] = Field(default_factory=list, description="The non-retained rows")


class WatcherStatus(BaseModel):
    """Snapshot of the watched directory and the ledger."""

    watching: str = Field(..., description="Watched directory")
    watcher_active: bool = Field(..., description="Whether live monitoring is running")
    files: List[str] = Field(default_factory=list, description="Candidate files currently in the directory")
    processed_filenames: List[str] = Field(default_factory=list, description="Filenames known to the ledger")

    @computed_field
    @property
    def file_count(self) -> int:
        return len(self.files)

    @computed_field
    @property
    def processed_count(self) -> int:
        return len(self.processed_filenames)


__all__ = [
    "CredentialEntry",
    "ProcessedFileRecord",
    "IngestionReport",
    "DuplicateReport",
    "WatcherStatus",
]
