"""
Transient data models used inside a single file-processing run.

These never reach the store directly; the batch writer turns them into rows.
"""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ParsedTriple:
    """
    Credential triple extracted from one dump line.

    Attributes:
        url: Site or app URL the credential belongs to
        username: Account name (often an email or phone number)
        password: Password text, may contain ':' '@' or spaces
    """
    url: str
    username: str
    password: str

    def as_row(self, created: str) -> tuple[str, str, str, str]:
        """Row tuple in ``entries`` column order."""
        return (self.url, self.username, self.password, created)


@dataclass(frozen=True)
class IngestionJob:
    """A file queued for ingestion."""
    path: Path
    settle: bool = False  # wait the settle delay before reading

    @property
    def filename(self) -> str:
        return self.path.name
