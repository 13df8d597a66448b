"""
Processed-file ledger for ingestion idempotency.

Tracks which dump files have been ingested, both persistently (SQLModel table
``processed_log_files``) and in memory for fast skip checks. All access to the
in-memory state and all ledger writes go through one ``asyncio.Lock``.

A file moves through two in-memory states:

- in flight: claimed by a run that has not finished yet
- known: the persistent record was written

Only a confirmed persistent write makes a file known. A failed run releases
its claim, so the file can be retried in the same session as well as after a
restart.
"""
from __future__ import annotations

import asyncio
import datetime as dt
from pathlib import Path
from typing import List, Optional, Set, Union

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Field, Session, SQLModel, create_engine, select

from credlog_core.errors import StoreError
from credlog_core.storage.schemas import ProcessedFileRecord
from credlog_core.utils.logger import get_logger

logger = get_logger(__name__)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class ProcessedFileEntry(SQLModel, table=True):
    """SQLModel row for one ingested file."""

    __tablename__ = "processed_log_files"

    id: Optional[int] = Field(default=None, primary_key=True)
    filename: str = Field(unique=True, index=True, description="Base name of the ingested file")
    processed_at: dt.datetime = Field(default_factory=_utcnow)
    entries_added: int = Field(default=0, description="Entries inserted by the last recorded run")

    def to_record(self) -> ProcessedFileRecord:
        return ProcessedFileRecord(
            filename=self.filename,
            processed_at=self.processed_at,
            entries_added=self.entries_added,
        )


class ProcessedLedger:
    """
    Database-backed ledger with an in-memory mirror.

    Example:
        >>> ledger = ProcessedLedger(Path("./data/credlog.db"))
        >>> await ledger.load()
        >>> if await ledger.claim("dump_001.txt"):
        ...     count = await ingest(...)
        ...     await ledger.record("dump_001.txt", count)
    """

    def __init__(self, db_path: Union[str, Path], busy_timeout: float = 30.0) -> None:
        """
        Initialize ledger persistence.

        Args:
            db_path: Path to SQLite database file
            busy_timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=False,
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
        )
        try:
            SQLModel.metadata.create_all(self.engine, tables=[ProcessedFileEntry.__table__])
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to create ledger table: {e}") from e

        self._lock = asyncio.Lock()
        self._known: Set[str] = set()
        self._in_flight: Set[str] = set()
        logger.info(f"Processed-file ledger initialized: {self.db_path}")

    # === In-memory state ===

    async def load(self) -> int:
        """
        Populate the in-memory set from the persistent ledger.

        Returns:
            Number of filenames loaded
        """
        try:
            filenames = await asyncio.to_thread(self._select_filenames)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load processed files: {e}") from e

        async with self._lock:
            self._known.update(filenames)

        if filenames:
            logger.info(f"Loaded {len(filenames)} processed files from ledger")
        return len(filenames)

    async def is_known(self, filename: str) -> bool:
        async with self._lock:
            return filename in self._known

    async def claim(self, filename: str) -> bool:
        """
        Mark a file as in flight unless it is known or already claimed.

        Returns:
            True if the caller now owns the run for this file
        """
        async with self._lock:
            if filename in self._known or filename in self._in_flight:
                return False
            self._in_flight.add(filename)
            return True

    async def release(self, filename: str) -> None:
        """Drop an in-flight claim after a failed run."""
        async with self._lock:
            self._in_flight.discard(filename)

    async def known_filenames(self) -> List[str]:
        async with self._lock:
            return sorted(self._known)

    # === Persistence ===

    async def record(self, filename: str, entries_added: int) -> ProcessedFileRecord:
        """
        Upsert the ledger record and mark the file known.

        A second record for the same filename replaces ``entries_added`` and
        ``processed_at``; counts are not accumulated.

        Raises:
            StoreError: If the ledger write fails (the file stays unknown)
        """
        async with self._lock:
            try:
                record = await asyncio.to_thread(self._upsert, filename, entries_added)
            except SQLAlchemyError as e:
                raise StoreError(f"Failed to record processed file {filename}: {e}") from e
            self._known.add(filename)
            self._in_flight.discard(filename)
            return record

    async def get_record(self, filename: str) -> Optional[ProcessedFileRecord]:
        try:
            return await asyncio.to_thread(self._select_record, filename)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read ledger record for {filename}: {e}") from e

    async def list_records(self) -> List[ProcessedFileRecord]:
        """All ledger records, most recently processed first."""
        try:
            return await asyncio.to_thread(self._select_records)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list processed files: {e}") from e

    async def total_entries(self) -> int:
        """Sum of ``entries_added`` across the ledger."""
        try:
            return await asyncio.to_thread(self._sum_entries)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to sum ledger entries: {e}") from e

    def close(self) -> None:
        self.engine.dispose()

    # === Blocking helpers (run in a worker thread) ===

    def _select_filenames(self) -> List[str]:
        with Session(self.engine) as session:
            return list(session.exec(select(ProcessedFileEntry.filename)).all())

    def _select_record(self, filename: str) -> Optional[ProcessedFileRecord]:
        with Session(self.engine) as session:
            stmt = select(ProcessedFileEntry).where(ProcessedFileEntry.filename == filename)
            entry = session.exec(stmt).first()
            return entry.to_record() if entry else None

    def _select_records(self) -> List[ProcessedFileRecord]:
        with Session(self.engine) as session:
            stmt = select(ProcessedFileEntry).order_by(ProcessedFileEntry.processed_at.desc())
            return [entry.to_record() for entry in session.exec(stmt).all()]

    def _sum_entries(self) -> int:
        with Session(self.engine) as session:
            stmt = select(func.coalesce(func.sum(ProcessedFileEntry.entries_added), 0))
            return int(session.exec(stmt).one())

    def _upsert(self, filename: str, entries_added: int) -> ProcessedFileRecord:
        with Session(self.engine) as session:
            stmt = select(ProcessedFileEntry).where(ProcessedFileEntry.filename == filename)
            existing = session.exec(stmt).first()
            now = _utcnow()

            if existing:
                existing.entries_added = entries_added
                existing.processed_at = now
                session.add(existing)
                session.commit()
                session.refresh(existing)
                logger.debug(f"Updated ledger record: {filename} ({entries_added} entries)")
                return existing.to_record()

            entry = ProcessedFileEntry(filename=filename, entries_added=entries_added, processed_at=now)
            session.add(entry)
            session.commit()
            session.refresh(entry)
            logger.info(f"Recorded processed file: {filename} ({entries_added} entries)")
            return entry.to_record()


__all__ = ["ProcessedFileEntry", "ProcessedLedger"]
