"""
Batched, transactional insertion of parsed credential triples.

One writer serves one file run on one leased connection. Entries are buffered
and committed in atomic batches; a failed batch stops the run and only the
entries of earlier batches count as added.
"""
from __future__ import annotations

import asyncio
from datetime import date
from typing import Iterable, List, Optional

import aiosqlite

from credlog_core.errors import BatchFlushError, IngestionTimeout
from credlog_core.models.common import ParsedTriple
from credlog_core.storage.sqlite import INSERT_ENTRY_SQL
from credlog_core.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 1000


class BatchWriter:
    """
    Buffer triples and commit them in bounded atomic batches.

    The ``created`` date is computed once when the writer is built and stamped
    on every entry it writes. The cancellation event is checked before every
    flush.

    Example:
        >>> async with store.lease() as conn:
        ...     writer = BatchWriter(conn, batch_size=1000, label="dump_001.txt")
        ...     await writer.extend(triples)
        ...     added = await writer.finish()
    """

    def __init__(
        self,
        conn: aiosqlite.Connection,
        batch_size: int = DEFAULT_BATCH_SIZE,
        cancel_event: Optional[asyncio.Event] = None,
        progress_every: int = 10000,
        label: str = "",
        created: Optional[str] = None
    ):
        self.conn = conn
        self.batch_size = batch_size
        self.cancel_event = cancel_event
        self.progress_every = progress_every
        self.label = label
        self.created = created or date.today().isoformat()
        self.committed = 0
        self._buffer: List[tuple[str, str, str, str]] = []

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    async def add(self, triple: ParsedTriple) -> None:
        self._buffer.append(triple.as_row(self.created))
        if len(self._buffer) >= self.batch_size:
            await self.flush()

    async def extend(self, triples: Iterable[ParsedTriple]) -> None:
        for triple in triples:
            await self.add(triple)

    async def flush(self) -> int:
        """
        Commit the buffered entries as one transaction.

        Returns:
            Number of entries committed by this flush

        Raises:
            IngestionTimeout: If the run was cancelled before the flush
            BatchFlushError: If the batch could not be committed; it carries the
                count committed by earlier batches
        """
        if not self._buffer:
            return 0
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise IngestionTimeout(
                f"Ingestion of {self.label or 'file'} cancelled after {self.committed} entries",
                committed=self.committed,
            )

        batch, self._buffer = self._buffer, []
        try:
            await self.conn.executemany(INSERT_ENTRY_SQL, batch)
            await self.conn.commit()
        except aiosqlite.Error as e:
            await self.conn.rollback()
            raise BatchFlushError(
                f"Batch execution failed for {self.label or 'file'}: {e}",
                committed=self.committed,
            ) from e

        before = self.committed
        self.committed += len(batch)
        if self.committed // self.progress_every > before // self.progress_every:
            logger.info(f"{self.label}: processed {self.committed} entries so far")
        return len(batch)

    async def finish(self) -> int:
        """Flush the final partial batch and return the total committed."""
        await self.flush()
        return self.committed


async def write_triples(
    conn: aiosqlite.Connection,
    triples: Iterable[ParsedTriple],
    batch_size: int = DEFAULT_BATCH_SIZE,
    cancel_event: Optional[asyncio.Event] = None,
    label: str = ""
) -> int:
    """Write an iterable of triples and return the number committed."""
    writer = BatchWriter(conn, batch_size=batch_size, cancel_event=cancel_event, label=label)
    await writer.extend(triples)
    return await writer.finish()


__all__ = ["BatchWriter", "write_triples", "DEFAULT_BATCH_SIZE"]
