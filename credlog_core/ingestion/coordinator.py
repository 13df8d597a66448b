"""
Ingestion coordination module.

Ties the watcher, the worker pool, the batch writer and the ledger together
and exposes the operations consumed by an external API layer: directory
import, single-file processing, watcher status, processed-file listing and
duplicate resolution.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Union

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeRemainingColumn
from rich.table import Table

from credlog_core.errors import (
    CredlogError,
    DirectoryError,
    IngestionInProgress,
    IngestionTimeout,
    SourceFileError,
)
from credlog_core.extractors import LineParser, read_triples, take
from credlog_core.ingestion.batch_writer import BatchWriter
from credlog_core.ingestion.context import IngestionContext
from credlog_core.ingestion.watcher import DirectoryWatcher, list_candidates
from credlog_core.models import IngestionJob
from credlog_core.security import validate_path
from credlog_core.storage import (
    DuplicateReport,
    DuplicateResolver,
    IngestionReport,
    ProcessedFileRecord,
    WatcherStatus,
)
from credlog_core.utils import WorkerPool, get_logger, process_batch_concurrent

logger = get_logger(__name__)
console = Console()


@dataclass
class FileRun:
    """Progress holder for one file run, readable after a timeout."""

    path: Path
    writer: Optional[BatchWriter] = None

    @property
    def committed(self) -> int:
        return self.writer.committed if self.writer is not None else 0


class IngestionCoordinator:
    """
    Watches one directory and ingests every new dump file exactly once.

    Features:
    - Initial sweep plus live monitoring of the watched directory
    - Bounded worker pool fed by a bounded queue
    - Per-file and per-directory time budgets
    - Ledger-based idempotency across restarts
    - Rich summary output for directory imports

    Example:
        >>> async with await IngestionContext.open() as context:
        ...     coordinator = IngestionCoordinator(context)
        ...     await coordinator.start()
        ...     report = await coordinator.import_directory()
        ...     coordinator.display_summary(report)
        ...     await coordinator.stop()
    """

    def __init__(self, context: IngestionContext, parser: Optional[LineParser] = None):
        """
        Initialize coordinator.

        Args:
            context: Shared store, ledger, settings and cancellation token
            parser: Line parser used for every file (default matcher chain)
        """
        self.context = context
        self.parser = parser or LineParser()
        self.settings = context.settings
        self.directory = Path(self.settings.watcher.directory)
        self.suffix = self.settings.watcher.suffix
        self.resolver = DuplicateResolver(context.store)
        self.watcher: Optional[DirectoryWatcher] = None

        ingestion = self.settings.ingestion
        self.pool: WorkerPool[IngestionJob] = WorkerPool(
            self._handle_job,
            max_workers=ingestion.max_workers,
            queue_size=ingestion.queue_size,
            cancel_event=context.cancel_event,
            name="ingest",
        )
        self._background: set[asyncio.Task] = set()

    # === Lifecycle ===

    async def start(self, directory: Optional[Union[str, Path]] = None) -> None:
        """
        Start the workers and the directory watcher.

        Files already in the directory are queued before live events.

        Raises:
            DirectoryError: If the directory cannot be created or watched
        """
        if directory is not None:
            self.directory = Path(directory)
        if self.watcher is not None and self.watcher.active:
            return

        await self.pool.start()
        self.watcher = DirectoryWatcher(self.directory, self._on_discovered, suffix=self.suffix)
        try:
            await self.watcher.start()
        except DirectoryError:
            await self.pool.stop()
            raise
        logger.info(f"Log watcher started for directory: {self.directory}")

    async def stop(self) -> None:
        """Stop watching, cancel in-flight runs and stop the workers."""
        if self.watcher is not None:
            self.watcher.stop()
        self.context.cancel()
        await self.pool.stop()

        tasks, self._background = self._background, set()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Ingestion coordinator stopped")

    async def serve_forever(self, directory: Optional[Union[str, Path]] = None) -> None:
        """Start and keep running until the cancellation token is set."""
        await self.start(directory)
        try:
            await self.context.cancel_event.wait()
        finally:
            await self.stop()

    # === Watch-triggered ingestion ===

    async def _on_discovered(self, path: Path, live: bool) -> None:
        if not await self.context.ledger.claim(path.name):
            logger.debug(f"Skipping already processed file: {path.name}")
            return
        await self.pool.submit(IngestionJob(path, settle=live))

    async def _handle_job(self, job: IngestionJob) -> None:
        if job.settle:
            # let the writer finish; no completeness check beyond this
            await asyncio.sleep(self.settings.watcher.settle_delay_seconds)

        logger.info(f"Processing new log file: {job.filename}")
        try:
            count = await self._ingest_claimed(job.path, self.settings.ingestion.file_timeout_seconds)
        except CredlogError as e:
            committed = getattr(e, "committed", 0)
            logger.error(
                f"Error processing new log file {job.filename}: {e} "
                f"({committed} entries committed before failure)"
            )
            return
        logger.info(f"Successfully processed new log file {job.filename}: {count} entries added")

    # === File runs ===

    async def _ingest_claimed(self, path: Path, timeout: float) -> int:
        """
        Run one claimed file under a time budget and record it in the ledger.

        The claim is released when no record was written.
        """
        run = FileRun(path)
        recorded = False
        try:
            try:
                count = await asyncio.wait_for(self._ingest_file(run), timeout=timeout)
            except IngestionTimeout:
                raise
            except asyncio.TimeoutError as e:
                raise IngestionTimeout(
                    f"Processing {path.name} exceeded {timeout:.0f}s",
                    committed=run.committed,
                ) from e

            await self.context.ledger.record(path.name, count)
            recorded = True
            return count
        finally:
            if not recorded:
                await self.context.ledger.release(path.name)

    async def _ingest_file(self, run: FileRun) -> int:
        """Parse a file and insert its entries in batches."""
        path = run.path
        if self.context.cancelled:
            raise IngestionTimeout(f"Ingestion of {path.name} cancelled before start")

        ingestion = self.settings.ingestion
        try:
            handle = open(path, "rb")
        except OSError as e:
            raise SourceFileError(f"Failed to open file {path}: {e}") from e

        with handle:
            triples = read_triples(handle, self.parser)
            async with self.context.store.lease() as conn:
                writer = BatchWriter(
                    conn,
                    batch_size=ingestion.batch_size,
                    cancel_event=self.context.cancel_event,
                    progress_every=ingestion.progress_every,
                    label=path.name,
                )
                run.writer = writer
                while True:
                    try:
                        chunk = await asyncio.to_thread(take, triples, ingestion.batch_size)
                    except OSError as e:
                        raise SourceFileError(f"Failed to read file {path}: {e}") from e
                    if not chunk:
                        break
                    await writer.extend(chunk)
                return await writer.finish()

    def _resolve_request(self, path: Union[str, Path]) -> Path:
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        resolved = self.directory / candidate
        if not validate_path(resolved, self.directory):
            raise SourceFileError(f"File outside watched directory: {path}")
        return resolved

    async def process_single_file(self, path: Union[str, Path]) -> int:
        """
        Ingest one file on request.

        A file already in the ledger is not re-read; its recorded count is
        returned instead. Relative paths are resolved inside the watched
        directory.

        Args:
            path: File path, or a filename inside the watched directory

        Returns:
            Number of entries added

        Raises:
            SourceFileError: If the file does not exist or cannot be read
            IngestionInProgress: If a run for the same filename is in flight
            StoreError: If a batch flush or the ledger write failed
            IngestionTimeout: If the run exceeded its time budget or was cancelled
        """
        file_path = self._resolve_request(path)
        ledger = self.context.ledger

        if not await ledger.claim(file_path.name):
            record = await ledger.get_record(file_path.name)
            if record is not None:
                logger.info(f"File {file_path.name} was already processed with {record.entries_added} entries")
                return record.entries_added
            if await ledger.is_known(file_path.name):
                logger.warning(f"File {file_path.name} is known but has no ledger record")
                return 0
            raise IngestionInProgress(f"File {file_path.name} is already being processed")

        if not file_path.is_file():
            await ledger.release(file_path.name)
            raise SourceFileError(f"File not found: {file_path}")

        logger.info(f"Manually processing log file: {file_path.name}")
        return await self._ingest_claimed(file_path, self.settings.ingestion.file_timeout_seconds)

    # === Directory import ===

    async def import_directory(
        self,
        directory: Optional[Union[str, Path]] = None,
        show_progress: bool = False
    ) -> IngestionReport:
        """
        Ingest every unprocessed candidate file in a directory.

        Per-file failures are logged and reported; the remaining files are
        still processed.

        Args:
            directory: Directory to import (default: the watched directory)
            show_progress: Whether to show a progress bar (default: False)

        Returns:
            Ingestion report with statistics

        Raises:
            DirectoryError: If the directory does not exist or cannot be read
            IngestionTimeout: If the whole import exceeded its time budget
        """
        start_time = time.time()
        directory = Path(directory) if directory is not None else self.directory
        if not directory.is_dir():
            raise DirectoryError(f"Directory not found: {directory}")

        candidates = list_candidates(directory, self.suffix)
        logger.info(f"Found {len(candidates)} log files in {directory}")

        claimed: List[Path] = []
        for path in candidates:
            if await self.context.ledger.claim(path.name):
                claimed.append(path)
            else:
                logger.debug(f"Skipping already processed file: {path.name}")
        skipped = len(candidates) - len(claimed)

        ingestion = self.settings.ingestion
        results = await self._run_import(claimed, ingestion.directory_timeout_seconds, show_progress)

        report = self.generate_report(claimed, results, skipped, start_time)
        logger.info(
            f"Directory import finished: {report.total_entries} entries from "
            f"{len(report.files_processed)} files ({report.errors} errors, {skipped} skipped)"
        )
        return report

    async def _run_import(self, paths: List[Path], timeout: float, show_progress: bool) -> List[Any]:
        if not paths:
            return []

        file_timeout = self.settings.ingestion.file_timeout_seconds
        max_workers = self.settings.ingestion.max_workers
        counts: dict[str, int] = {}

        async def run_one(path: Path, progress: Optional[Progress] = None, task_id: Any = None) -> int:
            try:
                count = await self._ingest_claimed(path, file_timeout)
                counts[path.name] = count
                return count
            finally:
                if progress is not None:
                    progress.update(task_id, advance=1)

        try:
            if show_progress:
                with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    BarColumn(),
                    TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                    TimeRemainingColumn(),
                    console=console
                ) as progress:
                    task_id = progress.add_task("Importing log files...", total=len(paths))
                    return await asyncio.wait_for(
                        process_batch_concurrent(
                            paths,
                            lambda path: run_one(path, progress, task_id),
                            max_concurrent=max_workers,
                        ),
                        timeout=timeout,
                    )
            return await asyncio.wait_for(
                process_batch_concurrent(paths, run_one, max_concurrent=max_workers),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise IngestionTimeout(
                f"Directory import exceeded {timeout:.0f}s after {len(counts)} files",
                committed=sum(counts.values()),
            ) from e

    def generate_report(
        self,
        paths: List[Path],
        results: List[Any],
        skipped: int,
        start_time: float
    ) -> IngestionReport:
        """
        Generate an import report from per-file results.

        Args:
            paths: Files that were attempted, in result order
            results: Entry count or exception per attempted file
            skipped: Candidates already in the ledger
            start_time: Start time of the import (time.time())
        """
        duration = time.time() - start_time

        total_entries = 0
        processed_files = []
        error_files = []

        for path, result in zip(paths, results):
            if isinstance(result, BaseException):
                error_files.append({
                    "file": path.name,
                    "error": str(result) or type(result).__name__
                })
            else:
                total_entries += result
                processed_files.append(path.name)

        return IngestionReport(
            total_files=len(paths) + skipped,
            skipped_files=skipped,
            total_entries=total_entries,
            errors=len(error_files),
            duration_seconds=duration,
            files_processed=processed_files,
            error_files=error_files
        )

    def trigger_directory_import(self, directory: Optional[Union[str, Path]] = None) -> asyncio.Task:
        """
        Start a directory import in the background and return immediately.

        Failures are logged; the returned task can be awaited for the report.
        """
        task = asyncio.create_task(self.import_directory(directory), name="directory-import")
        self._background.add(task)
        task.add_done_callback(self._import_done)
        return task

    def _import_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Failed to parse logs: {error}")
        else:
            logger.info("Directory import completed successfully")

    def display_summary(self, report: IngestionReport) -> None:
        """
        Display summary table with Rich formatting.

        Args:
            report: Ingestion report
        """
        table = Table(title="Import Summary")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Candidate Files", str(report.total_files))
        table.add_row("Already Processed", str(report.skipped_files))
        table.add_row("Entries Added", str(report.total_entries))
        table.add_row(
            "Errors",
            str(report.errors),
            style="red" if report.errors > 0 else "green"
        )
        table.add_row("Duration", f"{report.duration_seconds:.2f}s")
        table.add_row("Success Rate", f"{report.success_rate:.1f}%")
        table.add_row("Avg Entries/File", f"{report.entries_per_file:.1f}")

        console.print(table)

    # === Queries ===

    async def query_watcher_status(self) -> WatcherStatus:
        """Current candidate files and the filenames known to the ledger."""
        files = [path.name for path in list_candidates(self.directory, self.suffix)]
        return WatcherStatus(
            watching=str(self.directory),
            watcher_active=self.watcher is not None and self.watcher.active,
            files=files,
            processed_filenames=await self.context.ledger.known_filenames(),
        )

    async def list_processed_files(self) -> List[ProcessedFileRecord]:
        """Ledger records, most recently processed first."""
        return await self.context.ledger.list_records()

    async def total_records(self) -> int:
        """Total entries added according to the ledger."""
        return await self.context.ledger.total_entries()

    async def list_duplicates(self, remove: bool = False) -> DuplicateReport:
        """
        Report duplicate entries, optionally deleting them.

        Raises:
            StoreError: If the query or the delete transaction failed
        """
        report = await self.resolver.resolve(remove=remove)
        if remove:
            logger.info(f"Removed {report.removed} duplicate entries")
        else:
            logger.info(f"Found {report.found} duplicate entries")
        return report


__all__ = ["IngestionCoordinator", "FileRun"]
