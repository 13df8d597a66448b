"""
Directory watching for newly arriving dump files.

Live monitoring uses a watchdog observer thread; its events are marshalled
onto the asyncio loop that called ``start`` before the delivery callback runs.
Files present before ``start`` never produce events, so they are enumerated
once and delivered first.
"""
from __future__ import annotations

import asyncio
import inspect
from pathlib import Path
from typing import Any, Callable, List, Optional, Set, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from credlog_core.errors import DirectoryError
from credlog_core.security.validation import validate_file_type
from credlog_core.utils.logger import get_logger

logger = get_logger(__name__)

# Called with (path, live). ``live`` is False for files found by the initial sweep.
DeliveryCallback = Callable[[Path, bool], Any]


def list_candidates(directory: Path, suffix: str = ".txt") -> List[Path]:
    """
    Candidate files directly inside ``directory``, sorted by name.

    A missing directory has no candidates.

    Raises:
        DirectoryError: If the directory exists but cannot be listed
    """
    if not directory.is_dir():
        return []
    try:
        return sorted(
            path for path in directory.iterdir()
            if path.is_file() and validate_file_type(path, [suffix])
        )
    except OSError as e:
        raise DirectoryError(f"Failed to read directory {directory}: {e}") from e


class _CreatedFileHandler(FileSystemEventHandler):
    """Forward create (and rename-into) events for candidate files."""

    def __init__(self, watcher: "DirectoryWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher._from_observer(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # writers that rename a finished temp file into place
        if not event.is_directory:
            self.watcher._from_observer(event.dest_path)


class DirectoryWatcher:
    """
    Deliver each candidate file in one directory exactly once.

    Example:
        >>> watcher = DirectoryWatcher(Path("./data"), on_file=handle, suffix=".txt")
        >>> await watcher.start()
        >>> ...
        >>> watcher.stop()
    """

    def __init__(
        self,
        directory: Union[str, Path],
        on_file: DeliveryCallback,
        suffix: str = ".txt"
    ):
        self.directory = Path(directory)
        self.on_file = on_file
        self.suffix = suffix
        self._observer: Optional[Observer] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._delivered: Set[str] = set()
        self._pending: Set[asyncio.Future] = set()

    @property
    def active(self) -> bool:
        return self._observer is not None

    def list_candidates(self) -> List[Path]:
        """Candidate files currently in the directory, sorted by name."""
        return list_candidates(self.directory, self.suffix)

    async def start(self) -> List[Path]:
        """
        Create the directory if needed, register the watch and deliver
        pre-existing files.

        Returns:
            Pre-existing candidate files found by the initial sweep

        Raises:
            DirectoryError: If the directory cannot be created or watched
        """
        if self.active:
            return []

        logger.info(f"Starting directory watcher: {self.directory}")
        self._ensure_directory()
        self._loop = asyncio.get_running_loop()

        observer = Observer()
        try:
            observer.schedule(_CreatedFileHandler(self), str(self.directory), recursive=False)
            observer.start()
        except OSError as e:
            raise DirectoryError(f"Failed to watch directory {self.directory}: {e}") from e
        self._observer = observer

        existing = self.list_candidates()
        if existing:
            logger.info(f"Found {len(existing)} existing files in {self.directory}")
        for path in existing:
            self._deliver(path, live=False)
        return existing

    def stop(self) -> None:
        """Stop live monitoring. Safe to call more than once."""
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=5.0)
        logger.info(f"Stopped directory watcher: {self.directory}")

    def _ensure_directory(self) -> None:
        if self.directory.is_dir():
            return
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DirectoryError(f"Failed to create directory {self.directory}: {e}") from e
        logger.info(f"Created directory: {self.directory}")

    def _from_observer(self, raw_path: Union[str, bytes]) -> None:
        # observer thread
        path = Path(raw_path.decode() if isinstance(raw_path, bytes) else raw_path)
        if not validate_file_type(path, [self.suffix]):
            return
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._deliver, path, True)
        except RuntimeError:
            logger.debug(f"Event loop closed, ignoring {path.name}")

    def _deliver(self, path: Path, live: bool) -> None:
        if path.name in self._delivered:
            return
        self._delivered.add(path.name)
        logger.debug(f"Discovered {'new' if live else 'existing'} file: {path.name}")

        result = self.on_file(path, live)
        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            self._pending.add(future)
            future.add_done_callback(self._pending.discard)


__all__ = ["DirectoryWatcher", "DeliveryCallback", "list_candidates"]
