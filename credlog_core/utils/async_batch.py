"""
Async batch processing utilities for concurrent operations.

Provides a bounded worker pool fed by a bounded queue, plus a helper for
processing a known list of items with a concurrency limit.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from credlog_core.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar('T')
R = TypeVar('R')


async def process_batch_concurrent(
    items: list[T],
    process_func: Callable[[T], Awaitable[R]],
    max_concurrent: int = 5,
    return_exceptions: bool = True
) -> list[Any]:
    """
    Process items concurrently with configurable concurrency limit.

    Args:
        items: List of items to process
        process_func: Async function to process each item
        max_concurrent: Maximum concurrent operations (default 5)
        return_exceptions: If True, exceptions are returned instead of raised

    Returns:
        Results in input order (or exceptions if return_exceptions=True)

    Example:
        >>> results = await process_batch_concurrent(
        ...     paths,
        ...     coordinator.ingest_path,
        ...     max_concurrent=4
        ... )
    """
    if not items:
        return []

    semaphore = asyncio.Semaphore(max_concurrent)

    async def process_with_semaphore(item: T) -> Any:
        async with semaphore:
            try:
                return await process_func(item)
            except Exception as e:
                logger.error(f"Error processing {item}: {e}")
                if return_exceptions:
                    return e
                raise

    return await asyncio.gather(*[process_with_semaphore(item) for item in items])


class WorkerPool(Generic[T]):
    """
    Fixed number of worker tasks draining a bounded queue.

    Producers wait in ``submit`` when the queue is full. Each item is checked
    against the shared cancellation event before its handler runs; handler
    failures are logged and never stop the worker.

    Example:
        >>> pool = WorkerPool(handle_file, max_workers=4, queue_size=256)
        >>> await pool.start()
        >>> await pool.submit(job)
        >>> await pool.join()
        >>> await pool.stop()
    """

    def __init__(
        self,
        handler: Callable[[T], Awaitable[Any]],
        max_workers: int = 4,
        queue_size: int = 256,
        cancel_event: Optional[asyncio.Event] = None,
        name: str = "worker"
    ):
        self.handler = handler
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.cancel_event = cancel_event or asyncio.Event()
        self.name = name
        self._queue: Optional[asyncio.Queue] = None
        self._workers: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    async def start(self) -> None:
        if self._workers:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._workers = [
            asyncio.create_task(self._run(index), name=f"{self.name}-{index}")
            for index in range(self.max_workers)
        ]
        logger.debug(f"Started {self.max_workers} {self.name} tasks (queue size {self.queue_size})")

    async def submit(self, item: T) -> None:
        """Queue an item, waiting while the queue is full."""
        if self._queue is None:
            raise RuntimeError(f"{self.name} pool is not started")
        await self._queue.put(item)

    async def join(self) -> None:
        """Wait until every queued item has been handled."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        """Cancel all workers. Safe to call more than once."""
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
            logger.debug(f"Stopped {len(workers)} {self.name} tasks")

    async def _run(self, index: int) -> None:
        assert self._queue is not None
        while True:
            item = await self._queue.get()
            try:
                if self.cancel_event.is_set():
                    logger.info(f"{self.name}-{index}: cancelled, dropping {item}")
                    continue
                await self.handler(item)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"{self.name}-{index}: unhandled error for {item}: {e}")
            finally:
                self._queue.task_done()


__all__ = ["process_batch_concurrent", "WorkerPool"]
