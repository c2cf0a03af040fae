"""Bounded worker pool for out-of-band ingestion jobs.

The upload endpoint must answer immediately, so ingestion runs in the
background.  Instead of an unbounded ``BackgroundTasks`` fan-out, jobs go
into an ``asyncio.Queue`` with a fixed capacity drained by a fixed number of
worker tasks:

- at most ``workers`` jobs run at once (embedding and indexing are the
  expensive calls, and both upstream servers are small);
- at most ``max_pending`` jobs wait; beyond that :meth:`submit` raises
  :class:`QueueFullError` and the API answers 503.

A job that raises is logged and the worker moves on to the next one.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from kbchat.utils.errors import QueueFullError
from kbchat.utils.logging import bound_context, get_logger

Job = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class _QueuedJob:
    task_id: str
    job: Job


class IngestionJobQueue:
    """Fixed-size pool of workers consuming a bounded job queue.

    Parameters
    ----------
    workers:
        Number of concurrent worker tasks.
    max_pending:
        Queue capacity; jobs beyond it are rejected.
    """

    def __init__(self, workers: int = 4, max_pending: int = 100) -> None:
        self._worker_count = max(1, workers)
        self._queue: asyncio.Queue[_QueuedJob] = asyncio.Queue(maxsize=max(1, max_pending))
        self._workers: list[asyncio.Task[None]] = []
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Spawn the worker tasks on the running event loop (idempotent)."""
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(idx), name=f"ingestion-worker-{idx}")
            for idx in range(self._worker_count)
        ]
        self._logger.info(
            "ingestion_workers_started",
            workers=self._worker_count,
            capacity=self._queue.maxsize,
        )

    async def stop(self) -> None:
        """Cancel all workers; queued jobs that have not started are dropped."""
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        dropped = self._queue.qsize()
        self._workers = []
        self._logger.info("ingestion_workers_stopped", dropped_jobs=dropped)

    async def join(self) -> None:
        """Wait until every submitted job has finished."""
        await self._queue.join()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, task_id: str, job: Job) -> None:
        """Enqueue *job* for *task_id* without waiting.

        Raises
        ------
        QueueFullError
            If the queue is at capacity.
        """
        try:
            self._queue.put_nowait(_QueuedJob(task_id=task_id, job=job))
        except asyncio.QueueFull as exc:
            self._logger.warning("ingestion_queue_full", task_id=task_id, pending=self.pending)
            raise QueueFullError() from exc
        self._logger.debug("ingestion_job_queued", task_id=task_id, pending=self.pending)

    def is_full(self) -> bool:
        return self._queue.full()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return bool(self._workers)

    # ------------------------------------------------------------------
    # Worker loop
    # ------------------------------------------------------------------

    async def _worker(self, idx: int) -> None:
        while True:
            queued = await self._queue.get()
            try:
                with bound_context(task_id=queued.task_id):
                    await queued.job()
            except Exception as exc:
                self._logger.error(
                    "ingestion_job_crashed",
                    worker=idx,
                    task_id=queued.task_id,
                    error=str(exc),
                    exc_info=exc,
                )
            finally:
                self._queue.task_done()
