"""Ingestion task lifecycle tracking.

Names the transitions an ingestion job goes through and records each one in
the task store:

    create ──→ start ──→ record_embedding_progress* ──→ succeed
                  │                  │
                  └──────────────────┴──────────────→ fail

Embedding is the slow stage, so it owns the first 70% of the progress bar
(``completed / total * 0.7``); indexing completes it.  The store rejects any
transition that would break the lifecycle (writes after a terminal state,
progress going backwards), so callers cannot corrupt a task by calling these
out of order.
"""

from __future__ import annotations

import structlog

from kbchat.interfaces.task_store import ITaskStore
from kbchat.models.task import TaskState, TaskStatus
from kbchat.utils.logging import get_logger

EMBEDDING_PROGRESS_SHARE = 0.7


class TaskLifecycle:
    """Drives :class:`TaskStatus` transitions for ingestion jobs.

    Parameters
    ----------
    store:
        The task store shared with the API layer.
    """

    def __init__(self, store: ITaskStore) -> None:
        self._store = store
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create(self, task_id: str) -> TaskStatus:
        """Register a new Pending task with progress 0.0."""
        task = await self._store.create(task_id)
        self._logger.info("task_pending", task_id=task_id)
        return task

    async def start(self, task_id: str) -> TaskStatus:
        """Move a Pending task to Processing."""
        task = await self._store.update(task_id, TaskState.PROCESSING)
        self._logger.info("task_processing", task_id=task_id)
        return task

    async def record_embedding_progress(
        self, task_id: str, completed: int, total: int
    ) -> TaskStatus:
        """Record that *completed* of *total* chunks have been embedded.

        Parameters
        ----------
        task_id:
            The task being processed.
        completed:
            Chunks embedded so far (1-based count).
        total:
            Total chunks in the job; must be positive.
        """
        progress = min(completed / total, 1.0) * EMBEDDING_PROGRESS_SHARE
        task = await self._store.update(task_id, TaskState.PROCESSING, progress=progress)
        self._logger.debug(
            "task_progress",
            task_id=task_id,
            completed=completed,
            total=total,
            progress=round(progress, 3),
        )
        return task

    async def succeed(self, task_id: str) -> TaskStatus:
        """Mark the task Succeeded with progress 1.0."""
        task = await self._store.update(task_id, TaskState.SUCCEEDED, progress=1.0)
        self._logger.info("task_succeeded", task_id=task_id)
        return task

    async def fail(self, task_id: str, message: str) -> TaskStatus:
        """Mark the task Failed, freezing its progress and recording *message*."""
        task = await self._store.update(task_id, TaskState.FAILED, error=message)
        self._logger.warning(
            "task_failed",
            task_id=task_id,
            error=message,
            progress=task.progress,
        )
        return task

    async def get(self, task_id: str) -> TaskStatus | None:
        """Return the current status of *task_id*, or ``None`` if unknown."""
        return await self._store.get(task_id)

    async def list_tasks(self) -> list[TaskStatus]:
        """Return every known task, oldest first."""
        return await self._store.list_tasks()
