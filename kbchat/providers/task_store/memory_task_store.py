"""In-memory task store.

Suitable for the single-process deployment kbchat targets: tasks live for
the lifetime of the process and are never evicted.  Could be swapped for a
Redis-backed store via the ITaskStore interface.
"""

from __future__ import annotations

import asyncio

import structlog

from kbchat.interfaces.task_store import ITaskStore
from kbchat.models.task import TaskState, TaskStatus
from kbchat.utils.errors import TaskNotFoundError, TaskStateError

logger = structlog.get_logger(logger_name=__name__)


class MemoryTaskStore(ITaskStore):
    """Dict-backed task store with serialized writes.

    Reads take no lock and always see a complete :class:`TaskStatus`, since
    each write swaps in a whole new frozen object.  Writes are serialized by
    an ``asyncio.Lock`` so two transitions on the same task cannot interleave
    their read-check-replace steps.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, TaskStatus] = {}
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # ITaskStore implementation
    # ------------------------------------------------------------------

    async def create(self, task_id: str) -> TaskStatus:
        async with self._write_lock:
            if task_id in self._tasks:
                raise TaskStateError(f"Task {task_id} already exists")
            task = TaskStatus(id=task_id)
            self._tasks[task_id] = task
        logger.debug("task_created", task_id=task_id)
        return task

    async def get(self, task_id: str) -> TaskStatus | None:
        return self._tasks.get(task_id)

    async def update(
        self,
        task_id: str,
        status: TaskState,
        progress: float | None = None,
        error: str | None = None,
    ) -> TaskStatus:
        async with self._write_lock:
            current = self._tasks.get(task_id)
            if current is None:
                raise TaskNotFoundError(f"Task {task_id} not found")
            updated = current.advance(status, progress=progress, error=error)
            self._tasks[task_id] = updated
        logger.debug(
            "task_updated",
            task_id=task_id,
            status=updated.status.value,
            progress=updated.progress,
        )
        return updated

    async def list_tasks(self) -> list[TaskStatus]:
        return sorted(self._tasks.values(), key=lambda task: task.created_at)

    def __len__(self) -> int:
        return len(self._tasks)
