"""Abstract base class for the ingestion task store.

The store maps task ids to :class:`~kbchat.models.task.TaskStatus`.  Writes
are atomic replacements of the frozen status object and go through
:meth:`TaskStatus.advance`, so a store can never hold a status that breaks
the task lifecycle.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from kbchat.models.task import TaskState, TaskStatus


# Concrete implementations: MemoryTaskStore (process-lifetime only)
# Located in: kbchat/providers/task_store/
class ITaskStore(ABC):
    """Contract for task status storage shared by the API and the workers."""

    @abstractmethod
    async def create(self, task_id: str) -> TaskStatus:
        """Insert a new Pending task with progress 0.0.

        Raises
        ------
        kbchat.utils.errors.TaskStateError
            If *task_id* already exists.
        """

    @abstractmethod
    async def get(self, task_id: str) -> TaskStatus | None:
        """Return the current status of *task_id*, or ``None`` if unknown."""

    @abstractmethod
    async def update(
        self,
        task_id: str,
        status: TaskState,
        progress: float | None = None,
        error: str | None = None,
    ) -> TaskStatus:
        """Apply a transition to *task_id* and return the new status.

        Raises
        ------
        kbchat.utils.errors.TaskNotFoundError
            If *task_id* does not exist.
        kbchat.utils.errors.TaskStateError
            If the transition is not allowed.
        """

    @abstractmethod
    async def list_tasks(self) -> list[TaskStatus]:
        """Return all tasks, oldest first."""
