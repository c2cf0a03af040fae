"""Ingestion task status models.

Every upload gets a :class:`TaskStatus` that clients poll.  The model is
frozen; :meth:`TaskStatus.advance` is the only way to derive the next status
and it enforces the lifecycle:

    Pending ──→ Processing ──→ Succeeded
       │             │
       └─────────────┴──────→ Failed

Terminal states (Succeeded, Failed) accept no further writes, progress never
decreases, and ``error`` is set exactly when the status is Failed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from kbchat.utils.errors import TaskStateError


class TaskState(str, Enum):  # noqa: UP042
    """Lifecycle states of an ingestion task."""

    PENDING = "Pending"
    PROCESSING = "Processing"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.SUCCEEDED, TaskState.FAILED)


_ALLOWED_TRANSITIONS: dict[TaskState, frozenset[TaskState]] = {
    TaskState.PENDING: frozenset({TaskState.PROCESSING, TaskState.FAILED}),
    TaskState.PROCESSING: frozenset(
        {TaskState.PROCESSING, TaskState.SUCCEEDED, TaskState.FAILED}
    ),
    TaskState.SUCCEEDED: frozenset(),
    TaskState.FAILED: frozenset(),
}


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class TaskStatus(BaseModel):
    """Observable status of one ingestion task."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Task identifier returned by the upload endpoint.")
    status: TaskState = Field(default=TaskState.PENDING)
    progress: float | None = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Completion fraction in [0, 1].",
    )
    error: str | None = Field(default=None, description="Failure message, set only when Failed.")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def advance(
        self,
        status: TaskState,
        progress: float | None = None,
        error: str | None = None,
    ) -> TaskStatus:
        """Return the status that results from moving to *status*.

        Parameters
        ----------
        status:
            Target state.
        progress:
            New progress value.  ``None`` keeps the current value; on
            Failed the current value is always kept.
        error:
            Failure message.  Required for Failed, rejected otherwise.

        Raises
        ------
        TaskStateError
            If the transition, progress value, or error field would break
            the lifecycle rules.
        """
        if self.status.is_terminal:
            raise TaskStateError(
                f"Task {self.id} is already {self.status.value}; no further updates allowed"
            )
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise TaskStateError(
                f"Task {self.id} cannot move from {self.status.value} to {status.value}"
            )

        if status is TaskState.FAILED:
            if not error:
                raise TaskStateError(f"Task {self.id} cannot fail without an error message")
            return self.model_copy(
                update={"status": status, "error": error, "updated_at": _utcnow()}
            )

        if error is not None:
            raise TaskStateError(f"Task {self.id}: error is only valid for Failed")

        new_progress = self.progress if progress is None else progress
        if new_progress is not None:
            if not 0.0 <= new_progress <= 1.0:
                raise TaskStateError(f"Task {self.id}: progress {new_progress} outside [0, 1]")
            if self.progress is not None and new_progress < self.progress:
                raise TaskStateError(
                    f"Task {self.id}: progress cannot decrease "
                    f"({self.progress} -> {new_progress})"
                )

        return self.model_copy(
            update={"status": status, "progress": new_progress, "updated_at": _utcnow()}
        )
