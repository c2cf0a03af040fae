"""Unit tests for TaskStatus transitions and the in-memory task store."""

from __future__ import annotations

import asyncio

import pytest

from kbchat.models.task import TaskState, TaskStatus
from kbchat.providers.task_store.memory_task_store import MemoryTaskStore
from kbchat.utils.errors import TaskNotFoundError, TaskStateError


class TestTaskStatusAdvance:
    def test_new_task_is_pending_at_zero(self) -> None:
        task = TaskStatus(id="t1")

        assert task.status is TaskState.PENDING
        assert task.progress == 0.0
        assert task.error is None

    def test_happy_path(self) -> None:
        task = TaskStatus(id="t1")
        task = task.advance(TaskState.PROCESSING)
        task = task.advance(TaskState.PROCESSING, progress=0.35)
        task = task.advance(TaskState.SUCCEEDED, progress=1.0)

        assert task.status is TaskState.SUCCEEDED
        assert task.progress == 1.0

    def test_advance_returns_new_object(self) -> None:
        task = TaskStatus(id="t1")
        moved = task.advance(TaskState.PROCESSING)

        assert task.status is TaskState.PENDING
        assert moved.status is TaskState.PROCESSING
        assert moved.updated_at >= task.updated_at

    def test_pending_can_fail_directly(self) -> None:
        task = TaskStatus(id="t1").advance(TaskState.FAILED, error="queue full")

        assert task.status is TaskState.FAILED
        assert task.error == "queue full"

    def test_failed_keeps_progress(self) -> None:
        task = TaskStatus(id="t1").advance(TaskState.PROCESSING, progress=0.35)
        failed = task.advance(TaskState.FAILED, progress=0.9, error="boom")

        assert failed.progress == 0.35

    @pytest.mark.parametrize("terminal", [TaskState.SUCCEEDED, TaskState.FAILED])
    def test_terminal_states_reject_updates(self, terminal: TaskState) -> None:
        task = TaskStatus(id="t1").advance(TaskState.PROCESSING)
        error = "x" if terminal is TaskState.FAILED else None
        task = task.advance(terminal, error=error)

        assert task.status.is_terminal
        with pytest.raises(TaskStateError):
            task.advance(TaskState.PROCESSING)

    def test_pending_cannot_succeed_directly(self) -> None:
        with pytest.raises(TaskStateError):
            TaskStatus(id="t1").advance(TaskState.SUCCEEDED)

    def test_progress_cannot_decrease(self) -> None:
        task = TaskStatus(id="t1").advance(TaskState.PROCESSING, progress=0.5)

        with pytest.raises(TaskStateError):
            task.advance(TaskState.PROCESSING, progress=0.4)

    @pytest.mark.parametrize("progress", [-0.1, 1.5])
    def test_progress_out_of_range(self, progress: float) -> None:
        task = TaskStatus(id="t1").advance(TaskState.PROCESSING)

        with pytest.raises(TaskStateError):
            task.advance(TaskState.PROCESSING, progress=progress)

    def test_failed_requires_error(self) -> None:
        with pytest.raises(TaskStateError):
            TaskStatus(id="t1").advance(TaskState.FAILED)

    def test_error_only_for_failed(self) -> None:
        with pytest.raises(TaskStateError):
            TaskStatus(id="t1").advance(TaskState.PROCESSING, error="nope")

    def test_serialises_status_names(self) -> None:
        data = TaskStatus(id="t1").model_dump(mode="json")

        assert data["status"] == "Pending"
        assert data["progress"] == 0.0


class TestMemoryTaskStore:
    @pytest.mark.asyncio
    async def test_create_and_get(self, task_store: MemoryTaskStore) -> None:
        created = await task_store.create("t1")
        fetched = await task_store.get("t1")

        assert fetched == created
        assert len(task_store) == 1

    @pytest.mark.asyncio
    async def test_get_unknown_returns_none(self, task_store: MemoryTaskStore) -> None:
        assert await task_store.get("missing") is None

    @pytest.mark.asyncio
    async def test_duplicate_create_rejected(self, task_store: MemoryTaskStore) -> None:
        await task_store.create("t1")

        with pytest.raises(TaskStateError):
            await task_store.create("t1")

    @pytest.mark.asyncio
    async def test_update_unknown_raises(self, task_store: MemoryTaskStore) -> None:
        with pytest.raises(TaskNotFoundError):
            await task_store.update("missing", TaskState.PROCESSING)

    @pytest.mark.asyncio
    async def test_rejected_update_leaves_state(self, task_store: MemoryTaskStore) -> None:
        await task_store.create("t1")
        await task_store.update("t1", TaskState.PROCESSING, progress=0.5)

        with pytest.raises(TaskStateError):
            await task_store.update("t1", TaskState.PROCESSING, progress=0.1)

        task = await task_store.get("t1")
        assert task is not None
        assert task.progress == 0.5

    @pytest.mark.asyncio
    async def test_list_tasks_oldest_first(self, task_store: MemoryTaskStore) -> None:
        for task_id in ("a", "b", "c"):
            await task_store.create(task_id)

        listed = await task_store.list_tasks()

        assert [t.id for t in listed] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_concurrent_progress_updates_stay_monotonic(
        self, task_store: MemoryTaskStore
    ) -> None:
        await task_store.create("t1")
        await task_store.update("t1", TaskState.PROCESSING)

        async def bump(value: float) -> None:
            try:
                await task_store.update("t1", TaskState.PROCESSING, progress=value)
            except TaskStateError:
                pass

        await asyncio.gather(*(bump(v / 10) for v in range(10, 0, -1)))

        task = await task_store.get("t1")
        assert task is not None
        assert task.progress == 1.0
