"""Unit tests for TaskLifecycle -- progress accounting across an ingestion job."""

from __future__ import annotations

import pytest

from kbchat.models.task import TaskState
from kbchat.pipeline.task_lifecycle import EMBEDDING_PROGRESS_SHARE, TaskLifecycle
from kbchat.utils.errors import TaskStateError


class TestTaskLifecycle:
    @pytest.mark.asyncio
    async def test_create_is_pending(self, lifecycle: TaskLifecycle) -> None:
        task = await lifecycle.create("t1")

        assert task.status is TaskState.PENDING
        assert task.progress == 0.0

    @pytest.mark.asyncio
    async def test_embedding_progress_share(self, lifecycle: TaskLifecycle) -> None:
        await lifecycle.create("t1")
        await lifecycle.start("t1")

        task = await lifecycle.record_embedding_progress("t1", completed=2, total=4)

        assert task.progress == pytest.approx(2 / 4 * EMBEDDING_PROGRESS_SHARE)
        assert task.progress == pytest.approx(0.35)

    @pytest.mark.asyncio
    async def test_progress_capped_at_share(self, lifecycle: TaskLifecycle) -> None:
        await lifecycle.create("t1")
        await lifecycle.start("t1")

        task = await lifecycle.record_embedding_progress("t1", completed=5, total=4)

        assert task.progress == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_succeed_sets_full_progress(self, lifecycle: TaskLifecycle) -> None:
        await lifecycle.create("t1")
        await lifecycle.start("t1")
        await lifecycle.record_embedding_progress("t1", 1, 1)

        task = await lifecycle.succeed("t1")

        assert task.status is TaskState.SUCCEEDED
        assert task.progress == 1.0
        assert task.error is None

    @pytest.mark.asyncio
    async def test_fail_freezes_progress(self, lifecycle: TaskLifecycle) -> None:
        await lifecycle.create("t1")
        await lifecycle.start("t1")
        await lifecycle.record_embedding_progress("t1", 3, 10)

        task = await lifecycle.fail("t1", "indexing rejected")

        assert task.status is TaskState.FAILED
        assert task.error == "indexing rejected"
        assert task.progress == pytest.approx(0.21)

    @pytest.mark.asyncio
    async def test_no_writes_after_success(self, lifecycle: TaskLifecycle) -> None:
        await lifecycle.create("t1")
        await lifecycle.start("t1")
        await lifecycle.succeed("t1")

        with pytest.raises(TaskStateError):
            await lifecycle.fail("t1", "late failure")

    @pytest.mark.asyncio
    async def test_get_and_list(self, lifecycle: TaskLifecycle) -> None:
        await lifecycle.create("t1")
        await lifecycle.create("t2")

        assert (await lifecycle.get("t2")).id == "t2"
        assert await lifecycle.get("nope") is None
        assert [t.id for t in await lifecycle.list_tasks()] == ["t1", "t2"]
