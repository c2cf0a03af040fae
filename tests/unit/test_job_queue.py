"""Unit tests for IngestionJobQueue -- bounded concurrency and back-pressure."""

from __future__ import annotations

import asyncio

import pytest
import structlog

from kbchat.pipeline.job_queue import IngestionJobQueue
from kbchat.utils.errors import QueueFullError


class TestIngestionJobQueue:
    @pytest.mark.asyncio
    async def test_jobs_run_and_join(self) -> None:
        queue = IngestionJobQueue(workers=2, max_pending=10)
        queue.start()
        done: list[str] = []

        for name in ("a", "b", "c"):

            async def job(name: str = name) -> None:
                done.append(name)

            queue.submit(name, job)

        await queue.join()
        await queue.stop()

        assert sorted(done) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_workers(self) -> None:
        queue = IngestionJobQueue(workers=2, max_pending=10)
        queue.start()
        active = 0
        peak = 0

        async def job() -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        for idx in range(6):
            queue.submit(f"t{idx}", job)
        await queue.join()
        await queue.stop()

        assert peak == 2

    @pytest.mark.asyncio
    async def test_full_queue_rejects(self) -> None:
        queue = IngestionJobQueue(workers=1, max_pending=2)

        async def job() -> None:
            return None

        queue.submit("t1", job)
        queue.submit("t2", job)

        assert queue.is_full()
        assert queue.pending == 2
        with pytest.raises(QueueFullError):
            queue.submit("t3", job)

    @pytest.mark.asyncio
    async def test_crashing_job_does_not_kill_worker(self) -> None:
        queue = IngestionJobQueue(workers=1, max_pending=5)
        queue.start()
        ran: list[str] = []

        async def bad() -> None:
            raise RuntimeError("job exploded")

        async def good() -> None:
            ran.append("good")

        queue.submit("bad", bad)
        queue.submit("good", good)
        await queue.join()

        assert ran == ["good"]
        assert queue.running is True
        await queue.stop()

    @pytest.mark.asyncio
    async def test_start_idempotent_and_stop(self) -> None:
        queue = IngestionJobQueue(workers=3)
        queue.start()
        queue.start()

        assert queue.running is True
        await queue.stop()
        assert queue.running is False

    @pytest.mark.asyncio
    async def test_task_id_bound_to_log_context_while_job_runs(self) -> None:
        queue = IngestionJobQueue(workers=1)
        queue.start()
        seen: dict[str, object] = {}

        async def job() -> None:
            seen.update(structlog.contextvars.get_contextvars())

        queue.submit("task-42", job)
        await queue.join()
        await queue.stop()

        assert seen["task_id"] == "task-42"
        assert "task_id" not in structlog.contextvars.get_contextvars()
