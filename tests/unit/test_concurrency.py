"""Unit tests for the relay producer/consumer channel."""

from __future__ import annotations

import asyncio

import pytest

from kbchat.utils.concurrency import relay


async def _numbers(count: int, fail_at: int | None = None):  # noqa: ANN202
    for i in range(count):
        if i == fail_at:
            raise ValueError(f"failed at {i}")
        yield i


class TestRelay:
    @pytest.mark.asyncio
    async def test_forwards_in_order(self) -> None:
        assert [n async for n in relay(_numbers(5))] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_empty_source(self) -> None:
        assert [n async for n in relay(_numbers(0))] == []

    @pytest.mark.asyncio
    async def test_error_after_items(self) -> None:
        seen: list[int] = []

        with pytest.raises(ValueError, match="failed at 2"):
            async for n in relay(_numbers(5, fail_at=2)):
                seen.append(n)

        assert seen == [0, 1]

    @pytest.mark.asyncio
    async def test_producer_stays_bounded(self) -> None:
        produced = 0

        async def counting():  # noqa: ANN202
            nonlocal produced
            for i in range(100):
                produced += 1
                yield i

        channel = relay(counting(), maxsize=1)
        await channel.__anext__()
        for _ in range(5):
            await asyncio.sleep(0)

        # One item consumed, one queued, one waiting on the full queue.
        assert produced <= 3
        await channel.aclose()

    @pytest.mark.asyncio
    async def test_aclose_closes_source(self) -> None:
        closed = asyncio.Event()

        async def endless():  # noqa: ANN202
            try:
                while True:
                    yield 1
            finally:
                closed.set()

        channel = relay(endless())
        await channel.__anext__()
        await channel.aclose()

        await asyncio.wait_for(closed.wait(), timeout=1.0)
