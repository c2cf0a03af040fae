"""Producer/consumer channel used to forward streamed LLM output.

:func:`relay` decouples an upstream async iterator (the model's token
stream) from the consumer (the SSE response) through an ``asyncio.Queue``
of capacity one.  The producer runs as its own task and can never be more
than one item ahead of the consumer, so nothing accumulates in memory when
the client reads slowly.

Closing the consumer early (client disconnect, ``aclose()``) cancels the
producer task, which in turn closes the upstream iterator.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog

from kbchat.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


@dataclass(frozen=True)
class _Item(Generic[_T]):
    value: _T


@dataclass(frozen=True)
class _Failure:
    error: BaseException


class _End:
    pass


_END = _End()


async def relay(source: AsyncIterator[_T], maxsize: int = 1) -> AsyncIterator[_T]:
    """Yield items from *source* via a bounded queue filled by a producer task.

    Parameters
    ----------
    source:
        The upstream async iterator.  It is consumed exactly once.
    maxsize:
        Queue capacity.  The default of 1 means at most one produced item
        waits for the consumer.

    Yields
    ------
    _T
        Items in upstream order.

    Raises
    ------
    Exception
        Any exception raised by *source* is re-raised to the consumer after
        the items produced before it.
    """
    queue: asyncio.Queue[_Item[_T] | _Failure | _End] = asyncio.Queue(maxsize=maxsize)

    async def _produce() -> None:
        try:
            async for value in source:
                await queue.put(_Item(value))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await queue.put(_Failure(exc))
            return
        finally:
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()
        await queue.put(_END)

    producer = asyncio.create_task(_produce())
    try:
        while True:
            item = await queue.get()
            if isinstance(item, _End):
                return
            if isinstance(item, _Failure):
                raise item.error
            yield item.value
    finally:
        if not producer.done():
            producer.cancel()
            _logger.debug("relay_producer_cancelled")
        try:
            await producer
        except asyncio.CancelledError:
            pass
