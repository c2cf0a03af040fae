"""Server-Sent Events framing for the chat endpoint.

Event sequence for one answer::

    event: sources   data: [ {SearchResult}, ... ]
    event: message   data: {"content": "<token>"}     (repeated)
    event: error     data: {"error": "<message>"}     (only on failure)
    event: message   data: [DONE]

Token payloads are JSON-encoded so increments that contain newlines
survive SSE line framing.  Heartbeat comments are added by
``sse_starlette.EventSourceResponse`` itself.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Awaitable, Callable

import structlog

from kbchat.models.rag import SearchResult
from kbchat.services.rag.generation_service import GenerationService

logger = structlog.get_logger(logger_name=__name__)

DONE_SENTINEL = "[DONE]"


async def chat_event_stream(
    generation: GenerationService,
    query: str,
    context: str,
    sources: list[SearchResult],
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[dict[str, str]]:
    """Yield sse-starlette event dicts for one streamed answer.

    Parameters
    ----------
    generation:
        Service producing the answer stream.
    query / context:
        The user's question and the assembled retrieval context.
    sources:
        Retrieved results, sent first so the client can render citations.
    is_disconnected:
        Optional disconnect check (``request.is_disconnected``); when it reports a
        disconnect the model stream is closed and nothing more is sent.
    """
    yield {
        "event": "sources",
        "data": json.dumps([source.model_dump(mode="json") for source in sources]),
    }

    events = generation.stream(query, context)
    try:
        async for event in events:
            if is_disconnected is not None and await is_disconnected():
                logger.info("chat_client_disconnected")
                return
            if event.kind == "token":
                yield {"event": "message", "data": json.dumps({"content": event.content})}
            elif event.kind == "error":
                yield {"event": "error", "data": json.dumps({"error": event.content})}
    finally:
        await events.aclose()

    yield {"event": "message", "data": DONE_SENTINEL}
