"""Answer generation grounded in retrieved context.

Two modes share one prompt:

- :meth:`GenerationService.generate` waits for the full answer and returns a
  :class:`ChatResponse` (used by ``/api/chat/complete`` and the CLI).
- :meth:`GenerationService.stream` yields :class:`StreamEvent` objects as the
  model produces text.  The stream always ends with exactly one terminal
  event: ``done`` on success, or ``error`` when the model call fails, either
  before the first token or part-way through.  Errors are reported in-band
  because by the time they happen the HTTP response has already started.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import structlog

from kbchat.interfaces.llm_provider import ILLMProvider
from kbchat.models.rag import ChatResponse, SearchResult, StreamEvent
from kbchat.utils.concurrency import relay
from kbchat.utils.errors import KBChatError

logger = structlog.get_logger(logger_name=__name__)

SYSTEM_PROMPT = """You are a helpful assistant that answers questions using a knowledge base.

Instructions:
1. Answer using ONLY the information in the provided context.
2. If the context does not contain enough information to answer, say so clearly.
3. Cite the sources you use with their numbers, e.g. [Source 1] or [Source 2].
4. Be concise and accurate.
5. If the user asks about something the context does not cover, explain that the information is not available in the knowledge base.
6. Keep a professional, helpful tone.

Each context block names its source file, the section it comes from, and a relevance score."""


def build_user_prompt(context: str, query: str) -> str:
    """Combine the assembled context and the user's question into one message."""
    return f"Context:\n{context}\n\nUser Question: {query}"


class GenerationService:
    """Turns a question plus retrieved context into an answer.

    Parameters
    ----------
    llm:
        Chat-completion provider.
    temperature / max_tokens:
        Optional overrides; ``None`` uses the provider's configured defaults.
    """

    def __init__(
        self,
        llm: ILLMProvider,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self._llm = llm
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def generate(
        self,
        query: str,
        context: str,
        sources: list[SearchResult],
        session_id: str | None = None,
    ) -> ChatResponse:
        """Return the complete answer for *query*.

        Raises
        ------
        kbchat.utils.errors.LLMError
            If the model call fails.
        """
        answer = await self._llm.complete(
            system_prompt=SYSTEM_PROMPT,
            user_prompt=build_user_prompt(context, query),
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        logger.info("answer_generated", session_id=session_id, chars=len(answer), sources=len(sources))
        return ChatResponse(response=answer, sources=sources, session_id=session_id)

    async def stream(self, query: str, context: str) -> AsyncIterator[StreamEvent]:
        """Yield the answer as ``token`` events followed by one terminal event.

        The model stream is pumped through :func:`relay`, so at most one
        token is buffered ahead of the consumer.  Closing this generator
        early cancels the pump and closes the model stream.
        """
        upstream = self._llm.stream(
            system_prompt=SYSTEM_PROMPT,
            user_prompt=build_user_prompt(context, query),
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        channel = relay(upstream)
        tokens = 0
        try:
            async for increment in channel:
                tokens += 1
                yield StreamEvent(kind="token", content=increment)
        except KBChatError as exc:
            logger.warning("answer_stream_failed", tokens=tokens, error=str(exc))
            yield StreamEvent(kind="error", content=exc.message)
            return
        except Exception as exc:
            # Tokens may already be on the wire; report in-band.
            logger.error(
                "answer_stream_crashed",
                tokens=tokens,
                error_type=type(exc).__name__,
                error=str(exc),
                exc_info=exc,
            )
            yield StreamEvent(kind="error", content=f"Answer generation failed: {exc}")
            return
        finally:
            await channel.aclose()

        logger.info("answer_streamed", tokens=tokens)
        yield StreamEvent(kind="done")
