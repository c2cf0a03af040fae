"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.  The
default deployment points it at a llama.cpp server serving
``gemma-2-2b-it``; vLLM, Ollama's OpenAI route, or OpenAI itself work the
same way by changing ``LLM_API_URL`` and ``LLM_MODEL``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import openai
import structlog

from kbchat.config.settings import Settings
from kbchat.interfaces.llm_provider import ILLMProvider
from kbchat.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat completions API.

    The rest of the app never imports ``openai``; SDK exceptions are
    wrapped in :class:`LLMError` with the original chained via ``from``.
    """

    def __init__(self, settings: Settings, client: openai.AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._base_url = settings.llm_api_url
        self._client = client or openai.AsyncOpenAI(
            api_key=settings.llm_api_key or "not-needed",
            base_url=settings.llm_api_url,
            timeout=openai.Timeout(settings.llm_timeout, connect=5.0),
        )
        self._model = settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Generate a full completion via the chat completions API."""
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=self._messages(system_prompt, user_prompt),
                temperature=self._temperature if temperature is None else temperature,
                max_tokens=max_tokens or self._max_tokens,
            )
        except openai.APITimeoutError as exc:
            raise LLMError(
                message=f"LLM request timed out after {self._settings.llm_timeout}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"LLM API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not response.choices or response.choices[0].message.content is None:
            raise LLMError(
                message="LLM returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "llm_completion",
            model=self._model,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return response.choices[0].message.content

    async def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Yield content deltas as the server produces them.

        The SDK stream is used as an async context manager so the HTTP
        response is closed whether the stream finishes, fails, or the
        generator is closed early by the consumer.
        """
        try:
            stream = await self._client.chat.completions.create(
                model=self._model,
                messages=self._messages(system_prompt, user_prompt),
                temperature=self._temperature if temperature is None else temperature,
                max_tokens=max_tokens or self._max_tokens,
                stream=True,
            )
        except openai.APIError as exc:
            raise LLMError(
                message=f"LLM stream could not be opened: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        increments = 0
        try:
            async with stream:
                async for chunk in stream:
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta.content
                    if delta:
                        increments += 1
                        yield delta
        except (openai.APIError, httpx.HTTPError) as exc:
            raise LLMError(
                message=f"LLM stream interrupted: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        finally:
            logger.debug("llm_stream_closed", model=self._model, increments=increments)

    def get_provider_name(self) -> str:
        return "openai-compatible"

    def is_available(self) -> bool:
        """Return ``True`` if an endpoint URL is configured (doesn't verify it works)."""
        return bool(self._base_url)

    async def validate_credentials(self) -> bool:
        """List models to confirm the server is reachable and accepts the key."""
        if not self.is_available():
            return False
        try:
            await self._client.models.list()
            return True
        except openai.APIError:
            return False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _messages(system_prompt: str, user_prompt: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
