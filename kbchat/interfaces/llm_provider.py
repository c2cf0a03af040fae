"""Abstract base class for LLM service providers.

Defines the contract for the chat-completion backend that answers user
questions.  Both a one-shot :meth:`ILLMProvider.complete` and an
incremental :meth:`ILLMProvider.stream` are required, since the chat
endpoint streams tokens while the CLI and the non-streaming endpoint do not.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator


# Concrete implementations: OpenAILLMProvider (llama.cpp, vLLM, OpenAI)
# Located in: kbchat/providers/llm/
class ILLMProvider(ABC):
    """Contract for LLM services used by the generation service."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Generate a full text completion.

        Parameters
        ----------
        system_prompt:
            The system/instruction message that sets the model's behaviour.
        user_prompt:
            The user message, including any retrieved context.
        temperature:
            Sampling temperature; ``None`` uses the provider default.
        max_tokens:
            Upper bound on generated tokens; ``None`` uses the provider default.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        kbchat.utils.errors.LLMError
            If the API call fails or returns an empty response.
        """

    @abstractmethod
    def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a completion as text increments.

        Implementations are async generators.  Closing the generator early
        must close the underlying HTTP stream.

        Yields
        ------
        str
            Non-empty text increments in generation order.

        Raises
        ------
        kbchat.utils.errors.LLMError
            If opening the stream fails or the stream breaks mid-way.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (does not call it)."""

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Return ``True`` if a lightweight API call succeeds."""
