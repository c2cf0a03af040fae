"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
In the default deployment the client points at a Text Embeddings Inference
(TEI) server serving ``embeddinggemma-300m``; any server exposing the
OpenAI ``/v1/embeddings`` route works.
"""

from __future__ import annotations

import openai
import structlog

from kbchat.config.settings import Settings
from kbchat.interfaces.embedding_provider import IEmbeddingProvider
from kbchat.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

# TEI rejects requests above its --max-client-batch-size (32 by default).
_BATCH_LIMIT = 32


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API."""

    def __init__(self, settings: Settings, client: openai.AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._base_url = settings.embedding_api_url
        self._client = client or openai.AsyncOpenAI(
            api_key=settings.embedding_api_key or "not-needed",
            base_url=settings.embedding_api_url,
        )
        self._model = settings.embedding_model
        self._dimension = settings.embedding_dimensions

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for *texts*, splitting into server-sized batches."""
        if not texts:
            return []

        all_embeddings: list[list[float]] = []
        for start in range(0, len(texts), _BATCH_LIMIT):
            batch = texts[start : start + _BATCH_LIMIT]
            try:
                response = await self._client.embeddings.create(
                    input=batch,
                    model=self._model,
                )
            except openai.APIError as exc:
                raise EmbeddingError(
                    message=f"Embedding API error: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc

            batch_embeddings = [item.embedding for item in response.data]
            if len(batch_embeddings) != len(batch):
                raise EmbeddingError(
                    message=f"Expected {len(batch)} embeddings, got {len(batch_embeddings)}",
                    provider_name=self.get_provider_name(),
                )
            all_embeddings.extend(batch_embeddings)
            logger.debug(
                "embedding_batch",
                model=self._model,
                batch_size=len(batch),
                tokens=response.usage.total_tokens if response.usage else None,
            )
        return all_embeddings

    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "openai-compatible_embedding"

    def is_available(self) -> bool:
        """Return ``True`` if an endpoint URL is configured."""
        return bool(self._base_url)
