"""Abstract base class for text-embedding service providers.

Defines the contract for turning text into embedding vectors.  The
production implementation talks to a TEI server through its
OpenAI-compatible ``/v1/embeddings`` route; tests substitute a mock.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider -- any OpenAI-compatible embeddings endpoint (TEI)
# Located in: kbchat/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the ingestion pipeline."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.

        Raises
        ------
        kbchat.utils.errors.EmbeddingError
            If the API call fails or the number of vectors returned does not
            match the number of inputs.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string.

        Parameters
        ----------
        text:
            The text string to embed.

        Returns
        -------
        list[float]
            The embedding vector.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Must match the ``dimensions`` of the search index embedder.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this embedding provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured."""
