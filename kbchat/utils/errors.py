"""Custom exception hierarchy for kbchat.

All application exceptions inherit from :class:`KBChatError`, which carries
an optional ``provider_name`` so error handlers can identify which external
service (e.g. "meilisearch", "openai-compatible") caused the failure.

The hierarchy is organized by stage:

    KBChatError  (base -- catch-all for any kbchat error)
    +-- UpstreamServiceError     (an external collaborator failed)
    |   +-- SearchError          (search engine query / listing failure)
    |   +-- LLMError             (chat completion call failure)
    +-- ParseError               (malformed frontmatter, always recovered)
    +-- DocumentReadError        (source file could not be read)
    +-- ChunkingError            (splitter produced nothing for real input)
    +-- EmbeddingError           (embedding call failed or returned bad data)
    +-- IndexingError            (bulk upsert rejected by the search engine)
    +-- TaskNotFoundError        (unknown task id)
    +-- TaskStateError           (illegal task status transition)
    +-- QueueFullError           (ingestion queue at capacity)
    +-- ValidationError          (bad client input)
    +-- ConfigurationError       (startup / missing config)

The API layer maps these onto HTTP status codes in
:mod:`kbchat.api.middleware`; the ingestion pipeline converts any of them
raised mid-job into a ``Failed`` task status.
"""


class KBChatError(Exception):
    """Base exception for all kbchat errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[meilisearch] Index task failed``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# External service errors
# ---------------------------------------------------------------------------

class UpstreamServiceError(KBChatError):
    """Raised when an external collaborator is unreachable or rejects a call."""

    def __init__(
        self,
        message: str = "Upstream service call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class SearchError(UpstreamServiceError):
    """Raised when a search-engine query, listing, or stats call fails."""

    def __init__(
        self,
        message: str = "Search engine request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(UpstreamServiceError):
    """Raised when an LLM API call fails or returns an unusable response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------

class ParseError(KBChatError):
    """Raised for malformed frontmatter.

    The parser catches this itself and falls back to default metadata, so
    it never escapes :meth:`MarkdownParser.parse_document`.
    """

    def __init__(
        self,
        message: str = "Document frontmatter could not be parsed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentReadError(KBChatError):
    """Raised when a source document cannot be read from disk."""

    def __init__(
        self,
        message: str = "Document could not be read",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ChunkingError(KBChatError):
    """Raised when non-empty input yields no chunks."""

    def __init__(
        self,
        message: str = "Chunking produced no output",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(KBChatError):
    """Raised when the embedding call fails or returns the wrong number of vectors."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IndexingError(KBChatError):
    """Raised when the search engine rejects a bulk upsert."""

    def __init__(
        self,
        message: str = "Indexing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Task / queue errors
# ---------------------------------------------------------------------------

class TaskNotFoundError(KBChatError):
    """Raised when a task id is not present in the task store."""

    def __init__(
        self,
        message: str = "Task not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class TaskStateError(KBChatError):
    """Raised on an illegal task transition (e.g. any write after a terminal state)."""

    def __init__(
        self,
        message: str = "Illegal task state transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class QueueFullError(KBChatError):
    """Raised when the ingestion queue cannot accept another job."""

    def __init__(
        self,
        message: str = "Ingestion queue is full, retry later",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Request / configuration errors
# ---------------------------------------------------------------------------

class ValidationError(KBChatError):
    """Raised when client input is rejected before any work is scheduled."""

    def __init__(
        self,
        message: str = "Invalid request",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(KBChatError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
