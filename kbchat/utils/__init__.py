"""Utility modules for kbchat.

- **errors** -- Domain exception hierarchy rooted at KBChatError; each stage
  raises its own subclass and the API maps them onto HTTP status codes.
- **logging** -- structlog setup with coloured console output in development
  and structured JSON in production.
- **concurrency** (not re-exported here) -- Bounded relay used to decouple
  token producers from slow SSE consumers.
"""

from kbchat.utils.errors import (
    ConfigurationError,
    EmbeddingError,
    IndexingError,
    KBChatError,
    LLMError,
    QueueFullError,
    SearchError,
    TaskNotFoundError,
    ValidationError,
)
from kbchat.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "EmbeddingError",
    "IndexingError",
    "KBChatError",
    "LLMError",
    "QueueFullError",
    "SearchError",
    "TaskNotFoundError",
    "ValidationError",
    "configure_logging",
    "get_logger",
]
