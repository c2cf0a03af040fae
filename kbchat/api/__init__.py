"""kbchat API layer -- routes, schemas, SSE framing, and middleware."""

from kbchat.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from kbchat.api.routes import health_router, router
from kbchat.api.schemas import (
    ChatRequest,
    DocumentListResponse,
    ErrorResponse,
    HealthResponse,
    UploadResponse,
)

__all__ = [
    "ChatRequest",
    "DocumentListResponse",
    "ErrorHandlingMiddleware",
    "ErrorResponse",
    "HealthResponse",
    "RequestLoggingMiddleware",
    "UploadResponse",
    "configure_cors",
    "health_router",
    "router",
]
