"""API middleware -- CORS, request logging, and error handling.

# ─── MIDDLEWARE EXECUTION ORDER ────────────────────────────────────────
#
# Starlette middleware is a stack (last added, first executed):
#
#   In main.py:
#     app.add_middleware(ErrorHandlingMiddleware)   # added 1st → inner
#     app.add_middleware(RequestLoggingMiddleware)  # added 2nd → outer
#
#   Request flow:
#     Client → RequestLogging → ErrorHandling → route handler
#
# RequestLoggingMiddleware therefore logs the status code that
# ErrorHandlingMiddleware chose for the error.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from kbchat.api.schemas import ErrorResponse
from kbchat.utils.errors import (
    KBChatError,
    QueueFullError,
    TaskNotFoundError,
    UpstreamServiceError,
    ValidationError,
)
from kbchat.utils.logging import bound_context, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Checked in order; the first matching class wins.
_STATUS_BY_ERROR: tuple[tuple[type[KBChatError], int], ...] = (
    (ValidationError, 400),
    (TaskNotFoundError, 404),
    (QueueFullError, 503),
    (UpstreamServiceError, 502),
)


def status_for_error(exc: KBChatError) -> int:
    """Return the HTTP status code for an application error."""
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status_code
    return 500


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware to the FastAPI application.

    Parameters
    ----------
    app:
        The FastAPI application instance.
    allowed_origins:
        Explicit list of allowed origins.  Defaults to ``["*"]``.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers reject credentialed requests to a wildcard origin.
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration.

    A ``request_id`` (the caller's ``X-Request-ID`` or a fresh one) is bound
    to the log context for the whole request and echoed in the response
    header.  For streamed responses the duration covers time-to-first-byte
    only.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]

        with bound_context(request_id=request_id):
            try:
                response = await call_next(request)
                response.headers[REQUEST_ID_HEADER] = request_id
                return response
            finally:
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                status_code = response.status_code if response else 500
                _logger.info(
                    "http_request",
                    method=request.method,
                    path=str(request.url.path),
                    status=status_code,
                    duration_ms=duration_ms,
                )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch ``KBChatError`` subclasses and return structured JSON errors.

    The status code comes from :func:`status_for_error`; the body is an
    :class:`ErrorResponse` with the exception class name and message.
    Stack traces stay in the server log.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except KBChatError as exc:
            status_code = status_for_error(exc)
            log = _logger.error if status_code >= 500 else _logger.warning
            log(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status_code,
            )
            body = ErrorResponse(
                error=type(exc).__name__,
                detail=exc.message,
            )
            return JSONResponse(
                status_code=status_code,
                content=body.model_dump(),
            )
