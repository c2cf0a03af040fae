"""Structured logging setup using structlog.

One shared processor chain (context vars, log level, timestamps, stack info)
feeds either a coloured ConsoleRenderer for local development or a
JSONRenderer for production.  ``APP_ENV=production`` selects JSON unless the
caller forces it with ``json_output``.

Standard-library ``logging`` is routed through the same formatter so that
uvicorn, httpx and the openai SDK log in the same shape as the application.

Request and task identifiers travel in structlog context variables: the API
middleware binds ``request_id`` for the lifetime of a request and the
ingestion workers bind ``task_id`` while a job runs, via
:func:`bound_context`.  Every event logged underneath carries them.
"""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

# Third-party loggers that log every request at INFO.
NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "openai")


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog with environment-appropriate rendering.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output. When False, JSON is used only when
                     APP_ENV is "production".

    Returns:
        A configured structlog BoundLogger.
    """
    app_env = os.environ.get("APP_ENV", "development")
    use_json = json_output or app_env == "production"

    # merge_contextvars must run first so request_id / task_id reach every
    # later processor, including the stdlib bridge below.
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    # Replace, not append: uvicorn installs its own handler on reload.
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a named structlog logger, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


@contextmanager
def bound_context(**fields: Any) -> Iterator[None]:
    """Bind *fields* to every log event emitted inside the ``with`` block.

    Bindings live in context variables, so they follow the current asyncio
    task and are restored to their previous values on exit.  ``None`` values
    are skipped.
    """
    values = {key: value for key, value in fields.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**values):
        yield
