"""Structured logging configuration and log context binding."""

import logging
import sys
from typing import TextIO

import structlog


# Context keys bound for the lifetime of one HTTP request
_REQUEST_KEYS = ("request_id", "method", "path")


def configure_logging(
    level: int = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Configure structlog for the API server and batch commands.

    JSON lines by default; the console renderer is meant for local runs of
    the CLI. Context bound with :func:`bind_run_context` or
    :func:`bind_request_context` is merged into every event.

    Args:
        level: Minimum level emitted.
        output: Output stream (default: stderr).
        json_format: Render JSON instead of colored console lines.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    processors.append(
        structlog.processors.JSONRenderer(sort_keys=True)
        if json_format
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    # uvicorn access logs and sqlite warnings go through the stdlib root logger
    logging.basicConfig(format="%(message)s", stream=output, level=level)


def bind_run_context(run_id: str) -> None:
    """Attach a batch run id to every subsequent event."""
    structlog.contextvars.bind_contextvars(run_id=run_id)


def bind_request_context(request_id: str, method: str, path: str) -> None:
    """Attach request identifiers to events logged while serving a request.

    Args:
        request_id: Caller-supplied or generated request id.
        method: HTTP method.
        path: Request path (without query string).
    """
    structlog.contextvars.bind_contextvars(
        request_id=request_id, method=method, path=path
    )


def clear_request_context() -> None:
    """Drop the request identifiers bound by :func:`bind_request_context`."""
    structlog.contextvars.unbind_contextvars(*_REQUEST_KEYS)
