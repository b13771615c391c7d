"""Observability helpers for structured logging."""

from discovery.observability.logging import (
    bind_request_context,
    bind_run_context,
    clear_request_context,
    configure_logging,
)


__all__ = [
    "bind_request_context",
    "bind_run_context",
    "clear_request_context",
    "configure_logging",
]
