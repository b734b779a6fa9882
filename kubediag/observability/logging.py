"""Structured logging configuration using structlog.

Every reconciliation pass runs inside its own asyncio task, so the object
being reconciled is bound through ``structlog.contextvars`` and shows up on
every log line emitted during that pass without being passed around.
"""

from __future__ import annotations

import logging
import sys
from typing import cast

import structlog
from structlog.typing import FilteringBoundLogger


def setup_logging(level: str = "info") -> None:
    """Configure structlog for JSON output to stderr."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> FilteringBoundLogger:
    """Get a logger bound with a component name."""
    return cast(FilteringBoundLogger, structlog.get_logger(component=component))


def bind_reconcile_context(queue: str, namespace: str, name: str) -> None:
    """Bind the object under reconciliation to the current task's log context.

    Contextvars are copied per asyncio task, so binding here never leaks into
    passes running concurrently on other workers.
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(queue=queue, namespace=namespace, name=name)


def clear_reconcile_context() -> None:
    """Drop any per-pass log context bound by :func:`bind_reconcile_context`."""
    structlog.contextvars.clear_contextvars()
