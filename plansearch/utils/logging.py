"""Structured logging setup using structlog.

Console rendering in development, JSON in production (``APP_ENV``), with
standard-library ``logging`` routed through the same processors so
uvicorn, httpx and aiosqlite lines look like our own.

Ingestion runs concurrently, so a line from the chunker or an embedding
adapter is only useful if it says which document it belongs to.
:func:`ingestion_context` binds ``document_id`` and ``scope_id`` into
structlog's context variables for the duration of one pipeline run; every
logger called inside it, in any module, carries both keys.
"""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

# Longest string value rendered in a log line.  Chunk text and LLM replies
# are clipped to this.
MAX_VALUE_CHARS = 500

_QUIET_LOGGERS = ("aiosqlite", "httpx", "httpcore", "openai", "anthropic")


def _clip_long_values(
    _logger: Any, _method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str) and len(value) > MAX_VALUE_CHARS:
            event_dict[key] = f"{value[:MAX_VALUE_CHARS]}... [{len(value)} chars]"
    return event_dict


def _resolve_level(log_level: str) -> int:
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level {log_level!r}")
    return level


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR.
        json_output: Force JSON output.  Otherwise JSON is used only when
            ``APP_ENV`` is ``production``.

    Raises:
        ValueError: If *log_level* is not a logging level name.
    """
    level = _resolve_level(log_level)
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        _clip_long_values,
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *shared_processors,
                renderer,
            ],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Per-request and per-statement chatter; our adapters log the useful part.
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Named logger; configures logging with defaults on first use."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)


@contextmanager
def ingestion_context(document_id: str, scope_id: str) -> Iterator[None]:
    """Bind *document_id* and *scope_id* to every log line inside the block.

    Bindings live in context variables, so each asyncio task (one per
    ingestion) sees only its own document.
    """
    with structlog.contextvars.bound_contextvars(document_id=document_id, scope_id=scope_id):
        yield
