"""
Structured logging for the indexer.

One line per event on stdout, JSON by default, console rendering on request.
Every line carries timestamp (ISO 8601, UTC), level, logger and event_type;
per-transaction lines also carry the signature (see bind_signature), so a
single transaction can be followed from the processor into the sink.

The module configures itself with the defaults on import; main() reconfigures
from Settings before the first line is written.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

LOG_FORMATS = ("json", "console")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
DEFAULT_LOG_FORMAT = "json"
DEFAULT_LOG_LEVEL = "INFO"


def _add_timestamp(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _event_to_event_type(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """structlog's positional 'event' is emitted as event_type."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def _renderer(log_format: str) -> Any:
    if log_format == "console":
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer(sort_keys=False)


def configure_structlog(
    log_format: str = DEFAULT_LOG_FORMAT,
    log_level: str = DEFAULT_LOG_LEVEL,
) -> None:
    """
    (Re)configure structlog. Raises ValueError for an unknown format or level.

    Loggers cache their configuration on first use, so call this before any
    line is logged.
    """
    fmt = log_format.strip().lower()
    if fmt not in LOG_FORMATS:
        raise ValueError(f"unknown log format {log_format!r}")
    level = logging.getLevelName(log_level.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"unknown log level {log_level!r}")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            _add_timestamp,
            _event_to_event_type,
            _renderer(fmt),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> Any:
    """Logger bound to the module name: get_logger(__name__)."""
    return structlog.get_logger(name).bind(logger=name)


def bind_signature(log: Any, signature: str) -> Any:
    """Bind a transaction signature to every line logged through the result."""
    return log.bind(signature=signature)
