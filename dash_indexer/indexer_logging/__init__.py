"""
Structured logging for dash-indexer.

Use get_logger(__name__) in every module; output is one JSON object per line.
"""

from dash_indexer.indexer_logging.logger import (
    LOG_FORMATS,
    LOG_LEVELS,
    bind_signature,
    configure_structlog,
    get_logger,
)

__all__ = ["LOG_FORMATS", "LOG_LEVELS", "bind_signature", "configure_structlog", "get_logger"]
