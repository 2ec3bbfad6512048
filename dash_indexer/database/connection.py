"""
Engine and connection-pool bootstrap for the relational store.

PostgreSQL (psycopg2) in production with a bounded QueuePool; TLS is driven by
the libpq sslmode query parameter of DATABASE_URL. SQLite URLs are accepted
for local runs and tests.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from dash_indexer.indexer_logging import get_logger

logger = get_logger(__name__)

DEFAULT_POOL_SIZE = 8
_TLS_SSLMODES = ("sslmode=require", "sslmode=verify-ca", "sslmode=verify-full")


def normalize_database_url(url: str) -> str:
    """Map postgres:// and postgresql:// onto the psycopg2 dialect name."""
    url = url.strip()
    if url.startswith("postgres://"):
        return "postgresql+psycopg2://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+psycopg2://" + url[len("postgresql://"):]
    return url


def uses_tls(url: str) -> bool:
    return any(mode in url for mode in _TLS_SSLMODES)


def create_db_engine(url: str, *, pool_size: int = DEFAULT_POOL_SIZE) -> Engine:
    """
    Create the engine used by the sink. The pool is fixed-capacity (no overflow)
    and synchronizes concurrent callers internally.
    """
    url = normalize_database_url(url)
    kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_size"] = pool_size
        kwargs["max_overflow"] = 0
        kwargs["connect_args"] = {"channel_binding": "disable"}
    engine = create_engine(url, **kwargs)
    logger.info(
        "db_engine_created",
        url=url.split("?")[0].split("@")[-1],
        dialect=engine.dialect.name,
        tls=uses_tls(url),
        pool_size=pool_size,
    )
    return engine
