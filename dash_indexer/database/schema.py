"""
Table definitions for burns, tx_failures and tx_instructions.

SQLAlchemy Core metadata shared by the sink and ensure_schema(). Types map to
BIGINT / TIMESTAMPTZ on PostgreSQL and their SQLite equivalents in tests.
"""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    Table,
    Text,
    func,
)
from sqlalchemy.engine import Engine

from dash_indexer.indexer_logging import get_logger

logger = get_logger(__name__)

metadata = MetaData()

burns = Table(
    "burns",
    metadata,
    Column("signature", Text, primary_key=True),
    Column("slot", BigInteger, nullable=False),
    Column("success", Boolean, nullable=False),
    Column("fee_lamports", BigInteger, nullable=False),
    Column("fee_payer", Text, nullable=False),
    Column("block_time", DateTime(timezone=True), nullable=True),
    Column("compute_units", BigInteger, nullable=True),
    Column("arbitrage_success", Boolean, nullable=True),
    Column("ingest_ts", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

tx_failures = Table(
    "tx_failures",
    metadata,
    Column("signature", Text, primary_key=True),
    Column("error_type", Text, nullable=False),
    Column("slot", BigInteger, nullable=False),
    Column("ts", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

tx_instructions = Table(
    "tx_instructions",
    metadata,
    Column("signature", Text, nullable=False),
    Column("program_id", Text, nullable=False),
    Column("num_instructions", Integer, nullable=False),
    PrimaryKeyConstraint("signature", "program_id"),
)


def ensure_schema(engine: Engine) -> None:
    """Create the three tables if they do not exist."""
    metadata.create_all(engine, checkfirst=True)
    logger.info("schema_ensured", tables=sorted(metadata.tables))
