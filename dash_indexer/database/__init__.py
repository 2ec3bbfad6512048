"""
Relational store access: records, table definitions, engine bootstrap and the
idempotent TransactionSink. PostgreSQL in production, SQLite for tests.
"""

from dash_indexer.database.connection import create_db_engine
from dash_indexer.database.models import BurnRecord, TxFailureRecord, TxInstructionRecord
from dash_indexer.database.schema import ensure_schema
from dash_indexer.database.sink import TransactionSink

__all__ = [
    "BurnRecord",
    "TransactionSink",
    "TxFailureRecord",
    "TxInstructionRecord",
    "create_db_engine",
    "ensure_schema",
]
