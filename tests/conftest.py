"""
Pytest fixtures for dash-indexer tests. Uses a temporary SQLite DB for the sink
and builds transactionNotification results shaped like the live feed.
"""

from __future__ import annotations

from typing import Any

import pytest

PROGRAM_ID = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
FEE_PAYER = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
DEX_PROGRAM = "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK"
SIGNATURE = "5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnbJLgp8uirBgmQpjKhoR4tjF3ZpRzrFmBV6UjKdiSZkQUW"
SYSTEM_PROGRAM = "11111111111111111111111111111111"
COMPUTE_BUDGET = "ComputeBudget111111111111111111111111111111"


@pytest.fixture
def sqlite_engine(tmp_path):
    """Engine on a fresh SQLite file with the three tables created."""
    from dash_indexer.database import create_db_engine, ensure_schema

    engine = create_db_engine(f"sqlite:///{tmp_path / 'indexer.db'}")
    ensure_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sink(sqlite_engine):
    from dash_indexer.database import TransactionSink

    return TransactionSink(sqlite_engine)


@pytest.fixture
def make_notification():
    """
    Factory for a notification result:
    {"signature", "slot", "transaction": {"transaction": {...}, "meta": {...}}}.
    Pass meta=None to drop metadata entirely.
    """

    def _make(
        *,
        signature: Any = SIGNATURE,
        slot: Any = 250_000_000,
        err: Any = None,
        fee: int = 5000,
        logs: list[str] | None = None,
        account_keys: list[Any] | None = None,
        instructions: list[dict[str, Any]] | None = None,
        compute_units: int | None = 42_000,
        meta: Any = "default",
    ) -> dict[str, Any]:
        keys = (
            account_keys
            if account_keys is not None
            else [FEE_PAYER, PROGRAM_ID, DEX_PROGRAM, SYSTEM_PROGRAM, COMPUTE_BUDGET]
        )
        ixs = (
            instructions
            if instructions is not None
            else [
                {"programIdIndex": 4, "accounts": [], "data": ""},
                {"programIdIndex": 1, "accounts": [0], "data": ""},
                {"programIdIndex": 2, "accounts": [0], "data": ""},
                {"programIdIndex": 2, "accounts": [0], "data": ""},
                {"programIdIndex": 3, "accounts": [0], "data": ""},
            ]
        )
        if meta == "default":
            meta = {
                "err": err,
                "fee": fee,
                "logMessages": logs if logs is not None else [],
            }
            if compute_units is not None:
                meta["computeUnitsConsumed"] = compute_units
        wrapped: dict[str, Any] = {
            "transaction": {
                "signatures": [signature] if isinstance(signature, str) else [],
                "message": {"accountKeys": keys, "instructions": ixs},
            },
        }
        if meta is not None:
            wrapped["meta"] = meta
        result: dict[str, Any] = {"slot": slot, "transaction": wrapped}
        if signature is not None:
            result["signature"] = signature
        return result

    return _make
