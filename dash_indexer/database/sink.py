"""
Idempotent persistence of ingested transactions.

Each operation is one INSERT ... ON CONFLICT DO UPDATE in its own transaction:

- burns: slot, success, fee_lamports, fee_payer take the latest observation;
  block_time, compute_units, arbitrage_success are fill-if-absent (COALESCE of
  the incoming value and the stored one, so a known value is never nulled).
- tx_failures: overwritten wholesale; latest classification wins.
- tx_instructions: num_instructions overwritten per (signature, program_id).

The sink holds only the engine; connections come from its bounded pool, so the
methods are safe to call from several threads at once.
"""

from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine

from dash_indexer.database.models import BurnRecord, TxFailureRecord, TxInstructionRecord
from dash_indexer.database.schema import burns, tx_failures, tx_instructions
from dash_indexer.indexer_logging import get_logger

logger = get_logger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class TransactionSink:
    """Upserts burn, failure and instruction rows through a SQLAlchemy engine."""

    def __init__(self, engine: Engine) -> None:
        dialect = engine.dialect.name
        if dialect not in _INSERT_BY_DIALECT:
            raise ValueError(f"unsupported database dialect: {dialect}")
        self._engine = engine
        self._insert = _INSERT_BY_DIALECT[dialect]

    def upsert_burn(self, record: BurnRecord) -> None:
        stmt = self._insert(burns).values(
            signature=record.signature,
            slot=record.slot,
            success=record.success,
            fee_lamports=record.fee_lamports,
            fee_payer=record.fee_payer,
            block_time=record.block_time,
            compute_units=record.compute_units,
            arbitrage_success=record.arbitrage_success,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[burns.c.signature],
            set_={
                "slot": stmt.excluded.slot,
                "success": stmt.excluded.success,
                "fee_lamports": stmt.excluded.fee_lamports,
                "fee_payer": stmt.excluded.fee_payer,
                "block_time": func.coalesce(burns.c.block_time, stmt.excluded.block_time),
                "compute_units": func.coalesce(burns.c.compute_units, stmt.excluded.compute_units),
                "arbitrage_success": func.coalesce(
                    burns.c.arbitrage_success, stmt.excluded.arbitrage_success
                ),
            },
        )
        with self._engine.begin() as conn:
            conn.execute(stmt)
        logger.debug("sink_burn_upserted", signature=record.signature, slot=record.slot)

    def upsert_tx_failure(self, record: TxFailureRecord) -> None:
        ts = record.ts if record.ts is not None else func.now()
        stmt = self._insert(tx_failures).values(
            signature=record.signature,
            error_type=record.error_type,
            slot=record.slot,
            ts=ts,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[tx_failures.c.signature],
            set_={
                "error_type": stmt.excluded.error_type,
                "slot": stmt.excluded.slot,
                "ts": stmt.excluded.ts,
            },
        )
        with self._engine.begin() as conn:
            conn.execute(stmt)
        logger.debug(
            "sink_failure_upserted",
            signature=record.signature,
            error_type=record.error_type,
        )

    def upsert_tx_instructions(self, records: list[TxInstructionRecord]) -> None:
        """
        Upsert all (signature, program_id) counts in one transaction. Empty list is a no-op.

        Only the given keys are written: rows for programs absent from a
        redelivery are left as they were, not deleted.
        """
        if not records:
            return
        with self._engine.begin() as conn:
            for record in records:
                stmt = self._insert(tx_instructions).values(
                    signature=record.signature,
                    program_id=record.program_id,
                    num_instructions=record.num_instructions,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[tx_instructions.c.signature, tx_instructions.c.program_id],
                    set_={"num_instructions": stmt.excluded.num_instructions},
                )
                conn.execute(stmt)
        logger.debug(
            "sink_instructions_upserted",
            signature=records[0].signature,
            programs=len(records),
        )

    # Read helpers (diagnostics and tests)

    def get_burn(self, signature: str) -> dict[str, Any] | None:
        return self._fetch_one(select(burns).where(burns.c.signature == signature))

    def get_tx_failure(self, signature: str) -> dict[str, Any] | None:
        return self._fetch_one(select(tx_failures).where(tx_failures.c.signature == signature))

    def get_tx_instructions(self, signature: str) -> dict[str, int]:
        stmt = select(tx_instructions.c.program_id, tx_instructions.c.num_instructions).where(
            tx_instructions.c.signature == signature
        )
        with self._engine.connect() as conn:
            return {row.program_id: row.num_instructions for row in conn.execute(stmt)}

    def _fetch_one(self, stmt: Any) -> dict[str, Any] | None:
        with self._engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        return dict(row) if row is not None else None


def instruction_records(signature: str, counts: Mapping[str, int]) -> list[TxInstructionRecord]:
    """Build instruction records from a program_id -> count map, ordered by program id."""
    return [
        TxInstructionRecord(signature=signature, program_id=program_id, num_instructions=n)
        for program_id, n in sorted(counts.items())
    ]
