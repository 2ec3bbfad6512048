"""
Domain records written by the ingester.

One BurnRecord per signature, at most one TxFailureRecord per failed
signature, and one TxInstructionRecord per (signature, program) pair.
Plain dataclasses; the sink maps them onto tables.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class BurnRecord:
    """Normalized view of one observed transaction."""

    signature: str
    """Base58 transaction signature; primary key."""
    slot: int
    success: bool
    fee_lamports: int
    fee_payer: str
    """Base58 first account key; empty string when the message had none."""
    block_time: datetime | None = None
    """Filled by getBlockTime enrichment; may arrive on a later redelivery or never."""
    compute_units: int | None = None
    arbitrage_success: bool | None = None
    """True / False from log heuristics; None when unclassified."""


@dataclass(frozen=True)
class TxFailureRecord:
    """Classified error label for a failed transaction."""

    signature: str
    error_type: str
    slot: int
    ts: datetime | None = None
    """Observation time; None lets the store default to ingestion time."""


@dataclass(frozen=True)
class TxInstructionRecord:
    """Instruction count for one program within one transaction."""

    signature: str
    program_id: str
    num_instructions: int
