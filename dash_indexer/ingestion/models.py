"""
Intermediate models between a raw stream message and stored rows.

ExtractedTransaction is everything derivable from the message alone;
ProcessedTransaction is what was handed to the sink after enrichment.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from dash_indexer.database.models import BurnRecord, TxFailureRecord


@dataclass(frozen=True)
class ExtractedTransaction:
    """Fields extracted and classified from one transaction notification."""

    signature: str
    slot: int
    success: bool
    fee_lamports: int
    fee_payer: str
    compute_units: int | None = None
    arbitrage_success: bool | None = None
    error_type: str | None = None
    """Set only for failed transactions; never empty when set."""
    instruction_counts: dict[str, int] = field(default_factory=dict)
    """program_id -> top-level instruction count, noise programs excluded."""
    has_meta: bool = True


@dataclass(frozen=True)
class ProcessedTransaction:
    """Records persisted for one message."""

    burn: BurnRecord
    failure: TxFailureRecord | None
    instruction_counts: dict[str, int]
