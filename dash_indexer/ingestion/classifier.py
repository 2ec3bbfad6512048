"""
Pure classification of transaction fields. No I/O, no state.

- classify_arbitrage: log-line heuristic (True / False / None for unknown).
- classify_error: TransactionError label, never empty for a failed transaction.
- count_program_instructions: per-program instruction fan-out, noise programs excluded.
"""

from __future__ import annotations

import json
from collections import Counter
from typing import Any, Callable, Iterable, Mapping, Sequence

from dash_indexer.errors import TransactionErrorDecodeError
from dash_indexer.ingestion.tx_error import decode_transaction_error

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
COMPUTE_BUDGET_PROGRAM_ID = "ComputeBudget111111111111111111111111111111"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
MEMO_V1_PROGRAM_ID = "Memo1UhkJRfHyvLMcVucJwxXeuD728EqVDDwQDxFMNo"
MEMO_PROGRAM_ID = "MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr"

INFRA_PROGRAM_IDS = frozenset(
    {
        SYSTEM_PROGRAM_ID,
        COMPUTE_BUDGET_PROGRAM_ID,
        TOKEN_PROGRAM_ID,
        MEMO_V1_PROGRAM_ID,
        MEMO_PROGRAM_ID,
    }
)

NO_ARBITRAGE_MARKER = "No profitable arbitrage opportunity found"
ARBITRAGE_MARKERS = (
    "Instruction: Swap",
    "Instruction: SwapBaseInput",
    "Instruction: TransferChecked",
)

ErrorDecoder = Callable[[Any], str]


def noise_programs(bot_program_id: str | None = None) -> frozenset[str]:
    """Infrastructure programs plus the bot's own program; excluded from fan-out counts."""
    if not bot_program_id:
        return INFRA_PROGRAM_IDS
    return INFRA_PROGRAM_IDS | {bot_program_id}


def classify_arbitrage(log_lines: Iterable[str] | None) -> bool | None:
    """
    False if any line reports no profitable opportunity (wins over everything),
    True if any line shows a swap/transfer instruction, None otherwise.
    """
    saw_swap = False
    for line in log_lines or ():
        if not isinstance(line, str):
            continue
        if NO_ARBITRAGE_MARKER in line:
            return False
        if not saw_swap and any(marker in line for marker in ARBITRAGE_MARKERS):
            saw_swap = True
    return True if saw_swap else None


def unknown_error_label(payload: Any) -> str:
    """Fallback label carrying the raw payload, e.g. Unknown([8, 0, 0, 0])."""
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return f"Unknown({list(bytes(payload))})"
    try:
        rendered = json.dumps(payload, separators=(",", ":"), sort_keys=True)
    except (TypeError, ValueError):
        rendered = repr(payload)
    return f"Unknown({rendered})"


def classify_error(payload: Any, decode: ErrorDecoder = decode_transaction_error) -> str:
    """Decoded TransactionError label, or the Unknown(...) fallback when decoding fails."""
    try:
        label = decode(payload)
    except TransactionErrorDecodeError:
        return unknown_error_label(payload)
    return label or unknown_error_label(payload)


def _program_id(account_keys: Sequence[str], instruction: Mapping[str, Any]) -> str | None:
    """Resolve an instruction's program (programIdIndex -> account key, or explicit programId)."""
    program_id = instruction.get("programId")
    if isinstance(program_id, str) and program_id:
        return program_id
    idx = instruction.get("programIdIndex")
    if isinstance(idx, bool) or not isinstance(idx, int):
        return None
    if not 0 <= idx < len(account_keys):
        return None
    return account_keys[idx] or None


def count_program_instructions(
    account_keys: Sequence[str],
    instructions: Iterable[Mapping[str, Any]] | None,
    noise: frozenset[str] = INFRA_PROGRAM_IDS,
) -> dict[str, int]:
    """Count top-level instructions per program id, skipping noise programs and unresolvable indexes."""
    counts: Counter[str] = Counter()
    for ix in instructions or ():
        if not isinstance(ix, Mapping):
            continue
        program_id = _program_id(account_keys, ix)
        if program_id is None or program_id in noise:
            continue
        counts[program_id] += 1
    return dict(counts)
