"""
Event processor: one transaction notification -> classified, enriched rows.

Per message: decode signature and slot (required), outcome and fee, fee payer,
error label, per-program instruction counts, arbitrage heuristic, then
getBlockTime enrichment, then burn / failure / instruction upserts in that
order. handle() never raises for a bad message: every failure is logged and
the message is skipped, so one transaction cannot end the stream session.
"""

from __future__ import annotations

import asyncio
import functools
from concurrent.futures import Executor
from datetime import datetime
from typing import Any, Callable, Mapping, Protocol, Sequence

import base58

from dash_indexer.database.models import BurnRecord, TxFailureRecord
from dash_indexer.database.sink import TransactionSink, instruction_records
from dash_indexer.errors import BlockTimeUnavailable, MalformedTransactionError
from dash_indexer.indexer_logging import bind_signature, get_logger
from dash_indexer.ingestion.classifier import (
    ErrorDecoder,
    classify_arbitrage,
    classify_error,
    count_program_instructions,
    noise_programs,
)
from dash_indexer.ingestion.models import ExtractedTransaction, ProcessedTransaction
from dash_indexer.ingestion.tx_error import decode_transaction_error

logger = get_logger(__name__)


class BlockTimeSource(Protocol):
    async def get_block_time(self, slot: int) -> datetime: ...


def encode_b58(value: Any) -> str:
    """Base58 text for a key or signature given as str, bytes or list of byte values."""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base58.b58encode(bytes(value)).decode("ascii")
    if isinstance(value, list) and all(isinstance(b, int) for b in value):
        return base58.b58encode(bytes(value)).decode("ascii")
    if isinstance(value, Mapping) and isinstance(value.get("pubkey"), str):
        return value["pubkey"]
    raise ValueError(f"cannot base58-encode {type(value).__name__}")


def _extract_signature(update: Mapping[str, Any], wrapped: Mapping[str, Any]) -> str:
    raw = update.get("signature") or wrapped.get("signature")
    if not raw:
        signatures = (wrapped.get("transaction") or {}).get("signatures") or []
        raw = signatures[0] if signatures else None
    if not raw:
        raise MalformedTransactionError("transaction has no signature")
    return encode_b58(raw)


def _extract_slot(update: Mapping[str, Any]) -> int:
    slot = update.get("slot")
    if isinstance(slot, bool) or slot is None:
        raise MalformedTransactionError("transaction has no slot")
    try:
        return int(slot)
    except (TypeError, ValueError) as e:
        raise MalformedTransactionError(f"invalid slot {slot!r}") from e


def _encode_keys(values: Any, source: str) -> list[str]:
    """
    Encode each key; an unreadable key becomes "" so later indexes still line
    up, and instructions pointing at it are not counted.
    """
    if not isinstance(values, list):
        return []
    out: list[str] = []
    for value in values:
        try:
            out.append(encode_b58(value))
        except ValueError as e:
            logger.debug("account_key_unreadable", source=source, position=len(out), error=str(e))
            out.append("")
    return out


def _message_account_keys(message: Mapping[str, Any]) -> list[str]:
    return _encode_keys(message.get("accountKeys"), "accountKeys")


def _loaded_addresses(meta: Mapping[str, Any] | None) -> list[str]:
    loaded = (meta or {}).get("loadedAddresses")
    if not isinstance(loaded, Mapping):
        return []
    out: list[str] = []
    for role in ("writable", "readonly"):
        out.extend(_encode_keys(loaded.get(role), f"loadedAddresses.{role}"))
    return out


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _log_stalled_write_result(fut: asyncio.Future) -> None:
    if fut.cancelled():
        return
    exc = fut.exception()
    if exc is not None:
        logger.warning("stalled_write_failed", error=str(exc) or type(exc).__name__)
    else:
        logger.info("stalled_write_completed")


def extract_transaction(
    update: Mapping[str, Any],
    *,
    noise: frozenset[str],
    decode_error: ErrorDecoder = decode_transaction_error,
) -> ExtractedTransaction | None:
    """
    Extract and classify one notification result. Returns None when the
    envelope carries no inner transaction payload; raises
    MalformedTransactionError when the payload lacks signature or slot.
    """
    wrapped = update.get("transaction")
    if not isinstance(wrapped, Mapping):
        return None
    signature = _extract_signature(update, wrapped)
    slot = _extract_slot(update)

    meta = wrapped.get("meta")
    if not isinstance(meta, Mapping):
        meta = None
    if meta is None:
        success, fee_lamports = True, 0
    else:
        success = meta.get("err") is None
        fee_lamports = _optional_int(meta.get("fee")) or 0

    tx = wrapped.get("transaction")
    message = tx.get("message") if isinstance(tx, Mapping) else None
    if not isinstance(message, Mapping):
        message = {}
    message_keys = _message_account_keys(message)
    fee_payer = message_keys[0] if message_keys else ""

    error_type = None
    if not success:
        error_type = classify_error(meta["err"], decode_error)

    # Without meta the loaded-address tail of the key list is unknown, so
    # program indexes cannot be resolved reliably: fan-out is not recorded.
    counts: dict[str, int] = {}
    if meta is not None:
        account_keys: Sequence[str] = message_keys + _loaded_addresses(meta)
        counts = count_program_instructions(account_keys, message.get("instructions"), noise)

    logs = (meta or {}).get("logMessages")
    return ExtractedTransaction(
        signature=signature,
        slot=slot,
        success=success,
        fee_lamports=fee_lamports,
        fee_payer=fee_payer,
        compute_units=_optional_int((meta or {}).get("computeUnitsConsumed")),
        arbitrage_success=classify_arbitrage(logs if isinstance(logs, list) else None),
        error_type=error_type,
        instruction_counts=counts,
        has_meta=meta is not None,
    )


class EventProcessor:
    """
    Drives extraction, enrichment and persistence for one message at a time.

    The sink is synchronous (blocking DB driver); its calls run on an executor
    and are awaited one after another so rows land in delivery order. A call
    that outlives persist_timeout_sec fails its message, but its thread keeps
    running: the next sink call waits for it before starting.
    """

    def __init__(
        self,
        sink: TransactionSink,
        block_times: BlockTimeSource,
        *,
        bot_program_id: str | None = None,
        decode_error: ErrorDecoder = decode_transaction_error,
        persist_timeout_sec: float | None = None,
        executor: Executor | None = None,
    ) -> None:
        self._sink = sink
        self._block_times = block_times
        self._noise = noise_programs(bot_program_id)
        self._decode_error = decode_error
        self._persist_timeout = persist_timeout_sec
        self._executor = executor
        self._stalled_write: asyncio.Future | None = None

    async def handle(self, update: Mapping[str, Any]) -> ProcessedTransaction | None:
        """Process one notification result; returns what was persisted, or None if skipped/failed."""
        log = logger
        try:
            extracted = extract_transaction(
                update, noise=self._noise, decode_error=self._decode_error
            )
            if extracted is None:
                log.debug("tx_envelope_skipped", reason="no_transaction_payload")
                return None
            log = bind_signature(logger, extracted.signature)
            block_time = await self._fetch_block_time(extracted.slot)
            processed = self._build_records(extracted, block_time)
            await self._persist(processed)
        except Exception as e:
            log.warning(
                "tx_processing_failed",
                error=str(e) or type(e).__name__,
                exc_info=True,
            )
            return None
        self._log_ingested(log, extracted, processed)
        return processed

    async def _fetch_block_time(self, slot: int) -> datetime | None:
        try:
            return await self._block_times.get_block_time(slot)
        except BlockTimeUnavailable as e:
            logger.debug("block_time_unavailable", slot=slot, reason=e.reason)
        except Exception as e:
            logger.warning("block_time_unavailable", slot=slot, reason=str(e), exc_info=True)
        return None

    @staticmethod
    def _build_records(
        extracted: ExtractedTransaction,
        block_time: datetime | None,
    ) -> ProcessedTransaction:
        burn = BurnRecord(
            signature=extracted.signature,
            slot=extracted.slot,
            success=extracted.success,
            fee_lamports=extracted.fee_lamports,
            fee_payer=extracted.fee_payer,
            block_time=block_time,
            compute_units=extracted.compute_units,
            arbitrage_success=extracted.arbitrage_success,
        )
        failure = None
        if not extracted.success and extracted.error_type:
            failure = TxFailureRecord(
                signature=extracted.signature,
                error_type=extracted.error_type,
                slot=extracted.slot,
                ts=block_time,
            )
        return ProcessedTransaction(
            burn=burn,
            failure=failure,
            instruction_counts=dict(extracted.instruction_counts),
        )

    async def _persist(self, processed: ProcessedTransaction) -> None:
        await self._run_sink(self._sink.upsert_burn, processed.burn)
        if processed.failure is not None:
            await self._run_sink(self._sink.upsert_tx_failure, processed.failure)
        if processed.instruction_counts:
            records = instruction_records(processed.burn.signature, processed.instruction_counts)
            await self._run_sink(self._sink.upsert_tx_instructions, records)

    async def _run_sink(self, fn: Callable[..., None], *args: Any) -> None:
        loop = asyncio.get_running_loop()
        await self._wait_for_stalled_write(loop)
        fut = loop.run_in_executor(self._executor, functools.partial(fn, *args))
        if not self._persist_timeout:
            await fut
            return
        try:
            # shield: a timeout must not mark the future done while its thread still writes
            await asyncio.wait_for(asyncio.shield(fut), timeout=self._persist_timeout)
        except asyncio.TimeoutError:
            self._stalled_write = fut
            fut.add_done_callback(_log_stalled_write_result)
            raise

    async def _wait_for_stalled_write(self, loop: asyncio.AbstractEventLoop) -> None:
        stalled = self._stalled_write
        if stalled is not None and not stalled.done() and stalled.get_loop() is loop:
            logger.warning("persist_waiting_for_stalled_write", timeout_sec=self._persist_timeout)
            await asyncio.wait({stalled})
        self._stalled_write = None

    @staticmethod
    def _log_ingested(
        log: Any,
        extracted: ExtractedTransaction,
        processed: ProcessedTransaction,
    ) -> None:
        burn = processed.burn
        log.info(
            "tx_ingested",
            slot=burn.slot,
            success=burn.success,
            fee_lamports=burn.fee_lamports,
            fee_payer=burn.fee_payer,
            block_time=burn.block_time.isoformat() if burn.block_time else "n/a",
            compute_units=burn.compute_units,
            arbitrage_success=burn.arbitrage_success,
            error_type=extracted.error_type,
            programs=len(processed.instruction_counts),
            has_meta=extracted.has_meta,
        )
