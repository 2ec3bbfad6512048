"""
Pytest tests for the event processor. The sink and getBlockTime client are
replaced with in-memory fakes; one test runs against the SQLite sink.
"""

from __future__ import annotations

import asyncio
import struct
from datetime import datetime, timezone

import base58
import pytest

from dash_indexer.errors import BlockTimeUnavailable, MalformedTransactionError
from dash_indexer.ingestion.classifier import noise_programs
from dash_indexer.ingestion.processor import EventProcessor, encode_b58, extract_transaction

PROGRAM_ID = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
FEE_PAYER = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
DEX_PROGRAM = "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK"
SIGNATURE = "5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnbJLgp8uirBgmQpjKhoR4tjF3ZpRzrFmBV6UjKdiSZkQUW"

BLOCK_TIME = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeSink:
    def __init__(self, fail_on: str | None = None):
        self.calls: list[tuple[str, object]] = []
        self._fail_on = fail_on

    def _record(self, name, arg):
        if name == self._fail_on:
            raise RuntimeError(f"{name} failed")
        self.calls.append((name, arg))

    def upsert_burn(self, record):
        self._record("burn", record)

    def upsert_tx_failure(self, record):
        self._record("failure", record)

    def upsert_tx_instructions(self, records):
        self._record("instructions", records)

    def names(self):
        return [name for name, _ in self.calls]


class FakeBlockTimes:
    def __init__(self, result=BLOCK_TIME, exc: Exception | None = None):
        self.slots: list[int] = []
        self._result = result
        self._exc = exc

    async def get_block_time(self, slot):
        self.slots.append(slot)
        if self._exc is not None:
            raise self._exc
        return self._result


def _handle(processor, update):
    return asyncio.run(processor.handle(update))


def _processor(sink, block_times=None, **kwargs):
    return EventProcessor(
        sink,
        block_times or FakeBlockTimes(),
        bot_program_id=PROGRAM_ID,
        **kwargs,
    )


def test_successful_swap_transaction(make_notification):
    sink = FakeSink()
    block_times = FakeBlockTimes()
    update = make_notification(logs=["Program log: Instruction: Swap"])
    processed = _handle(_processor(sink, block_times), update)

    assert processed is not None
    assert sink.names() == ["burn", "instructions"]
    burn = sink.calls[0][1]
    assert burn.signature == SIGNATURE
    assert burn.slot == 250_000_000
    assert burn.success is True
    assert burn.fee_lamports == 5000
    assert burn.fee_payer == FEE_PAYER
    assert burn.block_time == BLOCK_TIME
    assert burn.compute_units == 42_000
    assert burn.arbitrage_success is True
    records = sink.calls[1][1]
    assert [(r.program_id, r.num_instructions) for r in records] == [(DEX_PROGRAM, 2)]
    assert block_times.slots == [250_000_000]


def test_no_metadata_defaults_to_success_zero_fee(make_notification):
    """Missing meta: success=True, fee 0, no failure row and no instruction rows."""
    sink = FakeSink()
    update = make_notification(meta=None)
    _handle(_processor(sink), update)
    assert sink.names() == ["burn"]
    burn = sink.calls[0][1]
    assert burn.success is True
    assert burn.fee_lamports == 0
    assert burn.fee_payer == FEE_PAYER
    assert burn.arbitrage_success is None
    assert burn.compute_units is None


def test_missing_account_keys_gives_empty_fee_payer(make_notification):
    sink = FakeSink()
    _handle(_processor(sink), make_notification(account_keys=[], instructions=[]))
    assert sink.names() == ["burn"]
    assert sink.calls[0][1].fee_payer == ""


def test_failed_transaction_with_decodable_error(make_notification):
    sink = FakeSink()
    raw_err = struct.pack("<I", 8) + bytes([2]) + struct.pack("<I", 25) + struct.pack("<I", 6001)
    update = make_notification(
        err=raw_err,
        logs=["Program log: No profitable arbitrage opportunity found", "Program log: Instruction: Swap"],
    )
    processed = _handle(_processor(sink), update)
    assert sink.names() == ["burn", "failure", "instructions"]
    failure = sink.calls[1][1]
    assert failure.error_type == "InstructionError(2, Custom(6001))"
    assert failure.ts == BLOCK_TIME
    assert failure.slot == 250_000_000
    assert processed.burn.success is False
    assert processed.burn.arbitrage_success is False


def test_failed_transaction_with_undecodable_error(make_notification):
    sink = FakeSink()
    update = make_notification(err=b"\xff\xff\xff\xff")
    _handle(_processor(sink), update)
    failure = dict(sink.calls)["failure"]
    assert failure.error_type == "Unknown([255, 255, 255, 255])"


def test_injected_decoder_is_used(make_notification):
    sink = FakeSink()
    processor = _processor(sink, decode_error=lambda payload: "CustomLabel")
    _handle(processor, make_notification(err={"InstructionError": [0, "GenericError"]}))
    assert dict(sink.calls)["failure"].error_type == "CustomLabel"


def test_enrichment_failure_is_not_fatal(make_notification):
    sink = FakeSink()
    block_times = FakeBlockTimes(exc=BlockTimeUnavailable(1, "no block time"))
    update = make_notification(err="InsufficientFundsForFee")
    _handle(_processor(sink, block_times), update)
    assert sink.names() == ["burn", "failure", "instructions"]
    assert sink.calls[0][1].block_time is None
    assert sink.calls[1][1].ts is None


def test_unexpected_enrichment_error_is_not_fatal(make_notification):
    sink = FakeSink()
    block_times = FakeBlockTimes(exc=RuntimeError("boom"))
    _handle(_processor(sink, block_times), make_notification())
    assert sink.names()[0] == "burn"
    assert sink.calls[0][1].block_time is None


def test_persistence_failure_is_contained(make_notification):
    """A failing burn upsert is logged, later steps are dropped, handle() returns None."""
    sink = FakeSink(fail_on="burn")
    assert _handle(_processor(sink), make_notification()) is None
    assert sink.calls == []


def test_persistence_timeout_is_contained(make_notification):
    import time

    class SlowSink(FakeSink):
        def upsert_burn(self, record):
            time.sleep(0.3)
            super().upsert_burn(record)

    sink = SlowSink()
    processor = _processor(sink, persist_timeout_sec=0.05)
    assert _handle(processor, make_notification()) is None


def test_envelope_without_payload_is_skipped():
    sink = FakeSink()
    block_times = FakeBlockTimes()
    assert _handle(_processor(sink, block_times), {"slot": 5, "signature": SIGNATURE}) is None
    assert sink.calls == []
    assert block_times.slots == []


def test_missing_signature_is_message_local(make_notification):
    sink = FakeSink()
    update = make_notification(signature=None)
    assert _handle(_processor(sink), update) is None
    assert sink.calls == []


def test_binary_signature_and_keys_are_base58_encoded(make_notification):
    raw_sig = base58.b58decode(SIGNATURE)
    raw_payer = list(base58.b58decode(FEE_PAYER))
    update = make_notification(signature=raw_sig)
    update["transaction"]["transaction"]["message"]["accountKeys"][0] = raw_payer
    extracted = extract_transaction(update, noise=noise_programs(PROGRAM_ID))
    assert extracted.signature == SIGNATURE
    assert extracted.fee_payer == FEE_PAYER


def test_signature_falls_back_to_transaction_signatures(make_notification):
    update = make_notification()
    del update["signature"]
    extracted = extract_transaction(update, noise=noise_programs(PROGRAM_ID))
    assert extracted.signature == SIGNATURE


def test_loaded_addresses_resolve_program_indexes(make_notification):
    lookup_program = "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc"
    update = make_notification(
        account_keys=[FEE_PAYER],
        instructions=[{"programIdIndex": 1}, {"programIdIndex": 2}],
    )
    update["transaction"]["meta"]["loadedAddresses"] = {
        "writable": [DEX_PROGRAM],
        "readonly": [lookup_program],
    }
    extracted = extract_transaction(update, noise=noise_programs(PROGRAM_ID))
    assert extracted.instruction_counts == {DEX_PROGRAM: 1, lookup_program: 1}


def test_extract_requires_slot(make_notification):
    with pytest.raises(MalformedTransactionError):
        extract_transaction(make_notification(slot=None), noise=frozenset())


def test_encode_b58_rejects_unknown_types():
    with pytest.raises(ValueError):
        encode_b58(12345)


def test_end_to_end_with_sqlite_sink(sink, make_notification):
    """Redelivery without enrichment keeps the first block_time in the store."""
    update = make_notification(err="AccountInUse", logs=["Program log: Instruction: TransferChecked"])
    _handle(_processor(sink), update)
    _handle(_processor(sink, FakeBlockTimes(exc=BlockTimeUnavailable(1, "x"))), update)

    row = sink.get_burn(SIGNATURE)
    assert row["success"] is False
    assert row["arbitrage_success"] is True
    assert row["block_time"].replace(tzinfo=None) == BLOCK_TIME.replace(tzinfo=None)
    assert sink.get_tx_failure(SIGNATURE)["error_type"] == "AccountInUse"
    assert sink.get_tx_instructions(SIGNATURE) == {DEX_PROGRAM: 2}


def test_timed_out_write_is_not_overtaken(sink, make_notification):
    """A later message for the same signature waits for a stalled write, so its row wins."""
    import time

    class FirstBurnStalls:
        def __init__(self, inner):
            self._inner = inner
            self._stall = True

        def upsert_burn(self, record):
            if self._stall:
                self._stall = False
                time.sleep(0.4)
            self._inner.upsert_burn(record)

        def __getattr__(self, name):
            return getattr(self._inner, name)

    processor = _processor(FirstBurnStalls(sink), persist_timeout_sec=0.1)

    async def deliver_twice():
        first = await processor.handle(make_notification(slot=100, err="AccountInUse"))
        second = await processor.handle(make_notification(slot=101))
        return first, second

    first, second = asyncio.run(deliver_twice())
    assert first is None
    assert second is not None
    row = sink.get_burn(SIGNATURE)
    assert row["slot"] == 101
    assert row["success"] is True


def test_unreadable_loaded_address_keeps_message(make_notification):
    """One bad loaded address is skipped; the burn row and other counts survive."""
    sink = FakeSink()
    update = make_notification(
        account_keys=[FEE_PAYER],
        instructions=[{"programIdIndex": 1}, {"programIdIndex": 2}],
    )
    update["transaction"]["meta"]["loadedAddresses"] = {
        "writable": [12345],
        "readonly": [DEX_PROGRAM],
    }
    processed = _handle(_processor(sink), update)
    assert processed is not None
    assert sink.names() == ["burn", "instructions"]
    assert sink.calls[0][1].fee_payer == FEE_PAYER
    assert processed.instruction_counts == {DEX_PROGRAM: 1}


def test_unreadable_fee_payer_key_gives_empty_fee_payer(make_notification):
    sink = FakeSink()
    update = make_notification()
    update["transaction"]["transaction"]["message"]["accountKeys"][0] = None
    processed = _handle(_processor(sink), update)
    assert processed is not None
    assert processed.burn.fee_payer == ""
    assert processed.instruction_counts == {DEX_PROGRAM: 2}
