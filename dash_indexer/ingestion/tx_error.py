"""
Transaction error decoding: bincode or JSON TransactionError to a text label.

Feeds deliver meta.err either as the runtime's bincode encoding of
TransactionError (raw bytes, or base64 text) or as the JSON-RPC rendering
({"InstructionError": [2, {"Custom": 6001}]}). Both decode to the variant's
debug form, e.g. "InstructionError(2, Custom(6001))". Anything else raises
TransactionErrorDecodeError.
"""

from __future__ import annotations

import base64
import binascii
import json
import struct
from typing import Any

from dash_indexer.errors import TransactionErrorDecodeError

# TransactionError variants in declaration order (bincode tag = index).
TRANSACTION_ERRORS = (
    "AccountInUse",
    "AccountLoadedTwice",
    "AccountNotFound",
    "ProgramAccountNotFound",
    "InsufficientFundsForFee",
    "InvalidAccountForFee",
    "AlreadyProcessed",
    "BlockhashNotFound",
    "InstructionError",
    "CallChainTooDeep",
    "MissingSignatureForFee",
    "InvalidAccountIndex",
    "SignatureFailure",
    "InvalidProgramForExecution",
    "SanitizeFailure",
    "ClusterMaintenance",
    "AccountBorrowOutstanding",
    "WouldExceedMaxBlockCostLimit",
    "UnsupportedVersion",
    "InvalidWritableAccount",
    "WouldExceedMaxAccountCostLimit",
    "WouldExceedAccountDataBlockLimit",
    "TooManyAccountLocks",
    "AddressLookupTableNotFound",
    "InvalidAddressLookupTableOwner",
    "InvalidAddressLookupTableData",
    "InvalidAddressLookupTableIndex",
    "InvalidRentPayingAccount",
    "WouldExceedMaxVoteCostLimit",
    "WouldExceedAccountDataTotalLimit",
    "DuplicateInstruction",
    "InsufficientFundsForRent",
    "MaxLoadedAccountsDataSizeExceeded",
    "InvalidLoadedAccountsDataSizeLimit",
    "ResanitizationNeeded",
    "ProgramExecutionTemporarilyRestricted",
    "UnbalancedTransaction",
    "ProgramCacheHitMaxLimit",
    "CommitCancelled",
)

# InstructionError variants in declaration order.
INSTRUCTION_ERRORS = (
    "GenericError",
    "InvalidArgument",
    "InvalidInstructionData",
    "InvalidAccountData",
    "AccountDataTooSmall",
    "InsufficientFunds",
    "IncorrectProgramId",
    "MissingRequiredSignature",
    "AccountAlreadyInitialized",
    "UninitializedAccount",
    "UnbalancedInstruction",
    "ModifiedProgramId",
    "ExternalAccountLamportSpend",
    "ExternalAccountDataModified",
    "ReadonlyLamportChange",
    "ReadonlyDataModified",
    "DuplicateAccountIndex",
    "ExecutableModified",
    "RentEpochModified",
    "NotEnoughAccountKeys",
    "AccountDataSizeChanged",
    "AccountNotExecutable",
    "AccountBorrowFailed",
    "AccountBorrowOutstanding",
    "DuplicateAccountOutOfSync",
    "Custom",
    "InvalidError",
    "ExecutableDataModified",
    "ExecutableLamportChange",
    "ExecutableAccountNotRentExempt",
    "UnsupportedProgramId",
    "CallDepth",
    "MissingAccount",
    "ReentrancyNotAllowed",
    "MaxSeedLengthExceeded",
    "InvalidSeeds",
    "InvalidRealloc",
    "ComputationalBudgetExceeded",
    "PrivilegeEscalation",
    "ProgramEnvironmentSetupFailure",
    "ProgramFailedToComplete",
    "ProgramFailedToCompile",
    "Immutable",
    "IncorrectAuthority",
    "BorshIoError",
    "AccountNotRentExempt",
    "InvalidAccountOwner",
    "ArithmeticOverflow",
    "UnsupportedSysvar",
    "IllegalOwner",
    "MaxAccountsDataAllocationsExceeded",
    "MaxAccountsResizeExceeded",
    "MaxInstructionTraceLengthExceeded",
    "BuiltinProgramsMustConsumeComputeUnits",
)

# Variants carrying data; every other variant is a unit variant.
_TX_INDEX_VARIANTS = ("DuplicateInstruction",)
_TX_ACCOUNT_INDEX_VARIANTS = ("InsufficientFundsForRent", "ProgramExecutionTemporarilyRestricted")


class _Reader:
    """Cursor over a bincode buffer (little-endian, fixint)."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def take(self, n: int) -> bytes:
        if self._pos + n > len(self._data):
            raise TransactionErrorDecodeError(
                f"truncated payload: need {n} bytes at offset {self._pos}, have {len(self._data) - self._pos}"
            )
        chunk = self._data[self._pos:self._pos + n]
        self._pos += n
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u32(self) -> int:
        return struct.unpack("<I", self.take(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self.take(8))[0]

    def string(self) -> str:
        raw = self.take(self.u64())
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TransactionErrorDecodeError(f"invalid utf-8 in string: {e}") from e

    def finish(self) -> None:
        if self._pos != len(self._data):
            raise TransactionErrorDecodeError(
                f"{len(self._data) - self._pos} trailing bytes after error payload"
            )


def _debug_str(value: str) -> str:
    """Render a string the way a Rust debug formatter quotes it."""
    return json.dumps(value, ensure_ascii=False)


def _variant(table: tuple[str, ...], tag: int, kind: str) -> str:
    if not 0 <= tag < len(table):
        raise TransactionErrorDecodeError(f"unknown {kind} tag {tag}")
    return table[tag]


def _decode_instruction_error_bincode(reader: _Reader) -> str:
    name = _variant(INSTRUCTION_ERRORS, reader.u32(), "InstructionError")
    if name == "Custom":
        return f"Custom({reader.u32()})"
    if name == "BorshIoError":
        return f"BorshIoError({_debug_str(reader.string())})"
    return name


def decode_bincode_error(data: bytes) -> str:
    """Decode a bincode TransactionError into its debug label."""
    reader = _Reader(bytes(data))
    name = _variant(TRANSACTION_ERRORS, reader.u32(), "TransactionError")
    if name == "InstructionError":
        index = reader.u8()
        label = f"InstructionError({index}, {_decode_instruction_error_bincode(reader)})"
    elif name in _TX_INDEX_VARIANTS:
        label = f"{name}({reader.u8()})"
    elif name in _TX_ACCOUNT_INDEX_VARIANTS:
        label = f"{name} {{ account_index: {reader.u8()} }}"
    else:
        label = name
    reader.finish()
    return label


def _as_int(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TransactionErrorDecodeError(f"{what} must be an integer, got {value!r}")
    return value


def _decode_instruction_error_json(value: Any) -> str:
    if isinstance(value, str):
        if value in INSTRUCTION_ERRORS and value not in ("Custom", "BorshIoError"):
            return value
        raise TransactionErrorDecodeError(f"unknown InstructionError {value!r}")
    if isinstance(value, dict) and len(value) == 1:
        (name, inner), = value.items()
        if name == "Custom":
            return f"Custom({_as_int(inner, 'Custom code')})"
        if name == "BorshIoError" and isinstance(inner, str):
            return f"BorshIoError({_debug_str(inner)})"
    raise TransactionErrorDecodeError(f"unrecognized InstructionError shape {value!r}")


def decode_json_error(value: Any) -> str:
    """Decode the JSON-RPC rendering of a TransactionError into its debug label."""
    if isinstance(value, str):
        if value in TRANSACTION_ERRORS and value not in (
            "InstructionError",
            *_TX_INDEX_VARIANTS,
            *_TX_ACCOUNT_INDEX_VARIANTS,
        ):
            return value
        raise TransactionErrorDecodeError(f"unknown TransactionError {value!r}")
    if not isinstance(value, dict) or len(value) != 1:
        raise TransactionErrorDecodeError(f"unrecognized TransactionError shape {value!r}")
    (name, inner), = value.items()
    if name == "InstructionError" and isinstance(inner, list) and len(inner) == 2:
        index = _as_int(inner[0], "instruction index")
        return f"InstructionError({index}, {_decode_instruction_error_json(inner[1])})"
    if name in _TX_INDEX_VARIANTS:
        return f"{name}({_as_int(inner, name)})"
    if name in _TX_ACCOUNT_INDEX_VARIANTS and isinstance(inner, dict):
        return f"{name} {{ account_index: {_as_int(inner.get('account_index'), 'account_index')} }}"
    raise TransactionErrorDecodeError(f"unrecognized TransactionError shape {value!r}")


def decode_transaction_error(payload: Any) -> str:
    """
    Decode a meta.err payload into a TransactionError label.

    bytes-like or list[int] -> bincode; str naming a unit variant -> that
    variant; other str -> base64 bincode; dict -> JSON form.
    Raises TransactionErrorDecodeError when the payload is not a known error.
    """
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return decode_bincode_error(bytes(payload))
    if isinstance(payload, list) and all(isinstance(b, int) and 0 <= b < 256 for b in payload):
        return decode_bincode_error(bytes(payload))
    if isinstance(payload, str):
        try:
            return decode_json_error(payload)
        except TransactionErrorDecodeError:
            pass
        try:
            raw = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise TransactionErrorDecodeError(f"not a variant name or base64: {payload!r}") from e
        return decode_bincode_error(raw)
    return decode_json_error(payload)
