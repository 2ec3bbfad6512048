"""
Exception types raised across dash-indexer.

Session-fatal errors (SubscriptionError, transport errors) end one stream
session and are absorbed by the supervisor. Message-local errors end the
processing of one transaction and are absorbed by the event processor.
"""

from __future__ import annotations


class IndexerError(Exception):
    """Base class for dash-indexer errors."""


class ConfigError(IndexerError):
    """Raised when a required environment variable is missing or invalid."""

    def __init__(self, variable: str, message: str):
        super().__init__(f"{variable}: {message}")
        self.variable = variable


class SubscriptionError(IndexerError):
    """Raised when the upstream feed rejects the subscription request."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class BlockTimeUnavailable(IndexerError):
    """Raised when getBlockTime cannot produce a timestamp for a slot."""

    def __init__(self, slot: int, reason: str):
        super().__init__(f"block time unavailable for slot {slot}: {reason}")
        self.slot = slot
        self.reason = reason


class TransactionErrorDecodeError(IndexerError):
    """Raised when a transaction error payload is not a known structured error."""


class MalformedTransactionError(IndexerError):
    """Raised when a transaction payload lacks its signature or slot."""
