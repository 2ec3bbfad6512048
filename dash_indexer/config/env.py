"""
Environment variable loading and validation for dash-indexer.

- STREAM_ENDPOINT: websocket (or http(s)) URL of the transaction feed
- STREAM_X_TOKEN: access token sent as the x-token handshake header
- JSON_RPC_URL: Solana JSON-RPC endpoint used for getBlockTime
- BOT_PROGRAM_ID: program whose transactions are ingested
- BOT_ACCOUNT: optional extra account included in the subscription filter
- DATABASE_URL: SQLAlchemy URL of the relational store
- COMMITMENT: processed | confirmed | finalized (default: confirmed)
- RPC_TIMEOUT_SEC, DB_TIMEOUT_SEC (0 disables), DB_POOL_SIZE (integer >= 1)
- LOG_FORMAT: json | console; LOG_LEVEL: DEBUG | INFO | WARNING | ERROR | CRITICAL
- Loads .env from the project root when present.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv
from solders.pubkey import Pubkey

from dash_indexer.errors import ConfigError
from dash_indexer.indexer_logging.logger import (
    DEFAULT_LOG_FORMAT,
    DEFAULT_LOG_LEVEL,
    LOG_FORMATS,
    LOG_LEVELS,
)

_CONFIG_DIR = Path(__file__).resolve().parent
_ROOT = _CONFIG_DIR.parent.parent
_ENV_PATH = _ROOT / ".env"

COMMITMENT_LEVELS = ("processed", "confirmed", "finalized")
DEFAULT_COMMITMENT = "confirmed"
DEFAULT_RPC_TIMEOUT_SEC = 10.0
DEFAULT_DB_TIMEOUT_SEC = 30.0
DEFAULT_DB_POOL_SIZE = 8
DEFAULT_STREAM_PING_INTERVAL_SEC = 30.0


@dataclass(frozen=True)
class Settings:
    """Validated process configuration."""

    stream_endpoint: str
    stream_x_token: str
    json_rpc_url: str
    bot_program_id: str
    database_url: str
    bot_account: str | None = None
    commitment: str = DEFAULT_COMMITMENT
    rpc_timeout_sec: float = DEFAULT_RPC_TIMEOUT_SEC
    db_timeout_sec: float | None = DEFAULT_DB_TIMEOUT_SEC
    """None disables the per-call persistence timeout."""
    db_pool_size: int = DEFAULT_DB_POOL_SIZE
    stream_ping_interval_sec: float = DEFAULT_STREAM_PING_INTERVAL_SEC
    log_format: str = DEFAULT_LOG_FORMAT
    log_level: str = DEFAULT_LOG_LEVEL

    def masked_database_url(self) -> str:
        """Database URL without credentials or query string, for logging."""
        return self.database_url.split("?")[0].split("@")[-1]


def load_indexer_env() -> None:
    """Load .env from project root. Existing environment variables win."""
    load_dotenv(_ENV_PATH, override=False)


def _required(env: Mapping[str, str], name: str) -> str:
    value = (env.get(name) or "").strip()
    if not value:
        raise ConfigError(name, "missing")
    return value


def _pubkey(name: str, value: str) -> str:
    """Validate a base58 public key with solders. Raises ConfigError if invalid."""
    try:
        Pubkey.from_string(value)
    except Exception as e:
        raise ConfigError(name, f"invalid public key: {e}") from e
    return value


def _positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(name, f"not a number: {raw!r}") from e
    if value < 0:
        raise ConfigError(name, "must be >= 0")
    return value


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(name, f"not an integer: {raw!r}") from e
    if value < 1:
        raise ConfigError(name, "must be >= 1")
    return value


def _choice(env: Mapping[str, str], name: str, choices: tuple[str, ...], default: str) -> str:
    value = (env.get(name) or default).strip().lower()
    for choice in choices:
        if value == choice.lower():
            return choice
    raise ConfigError(name, f"expected one of {', '.join(choices)}")


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """
    Build Settings from the environment (or an explicit mapping, for tests).

    Raises ConfigError naming the first missing or invalid variable.
    """
    if env is None:
        load_indexer_env()
        env = os.environ

    commitment = _choice(env, "COMMITMENT", COMMITMENT_LEVELS, DEFAULT_COMMITMENT)

    bot_account = (env.get("BOT_ACCOUNT") or "").strip() or None
    if bot_account is not None:
        _pubkey("BOT_ACCOUNT", bot_account)

    db_timeout = _positive_float(env, "DB_TIMEOUT_SEC", DEFAULT_DB_TIMEOUT_SEC)

    return Settings(
        stream_endpoint=_required(env, "STREAM_ENDPOINT"),
        stream_x_token=_required(env, "STREAM_X_TOKEN"),
        json_rpc_url=_required(env, "JSON_RPC_URL"),
        bot_program_id=_pubkey("BOT_PROGRAM_ID", _required(env, "BOT_PROGRAM_ID")),
        database_url=_required(env, "DATABASE_URL"),
        bot_account=bot_account,
        commitment=commitment,
        rpc_timeout_sec=_positive_float(env, "RPC_TIMEOUT_SEC", DEFAULT_RPC_TIMEOUT_SEC) or DEFAULT_RPC_TIMEOUT_SEC,
        db_timeout_sec=db_timeout or None,
        db_pool_size=_positive_int(env, "DB_POOL_SIZE", DEFAULT_DB_POOL_SIZE),
        stream_ping_interval_sec=_positive_float(
            env, "STREAM_PING_INTERVAL_SEC", DEFAULT_STREAM_PING_INTERVAL_SEC
        ),
        log_format=_choice(env, "LOG_FORMAT", LOG_FORMATS, DEFAULT_LOG_FORMAT),
        log_level=_choice(env, "LOG_LEVEL", LOG_LEVELS, DEFAULT_LOG_LEVEL),
    )
