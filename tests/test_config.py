"""
Pytest tests for environment configuration (explicit mappings, no .env).
"""

from __future__ import annotations

import pytest

from dash_indexer.config import load_settings
from dash_indexer.errors import ConfigError

VALID_ENV = {
    "STREAM_ENDPOINT": "https://stream.example.test",
    "STREAM_X_TOKEN": "token",
    "JSON_RPC_URL": "https://rpc.example.test",
    "BOT_PROGRAM_ID": "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ",
    "DATABASE_URL": "postgresql://user:pw@db.example.test:5432/dash?sslmode=require",
}


def test_defaults():
    s = load_settings(VALID_ENV)
    assert s.commitment == "confirmed"
    assert s.bot_account is None
    assert s.db_pool_size == 8
    assert s.rpc_timeout_sec == 10.0
    assert s.db_timeout_sec == 30.0
    assert s.log_format == "json"
    assert s.log_level == "INFO"
    assert s.masked_database_url() == "db.example.test:5432/dash"


def test_optional_values():
    env = dict(
        VALID_ENV,
        BOT_ACCOUNT="9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka",
        COMMITMENT="Finalized",
        DB_TIMEOUT_SEC="0",
        DB_POOL_SIZE="4",
        LOG_FORMAT="Console",
        LOG_LEVEL="debug",
    )
    s = load_settings(env)
    assert s.bot_account == "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
    assert s.commitment == "finalized"
    assert s.db_timeout_sec is None
    assert s.db_pool_size == 4
    assert s.log_format == "console"
    assert s.log_level == "DEBUG"


@pytest.mark.parametrize("missing", sorted(VALID_ENV))
def test_missing_required(missing):
    env = {k: v for k, v in VALID_ENV.items() if k != missing}
    with pytest.raises(ConfigError) as excinfo:
        load_settings(env)
    assert excinfo.value.variable == missing


@pytest.mark.parametrize(
    "key,value",
    [
        ("COMMITMENT", "rooted"),
        ("BOT_PROGRAM_ID", "not-a-pubkey"),
        ("BOT_ACCOUNT", "0OIl"),
        ("RPC_TIMEOUT_SEC", "soon"),
        ("DB_POOL_SIZE", "0"),
        ("DB_POOL_SIZE", "8.5"),
        ("LOG_FORMAT", "yaml"),
        ("LOG_LEVEL", "LOUD"),
    ],
)
def test_invalid_values(key, value):
    with pytest.raises(ConfigError) as excinfo:
        load_settings(dict(VALID_ENV, **{key: value}))
    assert excinfo.value.variable == key
