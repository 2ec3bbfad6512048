"""
getBlockTime enrichment over Solana JSON-RPC.

One POST per slot, no retries. Every failure (transport, HTTP status,
JSON-RPC error, missing or null result, timeout) raises BlockTimeUnavailable;
callers treat it as "timestamp unavailable".
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx

from dash_indexer.errors import BlockTimeUnavailable
from dash_indexer.indexer_logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 10.0


def build_block_time_request(slot: int) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": 1, "method": "getBlockTime", "params": [int(slot)]}


class BlockTimeClient:
    """
    Async getBlockTime client. Owns one httpx.AsyncClient; close with aclose()
    or use as an async context manager.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        self._rpc_url = rpc_url.strip()
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_sec),
            transport=transport,
        )

    async def __aenter__(self) -> "BlockTimeClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_block_time(self, slot: int) -> datetime:
        """Return the wall-clock time of a slot as an aware UTC datetime."""
        try:
            resp = await self._client.post(self._rpc_url, json=build_block_time_request(slot))
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            raise BlockTimeUnavailable(slot, f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise BlockTimeUnavailable(slot, f"invalid JSON response: {e}") from e

        if not isinstance(data, dict):
            raise BlockTimeUnavailable(slot, "response is not a JSON object")
        err = data.get("error")
        if err:
            message = err.get("message", err) if isinstance(err, dict) else err
            raise BlockTimeUnavailable(slot, f"rpc error: {message}")
        result = data.get("result")
        if result is None:
            raise BlockTimeUnavailable(slot, "no block time")
        if isinstance(result, bool) or not isinstance(result, int):
            raise BlockTimeUnavailable(slot, f"unexpected result {result!r}")
        try:
            return datetime.fromtimestamp(result, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise BlockTimeUnavailable(slot, f"timestamp out of range: {result}") from e
