"""
Subscription manager: one filtered transaction-stream session over websocket JSON-RPC.

Sends a transactionSubscribe request (account filter on the bot program, votes
excluded, failed transactions included, configured commitment), answers
keepalive pings with a fixed-id pong, and hands each transaction notification
to the event processor before reading the next message.

run_session() returns when the upstream closes cleanly and raises on connect
failures, read errors, abnormal closes and subscription rejections.
"""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Mapping

import websockets
from websockets.exceptions import ConnectionClosed

from dash_indexer.config.env import COMMITMENT_LEVELS, DEFAULT_COMMITMENT
from dash_indexer.errors import SubscriptionError
from dash_indexer.indexer_logging import get_logger

logger = get_logger(__name__)

SUBSCRIBE_REQUEST_ID = 1
PONG_ID = 1
TRANSACTION_NOTIFICATION = "transactionNotification"
PING_METHOD = "ping"
PONG_MESSAGE = {"jsonrpc": "2.0", "method": "pong", "params": {"id": PONG_ID}}

DEFAULT_WS_PING_INTERVAL = 30.0
DEFAULT_WS_PING_TIMEOUT = 20.0
_WS_CLOSE_TIMEOUT = 5.0

TransactionHandler = Callable[[Mapping[str, Any]], Awaitable[Any]]


def to_ws_url(endpoint: str) -> str:
    """Map https:// -> wss:// and http:// -> ws://; TLS follows the scheme."""
    s = endpoint.strip()
    if s.startswith("https://"):
        return "wss://" + s[len("https://"):]
    if s.startswith("http://"):
        return "ws://" + s[len("http://"):]
    return s


def build_subscribe_request(
    program_id: str,
    *,
    bot_account: str | None = None,
    commitment: str = DEFAULT_COMMITMENT,
) -> dict[str, Any]:
    """transactionSubscribe request: program (and bot account) included, votes out, failures in."""
    if commitment not in COMMITMENT_LEVELS:
        raise ValueError(f"invalid commitment {commitment!r}")
    accounts = [program_id]
    if bot_account and bot_account != program_id:
        accounts.append(bot_account)
    return {
        "jsonrpc": "2.0",
        "id": SUBSCRIBE_REQUEST_ID,
        "method": "transactionSubscribe",
        "params": [
            {"accountInclude": accounts, "vote": False, "failed": True},
            {
                "commitment": commitment,
                "encoding": "json",
                "transactionDetails": "full",
                "showRewards": False,
                "maxSupportedTransactionVersion": 0,
            },
        ],
    }


class SubscriptionManager:
    """Opens one subscription session per run_session() call."""

    def __init__(
        self,
        endpoint: str,
        x_token: str,
        program_id: str,
        *,
        bot_account: str | None = None,
        commitment: str = DEFAULT_COMMITMENT,
        ws_ping_interval: float | None = DEFAULT_WS_PING_INTERVAL,
        ws_ping_timeout: float | None = DEFAULT_WS_PING_TIMEOUT,
        connect: Callable[..., Any] = websockets.connect,
    ) -> None:
        if not endpoint.strip():
            raise ValueError("endpoint must be non-empty")
        self._url = to_ws_url(endpoint)
        self._x_token = x_token
        self._program_id = program_id
        self._request = build_subscribe_request(
            program_id, bot_account=bot_account, commitment=commitment
        )
        self._ws_ping_interval = ws_ping_interval or None
        self._ws_ping_timeout = ws_ping_timeout
        self._connect = connect

    @property
    def url(self) -> str:
        return self._url

    @property
    def subscribe_request(self) -> dict[str, Any]:
        return self._request

    async def run_session(self, on_transaction: TransactionHandler) -> None:
        """Connect, subscribe, and dispatch messages until the upstream closes."""
        logger.info("stream_connecting", url=self._url.split("?")[0])
        async with self._connect(
            self._url,
            additional_headers={"x-token": self._x_token},
            ping_interval=self._ws_ping_interval,
            ping_timeout=self._ws_ping_timeout,
            close_timeout=_WS_CLOSE_TIMEOUT,
        ) as ws:
            await ws.send(json.dumps(self._request))
            async for raw in ws:
                try:
                    msg = json.loads(raw)
                except (TypeError, ValueError):
                    logger.debug("stream_frame_skipped", reason="not_json")
                    continue
                if not isinstance(msg, dict):
                    continue
                await self._dispatch(ws, msg, on_transaction)
        logger.info("stream_closed", url=self._url.split("?")[0])

    async def _dispatch(
        self,
        ws: Any,
        msg: dict[str, Any],
        on_transaction: TransactionHandler,
    ) -> None:
        method = msg.get("method")
        if method == PING_METHOD:
            await self._send_pong(ws)
            return
        if method == TRANSACTION_NOTIFICATION:
            params = msg.get("params") or {}
            result = params.get("result") if isinstance(params, dict) else None
            if not isinstance(result, dict) or not isinstance(result.get("transaction"), dict):
                logger.debug("stream_envelope_skipped", reason="no_transaction_payload")
                return
            await on_transaction(result)
            return
        if msg.get("id") == SUBSCRIBE_REQUEST_ID:
            self._check_subscribe_reply(msg)

    def _check_subscribe_reply(self, msg: dict[str, Any]) -> None:
        err = msg.get("error")
        if err:
            if isinstance(err, dict):
                raise SubscriptionError(str(err.get("message", err)), code=err.get("code"))
            raise SubscriptionError(str(err))
        logger.info(
            "stream_subscribed",
            program_id=self._program_id,
            subscription_id=msg.get("result"),
            commitment=self._request["params"][1]["commitment"],
        )

    async def _send_pong(self, ws: Any) -> None:
        """Best-effort pong; a closed connection is session-fatal."""
        try:
            await ws.send(json.dumps(PONG_MESSAGE))
        except ConnectionClosed:
            raise
        except Exception as e:
            logger.warning("stream_pong_failed", error=str(e))
