"""
Stream supervisor: restarts the subscription session forever.

Clean end -> wait CLEAN_RESTART_DELAY_SEC; error -> wait ERROR_RESTART_DELAY_SEC.
Fixed delays, no retry cap. Only task cancellation stops the loop.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, NoReturn

from dash_indexer.indexer_logging import get_logger
from dash_indexer.ingestion.subscription import SubscriptionManager, TransactionHandler

logger = get_logger(__name__)

CLEAN_RESTART_DELAY_SEC = 2.0
ERROR_RESTART_DELAY_SEC = 5.0


class StreamSupervisor:
    """Owns the restart policy around SubscriptionManager.run_session()."""

    def __init__(
        self,
        subscription: SubscriptionManager,
        on_transaction: TransactionHandler,
        *,
        clean_delay_sec: float = CLEAN_RESTART_DELAY_SEC,
        error_delay_sec: float = ERROR_RESTART_DELAY_SEC,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._subscription = subscription
        self._on_transaction = on_transaction
        self._clean_delay = clean_delay_sec
        self._error_delay = error_delay_sec
        self._sleep = sleep

    async def run_forever(self) -> NoReturn:
        run_id = 0
        while True:
            run_id += 1
            try:
                await self._subscription.run_session(self._on_transaction)
            except Exception as e:
                logger.warning(
                    "stream_session_error",
                    run_id=run_id,
                    error=str(e) or type(e).__name__,
                    error_type=type(e).__name__,
                    backoff_sec=self._error_delay,
                )
                delay = self._error_delay
            else:
                logger.warning(
                    "stream_session_ended",
                    run_id=run_id,
                    backoff_sec=self._clean_delay,
                )
                delay = self._clean_delay
            await self._sleep(delay)
