"""
Process entrypoint: wire settings, store, enrichment client and stream, then
run the supervisor until SIGINT/SIGTERM.

Usage: python -m dash_indexer   (configuration from env / .env, see config.env)
"""

from __future__ import annotations

import asyncio
import signal
import sys

from dash_indexer.config import Settings, load_settings
from dash_indexer.database import TransactionSink, create_db_engine, ensure_schema
from dash_indexer.errors import ConfigError
from dash_indexer.indexer_logging import configure_structlog, get_logger
from dash_indexer.ingestion import (
    BlockTimeClient,
    EventProcessor,
    StreamSupervisor,
    SubscriptionManager,
)

logger = get_logger("dash_indexer.main")


async def run(settings: Settings) -> None:
    """Run ingestion until the supervisor task is cancelled."""
    engine = create_db_engine(settings.database_url, pool_size=settings.db_pool_size)
    block_times = BlockTimeClient(settings.json_rpc_url, timeout_sec=settings.rpc_timeout_sec)
    try:
        await asyncio.get_running_loop().run_in_executor(None, ensure_schema, engine)
        processor = EventProcessor(
            TransactionSink(engine),
            block_times,
            bot_program_id=settings.bot_program_id,
            persist_timeout_sec=settings.db_timeout_sec,
        )
        subscription = SubscriptionManager(
            settings.stream_endpoint,
            settings.stream_x_token,
            settings.bot_program_id,
            bot_account=settings.bot_account,
            commitment=settings.commitment,
            ws_ping_interval=settings.stream_ping_interval_sec,
        )
        supervisor = StreamSupervisor(subscription, processor.handle)
        task = asyncio.create_task(supervisor.run_forever())
        _install_signal_handlers(task)
        logger.info(
            "indexer_started",
            program_id=settings.bot_program_id,
            bot_account=settings.bot_account,
            commitment=settings.commitment,
            database=settings.masked_database_url(),
        )
        try:
            await task
        except asyncio.CancelledError:
            logger.info("indexer_shutdown_signal")
    finally:
        await block_times.aclose()
        engine.dispose()
        logger.info("indexer_stopped")


def _install_signal_handlers(task: asyncio.Task) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, task.cancel)
        except (NotImplementedError, RuntimeError):
            # Platforms without loop signal support fall back to KeyboardInterrupt
            pass


def main() -> int:
    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error("indexer_config_error", variable=e.variable, error=str(e))
        return 1
    configure_structlog(settings.log_format, settings.log_level)
    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        logger.info("indexer_keyboard_interrupt")
    except Exception as e:
        logger.error(
            "indexer_startup_failed",
            error=str(e) or type(e).__name__,
            database=settings.masked_database_url(),
            exc_info=True,
        )
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
