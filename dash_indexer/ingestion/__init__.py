"""
Stream ingestion: supervisor -> subscription -> event processor -> sink.

classifier and tx_error are pure; block_time is the getBlockTime enrichment
client; processor turns one notification into rows.
"""

from dash_indexer.ingestion.block_time import BlockTimeClient
from dash_indexer.ingestion.processor import EventProcessor, extract_transaction
from dash_indexer.ingestion.subscription import SubscriptionManager, build_subscribe_request
from dash_indexer.ingestion.supervisor import StreamSupervisor

__all__ = [
    "BlockTimeClient",
    "EventProcessor",
    "StreamSupervisor",
    "SubscriptionManager",
    "build_subscribe_request",
    "extract_transaction",
]
