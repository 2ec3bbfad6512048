"""
dash-indexer: observation-only ingester for a Solana bot program.

Subscribes to a filtered real-time transaction feed, classifies each
transaction (outcome, fee, arbitrage heuristic, instruction fan-out) and
upserts idempotent rows into a relational store. Never signs or sends
transactions.
"""

__version__ = "0.1.0"
