"""
Configuration for dash-indexer.

Loads and validates settings from environment variables and an optional .env
file. Settings is the single source of truth handed to the process wiring.
"""

from dash_indexer.config.env import COMMITMENT_LEVELS, Settings, load_settings  # noqa: F401

__all__ = ["COMMITMENT_LEVELS", "Settings", "load_settings"]
