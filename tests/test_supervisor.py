"""
Pytest tests for the stream supervisor restart policy. Sessions and sleep are
faked; the loop is stopped by raising CancelledError from the fake sleep.
"""

from __future__ import annotations

import asyncio

import pytest

from dash_indexer.ingestion.supervisor import (
    CLEAN_RESTART_DELAY_SEC,
    ERROR_RESTART_DELAY_SEC,
    StreamSupervisor,
)


class ScriptedSessions:
    """run_session() outcomes in order: None = clean end, exception = failure."""

    def __init__(self, outcomes):
        self._outcomes = list(outcomes)
        self.handlers = []

    async def run_session(self, on_transaction):
        self.handlers.append(on_transaction)
        outcome = self._outcomes.pop(0)
        if outcome is not None:
            raise outcome


def _run_supervisor(outcomes):
    sessions = ScriptedSessions(outcomes)
    delays: list[float] = []

    async def fake_sleep(delay):
        delays.append(delay)
        if len(delays) == len(outcomes):
            raise asyncio.CancelledError

    async def handler(result):
        return None

    supervisor = StreamSupervisor(sessions, handler, sleep=fake_sleep)
    with pytest.raises(asyncio.CancelledError):
        asyncio.run(supervisor.run_forever())
    return sessions, delays, handler


def test_delays_are_distinct():
    assert CLEAN_RESTART_DELAY_SEC == 2.0
    assert ERROR_RESTART_DELAY_SEC == 5.0


def test_clean_end_waits_short_interval():
    _, delays, _ = _run_supervisor([None])
    assert delays == [CLEAN_RESTART_DELAY_SEC]


def test_error_waits_long_interval():
    _, delays, _ = _run_supervisor([ConnectionError("reset")])
    assert delays == [ERROR_RESTART_DELAY_SEC]


def test_retries_forever_with_fixed_delays():
    outcomes = [None, RuntimeError("x"), RuntimeError("y"), None, OSError("z")]
    sessions, delays, handler = _run_supervisor(outcomes)
    assert delays == [2.0, 5.0, 5.0, 2.0, 5.0]
    assert len(sessions.handlers) == 5
    assert all(h is handler for h in sessions.handlers)


def test_cancellation_during_session_propagates():
    class Hanging:
        async def run_session(self, on_transaction):
            raise asyncio.CancelledError

    async def never_sleep(delay):
        raise AssertionError("should not sleep after cancellation")

    async def handler(result):
        return None

    supervisor = StreamSupervisor(Hanging(), handler, sleep=never_sleep)
    with pytest.raises(asyncio.CancelledError):
        asyncio.run(supervisor.run_forever())
