"""
Tests for the runner: connection hand-back under cancellation and checkpoint advancement.
"""

from __future__ import annotations

import asyncio
import threading

import pytest

import coin_indexer.main as main_module
from coin_indexer import config
from coin_indexer.db import get_meta
from coin_indexer.errors import TransactionCommitError
from coin_indexer.indexer import NAME, ProcessingResult
from tests.builders import user_txn


def test_cancelled_range_keeps_connection_until_worker_finishes(monkeypatch):
    started = threading.Event()
    release = threading.Event()

    class SlowProcessor:
        def __init__(self, conn):
            self.conn = conn

        def process_transactions(self, txns, start, end):
            started.set()
            release.wait(5)
            return ProcessingResult(NAME, start, end)

    monkeypatch.setattr(main_module, "CoinTransactionProcessor", SlowProcessor)

    async def go():
        pool = asyncio.Queue()
        pool.put_nowait("conn")
        task = asyncio.ensure_future(main_module.run_range(pool, [user_txn(1)]))
        await asyncio.to_thread(started.wait, 5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        held_while_running = pool.empty()
        release.set()
        returned = await asyncio.wait_for(pool.get(), 5)
        return held_while_running, returned

    assert asyncio.run(go()) == (True, "conn")


def test_checkpoint_stops_at_first_failed_range(conn, monkeypatch):
    monkeypatch.setattr(config, "POLL_INTERVAL_S", 0)
    results = [
        ProcessingResult(NAME, 0, 9),
        TransactionCommitError(NAME, 10, 19, OverflowError("too big")),
        ProcessingResult(NAME, 20, 29),
    ]
    next_version = asyncio.run(main_module.record_results(conn, results, 0))

    assert next_version == 10
    assert get_meta(conn, main_module.LAST_SUCCESS_KEY, None) == "9"


def test_unexpected_error_is_reraised_after_prefix(conn):
    results = [ProcessingResult(NAME, 0, 4), RuntimeError("boom")]
    with pytest.raises(RuntimeError, match="boom"):
        asyncio.run(main_module.record_results(conn, results, 0))
    assert get_meta(conn, main_module.LAST_SUCCESS_KEY, None) == "4"
