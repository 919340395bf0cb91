from __future__ import annotations

import asyncio
import struct
from pathlib import Path
from typing import List

import pytest

from raydium_pool_tracker.config.settings import ReconcilerConfig
from raydium_pool_tracker.datalake.schemas import SwapTransaction, parse_transactions
from raydium_pool_tracker.datalake.storage import SQLitePoolStore
from raydium_pool_tracker.ingestion.account_decoder import RESERVE_A_OFFSET, RESERVE_B_OFFSET
from raydium_pool_tracker.monitoring.metrics import METRICS
from raydium_pool_tracker.pipeline.reconciler import PoolReconciler, ReconcileStatus
from raydium_pool_tracker.pipeline.worker_pool import ReconciliationWorkerPool
from raydium_pool_tracker.utils.constants import RAYDIUM_AMM_V4_PROGRAM_ID


def _account(reserve_a: int, reserve_b: int) -> bytes:
    buffer = bytearray(192)
    struct.pack_into("<q", buffer, RESERVE_A_OFFSET, reserve_a)
    struct.pack_into("<q", buffer, RESERVE_B_OFFSET, reserve_b)
    return bytes(buffer)


def _payload(signature: str, pool: str, tx_type: str = "SWAP") -> dict:
    return {
        "signature": signature,
        "type": tx_type,
        "tokenTransfers": [
            {"mint": "MintA", "tokenAmount": 1.5},
            {"mint": "MintB", "tokenAmount": 3},
        ],
        "instructions": [{"programId": RAYDIUM_AMM_V4_PROGRAM_ID, "accounts": ["a", "b", pool]}],
    }


class StaticFeed:
    def __init__(self, transactions: List[SwapTransaction]) -> None:
        self.transactions = transactions
        self.requested: List[str] = []

    def fetch_recent(self, program_address: str) -> List[SwapTransaction]:
        self.requested.append(program_address)
        return list(self.transactions)


class BrokenFeed:
    def __init__(self) -> None:
        self.calls = 0

    def fetch_recent(self, program_address: str) -> List[SwapTransaction]:
        self.calls += 1
        raise ConnectionError("helius unavailable")


class PerPoolFetcher:
    def fetch_raw(self, address: str) -> bytes:
        if address == "broken-pool":
            return b"\x01\x02"
        return _account(2_000, 1_000)


def _reconciler(tmp_path: Path) -> tuple[PoolReconciler, SQLitePoolStore]:
    store = SQLitePoolStore(tmp_path / "pools.sqlite3")
    return PoolReconciler(store, PerPoolFetcher(), config=ReconcilerConfig()), store


def test_run_once_isolates_failing_units(tmp_path: Path) -> None:
    METRICS.reset()
    reconciler, store = _reconciler(tmp_path)
    feed = StaticFeed(
        parse_transactions(
            [
                _payload("s1", "pool-1"),
                _payload("s2", "broken-pool"),
                _payload("s3", "pool-2"),
                _payload("s4", "pool-3", tx_type="TRANSFER"),
            ]
        )
    )
    worker_pool = ReconciliationWorkerPool(feed, reconciler, max_concurrency=2)

    summary = asyncio.run(worker_pool.run_once())

    assert feed.requested == [RAYDIUM_AMM_V4_PROGRAM_ID]
    assert summary.fetched == 4
    assert summary.dispatched == 3
    assert summary.count(ReconcileStatus.PERSISTED) == 2
    assert summary.count(ReconcileStatus.DEACTIVATED) == 1
    assert summary.errors == 0
    assert store.get("pool-1").price == 2
    assert store.get("broken-pool").active is False
    assert store.get("pool-3") is None
    assert METRICS.get("worker.batches") == 1


def test_escaped_exceptions_are_counted(tmp_path: Path) -> None:
    class ExplodingReconciler:
        program_id = RAYDIUM_AMM_V4_PROGRAM_ID

        async def reconcile(self, transaction):
            raise RuntimeError("escaped")

    feed = StaticFeed(parse_transactions([_payload("s1", "pool-1")]))
    worker_pool = ReconciliationWorkerPool(feed, ExplodingReconciler())

    summary = asyncio.run(worker_pool.run_once())

    assert summary.errors == 1
    assert summary.counts == {}


def test_run_forever_survives_feed_failures(tmp_path: Path) -> None:
    reconciler, _ = _reconciler(tmp_path)
    feed = BrokenFeed()
    worker_pool = ReconciliationWorkerPool(feed, reconciler)

    summaries = asyncio.run(worker_pool.run_forever(0.0, max_cycles=3))

    assert feed.calls == 3
    assert summaries == []


def test_run_forever_stops_on_event(tmp_path: Path) -> None:
    reconciler, _ = _reconciler(tmp_path)
    feed = StaticFeed([])
    worker_pool = ReconciliationWorkerPool(feed, reconciler)

    async def _exercise():
        stop = asyncio.Event()
        task = asyncio.create_task(worker_pool.run_forever(60.0, stop_event=stop))
        await asyncio.sleep(0.05)
        stop.set()
        return await asyncio.wait_for(task, timeout=1.0)

    summaries = asyncio.run(_exercise())
    assert len(summaries) == 1
    assert summaries[0].dispatched == 0


def test_concurrency_must_be_positive(tmp_path: Path) -> None:
    reconciler, _ = _reconciler(tmp_path)
    with pytest.raises(ValueError):
        ReconciliationWorkerPool(StaticFeed([]), reconciler, max_concurrency=0)
