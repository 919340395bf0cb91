"""Fans a batch of swaps out to the reconciler with bounded concurrency."""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..ingestion.helius_api import TransactionFeed
from ..ingestion.swap_parser import filter_swaps
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from .reconciler import PoolReconciler, ReconcileResult, ReconcileStatus


@dataclass(slots=True)
class BatchSummary:
    fetched: int = 0
    dispatched: int = 0
    counts: Dict[str, int] = field(default_factory=dict)
    errors: int = 0

    def count(self, status: ReconcileStatus) -> int:
        return self.counts.get(status.value, 0)

    def to_dict(self) -> Dict[str, object]:
        return {
            "fetched": self.fetched,
            "dispatched": self.dispatched,
            "counts": dict(self.counts),
            "errors": self.errors,
        }


class ReconciliationWorkerPool:
    """Polls the transaction feed and reconciles each swap in its own task.

    A failure in one unit never affects its siblings: results are gathered with
    ``return_exceptions=True`` and anything that escaped the reconciler is
    counted as an error.
    """

    def __init__(
        self,
        feed: TransactionFeed,
        reconciler: PoolReconciler,
        *,
        max_concurrency: int = 4,
        program_address: Optional[str] = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._feed = feed
        self._reconciler = reconciler
        self._max_concurrency = max_concurrency
        self._program_address = program_address or reconciler.program_id
        self._logger = get_logger(__name__)

    @property
    def reconciler(self) -> PoolReconciler:
        return self._reconciler

    async def run_once(self, program_address: Optional[str] = None) -> BatchSummary:
        address = program_address or self._program_address
        transactions = await asyncio.to_thread(self._feed.fetch_recent, address)
        swaps = filter_swaps(transactions)
        summary = BatchSummary(fetched=len(transactions), dispatched=len(swaps))
        if not swaps:
            self._logger.debug("No swaps to reconcile for %s", address)
            return summary

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _bounded(transaction) -> ReconcileResult:
            async with semaphore:
                return await self._reconciler.reconcile(transaction)

        outcomes = await asyncio.gather(*(_bounded(tx) for tx in swaps), return_exceptions=True)

        counts: Counter = Counter()
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                summary.errors += 1
                self._logger.error("Reconciliation task failed: %s", outcome)
                continue
            counts[outcome.status.value] += 1
        summary.counts = dict(counts)
        METRICS.increment("worker.batches", 1)
        METRICS.gauge("worker.last_batch_size", len(swaps))
        self._logger.info(
            "Reconciled %d swaps of %d transactions: %s",
            len(swaps),
            len(transactions),
            summary.counts,
        )
        return summary

    async def run_forever(
        self,
        interval_seconds: float,
        stop_event: Optional[asyncio.Event] = None,
        max_cycles: Optional[int] = None,
    ) -> List[BatchSummary]:
        stop_event = stop_event or asyncio.Event()
        summaries: List[BatchSummary] = []
        cycle = 0
        while not stop_event.is_set():
            cycle += 1
            try:
                summaries.append(await self.run_once())
            except Exception as exc:  # noqa: BLE001
                METRICS.increment("worker.feed_errors", 1)
                self._logger.exception("Poll cycle %d failed: %s", cycle, exc)
            if max_cycles is not None and cycle >= max_cycles:
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=max(interval_seconds, 0.0))
            except asyncio.TimeoutError:
                continue
        return summaries


__all__ = ["BatchSummary", "ReconciliationWorkerPool"]
