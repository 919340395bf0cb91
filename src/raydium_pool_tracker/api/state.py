"""Shared API state: storage access and the optional worker pool."""

from __future__ import annotations

from typing import Dict, List, Optional

from ..config.settings import AppConfig
from ..datalake.storage import SQLitePoolStore
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS, MetricsRegistry
from ..pipeline.worker_pool import BatchSummary, ReconciliationWorkerPool


class PoolApiState:
    """Thin wrapper around the pool store, metrics and worker pool."""

    def __init__(
        self,
        *,
        config: AppConfig,
        store: SQLitePoolStore,
        worker_pool: Optional[ReconciliationWorkerPool] = None,
        metrics: MetricsRegistry = METRICS,
    ) -> None:
        self.config = config
        self.store = store
        self.worker_pool = worker_pool
        self.metrics = metrics
        self._logger = get_logger(__name__)

    def get_pool(self, address: str) -> Optional[Dict[str, object]]:
        pool = self.store.get(address)
        return pool.to_dict() if pool is not None else None

    def list_active(self) -> List[Dict[str, object]]:
        return [pool.to_dict() for pool in self.store.list_active()]

    def list_by_token(self, mint: str) -> List[Dict[str, object]]:
        return [pool.to_dict() for pool in self.store.list_by_token(mint)]

    def is_active(self, address: str) -> bool:
        pool = self.store.get(address)
        return pool is not None and pool.active

    async def deactivate(self, address: str) -> bool:
        """Deactivate an active pool; False when it is unknown or already inactive."""

        if self.worker_pool is not None:
            deactivated = await self.worker_pool.reconciler.deactivate(address)
        elif self.is_active(address):
            deactivated = self.store.mark_inactive(address)
        else:
            deactivated = False
        if deactivated:
            self.metrics.increment("api.deactivations", 1)
            self._logger.info("Pool %s deactivated via API", address)
        return deactivated

    @property
    def can_analyze(self) -> bool:
        return self.worker_pool is not None

    async def run_analysis(self) -> Optional[BatchSummary]:
        if self.worker_pool is None:
            return None
        try:
            return await self.worker_pool.run_once()
        except Exception as exc:  # noqa: BLE001
            self.metrics.increment("api.analysis_errors", 1)
            self._logger.exception("On-demand analysis failed: %s", exc)
            return None


__all__ = ["PoolApiState"]
