"""Entrypoint for the Raydium pool reconciliation service."""

from __future__ import annotations

import argparse
import asyncio
from typing import Optional

from .analysis.price_sanity import PriceSanityValidator
from .config.settings import AppConfig, get_app_config
from .datalake.storage import SQLitePoolStore
from .ingestion.account_fetcher import SolanaAccountFetcher
from .ingestion.helius_api import HeliusTransactionFeed
from .monitoring import bootstrap_observability
from .monitoring.logger import get_logger
from .pipeline.rate_limiter import RateLimiter
from .pipeline.reconciler import PoolReconciler
from .pipeline.worker_pool import ReconciliationWorkerPool

logger = get_logger(__name__)


def build_worker_pool(config: AppConfig, store: SQLitePoolStore) -> ReconciliationWorkerPool:
    reconciler = PoolReconciler(
        store,
        SolanaAccountFetcher(config.rpc),
        rate_limiter=RateLimiter.from_config(config.rate_limit),
        validator=PriceSanityValidator(store, config.reconciler.max_price_change),
        config=config.reconciler,
    )
    return ReconciliationWorkerPool(
        HeliusTransactionFeed(config.helius),
        reconciler,
        max_concurrency=config.worker.max_concurrency,
        program_address=config.reconciler.program_id,
    )


async def run_async(
    *,
    loop: bool = False,
    interval_seconds: Optional[float] = None,
    max_cycles: Optional[int] = None,
) -> None:
    config = get_app_config()
    bootstrap_observability(config=config)
    store = SQLitePoolStore(config.storage.database_path)
    worker_pool = build_worker_pool(config, store)
    logger.info("Tracking Raydium pools for program %s", config.reconciler.program_id)
    if not loop:
        summary = await worker_pool.run_once()
        logger.info("Batch summary: %s", summary.to_dict())
        return
    interval = config.worker.poll_interval_seconds if interval_seconds is None else interval_seconds
    await worker_pool.run_forever(interval, max_cycles=max_cycles)


def main() -> None:
    parser = argparse.ArgumentParser(description="Reconcile Raydium pool state from swap transactions")
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Poll continuously instead of processing a single batch.",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between polls when --loop is enabled (default: worker.poll_interval_seconds)",
    )
    parser.add_argument(
        "--max-cycles",
        type=int,
        default=None,
        help="Optional limit to the number of poll cycles to execute.",
    )
    args = parser.parse_args()
    try:
        asyncio.run(run_async(loop=args.loop, interval_seconds=args.interval, max_cycles=args.max_cycles))
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")


if __name__ == "__main__":
    main()
