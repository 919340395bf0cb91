"""Dump the raw Helius transaction payload for a program address to disk."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Optional

from raydium_pool_tracker.config.settings import get_app_config
from raydium_pool_tracker.ingestion.helius_api import HeliusTransactionFeed
from raydium_pool_tracker.ingestion.swap_parser import extract_pool_address, filter_swaps
from raydium_pool_tracker.datalake.schemas import parse_transactions
from raydium_pool_tracker.monitoring import bootstrap_observability
from raydium_pool_tracker.monitoring.logger import get_logger
from raydium_pool_tracker.utils.constants import utc_now

logger = get_logger(__name__)


def dump(address: str, output_dir: Path, limit: Optional[int] = None) -> Path:
    config = get_app_config()
    feed = HeliusTransactionFeed(config.helius)
    payload = feed.fetch_raw_payload(address, limit)
    output_dir.mkdir(parents=True, exist_ok=True)
    stamp = utc_now().strftime("%Y%m%dT%H%M%SZ")
    path = output_dir / f"{stamp}_raw_response.json"
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    swaps = filter_swaps(parse_transactions(payload))
    pools = {extract_pool_address(tx, config.reconciler.program_id) for tx in swaps}
    pools.discard(None)
    logger.info(
        "Wrote %s: %d entries, %d swaps, %d distinct pools",
        path,
        len(payload) if isinstance(payload, list) else 0,
        len(swaps),
        len(pools),
    )
    return path


def main() -> None:
    parser = argparse.ArgumentParser(description="Save a raw Helius transactions response for inspection.")
    parser.add_argument(
        "--address",
        default=None,
        help="Address to query (defaults to reconciler.program_id)",
    )
    parser.add_argument("--limit", type=int, default=None, help="Number of transactions to request")
    parser.add_argument("--output-dir", type=Path, default=Path("analysis"), help="Directory for dumps")
    args = parser.parse_args()

    config = get_app_config()
    bootstrap_observability(config=config)
    dump(args.address or config.reconciler.program_id, args.output_dir, args.limit)


if __name__ == "__main__":
    main()
