"""Entry point for launching the pool API server."""

from __future__ import annotations

import argparse

import uvicorn

from ..config.settings import get_app_config
from ..datalake.storage import SQLitePoolStore
from ..main import build_worker_pool
from ..monitoring import bootstrap_observability
from ..monitoring.metrics import METRICS
from .app import create_app
from .state import PoolApiState


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the Raydium pool tracker API")
    parser.add_argument("--host", help="Override API host")
    parser.add_argument("--port", type=int, help="Override API port")
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Serve stored pools without attaching a worker pool for /helius/analyze.",
    )
    args = parser.parse_args()

    config = get_app_config()
    bootstrap_observability(config=config)
    store = SQLitePoolStore(config.storage.database_path)
    worker_pool = None if args.read_only else build_worker_pool(config, store)
    state = PoolApiState(config=config, store=store, worker_pool=worker_pool, metrics=METRICS)
    app = create_app(state)
    host = args.host or config.api.host
    port = args.port or config.api.port
    uvicorn.run(app, host=host, port=port, log_level=config.monitoring.log_level.lower())


if __name__ == "__main__":
    main()
