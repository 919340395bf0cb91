"""FastAPI application exposing reconciled pool state."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse, PlainTextResponse

from .state import PoolApiState


def create_app(state: PoolApiState) -> FastAPI:
    app = FastAPI(title="Raydium Pool Tracker", version="1.0.0")

    def get_state() -> PoolApiState:
        return state

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics", response_class=PlainTextResponse)
    async def prometheus_metrics(current: PoolApiState = Depends(get_state)) -> str:
        return current.metrics.export_prometheus()

    # Static routes are registered before /{address} so they are not shadowed.
    @app.get("/api/v1/pools/active")
    async def active_pools(current: PoolApiState = Depends(get_state)) -> List[Dict[str, Any]]:
        return current.list_active()

    @app.get("/api/v1/pools/by-token/{mint}")
    async def pools_by_token(mint: str, current: PoolApiState = Depends(get_state)) -> List[Dict[str, Any]]:
        return current.list_by_token(mint)

    @app.get("/api/v1/pools/{address}")
    async def pool_detail(address: str, current: PoolApiState = Depends(get_state)) -> Dict[str, Any]:
        pool = current.get_pool(address)
        if pool is None:
            raise HTTPException(status_code=404, detail=f"Pool {address} not found")
        return pool

    @app.get("/api/v1/pools/{address}/status")
    async def pool_status(address: str, current: PoolApiState = Depends(get_state)) -> Dict[str, bool]:
        return {"active": current.is_active(address)}

    @app.post("/api/v1/pools/{address}/deactivate")
    async def deactivate_pool(address: str, current: PoolApiState = Depends(get_state)) -> Dict[str, Any]:
        if not await current.deactivate(address):
            raise HTTPException(status_code=404, detail=f"Pool {address} not found or already inactive")
        return {"address": address, "active": False}

    @app.post("/api/v1/helius/analyze")
    async def analyze(
        background_tasks: BackgroundTasks,
        current: PoolApiState = Depends(get_state),
    ) -> JSONResponse:
        if not current.can_analyze:
            return JSONResponse({"message": "No worker pool attached"}, status_code=503)
        background_tasks.add_task(current.run_analysis)
        return JSONResponse({"message": "Analysis started"}, status_code=202)

    return app


__all__ = ["create_app"]
