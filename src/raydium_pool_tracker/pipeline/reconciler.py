"""Turns one swap transaction into a validated pool state update."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import AsyncIterator, Callable, Dict, Optional

from ..analysis.amm_math import InvalidPoolState, InvalidSwapArgument, SlippageEstimate, slippage_for_pool
from ..analysis.price_sanity import PriceSanityValidator
from ..config.settings import ReconcilerConfig, get_app_config
from ..datalake.schemas import Pool, SwapTransaction
from ..datalake.storage import PoolStore
from ..ingestion.account_decoder import AccountDecodeError, PoolReserves, decode_reserves
from ..ingestion.account_fetcher import AccountFetcher, AccountFetchError
from ..ingestion.swap_parser import extract_pool_address, is_swap
from ..monitoring.logger import correlation_scope, get_logger, pool_scope
from ..monitoring.metrics import METRICS
from ..utils.constants import utc_now
from .rate_limiter import RateLimiter, RateLimitTimeout


class ReconcileStatus(str, Enum):
    """Terminal state of a single reconciliation."""

    PERSISTED = "persisted"
    SKIPPED = "skipped"
    FAILED = "failed"
    REJECTED = "rejected"
    DEACTIVATED = "deactivated"


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    status: ReconcileStatus
    reason: str
    signature: Optional[str] = None
    pool_address: Optional[str] = None
    pool: Optional[Pool] = None
    slippage: Optional[SlippageEstimate] = None


class _IdentityError(ValueError):
    pass


class KeyedLock:
    """Per-key asyncio locks; a key's lock is dropped once nobody holds or awaits it."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = defaultdict(int)

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._holders[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]


class PoolReconciler:
    """Reconciles pool identity, reserves, price and volume from swap transactions.

    All work for one pool address runs inside an exclusive section, so two
    swaps touching the same pool never interleave their read-modify-write of
    the stored record. ``reconcile`` never raises for per-transaction
    failures; the outcome is reported through :class:`ReconcileResult`.
    """

    def __init__(
        self,
        store: PoolStore,
        fetcher: AccountFetcher,
        *,
        rate_limiter: Optional[RateLimiter] = None,
        validator: Optional[PriceSanityValidator] = None,
        config: Optional[ReconcilerConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config or get_app_config().reconciler
        self._store = store
        self._fetcher = fetcher
        self._rate_limiter = rate_limiter
        self._validator = validator or PriceSanityValidator(store, self._config.max_price_change)
        self._clock = clock
        self._locks = KeyedLock()
        self._logger = get_logger(__name__)

    @property
    def program_id(self) -> str:
        return self._config.program_id

    async def reconcile(self, transaction: Optional[SwapTransaction]) -> ReconcileResult:
        signature = getattr(transaction, "signature", None)
        with correlation_scope(signature), METRICS.timer("reconcile.duration_ms"):
            try:
                result = await self._reconcile(transaction)
            except Exception as exc:  # noqa: BLE001
                self._logger.exception("Error processing pool from swap tx %s: %s", signature, exc)
                result = ReconcileResult(ReconcileStatus.FAILED, "unexpected", signature)
        METRICS.increment(f"reconcile.{result.status.value}", 1)
        return result

    async def _reconcile(self, transaction: Optional[SwapTransaction]) -> ReconcileResult:
        if transaction is None or not transaction.signature:
            self._logger.warning("Rejecting transaction without a signature")
            return ReconcileResult(ReconcileStatus.FAILED, "missing_signature")
        signature = transaction.signature
        if not is_swap(transaction):
            self._logger.debug("Skipping %s transaction", transaction.type)
            return ReconcileResult(ReconcileStatus.SKIPPED, "not_swap", signature)

        address = extract_pool_address(transaction, self._config.program_id)
        if address is None:
            self._logger.debug("Could not extract pool address")
            return ReconcileResult(ReconcileStatus.SKIPPED, "no_pool_instruction", signature)

        with pool_scope(address):
            async with self._locks.hold(address):
                return await self._reconcile_pool(transaction, address)

    async def _reconcile_pool(self, transaction: SwapTransaction, address: str) -> ReconcileResult:
        signature = transaction.signature
        pool = self._store.get(address) or self._create_pool(address)

        try:
            self._update_tokens(pool, transaction)
        except _IdentityError as exc:
            self._logger.debug("Skipping swap without a usable token pair: %s", exc)
            return ReconcileResult(ReconcileStatus.SKIPPED, "identity", signature, address)

        try:
            reserves = await self._load_reserves(address)
        except RateLimitTimeout as exc:
            self._logger.warning("Dropping swap: %s", exc)
            return ReconcileResult(ReconcileStatus.FAILED, "rate_limited", signature, address)
        except (AccountFetchError, AccountDecodeError, asyncio.TimeoutError) as exc:
            self._logger.error("Error updating pool liquidity: %s", exc)
            self.handle_update_error(pool)
            return ReconcileResult(ReconcileStatus.DEACTIVATED, "account_data", signature, address, pool)

        self._apply_reserves(pool, reserves)
        self._update_volume(pool, transaction)

        if pool.price is not None:
            check = self._validator.check(address, pool.price)
            if not check.accepted:
                self._logger.warning(
                    "Rejecting price %s for pool %s: change %s from %s exceeds %s",
                    pool.price,
                    address,
                    check.change,
                    check.previous,
                    self._validator.max_change,
                )
                return ReconcileResult(ReconcileStatus.REJECTED, "price_jump", signature, address)

        pool.last_update = self._clock()
        self._store.upsert(pool)
        # The store may have kept a concurrent deactivation.
        pool = self._store.get(address) or pool
        self._logger.info(
            "Updated pool: A=%s, B=%s, price=%s, volume=%s",
            pool.liquidity_a,
            pool.liquidity_b,
            pool.price,
            pool.volume_24h,
        )
        slippage = self._observe_slippage(pool, transaction)
        return ReconcileResult(ReconcileStatus.PERSISTED, "ok", signature, address, pool, slippage)

    def _create_pool(self, address: str) -> Pool:
        self._logger.info("Tracking new pool %s", address)
        return Pool(address=address, last_update=self._clock(), active=True)

    def _update_tokens(self, pool: Pool, transaction: SwapTransaction) -> None:
        transfers = transaction.token_transfers
        if len(transfers) < 2:
            raise _IdentityError(f"expected at least 2 token transfers, got {len(transfers)}")
        mint_a, mint_b = transfers[0].mint, transfers[1].mint
        if not mint_a or not mint_b:
            raise _IdentityError("token transfer without a mint")
        if pool.token_a_mint != mint_a or pool.token_b_mint != mint_b:
            if pool.token_a_mint is not None:
                self._logger.info(
                    "Token pair changed from %s/%s to %s/%s",
                    pool.token_a_mint,
                    pool.token_b_mint,
                    mint_a,
                    mint_b,
                )
            pool.token_a_mint = mint_a
            pool.token_b_mint = mint_b

    async def _load_reserves(self, address: str) -> PoolReserves:
        if self._rate_limiter is not None:
            await self._rate_limiter.acquire()
        data = await asyncio.wait_for(
            asyncio.to_thread(self._fetcher.fetch_raw, address),
            timeout=self._config.fetch_timeout_seconds,
        )
        if not data:
            raise AccountFetchError(f"Empty account data for {address}")
        return decode_reserves(data, min_size=self._config.min_account_size)

    def _apply_reserves(self, pool: Pool, reserves: PoolReserves) -> None:
        pool.liquidity_a = reserves.reserve_a
        pool.liquidity_b = reserves.reserve_b
        price = reserves.price()
        if price is not None:
            pool.price = price
        else:
            self._logger.debug("No positive price from reserves; keeping price %s", pool.price)

    def _update_volume(self, pool: Pool, transaction: SwapTransaction) -> None:
        amount = transaction.token_transfers[0].token_amount
        if amount is None or amount <= 0:
            self._logger.debug("Skipping volume update for amount %s", amount)
            return
        pool.volume_24h = (pool.volume_24h or Decimal(0)) + amount

    async def deactivate(self, address: str) -> bool:
        """Mark a pool inactive, serialized with any reconciliation of the same address.

        Returns False when the pool is unknown or already inactive.
        """

        with pool_scope(address):
            async with self._locks.hold(address):
                pool = self._store.get(address)
                if pool is None or not pool.active:
                    return False
                deactivated = self._store.mark_inactive(address)
        if deactivated:
            self._logger.info("Pool %s deactivated on request", address)
        return deactivated

    def handle_update_error(self, pool: Pool) -> None:
        """Mark a pool that could not be re-verified on chain as inactive and persist it."""

        pool.active = False
        self._store.upsert(pool)
        METRICS.increment("reconcile.deactivations", 1)
        self._logger.warning("Pool %s marked as inactive after account data failure", pool.address)

    def _observe_slippage(self, pool: Pool, transaction: SwapTransaction) -> Optional[SlippageEstimate]:
        transfer = transaction.token_transfers[0]
        if transfer.token_amount is None:
            return None
        try:
            # Token A is defined as the mint of transfers[0], the swap input.
            estimate = slippage_for_pool(pool, transfer.token_amount, is_a_to_b=True)
        except (InvalidSwapArgument, InvalidPoolState) as exc:
            self._logger.debug("Slippage not estimated: %s", exc)
            return None
        METRICS.observe("reconcile.slippage_pct", float(estimate.slippage_pct))
        self._logger.debug(
            "Expected slippage %s%% for %s in", estimate.slippage_pct, transfer.token_amount
        )
        return estimate


__all__ = ["KeyedLock", "PoolReconciler", "ReconcileResult", "ReconcileStatus"]
