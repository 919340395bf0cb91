"""Helius enhanced-transactions client feeding swaps into the reconciler."""

from __future__ import annotations

from typing import Any, List, Optional, Protocol

import requests
from cachetools import TTLCache
from tenacity import retry, stop_after_attempt, wait_exponential

from ..config.settings import HeliusConfig, get_app_config
from ..datalake.schemas import SwapTransaction, parse_transactions
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS

DEFAULT_HEADERS = {"User-Agent": "raydium-pool-tracker/1.0", "Accept": "application/json"}


class TransactionFeed(Protocol):
    def fetch_recent(self, program_address: str) -> List[SwapTransaction]:
        ...


class HeliusTransactionFeed:
    """Fetches recent transactions for an address and drops ones already seen."""

    def __init__(
        self,
        config: Optional[HeliusConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config or get_app_config().helius
        self._session = session or requests.Session()
        self._seen: Optional[TTLCache] = None
        if self._config.seen_signature_ttl_seconds > 0:
            self._seen = TTLCache(
                maxsize=self._config.seen_signature_capacity,
                ttl=self._config.seen_signature_ttl_seconds,
            )
        self._logger = get_logger(__name__)

    def _transactions_url(self, address: str) -> str:
        base = str(self._config.api_base_url).rstrip("/")
        return f"{base}/v0/addresses/{address}/transactions/"

    @retry(wait=wait_exponential(multiplier=1, min=1, max=10), stop=stop_after_attempt(3), reraise=True)
    def _get(self, address: str, limit: Optional[int] = None) -> Any:
        params = {"limit": limit or self._config.transaction_limit}
        if self._config.api_key:
            params["api-key"] = self._config.api_key
        response = self._session.get(
            self._transactions_url(address),
            params=params,
            headers=DEFAULT_HEADERS,
            timeout=self._config.http_timeout,
        )
        response.raise_for_status()
        return response.json()

    def fetch_raw_payload(self, program_address: str, limit: Optional[int] = None) -> Any:
        """Return the response body untouched, for offline inspection."""

        return self._get(program_address, limit)

    def fetch_recent(self, program_address: str, limit: Optional[int] = None) -> List[SwapTransaction]:
        payload = self._get(program_address, limit)
        if not isinstance(payload, list):
            self._logger.warning("Unexpected Helius payload type %s", type(payload).__name__)
            return []
        transactions = parse_transactions(payload)
        dropped = len(payload) - len(transactions)
        if dropped:
            self._logger.debug("Dropped %d malformed transaction entries", dropped)
        fresh = [tx for tx in transactions if self._remember(tx)]
        METRICS.increment("feed.transactions", len(transactions))
        METRICS.increment("feed.duplicates", len(transactions) - len(fresh))
        return fresh

    def _remember(self, transaction: SwapTransaction) -> bool:
        if self._seen is None or not transaction.signature:
            return True
        if transaction.signature in self._seen:
            return False
        self._seen[transaction.signature] = True
        return True


__all__ = ["DEFAULT_HEADERS", "HeliusTransactionFeed", "TransactionFeed"]
