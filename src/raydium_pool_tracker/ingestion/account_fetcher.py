"""Fetches raw pool account bytes over Solana JSON-RPC."""

from __future__ import annotations

import base64
import binascii
import json
import threading
from typing import Any, Dict, List, Optional, Protocol

from solana.rpc.api import Client
from solders.pubkey import Pubkey
from tenacity import RetryError, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config.settings import RPCConfig, get_app_config
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS


class AccountFetchError(RuntimeError):
    """Raised when account data could not be retrieved from any endpoint."""


class AccountFetcher(Protocol):
    def fetch_raw(self, address: str) -> bytes:
        ...


class _TransientRpcError(RuntimeError):
    pass


class SolanaAccountFetcher:
    """Calls ``getAccountInfo`` with base64 encoding, trying fallbacks in order."""

    def __init__(self, config: Optional[RPCConfig] = None) -> None:
        self._config = config or get_app_config().rpc
        self._endpoints = [str(self._config.primary_url), *map(str, self._config.fallback_urls)]
        self._thread_local = threading.local()
        self._logger = get_logger(__name__)

    def _clients_for_thread(self) -> List[Client]:
        clients: Optional[List[Client]] = getattr(self._thread_local, "clients", None)
        if clients is None:
            clients = [Client(endpoint, timeout=self._config.request_timeout) for endpoint in self._endpoints]
            self._thread_local.clients = clients
        return clients

    @retry(
        retry=retry_if_exception_type(_TransientRpcError),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        stop=stop_after_attempt(3),
    )
    def _get_account_info(self, pubkey: Pubkey) -> Dict[str, Any]:
        last_exc: Optional[Exception] = None
        for endpoint, client in zip(self._endpoints, self._clients_for_thread()):
            try:
                result = client.get_account_info(
                    pubkey, commitment=self._config.commitment, encoding="base64"
                )
                if isinstance(result, dict):
                    return result
                return json.loads(result.to_json())
            except Exception as exc:  # noqa: BLE001
                last_exc = exc
                METRICS.increment("rpc.get_account_info.errors", 1)
                self._logger.debug("getAccountInfo failed on %s: %s", endpoint, exc)
        raise _TransientRpcError(f"getAccountInfo failed on all endpoints: {last_exc}")

    def fetch_raw(self, address: str) -> bytes:
        try:
            pubkey = Pubkey.from_string(address)
        except ValueError as exc:
            raise AccountFetchError(f"Invalid account address {address!r}: {exc}") from exc
        try:
            response = self._get_account_info(pubkey)
        except RetryError as exc:
            raise AccountFetchError(str(exc.last_attempt.exception())) from exc
        return self.decode_response(address, response)

    @staticmethod
    def decode_response(address: str, response: Dict[str, Any]) -> bytes:
        """Extract and base64-decode ``result.value.data[0]`` from an RPC response."""

        if "error" in response:
            raise AccountFetchError(f"RPC error for {address}: {response['error']}")
        value = (response.get("result") or {}).get("value")
        if not value:
            raise AccountFetchError(f"Account {address} not found")
        data = value.get("data")
        encoded = data[0] if isinstance(data, list) and data else data
        if not isinstance(encoded, str):
            raise AccountFetchError(f"Account {address} returned no base64 data")
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise AccountFetchError(f"Account {address} data is not valid base64") from exc


__all__ = ["AccountFetchError", "AccountFetcher", "SolanaAccountFetcher"]
