from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List

from raydium_pool_tracker.config.settings import HeliusConfig
from raydium_pool_tracker.ingestion.helius_api import HeliusTransactionFeed
from raydium_pool_tracker.monitoring.metrics import METRICS


class FakeResponse:
    def __init__(self, payload: Any) -> None:
        self._payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self) -> Any:
        return self._payload


class FakeSession:
    def __init__(self, payloads: List[Any]) -> None:
        self._payloads = list(payloads)
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, params=None, headers=None, timeout=None) -> FakeResponse:
        self.calls.append({"url": url, "params": dict(params or {}), "timeout": timeout})
        return FakeResponse(self._payloads.pop(0))


SAMPLE = [
    {
        "signature": "sig-1",
        "type": "SWAP",
        "timestamp": 1717000000,
        "fee": 5000,
        "tokenTransfers": [
            {"mint": "MintA", "tokenAmount": 0.1, "fromUserAccount": "u1", "toUserAccount": "u2"},
            {"mint": "MintB", "tokenAmount": "42"},
        ],
        "instructions": [{"programId": "prog", "accounts": ["a", "b", "pool"], "data": "xyz"}],
    },
    {"signature": "sig-2", "type": "TRANSFER"},
    "garbage",
]


def test_fetch_recent_builds_request_and_parses() -> None:
    session = FakeSession([SAMPLE])
    feed = HeliusTransactionFeed(
        HeliusConfig(api_base_url="https://helius.example/", api_key="secret", transaction_limit=25),
        session=session,
    )

    transactions = feed.fetch_recent("prog")

    call = session.calls[0]
    assert call["url"] == "https://helius.example/v0/addresses/prog/transactions/"
    assert call["params"] == {"limit": 25, "api-key": "secret"}
    assert [tx.signature for tx in transactions] == ["sig-1", "sig-2"]
    swap = transactions[0]
    assert swap.token_transfers[0].token_amount == Decimal("0.1")
    assert swap.token_transfers[0].from_account == "u1"
    assert swap.instructions[0].accounts == ("a", "b", "pool")
    assert transactions[1].instructions is None


def test_seen_signatures_are_filtered_between_polls() -> None:
    METRICS.reset()
    session = FakeSession([SAMPLE, SAMPLE + [{"signature": "sig-3", "type": "SWAP"}]])
    feed = HeliusTransactionFeed(HeliusConfig(), session=session)

    first = feed.fetch_recent("prog")
    second = feed.fetch_recent("prog")

    assert len(first) == 2
    assert [tx.signature for tx in second] == ["sig-3"]
    assert METRICS.get("feed.duplicates") == 2


def test_dedup_can_be_disabled() -> None:
    session = FakeSession([SAMPLE, SAMPLE])
    feed = HeliusTransactionFeed(HeliusConfig(seen_signature_ttl_seconds=0), session=session)
    assert len(feed.fetch_recent("prog")) == 2
    assert len(feed.fetch_recent("prog")) == 2


def test_non_list_payload_yields_nothing() -> None:
    session = FakeSession([{"error": "bad key"}, {"error": "bad key"}])
    feed = HeliusTransactionFeed(HeliusConfig(), session=session)
    assert feed.fetch_recent("prog") == []
    assert feed.fetch_raw_payload("prog") == {"error": "bad key"}
