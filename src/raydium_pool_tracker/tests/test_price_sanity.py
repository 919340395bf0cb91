from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from raydium_pool_tracker.analysis.price_sanity import PriceSanityValidator
from raydium_pool_tracker.datalake.schemas import Pool
from raydium_pool_tracker.datalake.storage import SQLitePoolStore


def _store_with_price(tmp_path: Path, price) -> SQLitePoolStore:
    store = SQLitePoolStore(tmp_path / "pools.sqlite3")
    store.upsert(
        Pool(address="pool", last_update=datetime(2024, 1, 1, tzinfo=timezone.utc), price=price)
    )
    return store


@pytest.mark.parametrize(
    "candidate, accepted",
    [
        (Decimal("1.20"), True),
        (Decimal("0.80"), True),
        (Decimal("1.19999999"), True),
        (Decimal("1.25"), False),
        (Decimal("0.79"), False),
    ],
)
def test_relative_change_threshold(tmp_path: Path, candidate: Decimal, accepted: bool) -> None:
    validator = PriceSanityValidator(_store_with_price(tmp_path, Decimal("1.0")))
    check = validator.check("pool", candidate)
    assert check.accepted is accepted
    assert check.previous == Decimal("1.0")


def test_unknown_pool_or_missing_price_is_accepted(tmp_path: Path) -> None:
    validator = PriceSanityValidator(_store_with_price(tmp_path, None))
    assert validator.check("pool", Decimal("1000")).accepted
    assert validator.check("other", Decimal("1000")).accepted


def test_non_positive_previous_price_is_accepted(tmp_path: Path) -> None:
    validator = PriceSanityValidator(_store_with_price(tmp_path, Decimal(0)))
    check = validator.check("pool", Decimal("5"))
    assert check.accepted
    assert check.change is None


def test_threshold_is_configurable(tmp_path: Path) -> None:
    validator = PriceSanityValidator(_store_with_price(tmp_path, Decimal("2")), max_change=0.5)
    assert validator.max_change == Decimal("0.5")
    assert validator.check("pool", Decimal("2.9")).accepted
    assert not validator.check("pool", Decimal("3.1")).accepted
