"""Rejects candidate prices that jump too far from the persisted price."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from ..datalake.storage import PoolStore

DEFAULT_MAX_PRICE_CHANGE = Decimal("0.20")


@dataclass(frozen=True, slots=True)
class PriceCheck:
    accepted: bool
    previous: Optional[Decimal] = None
    change: Optional[Decimal] = None


class PriceSanityValidator:
    """Compares a candidate price against the price currently in the store.

    The previous price is always re-read from ``store`` rather than taken from
    an in-memory pool, so a reconciliation never validates against its own
    unpersisted mutation. A change equal to ``max_change`` is accepted.
    """

    def __init__(
        self,
        store: PoolStore,
        max_change: Union[Decimal, float, str] = DEFAULT_MAX_PRICE_CHANGE,
    ) -> None:
        self._store = store
        self._max_change = Decimal(str(max_change))

    @property
    def max_change(self) -> Decimal:
        return self._max_change

    def check(self, address: str, candidate: Decimal) -> PriceCheck:
        persisted = self._store.get(address)
        previous = persisted.price if persisted is not None else None
        if previous is None or previous <= 0:
            return PriceCheck(accepted=True, previous=previous)
        change = abs(candidate - previous) / previous
        return PriceCheck(accepted=change <= self._max_change, previous=previous, change=change)


__all__ = ["DEFAULT_MAX_PRICE_CHANGE", "PriceCheck", "PriceSanityValidator"]
