"""Decoder for the fixed binary layout of a Raydium AMM pool account."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from ..utils.constants import divide8

AUTHORITY_OFFSET = 0
AUTHORITY_SIZE = 32
STATUS_OFFSET = AUTHORITY_OFFSET + AUTHORITY_SIZE
STATUS_SIZE = 1
TOKEN_A_MINT_OFFSET = STATUS_OFFSET + STATUS_SIZE
TOKEN_B_MINT_OFFSET = TOKEN_A_MINT_OFFSET + 32
RESERVE_A_OFFSET = TOKEN_B_MINT_OFFSET + 32
RESERVE_B_OFFSET = RESERVE_A_OFFSET + 8

# Covers the reserves plus trailing fields that are not decoded here.
MIN_ACCOUNT_SIZE = 192

_RESERVE = struct.Struct("<q")


class AccountDecodeError(ValueError):
    """Raised when account bytes cannot be interpreted as a pool account."""


@dataclass(frozen=True, slots=True)
class PoolReserves:
    """Raw reserve amounts, unscaled by token decimals."""

    reserve_a: Decimal
    reserve_b: Decimal

    def price(self) -> Optional[Decimal]:
        """Return reserve A per reserve B, or ``None`` when it is not a positive price.

        An empty reserve B, an empty reserve A, or a ratio that rounds to zero
        at 8 decimal places all yield ``None``.
        """

        if self.reserve_b <= 0:
            return None
        price = divide8(self.reserve_a, self.reserve_b)
        return price if price > 0 else None


def decode_reserves(data: Optional[bytes], *, min_size: int = MIN_ACCOUNT_SIZE) -> PoolReserves:
    """Decode reserve A and reserve B from raw pool account bytes."""

    if data is None:
        raise AccountDecodeError("Account data is missing")
    if len(data) < min_size:
        raise AccountDecodeError(
            f"Invalid pool account data length: expected >= {min_size}, got {len(data)}"
        )
    (reserve_a,) = _RESERVE.unpack_from(data, RESERVE_A_OFFSET)
    (reserve_b,) = _RESERVE.unpack_from(data, RESERVE_B_OFFSET)
    if reserve_a < 0 or reserve_b < 0:
        raise AccountDecodeError(f"Negative reserve decoded: A={reserve_a}, B={reserve_b}")
    return PoolReserves(reserve_a=Decimal(reserve_a), reserve_b=Decimal(reserve_b))


__all__ = [
    "AccountDecodeError",
    "MIN_ACCOUNT_SIZE",
    "PoolReserves",
    "RESERVE_A_OFFSET",
    "RESERVE_B_OFFSET",
    "TOKEN_A_MINT_OFFSET",
    "TOKEN_B_MINT_OFFSET",
    "decode_reserves",
]
