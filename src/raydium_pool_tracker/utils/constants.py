"""Shared constants and numeric helpers for Raydium pool tracking."""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, localcontext

# Utility function to get timezone-aware UTC datetime
def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)

RAYDIUM_AMM_V4_PROGRAM_ID = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"

SWAP_TRANSACTION_TYPE = "SWAP"

# Prices, reserves and derived ratios are kept at 8 decimal places.
PRICE_SCALE = 8
_QUANTUM = Decimal(1).scaleb(-PRICE_SCALE)
_WORKING_PRECISION = 100


def quantize8(value: Decimal) -> Decimal:
    """Round ``value`` to 8 decimal places using half-up rounding."""

    with localcontext() as ctx:
        ctx.prec = _WORKING_PRECISION
        return value.quantize(_QUANTUM, rounding=ROUND_HALF_UP)


def divide8(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Divide and round the quotient to 8 decimal places, half-up.

    The quotient is computed at a wide working precision first so that the
    default 28-digit context never rounds before the final half-up step.
    """

    with localcontext() as ctx:
        ctx.prec = _WORKING_PRECISION
        return (numerator / denominator).quantize(_QUANTUM, rounding=ROUND_HALF_UP)


__all__ = [
    "utc_now",
    "RAYDIUM_AMM_V4_PROGRAM_ID",
    "SWAP_TRANSACTION_TYPE",
    "PRICE_SCALE",
    "quantize8",
    "divide8",
]
