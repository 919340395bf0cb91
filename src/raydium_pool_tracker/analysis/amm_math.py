"""Constant-product pricing and slippage estimation."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, localcontext
from typing import Optional

from ..datalake.schemas import Pool
from ..utils.constants import divide8, quantize8


class InvalidSwapArgument(ValueError):
    """Raised when the hypothetical swap input is not usable."""


class InvalidPoolState(RuntimeError):
    """Raised when the pool reserves cannot support a swap estimate."""


@dataclass(frozen=True, slots=True)
class SlippageEstimate:
    """Outcome of a hypothetical swap against ``reserve_in * reserve_out = k``."""

    reserve_in: Decimal
    reserve_out: Decimal
    input_amount: Decimal
    k: Decimal
    new_reserve_in: Decimal
    new_reserve_out: Decimal
    output_amount: Decimal
    spot_price: Decimal
    effective_price: Decimal
    slippage_pct: Decimal


def estimate_slippage(
    liquidity_a: Optional[Decimal],
    liquidity_b: Optional[Decimal],
    input_amount: Decimal,
    is_a_to_b: bool,
) -> SlippageEstimate:
    """Estimate the slippage percentage of swapping ``input_amount`` through the pool.

    No fee model is applied. Intermediate prices are rounded to 8 decimal
    places half-up and the returned percentage is rounded the same way.
    """

    if input_amount is None or input_amount <= 0:
        raise InvalidSwapArgument(f"Input amount must be positive, got {input_amount}")
    if liquidity_a is None or liquidity_b is None or liquidity_a <= 0 or liquidity_b <= 0:
        raise InvalidPoolState(
            f"Pool reserves must be positive, got A={liquidity_a}, B={liquidity_b}"
        )

    reserve_in, reserve_out = (liquidity_a, liquidity_b) if is_a_to_b else (liquidity_b, liquidity_a)
    with localcontext() as ctx:
        ctx.prec = 100
        k = reserve_in * reserve_out
        new_reserve_in = reserve_in + input_amount
        new_reserve_out = divide8(k, new_reserve_in)
        output_amount = reserve_out - new_reserve_out
        spot_price = divide8(reserve_out, reserve_in)
        if spot_price == 0:
            raise InvalidPoolState(
                f"Spot price rounds to zero at 8 decimals (in={reserve_in}, out={reserve_out})"
            )
        effective_price = divide8(output_amount, input_amount)
        ratio = divide8(effective_price, spot_price)
        slippage_pct = quantize8(abs(Decimal(1) - ratio) * 100)

    return SlippageEstimate(
        reserve_in=reserve_in,
        reserve_out=reserve_out,
        input_amount=input_amount,
        k=k,
        new_reserve_in=new_reserve_in,
        new_reserve_out=new_reserve_out,
        output_amount=output_amount,
        spot_price=spot_price,
        effective_price=effective_price,
        slippage_pct=slippage_pct,
    )


def slippage_for_pool(pool: Pool, input_amount: Decimal, is_a_to_b: bool) -> SlippageEstimate:
    """Convenience wrapper reading reserves from a pool without mutating it."""

    return estimate_slippage(pool.liquidity_a, pool.liquidity_b, input_amount, is_a_to_b)


__all__ = [
    "InvalidPoolState",
    "InvalidSwapArgument",
    "SlippageEstimate",
    "estimate_slippage",
    "slippage_for_pool",
]
