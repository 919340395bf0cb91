"""Helpers that pull pool information out of swap transactions."""

from __future__ import annotations

from typing import Iterable, List, Optional

from ..datalake.schemas import SwapTransaction
from ..monitoring.logger import get_logger
from ..utils.constants import RAYDIUM_AMM_V4_PROGRAM_ID, SWAP_TRANSACTION_TYPE

# Raydium swap instructions list the pool (AMM id) as the third account.
POOL_ACCOUNT_INDEX = 2

logger = get_logger(__name__)


def extract_pool_address(
    transaction: SwapTransaction,
    program_id: str = RAYDIUM_AMM_V4_PROGRAM_ID,
) -> Optional[str]:
    """Return the pool address of the first matching program instruction, if any."""

    if not transaction.instructions:
        return None
    for instruction in transaction.instructions:
        if instruction.program_id != program_id:
            continue
        if len(instruction.accounts) <= POOL_ACCOUNT_INDEX:
            continue
        address = instruction.accounts[POOL_ACCOUNT_INDEX]
        logger.debug("Found potential pool address %s in %s", address, transaction.signature)
        return address
    return None


def is_swap(transaction: SwapTransaction) -> bool:
    return transaction.type == SWAP_TRANSACTION_TYPE


def filter_swaps(transactions: Iterable[SwapTransaction]) -> List[SwapTransaction]:
    return [tx for tx in transactions if is_swap(tx)]


__all__ = ["POOL_ACCOUNT_INDEX", "extract_pool_address", "filter_swaps", "is_swap"]
