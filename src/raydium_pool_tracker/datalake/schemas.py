"""Data models shared by ingestion, reconciliation, storage, and the API."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        # str() first so JSON floats keep their printed digits
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def _to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True, slots=True)
class TokenTransfer:
    """A single token movement inside a swap transaction."""

    mint: Optional[str]
    token_amount: Optional[Decimal] = None
    from_account: Optional[str] = None
    to_account: Optional[str] = None
    decimals: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TokenTransfer":
        return cls(
            mint=payload.get("mint"),
            token_amount=_to_decimal(payload.get("tokenAmount")),
            from_account=payload.get("fromUserAccount"),
            to_account=payload.get("toUserAccount"),
            decimals=_to_int(payload.get("decimals")),
        )


@dataclass(frozen=True, slots=True)
class InstructionData:
    """Program invocation recorded in a transaction."""

    program_id: Optional[str]
    accounts: Tuple[str, ...] = ()
    data: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "InstructionData":
        accounts = payload.get("accounts") or []
        return cls(
            program_id=payload.get("programId"),
            accounts=tuple(str(account) for account in accounts),
            data=payload.get("data"),
        )


@dataclass(frozen=True, slots=True)
class SwapTransaction:
    """Parsed enhanced transaction as delivered by the Helius API."""

    signature: Optional[str]
    type: Optional[str]
    timestamp: Optional[int] = None
    fee: Optional[int] = None
    description: Optional[str] = None
    token_transfers: Tuple[TokenTransfer, ...] = ()
    instructions: Optional[Tuple[InstructionData, ...]] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SwapTransaction":
        transfers = payload.get("tokenTransfers") or []
        raw_instructions = payload.get("instructions")
        instructions: Optional[Tuple[InstructionData, ...]] = None
        if raw_instructions is not None:
            instructions = tuple(
                InstructionData.from_payload(item)
                for item in raw_instructions
                if isinstance(item, dict)
            )
        return cls(
            signature=payload.get("signature"),
            type=payload.get("type"),
            timestamp=_to_int(payload.get("timestamp")),
            fee=_to_int(payload.get("fee")),
            description=payload.get("description"),
            token_transfers=tuple(
                TokenTransfer.from_payload(item) for item in transfers if isinstance(item, dict)
            ),
            instructions=instructions,
        )


@dataclass(slots=True)
class Pool:
    """Reconciled state of a single Raydium liquidity pool."""

    address: str
    last_update: datetime
    token_a_mint: Optional[str] = None
    token_b_mint: Optional[str] = None
    price: Optional[Decimal] = None
    liquidity_a: Optional[Decimal] = None
    liquidity_b: Optional[Decimal] = None
    volume_24h: Decimal = field(default_factory=lambda: Decimal(0))
    active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert the pool to a JSON-serialisable dictionary."""

        def _fmt(value: Optional[Decimal]) -> Optional[str]:
            return None if value is None else str(value)

        return {
            "address": self.address,
            "token_a_mint": self.token_a_mint,
            "token_b_mint": self.token_b_mint,
            "price": _fmt(self.price),
            "liquidity_a": _fmt(self.liquidity_a),
            "liquidity_b": _fmt(self.liquidity_b),
            "volume_24h": _fmt(self.volume_24h),
            "last_update": self.last_update.isoformat(),
            "active": self.active,
        }


def parse_transactions(payload: Any) -> List[SwapTransaction]:
    """Parse a Helius response body into transactions, dropping non-objects."""

    if not isinstance(payload, list):
        return []
    return [SwapTransaction.from_payload(item) for item in payload if isinstance(item, dict)]


__all__ = [
    "InstructionData",
    "Pool",
    "SwapTransaction",
    "TokenTransfer",
    "parse_transactions",
]
