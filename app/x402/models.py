# app/x402/models.py
"""
Domain types for the x402 challenge lifecycle.

Challenge records handed out by the store are frozen snapshots; the store is
the only place a challenge changes state, always by replacing the record.
"""
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class ChallengeState(Enum):
    """Payment state of a challenge. Transitions only move forward."""
    CREATED = "Created"
    PAID = "Paid"
    REDEEMED = "Redeemed"

    @property
    def is_paid(self) -> bool:
        return self in (ChallengeState.PAID, ChallengeState.REDEEMED)


@dataclass(frozen=True)
class Pricing:
    """Payment terms quoted when a challenge is issued."""
    amount: str
    token: str
    network: str
    recipient: str
    decimals: int = 9

    @property
    def amount_base_units(self) -> int:
        """Amount in the token's smallest unit (lamports for SOL)."""
        return int(Decimal(self.amount) * (10 ** self.decimals))


@dataclass(frozen=True)
class Challenge:
    """A submission paired with its payment terms and payment state."""
    id: str
    submission: Dict[str, Any]
    pricing: Pricing
    created_at: datetime
    state: ChallengeState = ChallengeState.CREATED
    paid_at: Optional[datetime] = None
    redeemed_at: Optional[datetime] = None
    transaction_ref: Optional[str] = None

    def with_state(self, state: ChallengeState, **changes: Any) -> "Challenge":
        return replace(self, state=state, **changes)
