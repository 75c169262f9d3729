"""
Domain: Purchase events and price history samples.

Rules implemented here:
- A Purchase is created exactly once per settled payment and is immutable.
- Price samples form an append-only history, retrieved newest first.
- All timestamps are UTC.

This module only captures the records. Settlement lives with the pricing engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class Purchase:
    """
    Immutable record of a settled token purchase.

    Captures:
    - How much was paid (amount, quote currency)
    - The unit price the purchase settled at (price)
    - How many tokens were bought (token_amount)
    - Who bought them (buyer_email) and who referred them (referral_code)
    """

    purchase_id: UUID
    amount: Decimal
    price: Decimal
    token_amount: Decimal
    buyer_email: str
    created_at: datetime
    referral_code: Optional[str] = None
    transaction_hash: Optional[str] = None  # On-chain deposit signature, when known

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if self.amount <= 0:
            raise ValueError("amount must be > 0")
        if self.price <= 0:
            raise ValueError("price must be > 0")
        if self.token_amount < 0:
            raise ValueError("token_amount must be >= 0")


@dataclass(frozen=True, slots=True)
class PriceSample:
    """One point of the price chart."""

    sample_id: UUID
    price: Decimal
    change_percent: Decimal
    timestamp: datetime

    def __post_init__(self) -> None:
        require_utc_timestamp("timestamp", self.timestamp)
