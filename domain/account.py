"""
Domain: Buyer accounts.

An account is keyed by email and is created on the buyer's first confirmed
deposit. It carries the buyer's own referral code and the wallet phrase that
was revealed on confirmation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Tuple
from uuid import UUID

from .time import require_utc_timestamp

WALLET_PHRASE_LENGTH = 12
REFERRAL_CODE_LENGTH = 5

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
_EMAIL_RE = re.compile(EMAIL_PATTERN)


def is_valid_email(email: str) -> bool:
    """Syntactic email check (local@domain.tld)."""
    return bool(_EMAIL_RE.match(email))


@dataclass(frozen=True, slots=True)
class Account:
    """
    Buyer account with referral and deposit tracking.

    Supports:
    - A unique referral code others can use to credit this buyer
    - Deposit status (has the buyer ever completed a confirmed deposit)
    - The 12 word wallet phrase handed out on confirmation
    """

    account_id: UUID
    email: str
    referral_code: Optional[str] = None
    has_deposited: bool = False
    wallet_phrase: Optional[Tuple[str, ...]] = None

    # Timestamps
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        """Validate email, phrase length and UTC timestamps."""
        if not is_valid_email(self.email):
            raise ValueError(f"Invalid email address: {self.email!r}")
        if self.wallet_phrase is not None and len(self.wallet_phrase) != WALLET_PHRASE_LENGTH:
            raise ValueError(f"wallet_phrase must have exactly {WALLET_PHRASE_LENGTH} words")
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    def with_deposit(self, wallet_phrase: Tuple[str, ...], at: datetime) -> "Account":
        """Return a copy marked as deposited, holding the given phrase."""
        return replace(self, has_deposited=True, wallet_phrase=tuple(wallet_phrase), updated_at=at)

    def with_referral_code(self, code: str, at: datetime) -> "Account":
        """Return a copy holding the given referral code."""
        return replace(self, referral_code=code, updated_at=at)
