"""
Referral service: account registry, referral-code issuance and attribution.

Rules:
- Every account gets a 5 character code drawn uniformly from [A-Z0-9].
- Codes are unique across accounts; a colliding draw is redrawn.
- Issuance and account creation are serialized, so two buyers confirming at
  the same time never receive the same code.
- A referral code that does not resolve is not an error; it simply earns
  nothing.
"""

from __future__ import annotations

import logging
import random
import secrets
import string
import threading
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, Sequence
from uuid import uuid4

from domain.account import REFERRAL_CODE_LENGTH, Account, is_valid_email
from domain.errors import InvalidInput
from domain.purchase import Purchase
from domain.time import utc_now
from repositories.account_repository import AccountRepository

logger = logging.getLogger(__name__)

REFERRAL_ALPHABET = string.ascii_uppercase + string.digits
REFERRAL_REWARD_RATE = Decimal("0.10")  # 10% of the referred purchase, paid as dividend credit

# 36^5 codes; hitting this bound means the code space is effectively full.
MAX_CODE_ATTEMPTS = 10_000


@dataclass(frozen=True, slots=True)
class ReferralAttribution:
    """Reward notice for the owner of a referral code."""
    referrer_email: str
    referral_code: str
    reward_rate: Decimal
    reward_amount: Decimal
    message: str


class ReferralLedger:
    """
    Issues referral codes, resolves them to accounts and announces rewards.

    Crediting the reward itself happens downstream; this ledger only produces
    the notice.
    """

    def __init__(
        self,
        repository: AccountRepository,
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
    ):
        self._repository = repository
        self._clock = clock
        self._rng = rng or secrets.SystemRandom()
        self._lock = threading.RLock()

    def generate_code(self) -> str:
        """
        Draw a referral code not held by any account.

        Raises:
            RuntimeError: If no free code is found within MAX_CODE_ATTEMPTS draws
        """
        with self._lock:
            for _ in range(MAX_CODE_ATTEMPTS):
                code = "".join(self._rng.choice(REFERRAL_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))
                if self._repository.get_by_referral_code(code) is None:
                    return code
        raise RuntimeError("Unable to issue a unique referral code")

    def get_by_email(self, email: str) -> Optional[Account]:
        return self._repository.get_by_email(email)

    def get_by_referral_code(self, referral_code: str) -> Optional[Account]:
        return self._repository.get_by_referral_code(referral_code)

    def resolve(self, referral_code: Optional[str]) -> Optional[Account]:
        """Account owning `referral_code`, or None."""
        if not referral_code:
            return None
        return self.get_by_referral_code(referral_code)

    def ensure_account(self, email: str) -> Account:
        """
        Fetch the account for `email`, creating it with a fresh referral code
        if absent. Existing accounts without a code are issued one.

        Raises:
            InvalidInput: If email is not a valid address
        """
        if not is_valid_email(email):
            raise InvalidInput(f"Invalid email address: {email!r}")

        with self._lock:
            existing = self._repository.get_by_email(email)
            now = self._clock()

            if existing is not None:
                if existing.referral_code:
                    return existing
                updated = existing.with_referral_code(self.generate_code(), now)
                logger.info(
                    "Referral code issued to existing account",
                    extra={"email": email, "referral_code": updated.referral_code},
                )
                return self._repository.update(updated)

            account = Account(
                account_id=uuid4(),
                email=email,
                referral_code=self.generate_code(),
                created_at=now,
                updated_at=now,
            )
            self._repository.insert(account)

        logger.info(
            "Account created",
            extra={"email": email, "referral_code": account.referral_code},
        )
        return account

    def record_deposit(self, email: str, wallet_phrase: Sequence[str]) -> Account:
        """
        Mark the account as having deposited and store its wallet phrase.
        Creates the account first if needed.
        """
        with self._lock:
            account = self.ensure_account(email)
            return self._repository.update(account.with_deposit(tuple(wallet_phrase), self._clock()))

    def attribute(self, referral_code: Optional[str], purchase: Purchase) -> Optional[ReferralAttribution]:
        """
        Reward notice for the owner of `referral_code`, or None when the code
        is absent or unknown.
        """
        referrer = self.resolve(referral_code)
        if referrer is None or referrer.referral_code is None:
            if referral_code:
                logger.info("Referral code did not resolve", extra={"referral_code": referral_code})
            return None

        reward_amount = purchase.amount * REFERRAL_REWARD_RATE
        attribution = ReferralAttribution(
            referrer_email=referrer.email,
            referral_code=referrer.referral_code,
            reward_rate=REFERRAL_REWARD_RATE,
            reward_amount=reward_amount,
            message=(
                f"Referral reward ({int(REFERRAL_REWARD_RATE * 100)}% dividend) "
                f"will be credited to {referrer.email}"
            ),
        )

        logger.info(
            "Referral attributed",
            extra={
                "referral_code": referrer.referral_code,
                "referrer_email": referrer.email,
                "purchase_id": str(purchase.purchase_id),
                "reward_amount": str(reward_amount),
            },
        )
        return attribution


__all__ = [
    "REFERRAL_ALPHABET",
    "REFERRAL_REWARD_RATE",
    "ReferralAttribution",
    "ReferralLedger",
]
