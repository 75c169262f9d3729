"""
Purchase service: the append-only purchase ledger.

Handles:
- Recording purchases and price history samples
- Executing a purchase: settlement, purchase record and price sample as one
  all-or-nothing step
- Seeding the price chart on a fresh store
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional
from uuid import uuid4

from domain.errors import InvalidInput
from domain.purchase import PriceSample, Purchase
from domain.sale_state import SaleState
from domain.time import utc_now
from repositories.purchase_repository import PurchaseRepository
from services.pricing_service import (
    DEFAULT_HISTORY_LIMIT,
    FLUCTUATION_RATE,
    PricingEngine,
    calculate_token_amount,
)

logger = logging.getLogger(__name__)

PERCENT_PRECISION = Decimal("0.000001")


@dataclass(frozen=True, slots=True)
class PurchaseRequest:
    """
    Request to buy tokens for `amount` (quote currency).
    """
    amount: Decimal
    buyer_email: str
    referral_code: Optional[str] = None
    transaction_hash: Optional[str] = None
    quoted_price: Optional[Decimal] = None  # Price the buyer was quoted, if any


class PurchaseLedger:
    """
    Append-only record of settled purchases and price samples.
    """

    def __init__(
        self,
        repository: PurchaseRepository,
        pricing_engine: PricingEngine,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._repository = repository
        self._pricing = pricing_engine
        self._clock = clock

    def record(
        self,
        *,
        amount: Decimal,
        price: Decimal,
        token_amount: Decimal,
        buyer_email: str,
        referral_code: Optional[str] = None,
        transaction_hash: Optional[str] = None,
    ) -> Purchase:
        """Append a purchase, assigning its id and creation timestamp."""
        purchase = Purchase(
            purchase_id=uuid4(),
            amount=amount,
            price=price,
            token_amount=token_amount,
            buyer_email=buyer_email,
            created_at=self._clock(),
            referral_code=referral_code or None,
            transaction_hash=transaction_hash or None,
        )
        return self._repository.insert_purchase(purchase)

    def append_price_sample(self, price: Decimal, change_percent: Decimal) -> PriceSample:
        """Append one point to the price history."""
        sample = PriceSample(
            sample_id=uuid4(),
            price=price,
            change_percent=change_percent,
            timestamp=self._clock(),
        )
        return self._repository.insert_price_sample(sample)

    def history(self, limit: int = DEFAULT_HISTORY_LIMIT) -> List[PriceSample]:
        """Price samples, newest first."""
        return self._repository.list_price_samples(limit)

    def purchases(self, limit: Optional[int] = None) -> List[Purchase]:
        """Recorded purchases, newest first."""
        return self._repository.list_purchases(limit)

    def execute_purchase(self, request: PurchaseRequest) -> Purchase:
        """
        Settle a purchase and record it.

        Process:
        1. Settle through the pricing engine (serialized)
        2. Inside the settlement commit, record the purchase at the settlement
           price and append a price sample for the price move
        3. If recording fails, the settlement is not applied

        Raises:
            InvalidInput: If amount is not positive
            SupplyExhausted: If the purchase exceeds the remaining supply
        """
        if request.amount <= 0:
            raise InvalidInput("Purchase amount must be greater than 0")

        recorded: List[Purchase] = []

        def _commit(previous: SaleState, proposed: SaleState) -> None:
            purchase = self.record(
                amount=request.amount,
                price=previous.current_price,
                token_amount=calculate_token_amount(request.amount, previous.current_price),
                buyer_email=request.buyer_email,
                referral_code=request.referral_code,
                transaction_hash=request.transaction_hash,
            )
            change = (proposed.current_price - previous.current_price) / previous.current_price * 100
            self.append_price_sample(proposed.current_price, change.quantize(PERCENT_PRECISION))
            recorded.append(purchase)

        self._pricing.settle(request.amount, quoted_price=request.quoted_price, on_commit=_commit)

        purchase = recorded[0]
        logger.info(
            "Purchase recorded",
            extra={
                "purchase_id": str(purchase.purchase_id),
                "amount": str(purchase.amount),
                "token_amount": str(purchase.token_amount),
                "buyer_email": purchase.buyer_email,
                "referral_code": purchase.referral_code,
            },
        )
        return purchase

    def seed_history(
        self,
        base_price: Decimal,
        count: int = DEFAULT_HISTORY_LIMIT,
        rng: Optional[random.Random] = None,
    ) -> List[PriceSample]:
        """
        Seed `count` hourly samples around `base_price` when the store is empty.

        Each sample deviates from the base price by at most the per-settlement
        drift rate, in either direction.

        Returns:
            The samples written (empty if the store already had history)
        """
        if self._repository.count_price_samples() > 0:
            return []

        rng = rng or random.Random()
        now = self._clock()
        seeded: List[PriceSample] = []

        for i in range(count):
            fluctuation = Decimal(str(rng.uniform(-1.0, 1.0))) * FLUCTUATION_RATE
            sample = PriceSample(
                sample_id=uuid4(),
                price=base_price + base_price * fluctuation,
                change_percent=(fluctuation * 100).quantize(PERCENT_PRECISION),
                timestamp=now - timedelta(hours=count - i),
            )
            seeded.append(self._repository.insert_price_sample(sample))

        logger.info("Seeded price history", extra={"samples": len(seeded)})
        return seeded


__all__ = [
    "PurchaseRequest",
    "PurchaseLedger",
]
