"""
Pricing service: the bonding-curve pricing engine.

Owns the sale-wide state (supply sold, current unit price) and:
- Quotes purchases without touching state
- Settles confirmed purchases, the only way sale state changes

Curve:
Every settlement nudges the price up by a fixed relative increment,
independent of the purchase size:

    next_price = max(price + price * 0.000027, 0.01)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional

from domain.errors import InvalidAmount, SupplyExhausted
from domain.purchase import PriceSample
from domain.sale_state import MINIMUM_PRICE, SaleState
from domain.time import utc_now
from repositories.purchase_repository import PurchaseRepository

logger = logging.getLogger(__name__)

FLUCTUATION_RATE = Decimal("0.000027")  # 0.0027% per settlement
MINIMUM_PURCHASE = Decimal("70")
TOKEN_PRECISION = Decimal("0.0001")
DEFAULT_HISTORY_LIMIT = 24

# Opening state of the sale.
INITIAL_TOTAL_SUPPLY = 600_000_000_000
INITIAL_SOLD_SUPPLY = 271_838_183_177
INITIAL_PRICE = Decimal("17.0000")
INITIAL_DIVIDENDS_DISTRIBUTED = Decimal("2847293.47")
INITIAL_ACTIVE_HOLDERS = 15_847

CommitHook = Callable[[SaleState, SaleState], None]


def initial_sale_state(now: Optional[datetime] = None) -> SaleState:
    """Sale state the service boots with."""
    return SaleState(
        total_supply=INITIAL_TOTAL_SUPPLY,
        sold_supply=INITIAL_SOLD_SUPPLY,
        current_price=INITIAL_PRICE,
        total_dividends_distributed=INITIAL_DIVIDENDS_DISTRIBUTED,
        active_holders=INITIAL_ACTIVE_HOLDERS,
        updated_at=now or utc_now(),
    )


def calculate_next_price(price: Decimal, amount: Decimal) -> Decimal:
    """
    Price after one more settlement.

    The purchase amount is deliberately ignored: each settlement moves the
    price by the same relative step.
    """
    return max(price + price * FLUCTUATION_RATE, MINIMUM_PRICE)


def calculate_token_amount(amount: Decimal, price: Decimal) -> Decimal:
    """Tokens bought by `amount` at `price`, rounded to 4 decimal places."""
    return (amount / price).quantize(TOKEN_PRECISION, rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class PurchaseQuote:
    """
    Side-effect-free projection of a purchase at the current price.
    """
    amount: Decimal
    token_amount: Decimal
    current_price: Decimal
    new_price: Decimal

    @property
    def price_delta(self) -> Decimal:
        """How much the purchase would move the price."""
        return self.new_price - self.current_price


class PricingEngine:
    """
    Single owner of SaleState.

    Reads take the current immutable snapshot. Settlements are serialized by
    a lock so concurrent confirmations never lose a price update.
    """

    def __init__(
        self,
        price_history: PurchaseRepository,
        state: Optional[SaleState] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._price_history = price_history
        self._clock = clock
        self._state = state or initial_sale_state(clock())
        self._lock = threading.Lock()

    def snapshot(self) -> SaleState:
        """Consistent read of the sale state."""
        return self._state

    def quote(self, amount: Decimal) -> PurchaseQuote:
        """
        Quote a purchase of `amount` (quote currency) at the current price.

        Raises:
            InvalidAmount: If amount is not positive or below the 70 USDC minimum

        Example:
            quote = engine.quote(Decimal("100"))
            # at 17.0000: token_amount=5.8824, new_price=17.000459
        """
        if amount <= 0 or amount < MINIMUM_PURCHASE:
            raise InvalidAmount(amount, MINIMUM_PURCHASE)

        state = self._state
        return PurchaseQuote(
            amount=amount,
            token_amount=calculate_token_amount(amount, state.current_price),
            current_price=state.current_price,
            new_price=calculate_next_price(state.current_price, amount),
        )

    def settle(
        self,
        amount: Decimal,
        quoted_price: Optional[Decimal] = None,
        on_commit: Optional[CommitHook] = None,
    ) -> SaleState:
        """
        Apply a confirmed purchase to the sale state.

        Tokens are counted at the price in effect when the settlement runs.
        `on_commit(previous, proposed)` runs inside the lock before the new
        state is published; if it raises, the sale state is left unchanged.

        Raises:
            InvalidAmount: If amount is not positive
            SupplyExhausted: If the purchase would exceed total supply
        """
        if amount <= 0:
            raise InvalidAmount(amount, MINIMUM_PURCHASE)

        with self._lock:
            previous = self._state
            tokens = (amount / previous.current_price).to_integral_value(rounding=ROUND_FLOOR)
            tokens_sold = int(tokens)

            if tokens_sold > previous.remaining_supply:
                raise SupplyExhausted(requested=tokens_sold, remaining=previous.remaining_supply)

            if quoted_price is not None and quoted_price != previous.current_price:
                logger.info(
                    "Price moved between quote and settlement",
                    extra={
                        "quoted_price": str(quoted_price),
                        "settlement_price": str(previous.current_price),
                    },
                )

            proposed = replace(
                previous,
                sold_supply=previous.sold_supply + tokens_sold,
                current_price=calculate_next_price(previous.current_price, amount),
                updated_at=self._clock(),
            )

            if on_commit is not None:
                on_commit(previous, proposed)

            self._state = proposed

        logger.info(
            "Settlement applied",
            extra={
                "amount": str(amount),
                "tokens_sold": tokens_sold,
                "previous_price": str(previous.current_price),
                "new_price": str(proposed.current_price),
                "sold_supply": proposed.sold_supply,
            },
        )
        return proposed

    def sample_history(self, limit: int = DEFAULT_HISTORY_LIMIT) -> List[PriceSample]:
        """Price samples, newest first, at most `limit`."""
        return self._price_history.list_price_samples(limit)


__all__ = [
    "FLUCTUATION_RATE",
    "MINIMUM_PURCHASE",
    "PurchaseQuote",
    "PricingEngine",
    "calculate_next_price",
    "calculate_token_amount",
    "initial_sale_state",
]
