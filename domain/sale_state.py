"""
Domain: Sale-wide state for the token sale.

Invariants implemented here:
- There is a single SaleState per process, owned by the pricing engine.
- sold_supply never exceeds total_supply.
- current_price is never below the minimum price (0.01).
- updated_at is a UTC timestamp.

The value object is immutable; settlement produces a new instance.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from .time import require_utc_timestamp

MINIMUM_PRICE = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class SaleState:
    """
    Snapshot of the sale: supply, current unit price and dividend statistics.
    """

    total_supply: int
    sold_supply: int
    current_price: Decimal
    total_dividends_distributed: Decimal
    active_holders: int
    updated_at: datetime

    def __post_init__(self) -> None:
        require_utc_timestamp("updated_at", self.updated_at)
        if self.total_supply < 0 or self.sold_supply < 0:
            raise ValueError("supply values must be >= 0")
        if self.sold_supply > self.total_supply:
            raise ValueError("sold_supply cannot exceed total_supply")
        if self.current_price < MINIMUM_PRICE:
            raise ValueError(f"current_price must be >= {MINIMUM_PRICE}")

    @property
    def remaining_supply(self) -> int:
        """Tokens still available for sale."""
        return self.total_supply - self.sold_supply

    @property
    def sold_ratio(self) -> Decimal:
        """Fraction of total supply already sold (0 when total supply is 0)."""
        if self.total_supply == 0:
            return Decimal("0")
        return Decimal(self.sold_supply) / Decimal(self.total_supply)
