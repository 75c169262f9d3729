"""
Domain errors.

- InvalidInput: bad amount, email or missing field. Surfaced as HTTP 400.
- OracleUnavailable: the balance query failed or timed out. Always recovered
  locally as a soft failure, never surfaced as an HTTP error.
- SupplyExhausted: a settlement would sell more tokens than exist.
"""

from __future__ import annotations

from decimal import Decimal


class InvalidInput(ValueError):
    """Raised when caller-supplied data is unusable."""
    pass


class InvalidAmount(InvalidInput):
    """Raised when a purchase amount is not positive or below the sale minimum."""

    def __init__(self, amount: Decimal, minimum: Decimal):
        self.amount = amount
        self.minimum = minimum
        if amount <= 0:
            message = "Invalid purchase amount"
        else:
            message = f"Minimum purchase is {minimum} USDC (got {amount})"
        super().__init__(message)


class OracleUnavailable(RuntimeError):
    """Raised when the balance oracle cannot answer."""
    pass


class SupplyExhausted(RuntimeError):
    """Raised when a settlement would push sold supply past total supply."""

    def __init__(self, requested: int, remaining: int):
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Insufficient token supply. Requested: {requested}, Remaining: {remaining}"
        )
