"""
Tests for the domain records (`domain/sale_state.py`, `domain/purchase.py`,
`domain/account.py`, `domain/time.py`).

Covers contract rules:
- All timestamps are UTC.
- Sold supply never exceeds total supply; price never drops below 0.01.
- Purchases are immutable and carry positive amounts.
- Accounts validate email and wallet phrase length.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from conftest import START
from domain.account import Account, is_valid_email
from domain.purchase import PriceSample, Purchase
from domain.sale_state import SaleState
from domain.time import parse_utc_datetime, require_utc_timestamp

PURCHASE_ID = UUID("00000000-0000-0000-0000-000000000010")
ACCOUNT_ID = UUID("00000000-0000-0000-0000-000000000020")


def _state(**overrides) -> SaleState:
    values = dict(
        total_supply=1000,
        sold_supply=100,
        current_price=Decimal("17"),
        total_dividends_distributed=Decimal("0"),
        active_holders=0,
        updated_at=START,
    )
    values.update(overrides)
    return SaleState(**values)


def test_sale_state_invariants() -> None:
    """Verify supply and price bounds are enforced."""

    with pytest.raises(ValueError):
        _state(sold_supply=1001)

    with pytest.raises(ValueError):
        _state(current_price=Decimal("0.009"))

    with pytest.raises(ValueError):
        _state(updated_at=datetime(2025, 1, 1))

    state = _state()
    assert state.remaining_supply == 900
    assert state.sold_ratio == Decimal("0.1")


def test_purchase_is_immutable_and_validated() -> None:
    """Verify Purchase rejects bad values and cannot be mutated."""

    purchase = Purchase(
        purchase_id=PURCHASE_ID,
        amount=Decimal("100"),
        price=Decimal("17"),
        token_amount=Decimal("5.8824"),
        buyer_email="buyer@example.com",
        created_at=START,
    )

    with pytest.raises(FrozenInstanceError):
        purchase.amount = Decimal("1")  # type: ignore[misc]

    with pytest.raises(ValueError):
        replace(purchase, amount=Decimal("0"))

    with pytest.raises(ValueError):
        replace(purchase, created_at=START.astimezone(timezone(timedelta(hours=2))))


def test_price_sample_requires_utc() -> None:
    """Verify price samples carry UTC timestamps."""

    with pytest.raises(ValueError):
        PriceSample(sample_id=PURCHASE_ID, price=Decimal("17"), change_percent=Decimal("0"), timestamp=datetime(2025, 1, 1))


def test_account_validation() -> None:
    """Verify email and wallet phrase checks."""

    with pytest.raises(ValueError):
        Account(account_id=ACCOUNT_ID, email="not-an-email")

    with pytest.raises(ValueError):
        Account(account_id=ACCOUNT_ID, email="buyer@example.com", wallet_phrase=("able",) * 11)

    account = Account(account_id=ACCOUNT_ID, email="buyer@example.com", created_at=START)
    deposited = account.with_deposit(("able",) * 12, START + timedelta(minutes=1))

    assert account.has_deposited is False
    assert deposited.has_deposited is True
    assert deposited.updated_at == START + timedelta(minutes=1)
    assert deposited.with_referral_code("AB12C", START).referral_code == "AB12C"


def test_email_check() -> None:
    """Verify the syntactic email check."""

    assert is_valid_email("buyer@example.com")
    assert not is_valid_email("buyer@example")
    assert not is_valid_email("buyer example@example.com")
    assert not is_valid_email("")


def test_time_helpers() -> None:
    """Verify UTC enforcement and parsing of stored timestamps."""

    require_utc_timestamp("at", START)

    with pytest.raises(ValueError):
        require_utc_timestamp("at", datetime(2025, 1, 1))

    assert parse_utc_datetime("2025-01-01T12:00:00Z") == START
    assert parse_utc_datetime("2025-01-01T14:00:00+02:00") == START
    assert parse_utc_datetime(datetime(2025, 1, 1, 12)) == START

    with pytest.raises(TypeError):
        parse_utc_datetime(1735732800)
