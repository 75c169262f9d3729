"""
Tests for the Supabase repositories.

Covers contract rules:
- Rows are mapped to domain records with UTC timestamps and Decimals.
- Price history is queried newest first with a limit.
- Supabase errors surface as RuntimeError.
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock
from uuid import UUID, uuid4

import pytest

from conftest import START
from domain.account import Account
from domain.purchase import Purchase
from repositories.account_repository import SupabaseAccountRepository
from repositories.purchase_repository import SupabasePurchaseRepository

PURCHASE_ID = UUID("00000000-0000-0000-0000-000000000101")
SAMPLE_ID = UUID("00000000-0000-0000-0000-000000000201")
ACCOUNT_ID = UUID("00000000-0000-0000-0000-000000000301")


def _response(data=None, error=None, count=None):
    return SimpleNamespace(data=data, error=error, count=count)


def test_insert_purchase_serializes_payload() -> None:
    """Verify decimals are sent as strings and timestamps as ISO UTC."""

    client = MagicMock()
    client.table.return_value.insert.return_value.execute.return_value = _response(data=[{}])
    purchase = Purchase(
        purchase_id=PURCHASE_ID,
        amount=Decimal("100"),
        price=Decimal("17.0000"),
        token_amount=Decimal("5.8824"),
        buyer_email="buyer@example.com",
        created_at=START,
        referral_code="AB12C",
    )

    SupabasePurchaseRepository(client).insert_purchase(purchase)

    client.table.assert_called_with("purchases")
    payload = client.table.return_value.insert.call_args.args[0]
    assert payload["purchase_id"] == str(PURCHASE_ID)
    assert payload["amount"] == "100"
    assert payload["token_amount"] == "5.8824"
    assert payload["created_at_utc"] == "2025-01-01T12:00:00+00:00"


def test_insert_purchase_raises_on_error() -> None:
    """Verify a Supabase error aborts the insert."""

    client = MagicMock()
    client.table.return_value.insert.return_value.execute.return_value = _response(error="duplicate key")

    with pytest.raises(RuntimeError, match="Failed to record purchase"):
        SupabasePurchaseRepository(client).insert_purchase(
            Purchase(
                purchase_id=uuid4(),
                amount=Decimal("100"),
                price=Decimal("17"),
                token_amount=Decimal("5.8824"),
                buyer_email="buyer@example.com",
                created_at=START,
            )
        )


def test_list_price_samples_maps_rows() -> None:
    """Verify price history rows become PriceSamples, newest first."""

    client = MagicMock()
    query = client.table.return_value.select.return_value.order.return_value.limit.return_value
    query.execute.return_value = _response(
        data=[
            {
                "sample_id": str(SAMPLE_ID),
                "price": "17.000459",
                "change_percent": "0.002700",
                "timestamp_utc": "2025-01-01T12:00:00Z",
            }
        ]
    )

    samples = SupabasePurchaseRepository(client).list_price_samples(24)

    client.table.assert_called_with("price_history")
    client.table.return_value.select.return_value.order.assert_called_with("timestamp_utc", desc=True)
    client.table.return_value.select.return_value.order.return_value.limit.assert_called_with(24)
    assert len(samples) == 1
    assert samples[0].sample_id == SAMPLE_ID
    assert samples[0].price == Decimal("17.000459")
    assert samples[0].timestamp == START


def test_count_price_samples_uses_exact_count() -> None:
    """Verify the exact count from the response is used."""

    client = MagicMock()
    query = client.table.return_value.select.return_value.limit.return_value
    query.execute.return_value = _response(data=[{"sample_id": str(SAMPLE_ID)}], count=24)

    assert SupabasePurchaseRepository(client).count_price_samples() == 24


def test_get_account_by_referral_code() -> None:
    """Verify account rows are mapped, including the wallet phrase."""

    client = MagicMock()
    query = client.table.return_value.select.return_value.eq.return_value.limit.return_value
    query.execute.return_value = _response(
        data=[
            {
                "account_id": str(ACCOUNT_ID),
                "email": "friend@example.com",
                "referral_code": "Q7Z2K",
                "has_deposited": True,
                "wallet_phrase": ["able"] * 12,
                "created_at_utc": "2025-01-01T12:00:00+00:00",
                "updated_at_utc": "2025-01-01T12:00:00+00:00",
            }
        ]
    )

    account = SupabaseAccountRepository(client).get_by_referral_code("Q7Z2K")

    client.table.return_value.select.return_value.eq.assert_called_with("referral_code", "Q7Z2K")
    assert account.account_id == ACCOUNT_ID
    assert account.has_deposited is True
    assert account.wallet_phrase == ("able",) * 12
    assert account.created_at == START


def test_get_account_missing_returns_none() -> None:
    """Verify an empty result means no account."""

    client = MagicMock()
    query = client.table.return_value.select.return_value.eq.return_value.limit.return_value
    query.execute.return_value = _response(data=[])

    assert SupabaseAccountRepository(client).get_by_email("nobody@example.com") is None


def test_update_account_targets_email() -> None:
    """Verify updates are keyed by email and keep the creation timestamp."""

    client = MagicMock()
    client.table.return_value.update.return_value.eq.return_value.execute.return_value = _response(data=[{}])
    account = Account(
        account_id=ACCOUNT_ID,
        email="buyer@example.com",
        referral_code="AB12C",
        created_at=START,
        updated_at=START,
    )

    SupabaseAccountRepository(client).update(account)

    payload = client.table.return_value.update.call_args.args[0]
    assert "account_id" not in payload
    assert "created_at_utc" not in payload
    assert payload["referral_code"] == "AB12C"
    client.table.return_value.update.return_value.eq.assert_called_with("email", "buyer@example.com")
