"""
Purchase repository (persistence).

This module provides *only* persistence operations for the Purchase and
PriceSample domain records. It does not enforce business rules (pricing,
settlement); it only appends and fetches records.

Two implementations share the same interface:
- InMemoryPurchaseRepository: volatile, process-local (default)
- SupabasePurchaseRepository: `purchases` and `price_history` tables
"""

from __future__ import annotations

import threading
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Protocol
from uuid import UUID

from domain.purchase import PriceSample, Purchase
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.client import raise_on_error, response_rows

# Supabase table names. Keep these aligned with your database schema.
_PURCHASES_TABLE: str = "purchases"
_PRICE_HISTORY_TABLE: str = "price_history"


class PurchaseRepository(Protocol):
    def insert_purchase(self, purchase: Purchase) -> Purchase: ...

    def list_purchases(self, limit: Optional[int] = None) -> List[Purchase]: ...

    def insert_price_sample(self, sample: PriceSample) -> PriceSample: ...

    def list_price_samples(self, limit: int) -> List[PriceSample]: ...

    def count_price_samples(self) -> int: ...


class InMemoryPurchaseRepository:
    """Append-only in-process store."""

    def __init__(self) -> None:
        self._purchases: List[Purchase] = []
        self._samples: List[PriceSample] = []
        self._lock = threading.Lock()

    def insert_purchase(self, purchase: Purchase) -> Purchase:
        with self._lock:
            if any(p.purchase_id == purchase.purchase_id for p in self._purchases):
                raise RuntimeError(f"Failed to record purchase: duplicate id {purchase.purchase_id}")
            self._purchases.append(purchase)
        return purchase

    def list_purchases(self, limit: Optional[int] = None) -> List[Purchase]:
        with self._lock:
            ordered = sorted(reversed(self._purchases), key=lambda p: p.created_at, reverse=True)
        return ordered if limit is None else ordered[:limit]

    def insert_price_sample(self, sample: PriceSample) -> PriceSample:
        with self._lock:
            self._samples.append(sample)
        return sample

    def list_price_samples(self, limit: int) -> List[PriceSample]:
        with self._lock:
            # Stable sort keeps insertion order for equal timestamps; reverse it
            # so the latest appended sample still comes first.
            ordered = sorted(reversed(self._samples), key=lambda s: s.timestamp, reverse=True)
        return ordered[:limit]

    def count_price_samples(self) -> int:
        with self._lock:
            return len(self._samples)


def _row_to_purchase(row: Mapping[str, Any]) -> Purchase:
    """Convert a Supabase row into a Purchase."""

    return Purchase(
        purchase_id=UUID(str(row["purchase_id"])),
        amount=Decimal(str(row["amount"])),
        price=Decimal(str(row["price"])),
        token_amount=Decimal(str(row["token_amount"])),
        buyer_email=str(row["buyer_email"]),
        created_at=parse_utc_datetime(row["created_at_utc"]),
        referral_code=row.get("referral_code"),
        transaction_hash=row.get("transaction_hash"),
    )


def _row_to_price_sample(row: Mapping[str, Any]) -> PriceSample:
    """Convert a Supabase row into a PriceSample."""

    return PriceSample(
        sample_id=UUID(str(row["sample_id"])),
        price=Decimal(str(row["price"])),
        change_percent=Decimal(str(row["change_percent"])),
        timestamp=parse_utc_datetime(row["timestamp_utc"]),
    )


class SupabasePurchaseRepository:
    """Purchases and price history stored in Supabase tables."""

    def __init__(self, client: Any):
        self._client = client

    def insert_purchase(self, purchase: Purchase) -> Purchase:
        payload: dict[str, Any] = {
            "purchase_id": str(purchase.purchase_id),
            "amount": str(purchase.amount),
            "price": str(purchase.price),
            "token_amount": str(purchase.token_amount),
            "buyer_email": purchase.buyer_email,
            "referral_code": purchase.referral_code,
            "transaction_hash": purchase.transaction_hash,
            "created_at_utc": to_iso_utc(purchase.created_at, name="created_at"),
        }

        response = self._client.table(_PURCHASES_TABLE).insert(payload).execute()
        raise_on_error(response, "record purchase")
        return purchase

    def list_purchases(self, limit: Optional[int] = None) -> List[Purchase]:
        query = (
            self._client.table(_PURCHASES_TABLE)
            .select("*")
            .order("created_at_utc", desc=True)
        )
        if limit is not None:
            query = query.limit(limit)

        response = query.execute()
        raise_on_error(response, "list purchases")
        return [_row_to_purchase(row) for row in response_rows(response)]

    def insert_price_sample(self, sample: PriceSample) -> PriceSample:
        payload: dict[str, Any] = {
            "sample_id": str(sample.sample_id),
            "price": str(sample.price),
            "change_percent": str(sample.change_percent),
            "timestamp_utc": to_iso_utc(sample.timestamp, name="timestamp"),
        }

        response = self._client.table(_PRICE_HISTORY_TABLE).insert(payload).execute()
        raise_on_error(response, "record price sample")
        return sample

    def list_price_samples(self, limit: int) -> List[PriceSample]:
        response = (
            self._client.table(_PRICE_HISTORY_TABLE)
            .select("*")
            .order("timestamp_utc", desc=True)
            .limit(limit)
            .execute()
        )
        raise_on_error(response, "list price history")
        return [_row_to_price_sample(row) for row in response_rows(response)]

    def count_price_samples(self) -> int:
        response = (
            self._client.table(_PRICE_HISTORY_TABLE)
            .select("sample_id", count="exact")
            .limit(1)
            .execute()
        )
        raise_on_error(response, "count price history")
        count = getattr(response, "count", None)
        return int(count) if count is not None else len(response_rows(response))


__all__ = [
    "PurchaseRepository",
    "InMemoryPurchaseRepository",
    "SupabasePurchaseRepository",
]
