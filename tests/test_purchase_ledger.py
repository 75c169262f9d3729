"""
Tests for `services/purchase_service.py`.

Covers contract rules:
- A purchase is recorded at the price in effect when it settles.
- Each executed purchase appends one price sample carrying the price move.
- Price history is returned newest first and honours the limit.
- History is only seeded on an empty store.
- A storage failure while recording aborts the settlement.
"""

from __future__ import annotations

import random
from dataclasses import replace
from decimal import Decimal

import pytest

from conftest import FakeClock
from domain.errors import InvalidInput, SupplyExhausted
from repositories.purchase_repository import InMemoryPurchaseRepository
from services.pricing_service import PricingEngine, initial_sale_state
from services.purchase_service import PurchaseLedger, PurchaseRequest


def _ledger(clock: FakeClock, repository=None):
    repository = repository or InMemoryPurchaseRepository()
    engine = PricingEngine(repository, clock=clock)
    return PurchaseLedger(repository, engine, clock=clock), engine, repository


def test_execute_purchase_records_settlement_price(clock: FakeClock) -> None:
    """Verify the purchase carries the settlement price and rounded token amount."""

    ledger, engine, _ = _ledger(clock)

    purchase = ledger.execute_purchase(
        PurchaseRequest(amount=Decimal("100"), buyer_email="buyer@example.com", referral_code="AB12C")
    )

    assert purchase.price == Decimal("17.0000")
    assert purchase.token_amount == Decimal("5.8824")
    assert purchase.referral_code == "AB12C"
    assert purchase.created_at == clock.now
    assert engine.snapshot().current_price == Decimal("17.000459")
    assert ledger.purchases() == [purchase]


def test_execute_purchase_appends_price_sample(clock: FakeClock) -> None:
    """Verify a sample with the new price and change percent is appended."""

    ledger, _, _ = _ledger(clock)

    ledger.execute_purchase(PurchaseRequest(amount=Decimal("100"), buyer_email="buyer@example.com"))

    samples = ledger.history()
    assert len(samples) == 1
    assert samples[0].price == Decimal("17.000459")
    assert samples[0].change_percent == Decimal("0.002700")


def test_second_purchase_settles_at_moved_price(clock: FakeClock) -> None:
    """Verify the second purchase is priced after the first one's step."""

    ledger, _, _ = _ledger(clock)

    ledger.execute_purchase(PurchaseRequest(amount=Decimal("100"), buyer_email="a@example.com"))
    clock.advance(1)
    second = ledger.execute_purchase(PurchaseRequest(amount=Decimal("100"), buyer_email="b@example.com"))

    assert second.price == Decimal("17.000459")
    assert [p.buyer_email for p in ledger.purchases()] == ["b@example.com", "a@example.com"]


def test_execute_purchase_rejects_non_positive_amount(clock: FakeClock) -> None:
    """Verify zero amounts raise InvalidInput before settlement."""

    ledger, engine, _ = _ledger(clock)
    before = engine.snapshot()

    with pytest.raises(InvalidInput):
        ledger.execute_purchase(PurchaseRequest(amount=Decimal("0"), buyer_email="buyer@example.com"))

    assert engine.snapshot() == before


def test_storage_failure_aborts_settlement(clock: FakeClock) -> None:
    """Verify a failed insert leaves the price where it was."""

    class BrokenRepository(InMemoryPurchaseRepository):
        def insert_purchase(self, purchase):
            raise RuntimeError("Failed to record purchase: connection reset")

    ledger, engine, _ = _ledger(clock, BrokenRepository())
    before = engine.snapshot()

    with pytest.raises(RuntimeError, match="connection reset"):
        ledger.execute_purchase(PurchaseRequest(amount=Decimal("100"), buyer_email="buyer@example.com"))

    assert engine.snapshot() == before
    assert ledger.history() == []


def test_supply_exhausted_records_nothing(clock: FakeClock) -> None:
    """Verify a rejected settlement writes no purchase or sample."""

    repository = InMemoryPurchaseRepository()
    state = replace(initial_sale_state(clock.now), total_supply=10, sold_supply=10)
    engine = PricingEngine(repository, state=state, clock=clock)
    ledger = PurchaseLedger(repository, engine, clock=clock)

    with pytest.raises(SupplyExhausted):
        ledger.execute_purchase(PurchaseRequest(amount=Decimal("100"), buyer_email="buyer@example.com"))

    assert ledger.purchases() == []
    assert ledger.history() == []


def test_history_newest_first_and_limited(clock: FakeClock) -> None:
    """Verify ordering and the limit on price history."""

    ledger, _, _ = _ledger(clock)

    for i in range(5):
        ledger.append_price_sample(Decimal("17") + i, Decimal("0"))
        clock.advance(60)

    samples = ledger.history(3)
    assert [s.price for s in samples] == [Decimal("21"), Decimal("20"), Decimal("19")]


def test_seed_history_only_on_empty_store(clock: FakeClock) -> None:
    """Verify 24 hourly samples are seeded once, within the drift band."""

    ledger, _, _ = _ledger(clock)

    seeded = ledger.seed_history(Decimal("17"), rng=random.Random(42))

    assert len(seeded) == 24
    assert seeded[-1].timestamp == clock.now.replace(hour=11)
    for sample in seeded:
        assert abs(sample.price - Decimal("17")) <= Decimal("17") * Decimal("0.000027")

    assert ledger.seed_history(Decimal("17")) == []
    assert len(ledger.history(100)) == 24
