"""
Pytest configuration and shared fixtures.

Adds the project root to the Python path so tests can import the api,
config, domain, repositories and services packages, and provides a fake
clock and a scripted balance oracle.
"""

import random
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.settings import Settings  # noqa: E402
from domain.errors import OracleUnavailable  # noqa: E402

START = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeOracle:
    """
    Balance oracle returning `balance` (or raising when `fail` is set).
    `on_call` runs before the answer is returned.

    Every call is recorded as (address, mint).
    """

    def __init__(self, balance: Optional[Decimal] = None):
        self.balance: Optional[Decimal] = balance
        self.fail = False
        self.calls: List[Tuple[str, str]] = []
        self.closed = False
        self.on_call: Optional[Callable[[], None]] = None

    def get_balance(self, address: str, mint: str) -> Optional[Decimal]:
        self.calls.append((address, mint))
        if self.on_call is not None:
            self.on_call()
        if self.fail:
            raise OracleUnavailable("RPC timed out")
        return self.balance

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(deposit_auto_poll=False, seed_price_history=False)


@pytest.fixture
def container(test_settings: Settings, oracle: FakeOracle, clock: FakeClock):
    from api.dependencies import build_container

    return build_container(test_settings, oracle=oracle, clock=clock, rng=random.Random(7))
