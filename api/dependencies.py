"""
Service wiring for the API.

Builds the object graph once per application and hands services to the
routers through FastAPI dependencies.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import Request

from config.settings import Settings, load_settings
from domain.time import utc_now
from repositories.account_repository import (
    AccountRepository,
    InMemoryAccountRepository,
    SupabaseAccountRepository,
)
from repositories.client import create_supabase_client
from repositories.ledger_oracle import LedgerOracle, SolanaLedgerOracle
from repositories.purchase_repository import (
    InMemoryPurchaseRepository,
    PurchaseRepository,
    SupabasePurchaseRepository,
)
from services.deposit_service import DepositService, DepositSessionManager
from services.pricing_service import PricingEngine
from services.purchase_service import PurchaseLedger
from services.referral_service import ReferralLedger

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """All services of one application instance."""
    settings: Settings
    oracle: LedgerOracle
    pricing_engine: PricingEngine
    purchase_ledger: PurchaseLedger
    referral_ledger: ReferralLedger
    deposit_service: DepositService
    session_manager: DepositSessionManager

    def close(self) -> None:
        close = getattr(self.oracle, "close", None)
        if callable(close):
            close()


def build_container(
    settings: Optional[Settings] = None,
    *,
    oracle: Optional[LedgerOracle] = None,
    purchase_repository: Optional[PurchaseRepository] = None,
    account_repository: Optional[AccountRepository] = None,
    clock: Callable[[], datetime] = utc_now,
    rng: Optional[random.Random] = None,
) -> ServiceContainer:
    """
    Build the service graph.

    Repositories default to the configured storage backend and the oracle to
    the Solana JSON-RPC client; tests pass their own.
    """
    settings = settings or load_settings()

    if purchase_repository is None or account_repository is None:
        if settings.storage_backend == "supabase":
            client = create_supabase_client(settings)
            purchase_repository = purchase_repository or SupabasePurchaseRepository(client)
            account_repository = account_repository or SupabaseAccountRepository(client)
        else:
            purchase_repository = purchase_repository or InMemoryPurchaseRepository()
            account_repository = account_repository or InMemoryAccountRepository()

    if oracle is None:
        oracle = SolanaLedgerOracle(settings.solana_rpc_url, settings.oracle_timeout_seconds)

    pricing_engine = PricingEngine(purchase_repository, clock=clock)
    purchase_ledger = PurchaseLedger(purchase_repository, pricing_engine, clock=clock)
    referral_ledger = ReferralLedger(account_repository, clock=clock, rng=rng)
    deposit_service = DepositService(
        oracle,
        purchase_ledger,
        referral_ledger,
        token_mint=settings.token_mint,
        rng=rng,
    )
    session_manager = DepositSessionManager(
        deposit_service,
        pricing_engine,
        deposit_address=settings.deposit_address,
        clock=clock,
    )

    if settings.seed_price_history:
        purchase_ledger.seed_history(pricing_engine.snapshot().current_price, rng=rng)

    logger.info(
        "Services ready",
        extra={"storage_backend": settings.storage_backend, "deposit_address": settings.deposit_address},
    )
    return ServiceContainer(
        settings=settings,
        oracle=oracle,
        pricing_engine=pricing_engine,
        purchase_ledger=purchase_ledger,
        referral_ledger=referral_ledger,
        deposit_service=deposit_service,
        session_manager=session_manager,
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container
