"""
Deposit service: confirms deposits against the ledger oracle.

Handles:
- Balance checks (oracle failures become soft OracleFailed observations)
- Confirmation side effects: settlement first, then account update, wallet
  phrase and referral attribution, all completed before CONFIRMED is reported
- A registry of live deposit sessions with manual checks and close
- A per-session scheduler task emitting Tick (1s) and PollDue (10s) events

Concurrency:
- Each session has its own lock, held only for in-memory state changes.
  Oracle and storage calls run outside it.
- Results are applied only if the session is still live and not closed.
- A matched deposit claims the session before confirming. The settled
  purchase is kept on the session, so a retry after a storage failure
  finishes the deposit without settling again.
"""

from __future__ import annotations

import asyncio
import logging
import random
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from domain.account import WALLET_PHRASE_LENGTH, is_valid_email
from domain.deposit import (
    CONFIRMATION_RETRY_MESSAGE,
    FIXED_FEE,
    POLL_INTERVAL_SECONDS,
    SUPPLY_EXHAUSTED_MESSAGE,
    TICK_INTERVAL_SECONDS,
    BalanceMatched,
    BalanceObservation,
    Checking,
    Confirmed,
    DepositConfirmation,
    DepositSession,
    DepositState,
    DepositStatus,
    OracleFailed,
    evaluate_balance,
    state_for_observation,
)
from domain.errors import InvalidInput, OracleUnavailable, SupplyExhausted
from domain.purchase import Purchase
from domain.time import utc_now
from repositories.ledger_oracle import LedgerOracle
from services.pricing_service import PricingEngine
from services.purchase_service import PurchaseLedger, PurchaseRequest
from services.referral_service import ReferralLedger

logger = logging.getLogger(__name__)

WALLET_WORDS: Tuple[str, ...] = (
    "abandon", "ability", "able", "about", "above", "absent", "absorb", "abstract",
    "absurd", "abuse", "access", "accident", "account", "accuse", "achieve", "acid",
    "acoustic", "acquire", "across", "act", "action", "actor", "actress", "actual",
    "adapt", "add", "addict", "address", "adjust", "admit", "adult", "advance",
    "advice", "aerobic", "affair", "afford", "afraid", "again", "agent", "agree",
    "ahead", "aim", "air", "airport", "aisle", "alarm", "album", "alcohol",
    "alert", "alien", "all", "alley", "allow", "almost", "alone", "alpha",
    "already", "also", "alter", "always", "amateur", "amazing", "among", "amount",
)


def generate_wallet_phrase(rng: Optional[random.Random] = None) -> Tuple[str, ...]:
    """12 words sampled independently, with replacement, from WALLET_WORDS."""
    rng = rng or secrets.SystemRandom()
    return tuple(rng.choice(WALLET_WORDS) for _ in range(WALLET_PHRASE_LENGTH))


class DepositService:
    """
    Checks balances and performs the side effects of a confirmed deposit.
    """

    def __init__(
        self,
        oracle: LedgerOracle,
        purchase_ledger: PurchaseLedger,
        referral_ledger: ReferralLedger,
        token_mint: str,
        rng: Optional[random.Random] = None,
    ):
        self._oracle = oracle
        self._purchases = purchase_ledger
        self._referrals = referral_ledger
        self._token_mint = token_mint
        self._rng = rng

    def observe(self, address: str, expected: Decimal) -> BalanceObservation:
        """
        Query the oracle and compare the balance with `expected`.

        Never raises for oracle failures; they come back as OracleFailed.
        """
        try:
            balance = self._oracle.get_balance(address, self._token_mint)
        except OracleUnavailable as e:
            logger.warning(
                "Balance oracle unavailable",
                extra={"address": address, "mint": self._token_mint, "reason": str(e)},
            )
            return OracleFailed(reason=str(e))

        return evaluate_balance(balance, expected)

    def settle_deposit(
        self,
        *,
        buyer_email: str,
        amount: Decimal,
        referral_code: Optional[str] = None,
        quoted_price: Optional[Decimal] = None,
    ) -> Purchase:
        """
        Settle and record the purchase for a matched deposit.

        Email and remaining supply are checked before anything is written.

        Raises:
            InvalidInput: If the email is invalid
            SupplyExhausted: If the purchase exceeds the remaining supply
        """
        if not is_valid_email(buyer_email):
            raise InvalidInput(f"Invalid email address: {buyer_email!r}")

        return self._purchases.execute_purchase(
            PurchaseRequest(
                amount=amount,
                buyer_email=buyer_email,
                referral_code=referral_code,
                quoted_price=quoted_price,
            )
        )

    def complete_deposit(
        self,
        *,
        buyer_email: str,
        purchase: Purchase,
        actual_amount: Decimal,
        referral_code: Optional[str] = None,
    ) -> DepositConfirmation:
        """
        Finish a settled deposit: account, wallet phrase and referral notice.

        Safe to retry with the same purchase. The account is created on the
        first attempt and updated again on later ones.
        """
        wallet_phrase = generate_wallet_phrase(self._rng)
        account = self._referrals.record_deposit(buyer_email, wallet_phrase)
        attribution = self._referrals.attribute(referral_code, purchase)

        logger.info(
            "Deposit confirmed",
            extra={
                "buyer_email": buyer_email,
                "purchase_id": str(purchase.purchase_id),
                "actual_amount": str(actual_amount),
                "referral_attributed": attribution is not None,
            },
        )

        return DepositConfirmation(
            wallet_phrase=wallet_phrase,
            actual_amount=actual_amount,
            purchase=purchase,
            user_referral_code=account.referral_code,
            referral_message=attribution.message if attribution else None,
        )

    def confirm_deposit(
        self,
        *,
        buyer_email: str,
        amount: Decimal,
        actual_amount: Decimal,
        referral_code: Optional[str] = None,
        quoted_price: Optional[Decimal] = None,
    ) -> DepositConfirmation:
        """
        Run every side effect of a matched deposit.

        Process:
        1. Settle and record the purchase
        2. Create the buyer's account if needed (issues their referral code)
        3. Generate the wallet phrase and store it on the account
        4. Attribute the referral, if the code resolves

        Raises:
            InvalidInput: If the email is invalid
            SupplyExhausted: If the purchase exceeds the remaining supply
        """
        purchase = self.settle_deposit(
            buyer_email=buyer_email,
            amount=amount,
            referral_code=referral_code,
            quoted_price=quoted_price,
        )
        return self.complete_deposit(
            buyer_email=buyer_email,
            purchase=purchase,
            actual_amount=actual_amount,
            referral_code=referral_code,
        )

    def validate_deposit(
        self,
        *,
        address: str,
        expected_amount: Decimal,
        buyer_email: str,
        referral_code: Optional[str] = None,
    ) -> DepositState:
        """
        One-shot deposit check, without a session.

        `expected_amount` is the gross amount the buyer was asked to send
        (purchase plus fixed fee); the purchase is recorded net of the fee.

        Not idempotent: the address is shared and nothing ties a balance to
        an earlier call, so every matching call settles a new purchase. Use a
        deposit session for exactly-once confirmation.

        Returns:
            Confirmed on a match, otherwise the Waiting/Checking state the
            observation leads to

        Raises:
            InvalidInput: If expected_amount is not positive or the email is invalid
        """
        if expected_amount <= 0:
            raise InvalidInput("Expected amount must be greater than 0")
        if not is_valid_email(buyer_email):
            raise InvalidInput(f"Invalid email address: {buyer_email!r}")

        observation = self.observe(address, expected_amount)
        if not isinstance(observation, BalanceMatched):
            return state_for_observation(observation, first_observation=True)

        amount = expected_amount - FIXED_FEE if expected_amount > FIXED_FEE else expected_amount
        try:
            confirmation = self.confirm_deposit(
                buyer_email=buyer_email,
                amount=amount,
                actual_amount=observation.balance,
                referral_code=referral_code,
            )
        except SupplyExhausted as e:
            logger.error("Deposit matched but supply is exhausted", extra={"reason": str(e)})
            return Checking(message=SUPPLY_EXHAUSTED_MESSAGE, observed_amount=observation.balance)

        return Confirmed(confirmation=confirmation)


@dataclass
class _SessionEntry:
    session: DepositSession
    lock: threading.Lock = field(default_factory=threading.Lock)
    runner: Optional["asyncio.Task[DepositStatus]"] = None
    closed: bool = False


class DepositSessionManager:
    """
    Registry of live deposit sessions.

    Sessions live in process memory only and are discarded on close.
    """

    def __init__(
        self,
        deposit_service: DepositService,
        pricing_engine: PricingEngine,
        deposit_address: str,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._deposits = deposit_service
        self._pricing = pricing_engine
        self._deposit_address = deposit_address
        self._clock = clock
        self._entries: Dict[UUID, _SessionEntry] = {}
        self._lock = threading.Lock()

    def now(self) -> datetime:
        return self._clock()

    def _entry(self, session_id: UUID) -> Optional[_SessionEntry]:
        with self._lock:
            return self._entries.get(session_id)

    def open_session(
        self,
        amount: Decimal,
        buyer_email: str,
        referral_code: Optional[str] = None,
    ) -> DepositSession:
        """
        Quote `amount` and open a session waiting for its deposit.

        Raises:
            InvalidAmount: If amount is below the sale minimum
            InvalidInput: If the email is invalid
        """
        if not is_valid_email(buyer_email):
            raise InvalidInput(f"Invalid email address: {buyer_email!r}")

        quote = self._pricing.quote(amount)
        session = DepositSession(
            session_id=uuid4(),
            quoted_amount=amount,
            quoted_price=quote.current_price,
            token_amount=quote.token_amount,
            deposit_address=self._deposit_address,
            buyer_email=buyer_email,
            referral_code=referral_code or None,
            created_at=self._clock(),
        )

        with self._lock:
            self._entries[session.session_id] = _SessionEntry(session=session)

        logger.info(
            "Deposit session opened",
            extra={
                "session_id": str(session.session_id),
                "total_due": str(session.total_due),
                "deadline": session.deadline.isoformat(),
            },
        )
        return session

    def get(self, session_id: UUID) -> Optional[DepositSession]:
        """Current session (countdown applied), or None if unknown/closed."""
        entry = self._entry(session_id)
        if entry is None:
            return None
        with entry.lock:
            if entry.session.tick(self._clock()):
                logger.info("Deposit session timed out", extra={"session_id": str(session_id)})
        return entry.session

    # Tick events and reads share the same transition.
    tick = get

    def check(self, session_id: UUID) -> Optional[DepositSession]:
        """
        Query the oracle once for the session and apply the result.

        Used by both PollDue and manual checks. Results that arrive after the
        session went terminal or was closed are dropped.

        The session lock is only held for state changes, never across oracle
        or storage I/O. A matched deposit claims the session first, so a
        concurrent check cannot confirm it twice.

        Raises:
            Exception: Storage failures while confirming propagate; the
                session stays live and the next check retries without
                settling again
        """
        entry = self._entry(session_id)
        if entry is None:
            return None

        session = entry.session
        with entry.lock:
            if entry.closed or not session.accepts_checks(self._clock()):
                return session

        observation = self._deposits.observe(session.deposit_address, session.total_due)

        with entry.lock:
            if entry.closed or not session.accepts_checks(self._clock()):
                logger.info(
                    "Late balance result ignored",
                    extra={
                        "session_id": str(session_id),
                        "status": session.status.value,
                        "closed": entry.closed,
                    },
                )
                return session

            if not isinstance(observation, BalanceMatched):
                session.record_observation(observation, self._clock())
                return session

            session.begin_confirmation(self._clock())

        try:
            confirmation = self._confirm(entry, observation.balance)
        except SupplyExhausted as e:
            logger.error(
                "Deposit matched but supply is exhausted",
                extra={"session_id": str(session_id), "reason": str(e)},
            )
            with entry.lock:
                session.record_failure(SUPPLY_EXHAUSTED_MESSAGE)
            return session
        except Exception:
            with entry.lock:
                session.record_failure(CONFIRMATION_RETRY_MESSAGE)
            raise

        with entry.lock:
            if confirmation is None:
                session.cancel_confirmation()
            else:
                session.confirm(confirmation)
        return session

    def _confirm(self, entry: _SessionEntry, actual_amount: Decimal) -> Optional[DepositConfirmation]:
        """Settle once, then finish the deposit. None if closed before settling."""
        session = entry.session
        purchase = session.settled_purchase
        if purchase is None:
            with entry.lock:
                if entry.closed:
                    return None
            purchase = self._deposits.settle_deposit(
                buyer_email=session.buyer_email,
                amount=session.quoted_amount,
                referral_code=session.referral_code,
                quoted_price=session.quoted_price,
            )
            with entry.lock:
                session.record_settlement(purchase)

        return self._deposits.complete_deposit(
            buyer_email=session.buyer_email,
            purchase=purchase,
            actual_amount=actual_amount,
            referral_code=session.referral_code,
        )

    def close(self, session_id: UUID) -> bool:
        """
        Discard the session and stop its scheduler. Never reverses a settlement.

        Returns:
            False if the session was unknown
        """
        with self._lock:
            entry = self._entries.pop(session_id, None)
        if entry is None:
            return False
        with entry.lock:
            entry.closed = True
        if entry.runner is not None and not entry.runner.done():
            entry.runner.cancel()
        logger.info(
            "Deposit session closed",
            extra={"session_id": str(session_id), "status": entry.session.status.value},
        )
        return True

    def active_sessions(self) -> List[DepositSession]:
        with self._lock:
            return [entry.session for entry in self._entries.values()]

    def start_polling(
        self,
        session_id: UUID,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        run_blocking: Optional[Callable[..., Awaitable[object]]] = None,
    ) -> "asyncio.Task[DepositStatus]":
        """
        Start the scheduler task for a session. Must be called from a running loop.
        """
        entry = self._entry(session_id)
        if entry is None:
            raise KeyError(f"Unknown deposit session: {session_id}")

        runner = DepositSessionRunner(self, session_id, sleep=sleep, run_blocking=run_blocking)
        entry.runner = asyncio.get_running_loop().create_task(runner.run())
        return entry.runner


class DepositSessionRunner:
    """
    Scheduler for one session.

    A single task sleeps one second at a time and emits:
    - Tick every second (applies the deadline)
    - PollDue every 10 seconds (checks the oracle off the event loop)

    A new poll is never started while the previous one is still running. The
    task ends when the session is terminal or closed; an in-flight poll is
    cancelled then, and its result, if it still lands, is ignored by the session.
    """

    def __init__(
        self,
        manager: DepositSessionManager,
        session_id: UUID,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        run_blocking: Optional[Callable[..., Awaitable[object]]] = None,
    ):
        self._manager = manager
        self._session_id = session_id
        self._sleep = sleep
        self._run_blocking = run_blocking or asyncio.to_thread

    async def _poll_once(self) -> None:
        try:
            await self._run_blocking(self._manager.check, self._session_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            # The next PollDue retries; only the deadline ends a session.
            logger.exception("Deposit check failed", extra={"session_id": str(self._session_id)})

    async def run(self) -> DepositStatus:
        elapsed = 0
        poll: Optional[asyncio.Task] = None
        status = DepositStatus.WAITING

        try:
            while True:
                await self._sleep(TICK_INTERVAL_SECONDS)
                elapsed += TICK_INTERVAL_SECONDS

                session = self._manager.tick(self._session_id)
                if session is None:
                    break
                status = session.status
                if session.is_terminal:
                    break

                if elapsed % POLL_INTERVAL_SECONDS == 0 and (poll is None or poll.done()):
                    poll = asyncio.ensure_future(self._poll_once())
        finally:
            if poll is not None and not poll.done():
                poll.cancel()

        logger.debug(
            "Deposit session scheduler stopped",
            extra={"session_id": str(self._session_id), "status": status.value},
        )
        return status


__all__ = [
    "WALLET_WORDS",
    "generate_wallet_phrase",
    "DepositService",
    "DepositSessionManager",
    "DepositSessionRunner",
]
