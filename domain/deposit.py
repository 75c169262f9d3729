"""
Domain: Deposit sessions.

A deposit session tracks one buyer's attempt to fund a purchase. It starts
WAITING with a five minute deadline and the amount due (quoted amount plus a
fixed fee), and moves through balance observations until it is CONFIRMED or
hits TIMEOUT.

Rules implemented here:
- WAITING and CHECKING are live; CONFIRMED and TIMEOUT are terminal.
- No transition leaves a terminal state. Late observations are ignored.
- The session times out at exactly the deadline, never before.
- An oracle failure is a soft failure (CHECKING), never a rejection.
- A balance within 0.001 of the amount due is a match.
- Only CONFIRMED carries a wallet phrase.
- A session settles its purchase at most once, even if confirmation is retried.

The session holds no clock and performs no I/O. Callers pass `now` and the
outcome of each balance query.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple, Union
from uuid import UUID

from .account import WALLET_PHRASE_LENGTH
from .purchase import Purchase
from .time import require_utc_timestamp

DEPOSIT_WINDOW = timedelta(seconds=300)
TICK_INTERVAL_SECONDS = 1
POLL_INTERVAL_SECONDS = 10

# Fixed network fee added to every deposit, in USDC.
FIXED_FEE = Decimal("0.0027")
MATCH_TOLERANCE = Decimal("0.001")

WAITING_MESSAGE = "Waiting for payment..."
NO_DEPOSIT_MESSAGE = (
    "No USDC found in this address yet. "
    "Please make sure to deposit USDC to the provided address."
)
ORACLE_RETRY_MESSAGE = (
    "Unable to check the Solana network at this time. We will try again shortly."
)
CONFIRMED_MESSAGE = (
    "Deposit confirmed successfully! Access to the full exchange will be granted shortly."
)
TIMEOUT_MESSAGE = (
    "Time is up. Please complete the deposit to the address provided. "
    "Once we confirm it manually we will send you your token wallet details."
)
SUPPLY_EXHAUSTED_MESSAGE = (
    "Your deposit was received but the remaining token supply cannot cover it. "
    "Our team will review the purchase manually."
)
CONFIRMATION_RETRY_MESSAGE = (
    "Your deposit was received. We could not finish setting up your wallet yet "
    "and will try again shortly."
)


def mismatch_message(balance: Decimal, expected: Decimal) -> str:
    return (
        f"Balance found ({balance} USDC) but doesn't match expected amount "
        f"({expected} USDC). Please deposit the correct amount."
    )


class DepositStatus(str, Enum):
    WAITING = "waiting"
    CHECKING = "checking"
    CONFIRMED = "confirmed"
    TIMEOUT = "timeout"


# ============================================================================
# Balance observations
# ============================================================================

@dataclass(frozen=True, slots=True)
class BalanceMatched:
    balance: Decimal


@dataclass(frozen=True, slots=True)
class BalanceMismatch:
    balance: Decimal
    expected: Decimal


@dataclass(frozen=True, slots=True)
class NoBalance:
    pass


@dataclass(frozen=True, slots=True)
class OracleFailed:
    reason: str


BalanceObservation = Union[BalanceMatched, BalanceMismatch, NoBalance, OracleFailed]


def evaluate_balance(balance: Optional[Decimal], expected: Decimal) -> BalanceObservation:
    """
    Compare an oracle balance against the amount due.

    Args:
        balance: Balance held at the deposit address, or None when the address
            has no entry for the mint
        expected: Amount due (quoted amount plus fee)

    Returns:
        BalanceMatched, BalanceMismatch or NoBalance
    """
    if balance is None:
        return NoBalance()
    if abs(balance - expected) <= MATCH_TOLERANCE:
        return BalanceMatched(balance=balance)
    return BalanceMismatch(balance=balance, expected=expected)


# ============================================================================
# Session states
# ============================================================================

@dataclass(frozen=True, slots=True)
class DepositConfirmation:
    """
    Everything revealed to the buyer once a deposit is confirmed.
    """
    wallet_phrase: Tuple[str, ...]
    actual_amount: Decimal
    purchase: Purchase
    user_referral_code: Optional[str] = None
    referral_message: Optional[str] = None

    def __post_init__(self) -> None:
        if len(self.wallet_phrase) != WALLET_PHRASE_LENGTH:
            raise ValueError(f"wallet_phrase must have exactly {WALLET_PHRASE_LENGTH} words")


@dataclass(frozen=True, slots=True)
class Waiting:
    message: str = WAITING_MESSAGE
    status = DepositStatus.WAITING


@dataclass(frozen=True, slots=True)
class Checking:
    message: str
    observed_amount: Optional[Decimal] = None
    status = DepositStatus.CHECKING


@dataclass(frozen=True, slots=True)
class Confirmed:
    confirmation: DepositConfirmation
    message: str = CONFIRMED_MESSAGE
    status = DepositStatus.CONFIRMED


@dataclass(frozen=True, slots=True)
class TimedOut:
    message: str = TIMEOUT_MESSAGE
    status = DepositStatus.TIMEOUT


DepositState = Union[Waiting, Checking, Confirmed, TimedOut]

TERMINAL_STATUSES = frozenset({DepositStatus.CONFIRMED, DepositStatus.TIMEOUT})


def state_for_observation(observation: BalanceObservation, *, first_observation: bool) -> DepositState:
    """
    Map a non-matching observation to the state it leads to.

    A match is not handled here: confirming requires side effects that only
    the caller can perform.
    """
    if isinstance(observation, OracleFailed):
        return Checking(message=ORACLE_RETRY_MESSAGE)
    if isinstance(observation, NoBalance):
        if first_observation:
            return Waiting(message=NO_DEPOSIT_MESSAGE)
        return Checking(message=NO_DEPOSIT_MESSAGE)
    if isinstance(observation, BalanceMismatch):
        return Checking(
            message=mismatch_message(observation.balance, observation.expected),
            observed_amount=observation.balance,
        )
    raise ValueError("A matching balance must be confirmed, not recorded")


class DepositSession:
    """
    State machine for one deposit attempt.

    Transitions:
    - tick(now): WAITING/CHECKING -> TIMEOUT once now >= deadline
    - record_observation(obs, now): WAITING/CHECKING -> WAITING/CHECKING
    - confirm(confirmation): WAITING/CHECKING -> CONFIRMED
    - record_failure(message): WAITING/CHECKING -> CHECKING

    A matched deposit is claimed with begin_confirmation() before any side
    effect runs. While claimed, the session takes no further checks and the
    deadline does not fire; confirm() or record_failure() releases it. Once the
    purchase is settled it is kept in `settled_purchase`, so a retried
    confirmation never settles a second time.
    """

    def __init__(
        self,
        *,
        session_id: UUID,
        quoted_amount: Decimal,
        quoted_price: Decimal,
        token_amount: Decimal,
        deposit_address: str,
        buyer_email: str,
        created_at: datetime,
        referral_code: Optional[str] = None,
        fee_amount: Decimal = FIXED_FEE,
        window: timedelta = DEPOSIT_WINDOW,
    ):
        require_utc_timestamp("created_at", created_at)
        if quoted_amount <= 0:
            raise ValueError("quoted_amount must be > 0")

        self.session_id = session_id
        self.quoted_amount = quoted_amount
        self.quoted_price = quoted_price
        self.token_amount = token_amount
        self.fee_amount = fee_amount
        self.total_due = quoted_amount + fee_amount
        self.deposit_address = deposit_address
        self.buyer_email = buyer_email
        self.referral_code = referral_code
        self.created_at = created_at
        self.deadline = created_at + window
        self.attempt_count = 0
        self.state: DepositState = Waiting()
        self.confirming = False
        self.settled_purchase: Optional[Purchase] = None
        self._observed = False

    def __repr__(self) -> str:
        return (
            f"DepositSession(session_id={self.session_id}, status={self.status.value}, "
            f"total_due={self.total_due}, attempts={self.attempt_count})"
        )

    @property
    def status(self) -> DepositStatus:
        return self.state.status

    @property
    def message(self) -> str:
        return self.state.message

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def confirmation(self) -> Optional[DepositConfirmation]:
        if isinstance(self.state, Confirmed):
            return self.state.confirmation
        return None

    def seconds_remaining(self, now: datetime) -> int:
        """Whole seconds left before the deadline (rounded up, never negative)."""
        remaining = (self.deadline - now).total_seconds()
        return max(0, math.ceil(remaining))

    def tick(self, now: datetime) -> bool:
        """
        Apply the countdown. Returns True if this call timed the session out.
        """
        if self.is_terminal or self.confirming:
            return False
        if now >= self.deadline:
            self.state = TimedOut()
            return True
        return False

    def accepts_checks(self, now: datetime) -> bool:
        """
        True while the session is live at `now` and no confirmation is in
        progress (the countdown is applied first).
        """
        self.tick(now)
        return not self.is_terminal and not self.confirming

    def begin_confirmation(self, now: datetime) -> bool:
        """
        Claim the session for confirming a matched deposit.

        Returns:
            False if the session no longer accepts checks or is already claimed
        """
        if not self.accepts_checks(now):
            return False
        self.confirming = True
        return True

    def cancel_confirmation(self) -> None:
        """Release the claim without changing state."""
        self.confirming = False

    def record_settlement(self, purchase: Purchase) -> None:
        if self.settled_purchase is not None:
            raise RuntimeError(f"Deposit session {self.session_id} is already settled")
        self.settled_purchase = purchase

    def record_observation(self, observation: BalanceObservation, now: datetime) -> DepositState:
        """
        Apply a non-matching balance observation.

        Observations arriving after the deadline or after a terminal state are ignored.
        """
        if not self.accepts_checks(now):
            return self.state

        self.state = state_for_observation(observation, first_observation=not self._observed)
        self._observed = True
        self.attempt_count += 1
        return self.state

    def confirm(self, confirmation: DepositConfirmation) -> DepositState:
        """
        Move to CONFIRMED. The caller has already performed settlement.
        """
        if self.is_terminal:
            raise RuntimeError(f"Deposit session {self.session_id} is already {self.status.value}")
        self.state = Confirmed(confirmation=confirmation)
        self.confirming = False
        self._observed = True
        self.attempt_count += 1
        return self.state

    def record_failure(self, message: str) -> DepositState:
        """A matched deposit whose confirmation could not complete."""
        self.confirming = False
        if self.is_terminal:
            return self.state
        self.state = Checking(message=message)
        self._observed = True
        self.attempt_count += 1
        return self.state
