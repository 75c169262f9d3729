"""
Account repository for buyer accounts.

Provides lookups by email and by referral code, inserts and updates. Email
and referral code are unique keys; duplicate inserts are rejected.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Mapping, Optional, Protocol
from uuid import UUID

from domain.account import Account
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.client import raise_on_error, response_rows

_ACCOUNTS_TABLE: str = "accounts"


class AccountRepository(Protocol):
    def get_by_email(self, email: str) -> Optional[Account]: ...

    def get_by_referral_code(self, referral_code: str) -> Optional[Account]: ...

    def insert(self, account: Account) -> Account: ...

    def update(self, account: Account) -> Account: ...


class InMemoryAccountRepository:
    """Accounts keyed by email, with a referral code index."""

    def __init__(self) -> None:
        self._by_email: Dict[str, Account] = {}
        self._email_by_code: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get_by_email(self, email: str) -> Optional[Account]:
        with self._lock:
            return self._by_email.get(email)

    def get_by_referral_code(self, referral_code: str) -> Optional[Account]:
        with self._lock:
            email = self._email_by_code.get(referral_code)
            return self._by_email.get(email) if email is not None else None

    def insert(self, account: Account) -> Account:
        with self._lock:
            if account.email in self._by_email:
                raise ValueError(f"Account already exists for {account.email}")
            if account.referral_code is not None and account.referral_code in self._email_by_code:
                raise ValueError(f"Referral code already in use: {account.referral_code}")
            self._by_email[account.email] = account
            if account.referral_code is not None:
                self._email_by_code[account.referral_code] = account.email
        return account

    def update(self, account: Account) -> Account:
        with self._lock:
            current = self._by_email.get(account.email)
            if current is None:
                raise ValueError(f"No account exists for {account.email}")
            if account.referral_code != current.referral_code:
                owner = self._email_by_code.get(account.referral_code) if account.referral_code else None
                if owner is not None and owner != account.email:
                    raise ValueError(f"Referral code already in use: {account.referral_code}")
                if current.referral_code is not None:
                    self._email_by_code.pop(current.referral_code, None)
                if account.referral_code is not None:
                    self._email_by_code[account.referral_code] = account.email
            self._by_email[account.email] = account
        return account


def _row_to_account(row: Mapping[str, Any]) -> Account:
    """Convert a Supabase row into an Account."""

    phrase = row.get("wallet_phrase")
    return Account(
        account_id=UUID(str(row["account_id"])),
        email=str(row["email"]),
        referral_code=row.get("referral_code"),
        has_deposited=bool(row.get("has_deposited", False)),
        wallet_phrase=tuple(phrase) if phrase else None,
        created_at=parse_utc_datetime(row["created_at_utc"]) if row.get("created_at_utc") else None,
        updated_at=parse_utc_datetime(row["updated_at_utc"]) if row.get("updated_at_utc") else None,
    )


def _account_to_payload(account: Account) -> dict[str, Any]:
    return {
        "account_id": str(account.account_id),
        "email": account.email,
        "referral_code": account.referral_code,
        "has_deposited": account.has_deposited,
        "wallet_phrase": list(account.wallet_phrase) if account.wallet_phrase else None,
        "created_at_utc": to_iso_utc(account.created_at, name="created_at") if account.created_at else None,
        "updated_at_utc": to_iso_utc(account.updated_at, name="updated_at") if account.updated_at else None,
    }


class SupabaseAccountRepository:
    """Accounts stored in the Supabase `accounts` table (unique email and referral_code)."""

    def __init__(self, client: Any):
        self._client = client

    def _get_one(self, column: str, value: str) -> Optional[Account]:
        response = (
            self._client.table(_ACCOUNTS_TABLE)
            .select("*")
            .eq(column, value)
            .limit(1)
            .execute()
        )
        raise_on_error(response, "fetch account")

        rows = response_rows(response)
        if not rows:
            return None
        return _row_to_account(rows[0])

    def get_by_email(self, email: str) -> Optional[Account]:
        return self._get_one("email", email)

    def get_by_referral_code(self, referral_code: str) -> Optional[Account]:
        return self._get_one("referral_code", referral_code)

    def insert(self, account: Account) -> Account:
        response = self._client.table(_ACCOUNTS_TABLE).insert(_account_to_payload(account)).execute()
        raise_on_error(response, "create account")
        return account

    def update(self, account: Account) -> Account:
        payload = _account_to_payload(account)
        payload.pop("account_id")
        payload.pop("created_at_utc")

        response = (
            self._client.table(_ACCOUNTS_TABLE)
            .update(payload)
            .eq("email", account.email)
            .execute()
        )
        raise_on_error(response, "update account")
        return account


__all__ = [
    "AccountRepository",
    "InMemoryAccountRepository",
    "SupabaseAccountRepository",
]
