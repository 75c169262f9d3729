"""
Ledger oracle: balance lookups against the Solana JSON-RPC API.

The oracle answers one question: how much of a token mint is held at an
address. It never builds or submits transactions.

Contract:
- get_balance returns a Decimal balance, or None when the address holds no
  token account for the mint.
- Any failure (network error, timeout, HTTP error, RPC error, malformed body)
  raises OracleUnavailable. Callers treat that as a soft failure.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Protocol

import httpx

from domain.errors import OracleUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECS = 10.0


class LedgerOracle(Protocol):
    def get_balance(self, address: str, mint: str) -> Optional[Decimal]: ...


class SolanaLedgerOracle:
    """Reads SPL token balances with `getTokenAccountsByOwner`."""

    def __init__(
        self,
        rpc_url: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.rpc_url = rpc_url
        self._client = httpx.Client(timeout=timeout_seconds, transport=transport)
        self._request_id = 0

    def _next_id(self) -> int:
        self._request_id += 1
        return self._request_id

    def close(self) -> None:
        self._client.close()

    def _call(self, method: str, params: list) -> Dict[str, Any]:
        payload = {
            "jsonrpc": "2.0",
            "id": self._next_id(),
            "method": method,
            "params": params,
        }

        try:
            response = self._client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise OracleUnavailable(f"Balance query failed: {e}") from e
        except ValueError as e:
            raise OracleUnavailable("Balance query returned invalid JSON") from e

        if not isinstance(body, dict):
            raise OracleUnavailable("Balance query returned an unexpected body")
        if body.get("error"):
            raise OracleUnavailable(f"RPC error: {body['error']}")

        return body.get("result") or {}

    def get_balance(self, address: str, mint: str) -> Optional[Decimal]:
        """
        Balance of `mint` held by `address`.

        Only the first token account is read (a custodial address holds one
        account per mint).

        Raises:
            OracleUnavailable: If the balance cannot be determined
        """
        result = self._call(
            "getTokenAccountsByOwner",
            [address, {"mint": mint}, {"encoding": "jsonParsed"}],
        )

        accounts = result.get("value") if isinstance(result, dict) else None
        if accounts is None:
            raise OracleUnavailable("Balance query returned no account list")
        if not accounts:
            return None

        try:
            token_amount = accounts[0]["account"]["data"]["parsed"]["info"]["tokenAmount"]
            raw = token_amount.get("uiAmountString")
            if raw is None:
                raw = token_amount.get("uiAmount")
            balance = Decimal(str(raw)) if raw is not None else Decimal("0")
        except (KeyError, IndexError, TypeError, InvalidOperation) as e:
            raise OracleUnavailable("Balance query returned a malformed token account") from e

        logger.debug(
            "Balance observed",
            extra={"address": address, "mint": mint, "balance": str(balance)},
        )
        return balance


__all__ = ["LedgerOracle", "SolanaLedgerOracle"]
