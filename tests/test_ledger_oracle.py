"""
Tests for `repositories/ledger_oracle.py`.

Covers contract rules:
- The oracle sends a getTokenAccountsByOwner request filtered by mint.
- The first token account's UI amount is returned as a Decimal.
- An empty account list means "no balance" (None).
- Transport, HTTP, JSON and RPC failures raise OracleUnavailable.
"""

from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest

from domain.errors import OracleUnavailable
from repositories.ledger_oracle import SolanaLedgerOracle

RPC_URL = "https://rpc.example.test"
ADDRESS = "FcRRT7yLx3dZV6kD2N5cWU9UG6TxPm99azsxNUUzQNmx"
MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def _token_account(token_amount: dict) -> dict:
    return {
        "pubkey": "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin",
        "account": {"data": {"parsed": {"info": {"mint": MINT, "tokenAmount": token_amount}}}},
    }


def _oracle(handler) -> SolanaLedgerOracle:
    return SolanaLedgerOracle(RPC_URL, transport=httpx.MockTransport(handler))


def test_get_balance_reads_first_token_account() -> None:
    """Verify the request shape and the parsed UI amount."""

    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "result": {"value": [_token_account({"amount": "100002700", "decimals": 6, "uiAmountString": "100.0027"})]},
            },
        )

    balance = _oracle(handler).get_balance(ADDRESS, MINT)

    assert balance == Decimal("100.0027")
    assert seen[0]["method"] == "getTokenAccountsByOwner"
    assert seen[0]["params"] == [ADDRESS, {"mint": MINT}, {"encoding": "jsonParsed"}]


def test_get_balance_falls_back_to_ui_amount() -> None:
    """Verify uiAmount is used when uiAmountString is absent."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"result": {"value": [_token_account({"uiAmount": 50.5})]}})

    assert _oracle(handler).get_balance(ADDRESS, MINT) == Decimal("50.5")


def test_get_balance_without_token_account_is_none() -> None:
    """Verify an empty account list means no balance."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"result": {"value": []}})

    assert _oracle(handler).get_balance(ADDRESS, MINT) is None


def test_request_ids_increase() -> None:
    """Verify each JSON-RPC call gets a fresh id."""

    ids = []

    def handler(request: httpx.Request) -> httpx.Response:
        ids.append(json.loads(request.content)["id"])
        return httpx.Response(200, json={"result": {"value": []}})

    oracle = _oracle(handler)
    oracle.get_balance(ADDRESS, MINT)
    oracle.get_balance(ADDRESS, MINT)

    assert ids == [1, 2]


@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(503, text="Service Unavailable"),
        lambda request: httpx.Response(200, text="not json"),
        lambda request: httpx.Response(200, json=["unexpected"]),
        lambda request: httpx.Response(200, json={"error": {"code": -32602, "message": "Invalid param"}}),
        lambda request: httpx.Response(200, json={"result": None}),
        lambda request: httpx.Response(200, json={"result": {"value": [{"account": {}}]}}),
    ],
    ids=["http-503", "invalid-json", "non-object", "rpc-error", "no-result", "malformed-account"],
)
def test_failures_raise_oracle_unavailable(handler) -> None:
    """Verify every failure mode surfaces as OracleUnavailable."""

    with pytest.raises(OracleUnavailable):
        _oracle(handler).get_balance(ADDRESS, MINT)


def test_transport_error_raises_oracle_unavailable() -> None:
    """Verify network errors and timeouts surface as OracleUnavailable."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(OracleUnavailable, match="Balance query failed"):
        _oracle(handler).get_balance(ADDRESS, MINT)
