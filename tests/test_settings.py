"""
Tests for `config/settings.py`.

Covers contract rules:
- Defaults work without any environment.
- Environment variables override defaults.
- Invalid values and an incomplete Supabase configuration fail fast.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from config.settings import DEFAULT_DEPOSIT_ADDRESS, Settings, load_settings

_VARIABLES = (
    "DEPOSIT_ADDRESS",
    "TOKEN_MINT",
    "SOLANA_RPC_URL",
    "ORACLE_TIMEOUT_SECONDS",
    "STORAGE_BACKEND",
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "DEPOSIT_AUTO_POLL",
    "SEED_PRICE_HISTORY",
    "LOG_LEVEL",
    "CORS_ORIGINS",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path: Path) -> Path:
    for name in _VARIABLES:
        monkeypatch.delenv(name, raising=False)
    return tmp_path / "missing.env"


def test_defaults(clean_env: Path) -> None:
    """Verify the defaults used without configuration."""

    settings = load_settings(clean_env)

    assert settings.deposit_address == DEFAULT_DEPOSIT_ADDRESS
    assert settings.storage_backend == "memory"
    assert settings.deposit_auto_poll is True
    assert settings.cors_origins == ["*"]
    assert settings.oracle_timeout_seconds == 10.0


def test_environment_overrides(clean_env: Path, monkeypatch) -> None:
    """Verify variables are parsed into typed settings."""

    monkeypatch.setenv("DEPOSIT_ADDRESS", "So11111111111111111111111111111111111111112")
    monkeypatch.setenv("ORACLE_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("DEPOSIT_AUTO_POLL", "false")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("CORS_ORIGINS", "https://shop.example.com, https://admin.example.com")

    settings = load_settings(clean_env)

    assert settings.deposit_address == "So11111111111111111111111111111111111111112"
    assert settings.oracle_timeout_seconds == 2.5
    assert settings.deposit_auto_poll is False
    assert settings.log_level == "DEBUG"
    assert settings.cors_origins == ["https://shop.example.com", "https://admin.example.com"]


def test_invalid_values_fail_fast(clean_env: Path, monkeypatch) -> None:
    """Verify malformed values raise RuntimeError."""

    monkeypatch.setenv("DEPOSIT_AUTO_POLL", "sometimes")
    with pytest.raises(RuntimeError, match="DEPOSIT_AUTO_POLL"):
        load_settings(clean_env)

    monkeypatch.delenv("DEPOSIT_AUTO_POLL")
    monkeypatch.setenv("ORACLE_TIMEOUT_SECONDS", "soon")
    with pytest.raises(RuntimeError, match="ORACLE_TIMEOUT_SECONDS"):
        load_settings(clean_env)


def test_supabase_backend_requires_credentials() -> None:
    """Verify the Supabase backend cannot start without URL and key."""

    with pytest.raises(RuntimeError, match="SUPABASE_URL"):
        Settings(storage_backend="supabase")

    with pytest.raises(RuntimeError, match="SUPABASE_KEY"):
        Settings(storage_backend="supabase", supabase_url="https://project.supabase.co")

    with pytest.raises(RuntimeError, match="STORAGE_BACKEND"):
        Settings(storage_backend="sqlite")
