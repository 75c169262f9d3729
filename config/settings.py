"""
Application settings.

Settings are read from environment variables. A `.env` file in the project
root is loaded first so local development does not need exported variables.

Environment variables (all optional):
- DEPOSIT_ADDRESS: Custodial address buyers deposit to
- TOKEN_MINT: Mint of the token the deposit is paid in (USDC on Solana)
- SOLANA_RPC_URL: JSON-RPC endpoint used by the balance oracle
- ORACLE_TIMEOUT_SECONDS: Upper bound for a single oracle call
- STORAGE_BACKEND: "memory" (default) or "supabase"
- SUPABASE_URL / SUPABASE_KEY: Required when STORAGE_BACKEND=supabase
- DEPOSIT_AUTO_POLL: Run the background poller for deposit sessions
- SEED_PRICE_HISTORY: Seed 24 hourly price samples on a fresh memory store
- LOG_LEVEL: Root log level (default INFO)
- CORS_ORIGINS: Comma separated list of allowed origins ("*" by default)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

DEFAULT_DEPOSIT_ADDRESS = "FcRRT7yLx3dZV6kD2N5cWU9UG6TxPm99azsxNUUzQNmx"
DEFAULT_TOKEN_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
DEFAULT_SOLANA_RPC_URL = "https://api.mainnet-beta.solana.com"

_STORAGE_BACKENDS = ("memory", "supabase")
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True, slots=True)
class Settings:
    """Runtime configuration for the token sale service."""

    deposit_address: str = DEFAULT_DEPOSIT_ADDRESS
    token_mint: str = DEFAULT_TOKEN_MINT
    solana_rpc_url: str = DEFAULT_SOLANA_RPC_URL
    oracle_timeout_seconds: float = 10.0
    storage_backend: str = "memory"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    deposit_auto_poll: bool = True
    seed_price_history: bool = True
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    def __post_init__(self) -> None:
        if self.storage_backend not in _STORAGE_BACKENDS:
            raise RuntimeError(
                f"Invalid STORAGE_BACKEND: {self.storage_backend!r}. "
                f"Expected one of {', '.join(_STORAGE_BACKENDS)}."
            )
        if self.oracle_timeout_seconds <= 0:
            raise RuntimeError("ORACLE_TIMEOUT_SECONDS must be greater than 0")
        if self.storage_backend == "supabase":
            if not self.supabase_url:
                raise RuntimeError(
                    "Missing environment variable: SUPABASE_URL. "
                    "Set SUPABASE_URL to your Supabase project URL."
                )
            if not self.supabase_key:
                raise RuntimeError(
                    "Missing environment variable: SUPABASE_KEY. "
                    "Set SUPABASE_KEY to your Supabase API key."
                )


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise RuntimeError(f"Invalid boolean for {name}: {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid number for {name}: {raw!r}") from e


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """
    Build Settings from the environment.

    Args:
        env_file: Optional path to a .env file (defaults to the project root)

    Returns:
        Settings instance

    Raises:
        RuntimeError: If a variable holds an invalid value
    """
    env_path = env_file or Path(__file__).parent.parent / ".env"
    load_dotenv(dotenv_path=env_path)

    origins_raw = os.getenv("CORS_ORIGINS", "*")
    origins = [origin.strip() for origin in origins_raw.split(",") if origin.strip()]

    return Settings(
        deposit_address=os.getenv("DEPOSIT_ADDRESS", DEFAULT_DEPOSIT_ADDRESS),
        token_mint=os.getenv("TOKEN_MINT", DEFAULT_TOKEN_MINT),
        solana_rpc_url=os.getenv("SOLANA_RPC_URL", DEFAULT_SOLANA_RPC_URL),
        oracle_timeout_seconds=_env_float("ORACLE_TIMEOUT_SECONDS", 10.0),
        storage_backend=os.getenv("STORAGE_BACKEND", "memory").strip().lower(),
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_KEY"),
        deposit_auto_poll=_env_bool("DEPOSIT_AUTO_POLL", True),
        seed_price_history=_env_bool("SEED_PRICE_HISTORY", True),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=origins or ["*"],
    )


__all__ = ["Settings", "load_settings"]
