"""
Supabase client initialization.

This module contains *only* the database connection setup. The client is
created on demand, and only when STORAGE_BACKEND=supabase, so the default
in-memory deployment never needs Supabase credentials.

Environment variables required for the Supabase backend:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

import logging
from typing import Any

from config.settings import Settings

logger = logging.getLogger(__name__)


def create_supabase_client(settings: Settings) -> Any:
    """
    Create the official Supabase Python client from settings.

    Raises:
        RuntimeError: If SUPABASE_URL or SUPABASE_KEY is missing
    """
    if not settings.supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )
    if not settings.supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    # The dependency is `supabase` (supabase-py).
    from supabase import create_client  # type: ignore[import-not-found]

    logger.info("Connecting to Supabase", extra={"supabase_url": settings.supabase_url})
    return create_client(settings.supabase_url, settings.supabase_key)


def raise_on_error(response: Any, action: str) -> None:
    """Raise RuntimeError if a Supabase response carries an error."""
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")


def response_rows(response: Any) -> list:
    """Rows of a Supabase response (possibly empty)."""
    return getattr(response, "data", None) or []


__all__ = ["create_supabase_client", "raise_on_error", "response_rows"]
