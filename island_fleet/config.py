"""Runtime configuration helpers for environment-driven settings."""
from __future__ import annotations

import os
from typing import Final


def env_flag(name: str, *, default: bool = False) -> bool:
    """Return a boolean flag from environment variables.

    The helper treats common truthy values (``1``, ``true``, ``yes``, ``on``)
    as ``True`` and common falsy ones (``0``, ``false``, ``no``, ``off``) as
    ``False``.  If the variable is unset or contains an unrecognised value, the
    provided ``default`` is used.
    """
    value = os.getenv(name)
    if value is None:
        return default

    normalised = value.strip().lower()
    if normalised in {"1", "true", "yes", "on"}:
        return True
    if normalised in {"0", "false", "no", "off"}:
        return False
    return default


def env_float(name: str, *, default: float) -> float:
    """Return a positive float from the environment or ``default``."""
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


USE_SUPABASE: Final[bool] = env_flag("USE_SUPABASE", default=False)
SUPABASE_URL: Final[str] = (os.getenv("SUPABASE_URL") or "").rstrip("/")
SUPABASE_KEY: Final[str] = os.getenv("SUPABASE_KEY") or ""
SUPABASE_ROOMS_TABLE: Final[str] = os.getenv("SUPABASE_ROOMS_TABLE", "rooms")
DATA_FILE_PATH: Final[str] = os.getenv("DATA_FILE_PATH", "rooms.json")
STORE_TIMEOUT: Final[float] = env_float("STORE_TIMEOUT", default=30.0)
LOG_LEVEL: Final[str] = (os.getenv("LOG_LEVEL") or "INFO").upper()

__all__ = [
    "DATA_FILE_PATH",
    "LOG_LEVEL",
    "STORE_TIMEOUT",
    "SUPABASE_KEY",
    "SUPABASE_ROOMS_TABLE",
    "SUPABASE_URL",
    "USE_SUPABASE",
    "env_flag",
    "env_float",
]
