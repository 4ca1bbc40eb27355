"""Configuration via environment variables."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Japan Standard Time has no daylight saving; a fixed offset is exact.
JST_OFFSET_HOURS = 9

# Statutory bookkeeping retention for receipts under Japanese tax law.
DEFAULT_MAX_RECEIPT_AGE_YEARS = 7

DEFAULT_LLM_MODEL = "google-gla:gemini-1.5-flash"

DEFAULT_RATE_LIMIT_MAX_REQUESTS = 20


def get_database_url() -> str:
    """Return the DATABASE_URL from the environment."""
    url = os.environ.get("DATABASE_URL")
    if not url:
        msg = "DATABASE_URL environment variable is required"
        raise ValueError(msg)
    return url


def get_store_path() -> Path:
    """Return the RECEIPT_STORE_PATH, defaulting to ./data/receipts.

    Always resolves to an absolute path so that blob URLs stay valid if
    the working directory changes during execution.
    """
    return Path(os.environ.get("RECEIPT_STORE_PATH", "./data/receipts")).resolve()


def get_gemini_api_key() -> str:
    """Return the GEMINI_API_KEY from the environment."""
    key = os.environ.get("GEMINI_API_KEY")
    if not key:
        msg = "GEMINI_API_KEY environment variable is required"
        raise ValueError(msg)
    return key


def get_llm_model() -> str:
    """Return the pydantic-ai model identifier.

    Defaults to google-gla:gemini-1.5-flash.
    """
    return os.environ.get("LLM_MODEL", DEFAULT_LLM_MODEL)


def get_max_receipt_age_years() -> int:
    """Return the receipt retention window in years (RECEIPT_MAX_AGE_YEARS)."""
    return _positive_int("RECEIPT_MAX_AGE_YEARS", DEFAULT_MAX_RECEIPT_AGE_YEARS)


def get_rate_limit_max_requests() -> int:
    """Return the per-user receipt processing budget per window."""
    return _positive_int("RATE_LIMIT_MAX_REQUESTS", DEFAULT_RATE_LIMIT_MAX_REQUESTS)


def is_development() -> bool:
    """Return True when APP_ENV is set to development.

    Error responses expose internal detail only in development.
    """
    return os.environ.get("APP_ENV", "production").lower() == "development"


def _positive_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        msg = f"{name} must be an integer, got {raw!r}"
        raise ValueError(msg) from None
    if value < 1:
        msg = f"{name} must be at least 1, got {value}"
        raise ValueError(msg)
    return value
