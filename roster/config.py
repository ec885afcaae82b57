"""
Centralized configuration for Meeting Roster.

All values that vary by deployment belong here.
Override via environment variables where marked, or via
config/roster.yaml in the application home for extraction settings.
"""

import logging
import os
from typing import Any

import yaml

from roster import paths

logger = logging.getLogger(__name__)

# ============================================================
# Server
# ============================================================

CORS_ORIGINS: str = os.environ.get("ROSTER_CORS_ORIGINS", "*")
"""Comma-separated allowed origins, or * in development."""

LOG_LEVEL: str = os.environ.get("ROSTER_LOG_LEVEL", "INFO")

LOG_JSON: bool | None = (
    None
    if os.environ.get("ROSTER_LOG_JSON") is None
    else os.environ["ROSTER_LOG_JSON"].lower() in ("1", "true", "yes")
)
"""Force JSON logs on/off. Unset means auto-detect (JSON when not a TTY)."""

# ============================================================
# Accounts
# ============================================================

ADMIN_EMAIL: str = os.environ.get("ROSTER_ADMIN_EMAIL", "").strip().lower()
"""An account registering with this e-mail becomes an approved admin. Empty = first account only."""

SESSION_TTL_HOURS: int = int(os.environ.get("ROSTER_SESSION_TTL_HOURS", "168"))
"""Bearer tokens expire after this many hours (default one week)."""

PASSWORD_HASH_ITERATIONS: int = int(os.environ.get("ROSTER_PASSWORD_ITERATIONS", "240000"))

# ============================================================
# Extraction (Gemini)
# ============================================================

API_KEY_ENV_VARS: tuple[str, ...] = ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY")
"""Checked in order; first non-empty value wins."""

EXTRACTION_MODEL: str = os.environ.get("ROSTER_EXTRACTION_MODEL", "gemini-2.5-flash")

EXTRACTION_TEMPERATURE: float = float(os.environ.get("ROSTER_EXTRACTION_TEMPERATURE", "0.1"))


def get_api_key() -> str | None:
    """First configured Gemini API key, or None."""
    for name in API_KEY_ENV_VARS:
        value = os.environ.get(name)
        if value and value.strip():
            return value.strip()
    return None


def load_settings() -> dict[str, Any]:
    """
    Load optional overrides from config/roster.yaml.

    Returns {"extraction": {"model": ..., "temperature": ..., "prompt": ...}}
    with environment defaults filled in for missing keys.
    """
    settings: dict[str, Any] = {
        "extraction": {
            "model": EXTRACTION_MODEL,
            "temperature": EXTRACTION_TEMPERATURE,
            "prompt": None,
        }
    }

    config_file = paths.config_dir() / "roster.yaml"
    if not config_file.exists():
        return settings

    with open(config_file) as f:
        data = yaml.safe_load(f) or {}

    extraction = data.get("extraction")
    if isinstance(extraction, dict):
        for key in ("model", "temperature", "prompt"):
            if extraction.get(key) is not None:
                settings["extraction"][key] = extraction[key]
    elif extraction is not None:
        logger.warning(f"Ignoring invalid 'extraction' section in {config_file}")

    return settings
