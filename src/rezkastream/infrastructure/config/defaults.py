"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "rezkastream",
    "environment": "dev",
    "site": {
        "base_url": "https://rezka.ag",
        "referer": None,  # Falls back to base_url
    },
    "http": {
        "timeout_seconds": 30.0,
        "rate_limit_rps": 2.0,
        "rate_limit_burst": 5,
        "max_retries_429": 2,
    },
    "resolver": {
        "max_attempts": 3,
        "retry_delay_seconds": 0.8,
        "direct_query_enabled": True,
    },
    "decoder": {
        "trash_marker": "//_//",
        "trash_lookahead": 50,
        "trash_run_length": 16,
        "obfuscation_chars": "#@!$^",
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
    "cache": {
        "dir": "./.cache/rezkastream",
    },
}
