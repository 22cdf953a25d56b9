"""Configuration and environment helpers for the project.

Provides small helpers to read typed environment variables and exposes
project-level configuration constants used across the codebase (e.g.
WANIKANI_API_TOKEN, CACHE_DIR, timeouts, concurrency and retry limits).
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_optional_int(name: str) -> Optional[int]:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


# WaniKani API
WANIKANI_API_TOKEN = (os.environ.get("WANIKANI_API_TOKEN") or "").strip()
WANIKANI_BASE_URL = os.environ.get("WANIKANI_BASE_URL", "https://api.wanikani.com/v2").strip()
WANIKANI_TIMEOUT = _env_float("WANIKANI_TIMEOUT", 20.0)

# Network / HTTP
HTTP_VERIFY = _env_bool("HTTP_VERIFY", True)
MAX_CONCURRENT_REQUESTS = _env_int("MAX_CONCURRENT_REQUESTS", 3)
MAX_RETRIES = _env_int("MAX_RETRIES", 4)

# Cache storage; an empty CACHE_DIR keeps the cache in memory
CACHE_DIR = os.environ.get("CACHE_DIR", str(Path.home() / ".cache" / "wanikani-mcp")).strip()
CACHE_QUOTA_BYTES = _env_optional_int("CACHE_QUOTA_BYTES")
CACHE_MAX_ENTRY_BYTES = _env_int("CACHE_MAX_ENTRY_BYTES", 500_000)

# Logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").strip().upper()
