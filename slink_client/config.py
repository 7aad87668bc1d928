"""
Runtime configuration for Slink Client
======================================

Simple settings module that reads from environment variables (only here),
and exposes a stable `settings` object for the rest of the codebase.
Avoid reading env vars anywhere else; import from this module instead.

Backend
-------
- SLINK_API_BASE_URL     : backend origin, default "http://localhost:8080" (API lives under /api/v1)
- SLINK_PUBLIC_BASE_URL  : origin used to build public short links; defaults to SLINK_API_BASE_URL
- SLINK_HTTP_TIMEOUT     : per-request timeout in seconds (default 10)

Credentials
-----------
- SLINK_CREDENTIAL_MODE  : "cookie" (default) or "bearer"
- SLINK_TOKEN_FILE       : optional JSON file for the bearer token (memory-only when empty)
- SLINK_COOKIE_FILE      : optional LWP cookie file for cookie mode (memory-only when empty)

Link collection
---------------
- SLINK_PAGE_LIMIT       : page size for list(); default 10, clamped to [1, 100]
- SLINK_OVERFLOW_POLICY  : "keep" (default), "truncate" or "refetch"

OAuth callback polling
----------------------
- SLINK_CALLBACK_SETTLE    : first delay before re-checking the session (default 1.0 s)
- SLINK_CALLBACK_MAX_DELAY : cap for the exponential backoff between checks (default 4.0 s)
- SLINK_CALLBACK_TIMEOUT   : overall bound for the callback wait (default 10.0 s)
"""

import os


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        return float(raw)
    except ValueError:
        return default


class _Settings:
    # -------- Backend --------
    API_BASE_URL: str = os.getenv("SLINK_API_BASE_URL", "http://localhost:8080").rstrip("/")
    PUBLIC_BASE_URL: str = os.getenv("SLINK_PUBLIC_BASE_URL", API_BASE_URL).rstrip("/")
    HTTP_TIMEOUT: float = max(0.5, _get_float("SLINK_HTTP_TIMEOUT", 10.0))

    # -------- Credentials --------
    CREDENTIAL_MODE: str = os.getenv("SLINK_CREDENTIAL_MODE", "cookie").strip().lower()
    TOKEN_FILE: str = os.getenv("SLINK_TOKEN_FILE", "")
    COOKIE_FILE: str = os.getenv("SLINK_COOKIE_FILE", "")

    # -------- Link collection --------
    PAGE_LIMIT: int = max(1, min(100, _get_int("SLINK_PAGE_LIMIT", 10)))
    OVERFLOW_POLICY: str = os.getenv("SLINK_OVERFLOW_POLICY", "keep").strip().lower()

    # -------- OAuth callback polling --------
    CALLBACK_SETTLE: float = max(0.0, _get_float("SLINK_CALLBACK_SETTLE", 1.0))
    CALLBACK_MAX_DELAY: float = max(0.0, _get_float("SLINK_CALLBACK_MAX_DELAY", 4.0))
    CALLBACK_TIMEOUT: float = max(0.1, _get_float("SLINK_CALLBACK_TIMEOUT", 10.0))


settings = _Settings()
