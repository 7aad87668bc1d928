"""
Credential strategy factory – pick cookie or bearer auth from config
====================================================================

Centralizes the one-time choice between the two authentication designs so
the rest of the client never branches on it.

Environment variables
---------------------
- SLINK_CREDENTIAL_MODE: "cookie" (default) or "bearer"
- SLINK_TOKEN_FILE:      optional path; bearer tokens are persisted there when set
- SLINK_COOKIE_FILE:     optional path; the cookie-mode jar is persisted there when set

The environment is read **at call time** to avoid stale values in tests.
"""

import logging
import os
from typing import Optional

from .base import BaseCredentialStrategy
from .strategies import BearerTokenStrategy, CookieStrategy, FileTokenStore, MemoryTokenStore

log = logging.getLogger("slink_client.auth")


def get_credential_strategy(mode: Optional[str] = None, **kwargs) -> BaseCredentialStrategy:
    """
    Return a credential strategy based on configuration.

    Parameters
    ----------
    mode : str, optional
        "cookie" or "bearer". If omitted, reads SLINK_CREDENTIAL_MODE.
    kwargs : dict
        For cookie mode, `cookie_file="..."`.
        For bearer mode, `token_file="..."` or `store=<TokenStore>`.

    Raises
    ------
    ValueError
        On an unknown mode.
    """
    selected = (mode or os.getenv("SLINK_CREDENTIAL_MODE", "cookie")).strip().lower()
    log.debug("Selected credential mode: %r", selected)

    if selected == "cookie":
        cookie_file = kwargs.get("cookie_file") or os.getenv("SLINK_COOKIE_FILE", "")
        return CookieStrategy(cookie_file=cookie_file or None)

    if selected == "bearer":
        store = kwargs.get("store")
        if store is None:
            token_file = kwargs.get("token_file") or os.getenv("SLINK_TOKEN_FILE", "")
            store = FileTokenStore(token_file) if token_file else MemoryTokenStore()
        return BearerTokenStrategy(store=store)

    raise ValueError(f"Unknown credential mode: {selected!r}")
