"""
Credential handling for Slink Client.

Exactly one CredentialStrategy (cookie or bearer) is selected at
configuration time via `get_credential_strategy()`; everything else talks
to the BaseCredentialStrategy contract.
"""

from .base import BaseCredentialStrategy
from .strategies import BearerTokenStrategy, CookieStrategy, FileTokenStore, MemoryTokenStore
from .strategy_factory import get_credential_strategy

__all__ = [
    "BaseCredentialStrategy",
    "BearerTokenStrategy",
    "CookieStrategy",
    "FileTokenStore",
    "MemoryTokenStore",
    "get_credential_strategy",
]
