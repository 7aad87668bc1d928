"""
Base credential-strategy interface for Slink Client.

Purpose:
    Define a small, stable contract so cookie/session auth and bearer-token
    auth can be swapped at configuration time without touching the API
    client or the session manager.

Testing & Coverage:
    These are abstract methods and are not executed directly in tests.
    We annotate them with `# pragma: no cover` so coverage tools don't
    penalize the project for un-runnable abstract declarations.
"""

from abc import ABC, abstractmethod
from http.cookiejar import CookieJar
from typing import MutableMapping, Optional

from ..models import CredentialMode


class BaseCredentialStrategy(ABC):
    """Abstract base class for credential strategies."""

    mode: CredentialMode
    supports_refresh: bool = False

    def __init__(self):
        # Shared with the httpx client so clear() also drops server cookies.
        self.cookie_jar = CookieJar()

    @abstractmethod  # pragma: no cover
    def apply(self, headers: MutableMapping[str, str]) -> None:
        """Attach the held credential (if any) to outgoing request headers."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def has_credential(self) -> bool:
        """
        Return False only when it is certain no credential is held,
        so the session check can skip the network round trip.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def load_token(self) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def store_token(self, token: str) -> None:
        raise NotImplementedError

    def persist(self) -> None:
        """Write held credentials to durable storage; a no-op for in-memory strategies."""
        return None

    def clear(self) -> None:
        """Drop every locally held credential."""
        self.cookie_jar.clear()
