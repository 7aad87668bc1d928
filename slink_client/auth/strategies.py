"""
Credential strategies for Slink Client.

Provided strategies:
- CookieStrategy: session cookie set by the backend; no client-held secret.
- BearerTokenStrategy: opaque token sent as `Authorization: Bearer <token>`,
  held in a TokenStore.

Token stores:
- MemoryTokenStore: process-local, lost at exit (default).
- FileTokenStore: small JSON file, survives restarts (SLINK_TOKEN_FILE).

Cookie mode persists its jar the same way when SLINK_COOKIE_FILE is set.
"""

import json
import logging
import os
from http.cookiejar import LoadError, LWPCookieJar
from pathlib import Path
from typing import MutableMapping, Optional, Union

from ..models import CredentialMode
from .base import BaseCredentialStrategy

log = logging.getLogger("slink_client.auth")


class MemoryTokenStore:
    def __init__(self, token: Optional[str] = None):
        self._token = token

    def get(self) -> Optional[str]:
        return self._token

    def set(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class FileTokenStore:
    """
    Persist the bearer token as `{"token": "..."}` in a JSON file.

    A missing or unreadable file is treated as "no token".
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def get(self) -> Optional[str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            log.warning("Ignoring unreadable token file %s: %s", self.path, exc)
            return None
        token = data.get("token") if isinstance(data, dict) else None
        return token or None

    def set(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({"token": token}), encoding="utf-8")
        os.chmod(self.path, 0o600)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


class CookieStrategy(BaseCredentialStrategy):
    """
    Session-cookie auth: the backend is the only judge of the session.

    With `cookie_file` the jar is an LWP cookie file, so a session set by one
    process (e.g. the CLI `login`) is reused by the next. Session cookies are
    kept too (`ignore_discard`).
    """

    mode = CredentialMode.COOKIE
    supports_refresh = False

    def __init__(self, cookie_file: Optional[Union[str, Path]] = None):
        super().__init__()
        self.cookie_file = Path(cookie_file).expanduser() if cookie_file else None
        if self.cookie_file is not None:
            self.cookie_jar = LWPCookieJar(str(self.cookie_file))
            self._load()

    def _load(self) -> None:
        try:
            self.cookie_jar.load(ignore_discard=True)
        except FileNotFoundError:
            return
        except (LoadError, OSError) as exc:
            log.warning("Ignoring unreadable cookie file %s: %s", self.cookie_file, exc)
            self.cookie_jar.clear()

    def persist(self) -> None:
        if self.cookie_file is None:
            return
        self.cookie_file.parent.mkdir(parents=True, exist_ok=True)
        self.cookie_jar.save(ignore_discard=True)
        os.chmod(self.cookie_file, 0o600)

    def clear(self) -> None:
        super().clear()
        self.persist()

    def apply(self, headers: MutableMapping[str, str]) -> None:
        # Cookies travel through the shared cookie jar.
        return None

    def has_credential(self) -> bool:
        return True

    def load_token(self) -> Optional[str]:
        return None

    def store_token(self, token: str) -> None:
        # Tokens returned alongside a cookie login are not kept client-side.
        return None


class BearerTokenStrategy(BaseCredentialStrategy):
    mode = CredentialMode.BEARER
    supports_refresh = True

    def __init__(self, store: Optional[Union[MemoryTokenStore, FileTokenStore]] = None):
        super().__init__()
        self.store = store if store is not None else MemoryTokenStore()

    def apply(self, headers: MutableMapping[str, str]) -> None:
        token = self.store.get()
        if token:
            headers["Authorization"] = f"Bearer {token}"

    def has_credential(self) -> bool:
        return bool(self.store.get())

    def load_token(self) -> Optional[str]:
        return self.store.get()

    def store_token(self, token: str) -> None:
        self.store.set(token)

    def clear(self) -> None:
        super().clear()
        self.store.clear()
