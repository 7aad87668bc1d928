"""
APIClient module for Slink Client.

Responsibilities:
    - Issue HTTP calls to the backend (`{base}/api/v1/...`) with httpx
    - Unwrap the uniform `{success, data?, message?}` envelope
    - Map failures onto the client error taxonomy
    - Signal credential loss on any 401 to registered listeners

Design notes:
    - The credential strategy is injected; the client never branches on
      cookie vs bearer mode, it only asks the strategy to decorate headers.
    - The strategy's cookie jar is shared with the httpx client, so clearing
      the strategy also drops any session cookie.
    - On 401 the local credential is cleared *and* every listener is called.
      The session manager registers itself here, so an out-of-band 401 can
      never wipe credentials behind the state machine's back.
    - The transport is injectable (httpx.MockTransport / ASGITransport in tests).
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError as SchemaError

from ..auth.base import BaseCredentialStrategy
from ..config import settings
from ..errors import ApiError, NetworkError, NotFound, SessionExpired
from ..models import (
    ApiEnvelope,
    CreateLinkRequest,
    LinkAnalytics,
    LinkPage,
    ShortLink,
    UpdateLinkRequest,
    UserIdentity,
)

log = logging.getLogger("slink_client.api")

UnauthorizedListener = Callable[[], None]


class APIClient:
    """
    Thin async wrapper around the Slink backend HTTP API.

    Args:
        strategy (BaseCredentialStrategy): Credential strategy selected at config time.
        base_url (Optional[str]): Backend origin; defaults to settings.API_BASE_URL.
        public_base_url (Optional[str]): Origin for public short links.
        timeout (Optional[float]): Per-request timeout in seconds.
        transport (Optional[httpx.AsyncBaseTransport]): Custom transport (tests).
    """

    def __init__(
        self,
        strategy: BaseCredentialStrategy,
        base_url: Optional[str] = None,
        public_base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.strategy = strategy
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        if public_base_url is None:
            public_base_url = settings.PUBLIC_BASE_URL if base_url is None else self.base_url
        self.public_base_url = public_base_url.rstrip("/")
        self._listeners: List[UnauthorizedListener] = []
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/api/v1",
            cookies=strategy.cookie_jar,
            headers={"Content-Type": "application/json"},
            timeout=timeout if timeout is not None else settings.HTTP_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self) -> "APIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---------------------------------------------------------------------
    # 401 reconciliation
    # ---------------------------------------------------------------------
    def add_unauthorized_listener(self, listener: UnauthorizedListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_unauthorized_listener(self, listener: UnauthorizedListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _credential_lost(self) -> None:
        self.strategy.clear()
        for listener in list(self._listeners):
            listener()

    # ---------------------------------------------------------------------
    # Core request/envelope handling
    # ---------------------------------------------------------------------
    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        keep_credential: bool = False,
    ) -> ApiEnvelope:
        """
        Perform one request and return the decoded envelope.

        Args:
            keep_credential (bool): On 401, raise without clearing the credential
                or notifying listeners.

        Raises:
            NetworkError: On transport failure (no retry).
            SessionExpired: On 401; credentials are cleared and listeners notified
                unless `keep_credential` is set.
            NotFound: On 404.
            ApiError: On any other error status, `success: false` or malformed body.
        """
        headers: Dict[str, str] = {}
        self.strategy.apply(headers)
        log.debug("%s %s params=%s", method, path, params)
        try:
            response = await self._client.request(method, path, params=params, json=json, headers=headers)
        except httpx.TransportError as exc:
            log.warning("%s %s failed: %s", method, path, exc)
            raise NetworkError(f"Network error: {exc}") from exc

        self.strategy.persist()
        envelope = self._decode(response)
        message = envelope.message or envelope.error or response.reason_phrase

        if response.status_code == 401:
            if not keep_credential:
                log.info("%s %s returned 401; clearing local credential", method, path)
                self._credential_lost()
            raise SessionExpired(message or "Session expired", status_code=401)
        if response.status_code == 404:
            raise NotFound(message or "Not found", status_code=404)
        if response.status_code >= 400:
            raise ApiError(message or "Request failed", status_code=response.status_code)
        if not envelope.success:
            raise ApiError(message or "Request failed", status_code=response.status_code)
        return envelope

    @staticmethod
    def _decode(response: httpx.Response) -> ApiEnvelope:
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            return ApiEnvelope(success=False)
        try:
            return ApiEnvelope.model_validate(body)
        except SchemaError:
            return ApiEnvelope(success=False)

    @staticmethod
    def _parse(model, data: Any):
        try:
            return model.model_validate(data)
        except SchemaError as exc:
            raise ApiError(f"Malformed response: {exc.error_count()} invalid field(s)") from exc

    @staticmethod
    def _data(envelope: ApiEnvelope) -> Dict[str, Any]:
        return envelope.data if isinstance(envelope.data, dict) else {}

    # ---------------------------------------------------------------------
    # Auth endpoints
    # ---------------------------------------------------------------------
    async def get_login_url(self) -> str:
        envelope = await self._request("GET", "/auth/login")
        auth_url = self._data(envelope).get("auth_url")
        if not auth_url:
            raise ApiError("Backend did not return a login URL")
        return auth_url

    async def oauth_callback(self, code: str, state: str) -> UserIdentity:
        envelope = await self._request("GET", "/auth/callback", params={"code": code, "state": state})
        return self._parse(UserIdentity, envelope.data)

    async def register(self, email: str, password: str, name: str) -> Tuple[UserIdentity, Optional[str]]:
        envelope = await self._request(
            "POST", "/auth/register", json={"email": email, "password": password, "name": name}
        )
        data = self._data(envelope)
        return self._parse(UserIdentity, data.get("user")), data.get("token")

    async def login(self, email: str, password: str) -> Tuple[UserIdentity, Optional[str]]:
        envelope = await self._request("POST", "/auth/login", json={"email": email, "password": password})
        data = self._data(envelope)
        return self._parse(UserIdentity, data.get("user")), data.get("token")

    async def logout(self) -> Optional[str]:
        envelope = await self._request("POST", "/auth/logout")
        return envelope.message

    async def get_profile(self, keep_credential: bool = False) -> UserIdentity:
        envelope = await self._request("GET", "/auth/profile", keep_credential=keep_credential)
        return self._parse(UserIdentity, envelope.data)

    async def refresh_token(self) -> str:
        envelope = await self._request("POST", "/auth/refresh")
        token = self._data(envelope).get("token")
        if not token:
            raise ApiError("Backend did not return a token")
        return token

    # ---------------------------------------------------------------------
    # URL endpoints
    # ---------------------------------------------------------------------
    async def create_url(self, request: CreateLinkRequest) -> ShortLink:
        envelope = await self._request("POST", "/urls", json=request.model_dump(exclude_none=True))
        return self._parse(ShortLink, envelope.data)

    async def list_urls(self, limit: int, offset: int) -> LinkPage:
        envelope = await self._request("GET", "/urls", params={"limit": limit, "offset": offset})
        return self._parse(LinkPage, envelope.data or {})

    async def update_url(self, link_id: int, request: UpdateLinkRequest) -> ShortLink:
        envelope = await self._request("PUT", f"/urls/{link_id}", json=request.model_dump(exclude_none=True))
        return self._parse(ShortLink, envelope.data)

    async def delete_url(self, link_id: int) -> None:
        await self._request("DELETE", f"/urls/{link_id}")

    async def get_url_info(self, short_code: str) -> ShortLink:
        envelope = await self._request("GET", f"/urls/{short_code}/info")
        return self._parse(ShortLink, envelope.data)

    async def get_url_analytics(self, link_id: int) -> LinkAnalytics:
        envelope = await self._request("GET", f"/urls/{link_id}/analytics")
        return self._parse(LinkAnalytics, envelope.data or {})

    # ---------------------------------------------------------------------
    # Public redirect
    # ---------------------------------------------------------------------
    def redirect_url(self, short_code: str) -> str:
        """Public short link; resolution is served entirely by the backend."""
        return f"{self.public_base_url}/{short_code}"
