"""
AuthSessionManager module for Slink Client.

Responsibilities:
    - Own the Session snapshot (identity, credential mode, status, token)
    - Run the single-flight identity check behind initialize()/check_session()
    - Drive the external (OAuth) login round trip and its callback
    - Password login/register, best-effort logout, bearer-token refresh
    - Reconcile out-of-band 401s observed by the APIClient

State machine:
    UNINITIALIZED -> CHECKING -> {AUTHENTICATED, UNAUTHENTICATED}

    From AUTHENTICATED/UNAUTHENTICATED only explicit operations move the
    session: logout, refresh_credential, check_session (e.g. after an external
    redirect), login/register, and the 401 listener.

Design notes:
    - This class is the only writer of session state. Each transition swaps in
      a new frozen Session and notifies subscribers.
    - Single-flight: the identity check is one memoized asyncio.Task; every
      concurrent caller awaits it through asyncio.shield so one cancelled
      caller cannot cancel the shared check.
    - A generation counter discards the result of a check that was overtaken
      by logout/401/teardown while it was in flight.
"""

import asyncio
import logging
import webbrowser
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from ..api.client import APIClient
from ..auth.base import BaseCredentialStrategy
from ..config import settings
from ..errors import AuthError, SessionExpired, SlinkClientError
from ..models import Session, SessionStatus, UserIdentity

log = logging.getLogger("slink_client.session")

SessionListener = Callable[[Session], None]
Navigator = Callable[[str], object]
Sleeper = Callable[[float], Awaitable[None]]


class CallbackOutcome(str, Enum):
    PROCEED = "proceed"
    RETURN_TO_LOGIN = "return_to_login"


@dataclass
class CallbackResult:
    outcome: CallbackOutcome
    error: Optional[AuthError] = None


@dataclass
class LogoutResult:
    """Outcome of logout(), for notification purposes only."""
    ok: bool
    message: str


class AuthSessionManager:
    """
    Session store injected into every consumer that needs identity.

    Args:
        api (APIClient): Backend client; this manager registers as its 401 listener.
        strategy (Optional[BaseCredentialStrategy]): Defaults to the API client's strategy.
        navigator (Optional[Navigator]): Opens the provider URL; defaults to webbrowser.open.
        callback_settle (Optional[float]): First delay before re-checking after a callback.
        callback_max_delay (Optional[float]): Backoff cap between callback re-checks.
        callback_timeout (Optional[float]): Overall bound for the callback wait.
        sleep (Sleeper): Injected for tests; defaults to asyncio.sleep.
    """

    def __init__(
        self,
        api: APIClient,
        strategy: Optional[BaseCredentialStrategy] = None,
        navigator: Optional[Navigator] = None,
        callback_settle: Optional[float] = None,
        callback_max_delay: Optional[float] = None,
        callback_timeout: Optional[float] = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.api = api
        self.strategy = strategy or api.strategy
        self.navigator = navigator or webbrowser.open
        self.callback_settle = settings.CALLBACK_SETTLE if callback_settle is None else callback_settle
        self.callback_max_delay = settings.CALLBACK_MAX_DELAY if callback_max_delay is None else callback_max_delay
        self.callback_timeout = settings.CALLBACK_TIMEOUT if callback_timeout is None else callback_timeout
        self._sleep = sleep

        self._session = Session(credential_mode=self.strategy.mode)
        self._listeners: List[SessionListener] = []
        self._inflight: Optional[asyncio.Task] = None
        self._initial: Optional[asyncio.Task] = None
        self._generation = 0

        self.api.add_unauthorized_listener(self.handle_unauthorized)

    # ---------------------------------------------------------------------
    # Read-only views
    # ---------------------------------------------------------------------
    @property
    def session(self) -> Session:
        return self._session

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    @property
    def identity(self) -> Optional[UserIdentity]:
        return self._session.identity

    def require_identity(self) -> UserIdentity:
        """
        Return the authenticated identity.

        Raises:
            SessionExpired: If the session is not authenticated.
        """
        if not self._session.is_authenticated:
            raise SessionExpired("Not authenticated")
        return self._session.identity

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a callback run after every transition; returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ---------------------------------------------------------------------
    # Transitions
    # ---------------------------------------------------------------------
    def _transition(self, status: SessionStatus, identity: Optional[UserIdentity] = None) -> None:
        if status == SessionStatus.AUTHENTICATED and identity is None:
            raise ValueError("An authenticated session requires an identity")
        previous = self._session.status
        self._session = Session(
            identity=identity,
            credential_mode=self.strategy.mode,
            status=status,
            token=self.strategy.load_token(),
        )
        if previous != status:
            log.info("Session %s -> %s", previous.value, status.value)
        for listener in list(self._listeners):
            listener(self._session)

    def _drop_credential(self) -> None:
        self._generation += 1
        self.strategy.clear()
        self._transition(SessionStatus.UNAUTHENTICATED)

    def handle_unauthorized(self) -> None:
        """APIClient 401 listener: forget the credential and the identity."""
        if self._session.status == SessionStatus.UNAUTHENTICATED and self._session.identity is None:
            self.strategy.clear()
            return
        log.info("Credential rejected by backend; session is no longer authenticated")
        self._drop_credential()

    # ---------------------------------------------------------------------
    # Identity check (single-flight)
    # ---------------------------------------------------------------------
    async def initialize(self) -> SessionStatus:
        """
        Run the first identity check exactly once.

        Concurrent callers share one check; later calls make no network call
        and return the current status (e.g. UNAUTHENTICATED after a logout).
        Never raises: any failure is absorbed into UNAUTHENTICATED.
        """
        if self._initial is None:
            self._initial = self._start_check()
        await asyncio.shield(self._initial)
        if self._session.status == SessionStatus.CHECKING and self._inflight is not None:
            await asyncio.shield(self._inflight)
        return self._session.status

    async def check_session(self, clear_on_failure: bool = True) -> SessionStatus:
        """
        Re-check the identity with the backend (e.g. after an external redirect).

        Joins a check already in flight instead of issuing a second one.
        Failure always yields UNAUTHENTICATED with no identity. Never raises.

        Args:
            clear_on_failure (bool): When False a rejected lookup leaves the
                stored credential (and cookie jar) in place; used while a
                freshly issued session cookie may not be visible yet.
        """
        return await asyncio.shield(self._start_check(clear_on_failure))

    def _start_check(self, clear_on_failure: bool = True) -> asyncio.Task:
        if self._inflight is None or self._inflight.done():
            self._transition(SessionStatus.CHECKING, self._session.identity)
            self._inflight = asyncio.get_running_loop().create_task(
                self._run_check(self._generation, clear_on_failure)
            )
        return self._inflight

    async def _run_check(self, generation: int, clear_on_failure: bool = True) -> SessionStatus:
        if not self.strategy.has_credential():
            log.info("No stored credential; skipping profile lookup")
            self._drop_credential()
            return self._session.status

        try:
            identity = await self.api.get_profile(keep_credential=not clear_on_failure)
        except SlinkClientError as exc:
            log.info("Session check failed: %s", exc.message or exc.__class__.__name__)
            identity = None
        except Exception:
            log.exception("Unexpected error during session check")
            identity = None

        if generation != self._generation:
            # Overtaken by logout/401/teardown while in flight.
            return self._session.status
        if identity is None and clear_on_failure:
            self._drop_credential()
        elif identity is None:
            self._transition(SessionStatus.UNAUTHENTICATED)
        else:
            self._transition(SessionStatus.AUTHENTICATED, identity)
        return self._session.status

    # ---------------------------------------------------------------------
    # External (OAuth) login
    # ---------------------------------------------------------------------
    async def start_external_login(self, open_url: Optional[Navigator] = None) -> str:
        """
        Ask the backend for the provider URL and hand control to it.

        Returns:
            str: The provider URL that was opened.

        Raises:
            AuthError: If the backend cannot produce a login URL.
        """
        try:
            auth_url = await self.api.get_login_url()
        except SlinkClientError as exc:
            raise AuthError(exc.message or "Failed to start OAuth login", status_code=exc.status_code) from exc
        log.info("Redirecting to external login provider")
        (open_url or self.navigator)(auth_url)
        return auth_url

    async def complete_external_callback(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        exchange_code: bool = False,
    ) -> CallbackResult:
        """
        Finish the provider round trip.

        The backend normally handles the code exchange on its own callback
        route; the client then polls the session with exponential backoff
        (first delay `callback_settle`, capped at `callback_max_delay`) until
        it is authenticated or `callback_timeout` elapses. A rejected check
        during the wait keeps the credential; it is dropped only on timeout. Pass
        `exchange_code=True` when the provider redirected to this client
        instead, so it forwards code/state to the backend first.

        Returns:
            CallbackResult: PROCEED on success, RETURN_TO_LOGIN with an AuthError otherwise.
        """
        if error:
            return self._callback_failed(AuthError(f"OAuth authentication failed: {error}"))
        if not code or not state:
            return self._callback_failed(AuthError("Invalid OAuth callback"))

        if exchange_code:
            try:
                await self.api.oauth_callback(code, state)
            except SlinkClientError as exc:
                return self._callback_failed(AuthError(exc.message or "Authentication failed"))

        try:
            await asyncio.wait_for(self._poll_until_authenticated(), timeout=self.callback_timeout)
        except asyncio.TimeoutError:
            self._drop_credential()
            return self._callback_failed(AuthError("Authentication failed"))
        log.info("Signed in as %s", self._session.identity.email)
        return CallbackResult(CallbackOutcome.PROCEED)

    async def _poll_until_authenticated(self) -> None:
        delay = self.callback_settle
        while True:
            await self._sleep(delay)
            if await self.check_session(clear_on_failure=False) == SessionStatus.AUTHENTICATED:
                return
            delay = min(max(delay * 2, 0.05), self.callback_max_delay)

    def _callback_failed(self, error: AuthError) -> CallbackResult:
        log.warning("OAuth callback rejected: %s", error.message)
        return CallbackResult(CallbackOutcome.RETURN_TO_LOGIN, error)

    # ---------------------------------------------------------------------
    # Password login / register
    # ---------------------------------------------------------------------
    async def login(self, email: str, password: str) -> UserIdentity:
        """
        Raises:
            AuthError: On rejected credentials or backend failure.
        """
        try:
            identity, token = await self.api.login(email, password)
        except SlinkClientError as exc:
            self._drop_credential()
            raise AuthError(exc.message or "Login failed", status_code=exc.status_code) from exc
        return self._authenticated_with(identity, token)

    async def register(self, email: str, password: str, name: str) -> UserIdentity:
        """
        Raises:
            AuthError: If the backend rejects the registration.
        """
        try:
            identity, token = await self.api.register(email, password, name)
        except SlinkClientError as exc:
            self._drop_credential()
            raise AuthError(exc.message or "Registration failed", status_code=exc.status_code) from exc
        return self._authenticated_with(identity, token)

    def _authenticated_with(self, identity: UserIdentity, token: Optional[str]) -> UserIdentity:
        self._generation += 1
        if token:
            self.strategy.store_token(token)
        self._transition(SessionStatus.AUTHENTICATED, identity)
        return identity

    # ---------------------------------------------------------------------
    # Logout / refresh / teardown
    # ---------------------------------------------------------------------
    async def logout(self) -> LogoutResult:
        """
        Best-effort logout: the local session is always cleared, the backend
        result only decides the message shown to the user.
        """
        try:
            message = await self.api.logout()
            result = LogoutResult(True, message or "Logged out successfully")
        except SlinkClientError as exc:
            log.warning("Backend logout failed: %s", exc.message)
            result = LogoutResult(False, "Logout failed")
        self._drop_credential()
        return result

    async def refresh_credential(self) -> str:
        """
        Exchange the held bearer token for a new one.

        Raises:
            AuthError: In cookie mode, or when the refresh fails; in the
                latter case the session is cleared first.
        """
        if not self.strategy.supports_refresh:
            raise AuthError(f"Credential refresh is not supported in {self.strategy.mode.value} mode")
        try:
            token = await self.api.refresh_token()
        except SlinkClientError as exc:
            self._drop_credential()
            raise AuthError(exc.message or "Token refresh failed", status_code=exc.status_code) from exc
        self.strategy.store_token(token)
        self._transition(self._session.status, self._session.identity)
        log.info("Bearer credential refreshed")
        return token

    async def teardown(self) -> None:
        """Stop tracking the session; initialize() may run again afterwards."""
        self._generation += 1
        for task in (self._inflight, self._initial):
            if task is not None and not task.done():
                task.cancel()
        self._inflight = None
        self._initial = None
        self._session = Session(credential_mode=self.strategy.mode)
