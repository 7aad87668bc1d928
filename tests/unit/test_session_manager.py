"""
Unit tests for AuthSessionManager.

Covers:
    - single-flight initialize (N callers -> one profile request)
    - check failures always end UNAUTHENTICATED with no identity
    - external login start and OAuth callback (error, missing params, poll, timeout)
    - password login/register
    - best-effort logout
    - bearer refresh (success, failure, cookie mode)
    - out-of-band 401 reconciliation and subscribers
"""

import asyncio

import httpx
import pytest

from slink_client.errors import AuthError, SessionExpired
from slink_client.models import SessionStatus
from slink_client.session.manager import CallbackOutcome
from stubs import fail, ok, user_json


def _slow_profile(delay=0.01, status=200, body=None):
    async def handler(request):
        await asyncio.sleep(delay)
        return httpx.Response(status, json=body if body is not None else ok(user_json()))
    return handler


def test_concurrent_initialize_issues_one_profile_request(backend, make_app):
    backend.on("GET", "/auth/profile", handler=_slow_profile())
    app = make_app()

    async def scenario():
        results = await asyncio.gather(*(app.initialize() for _ in range(10)))
        again = await app.initialize()
        await app.teardown()
        return results, again

    results, again = asyncio.run(scenario())
    assert backend.count("GET", "/auth/profile") == 1
    assert set(results) == {SessionStatus.AUTHENTICATED}
    assert again == SessionStatus.AUTHENTICATED


def test_initialize_success_sets_identity(backend, make_app):
    backend.on("GET", "/auth/profile", json=ok(user_json(user_id=5, name="Grace")))
    app = make_app()

    async def scenario():
        await app.initialize()
        session = app.sessions.session
        await app.teardown()
        return session

    session = asyncio.run(scenario())
    assert session.status == SessionStatus.AUTHENTICATED
    assert session.identity.id == 5 and session.identity.name == "Grace"
    assert session.token == "stored-token"


@pytest.mark.parametrize("status", [401, 500, 404])
def test_initialize_failure_is_absorbed(backend, make_app, status):
    backend.on("GET", "/auth/profile", status=status, json=fail("x", "nope"))
    app = make_app()

    async def scenario():
        result = await app.initialize()
        session = app.sessions.session
        await app.teardown()
        return result, session

    result, session = asyncio.run(scenario())
    assert result == SessionStatus.UNAUTHENTICATED
    assert session.identity is None
    assert session.token is None
    assert app.sessions.strategy.load_token() is None


def test_initialize_network_failure_is_absorbed(backend, make_app):
    def _boom(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    backend.on("GET", "/auth/profile", handler=_boom)
    app = make_app()

    async def scenario():
        result = await app.initialize()
        await app.teardown()
        return result

    assert asyncio.run(scenario()) == SessionStatus.UNAUTHENTICATED


def test_initialize_without_stored_token_skips_network(backend, make_app):
    backend.on("GET", "/auth/profile", json=ok(user_json()))
    app = make_app(token=None)

    async def scenario():
        result = await app.initialize()
        await app.teardown()
        return result

    assert asyncio.run(scenario()) == SessionStatus.UNAUTHENTICATED
    assert backend.calls == []


def test_check_failure_after_authenticated_clears_identity(backend, make_app):
    backend.on("GET", "/auth/profile", json=ok(user_json()))
    app = make_app()

    async def scenario():
        await app.initialize()
        assert app.sessions.identity is not None
        backend.on("GET", "/auth/profile", status=401, json=fail("unauthorized", "expired"))
        result = await app.sessions.check_session()
        await app.teardown()
        return result

    assert asyncio.run(scenario()) == SessionStatus.UNAUTHENTICATED
    assert app.sessions.identity is None


def test_status_passes_through_checking(backend, make_app):
    backend.on("GET", "/auth/profile", json=ok(user_json()))
    app = make_app()
    seen = []
    app.sessions.subscribe(lambda session: seen.append(session.status))

    async def scenario():
        await app.initialize()
        await app.teardown()

    asyncio.run(scenario())
    assert seen == [SessionStatus.CHECKING, SessionStatus.AUTHENTICATED]


def test_unsubscribe_stops_notifications(backend, make_app):
    backend.on("GET", "/auth/profile", json=ok(user_json()))
    app = make_app()
    seen = []
    unsubscribe = app.sessions.subscribe(seen.append)
    unsubscribe()

    async def scenario():
        await app.initialize()
        await app.teardown()

    asyncio.run(scenario())
    assert seen == []


# -------------------------
# External login / callback
# -------------------------

def test_start_external_login_hands_url_to_navigator(backend, make_app):
    backend.on("GET", "/auth/login", json=ok({"auth_url": "https://accounts.example/auth?state=s"}))
    opened = []
    app = make_app(navigator=opened.append)

    async def scenario():
        url = await app.sessions.start_external_login()
        await app.teardown()
        return url

    assert asyncio.run(scenario()) == "https://accounts.example/auth?state=s"
    assert opened == ["https://accounts.example/auth?state=s"]


def test_start_external_login_failure_is_reported(backend, make_app):
    backend.on("GET", "/auth/login", status=500, json=fail("oauth_state_failed", "Failed to generate state"))
    app = make_app()

    async def scenario():
        try:
            with pytest.raises(AuthError, match="Failed to generate state"):
                await app.sessions.start_external_login()
        finally:
            await app.teardown()

    asyncio.run(scenario())


@pytest.mark.parametrize(
    "code,state,error",
    [("c", "s", "access_denied"), (None, "s", None), ("c", None, None), ("", "", None)],
)
def test_callback_rejects_error_or_missing_params(backend, make_app, code, state, error):
    app = make_app()

    async def scenario():
        result = await app.sessions.complete_external_callback(code, state, error)
        await app.teardown()
        return result

    result = asyncio.run(scenario())
    assert result.outcome == CallbackOutcome.RETURN_TO_LOGIN
    assert isinstance(result.error, AuthError)
    assert backend.calls == []


def test_callback_polls_until_session_materializes(backend, make_app):
    attempts = {"n": 0}

    def profile(request):
        attempts["n"] += 1
        if attempts["n"] < 3:
            return httpx.Response(401, json=fail("unauthorized", "not yet"))
        return httpx.Response(200, json=ok(user_json()))

    backend.on("GET", "/auth/profile", handler=profile)
    app = make_app(mode="cookie")

    async def scenario():
        result = await app.sessions.complete_external_callback("code", "state")
        await app.teardown()
        return result

    result = asyncio.run(scenario())
    assert result.outcome == CallbackOutcome.PROCEED
    assert attempts["n"] == 3
    assert app.sessions.identity is None  # teardown resets the session


def test_callback_gives_up_after_timeout(backend, make_app):
    backend.on("GET", "/auth/profile", status=401, json=fail("unauthorized", "never"))
    app = make_app(mode="cookie", callback_settle=0.01, callback_max_delay=0.02, callback_timeout=0.1)

    async def scenario():
        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await app.sessions.complete_external_callback("code", "state")
        elapsed = loop.time() - started
        identity = app.sessions.identity
        await app.teardown()
        return result, elapsed, identity

    result, elapsed, identity = asyncio.run(scenario())
    assert result.outcome == CallbackOutcome.RETURN_TO_LOGIN
    assert isinstance(result.error, AuthError)
    assert elapsed < 1.0
    assert identity is None


def test_callback_can_forward_code_to_backend(backend, make_app):
    backend.on("GET", "/auth/callback", json=ok(user_json()))
    backend.on("GET", "/auth/profile", json=ok(user_json()))
    app = make_app(mode="cookie")

    async def scenario():
        result = await app.sessions.complete_external_callback("c0de", "st4te", exchange_code=True)
        await app.teardown()
        return result

    assert asyncio.run(scenario()).outcome == CallbackOutcome.PROCEED
    exchange = [r for r in backend.calls if r.url.path.endswith("/auth/callback")][0]
    assert exchange.url.params["code"] == "c0de" and exchange.url.params["state"] == "st4te"


def test_callback_cookie_survives_rejected_checks(backend, make_app):
    attempts = {"n": 0}

    def profile(request):
        attempts["n"] += 1
        if attempts["n"] == 1 or "session=abc" not in request.headers.get("cookie", ""):
            return httpx.Response(401, json=fail("unauthorized", "not yet"))
        return httpx.Response(200, json=ok(user_json()))

    backend.on(
        "GET", "/auth/callback",
        handler=lambda request: httpx.Response(
            200, json=ok(user_json()), headers={"Set-Cookie": "session=abc; Path=/"}
        ),
    )
    backend.on("GET", "/auth/profile", handler=profile)
    app = make_app(mode="cookie")

    async def scenario():
        result = await app.sessions.complete_external_callback("c0de", "st4te", exchange_code=True)
        state = (app.sessions.status, app.sessions.identity)
        await app.teardown()
        return result, state

    result, (status, identity) = asyncio.run(scenario())
    assert result.outcome == CallbackOutcome.PROCEED
    assert status == SessionStatus.AUTHENTICATED
    assert identity.email == "ada@example.com"
    assert attempts["n"] == 2


def test_callback_keeps_credential_until_timeout(backend, make_app):
    seen = []

    def profile(request):
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(401, json=fail("unauthorized", "never"))

    backend.on("GET", "/auth/profile", handler=profile)
    app = make_app(token="pending", callback_settle=0.01, callback_max_delay=0.02, callback_timeout=0.1)

    async def scenario():
        result = await app.sessions.complete_external_callback("code", "state")
        token_after = app.api.strategy.load_token()
        await app.teardown()
        return result, token_after

    result, token_after = asyncio.run(scenario())
    assert result.outcome == CallbackOutcome.RETURN_TO_LOGIN
    assert len(seen) >= 2
    assert set(seen) == {"Bearer pending"}
    assert token_after is None


def test_initialize_after_logout_reports_current_status(backend, make_app):
    backend.on("GET", "/auth/profile", json=ok(user_json()))
    backend.on("POST", "/auth/logout", json=ok(message="Logged out successfully"))
    app = make_app()

    async def scenario():
        first = await app.initialize()
        await app.sessions.logout()
        again = await app.initialize()
        status = app.sessions.status
        await app.teardown()
        return first, again, status

    first, again, status = asyncio.run(scenario())
    assert first == SessionStatus.AUTHENTICATED
    assert again == SessionStatus.UNAUTHENTICATED == status
    assert backend.count("GET", "/auth/profile") == 1


# -------------------------
# Password login / register
# -------------------------

def test_login_stores_token_and_authenticates(backend, make_app):
    backend.on("POST", "/auth/login", json=ok({"user": user_json(), "token": "fresh"}))
    app = make_app(token=None)

    async def scenario():
        identity = await app.sessions.login("ada@example.com", "pw")
        session = app.sessions.session
        await app.teardown()
        return identity, session

    identity, session = asyncio.run(scenario())
    assert identity.email == "ada@example.com"
    assert session.status == SessionStatus.AUTHENTICATED
    assert session.token == "fresh"


def test_login_failure_raises_auth_error(backend, make_app):
    backend.on("POST", "/auth/login", status=401, json=fail("invalid_credentials", "Invalid email or password"))
    app = make_app(token=None)

    async def scenario():
        with pytest.raises(AuthError, match="Invalid email or password"):
            await app.sessions.login("ada@example.com", "wrong")
        status = app.sessions.status
        await app.teardown()
        return status

    assert asyncio.run(scenario()) == SessionStatus.UNAUTHENTICATED


def test_register_authenticates(backend, make_app):
    backend.on("POST", "/auth/register", status=201, json=ok({"user": user_json(user_id=9), "token": "t9"}))
    app = make_app(token=None)

    async def scenario():
        identity = await app.sessions.register("new@example.com", "pw", "New")
        await app.teardown()
        return identity

    assert asyncio.run(scenario()).id == 9


# -------------------------
# Logout
# -------------------------

@pytest.mark.parametrize("status,expected_ok", [(200, True), (500, False)])
def test_logout_always_clears_local_session(backend, make_app, status, expected_ok):
    backend.on("GET", "/auth/profile", json=ok(user_json()))
    body = ok(message="Logged out successfully") if status == 200 else fail("internal", "boom")
    backend.on("POST", "/auth/logout", status=status, json=body)
    app = make_app()

    async def scenario():
        await app.initialize()
        result = await app.sessions.logout()
        session = app.sessions.session
        await app.teardown()
        return result, session

    result, session = asyncio.run(scenario())
    assert result.ok is expected_ok
    assert session.status == SessionStatus.UNAUTHENTICATED
    assert session.identity is None
    assert app.sessions.strategy.load_token() is None


def test_logout_on_network_failure_still_clears(backend, make_app):
    def _boom(request):
        raise httpx.ConnectError("down", request=request)

    backend.on("POST", "/auth/logout", handler=_boom)
    app = make_app()

    async def scenario():
        result = await app.sessions.logout()
        await app.teardown()
        return result

    result = asyncio.run(scenario())
    assert result.ok is False
    assert app.sessions.strategy.load_token() is None


# -------------------------
# Refresh
# -------------------------

def test_refresh_replaces_token(backend, make_app):
    backend.on("GET", "/auth/profile", json=ok(user_json()))
    backend.on("POST", "/auth/refresh", json=ok({"token": "rotated"}))
    app = make_app()

    async def scenario():
        await app.initialize()
        token = await app.sessions.refresh_credential()
        session = app.sessions.session
        await app.teardown()
        return token, session

    token, session = asyncio.run(scenario())
    assert token == "rotated"
    assert session.token == "rotated"
    assert session.status == SessionStatus.AUTHENTICATED


def test_refresh_failure_clears_session_and_raises(backend, make_app):
    backend.on("GET", "/auth/profile", json=ok(user_json()))
    backend.on("POST", "/auth/refresh", status=500, json=fail("token_generation_failed", "Failed"))
    app = make_app()

    async def scenario():
        await app.initialize()
        with pytest.raises(AuthError):
            await app.sessions.refresh_credential()
        session = app.sessions.session
        await app.teardown()
        return session

    session = asyncio.run(scenario())
    assert session.status == SessionStatus.UNAUTHENTICATED
    assert session.identity is None


def test_refresh_in_cookie_mode_is_rejected(backend, make_app):
    app = make_app(mode="cookie")

    async def scenario():
        try:
            with pytest.raises(AuthError, match="not supported"):
                await app.sessions.refresh_credential()
        finally:
            await app.teardown()

    asyncio.run(scenario())
    assert backend.calls == []


# -------------------------
# 401 reconciliation
# -------------------------

def test_out_of_band_401_moves_session_to_unauthenticated(backend, make_app):
    backend.on("GET", "/auth/profile", json=ok(user_json()))
    backend.on("GET", "/urls/1/analytics", status=401, json=fail("unauthorized", "Token expired"))
    app = make_app()
    seen = []
    app.sessions.subscribe(lambda session: seen.append(session.status))

    async def scenario():
        await app.initialize()
        with pytest.raises(SessionExpired):
            await app.api.get_url_analytics(1)
        session = app.sessions.session
        await app.teardown()
        return session

    session = asyncio.run(scenario())
    assert session.status == SessionStatus.UNAUTHENTICATED
    assert session.identity is None
    assert seen[-1] == SessionStatus.UNAUTHENTICATED
    assert app.sessions.strategy.load_token() is None


def test_require_identity_raises_when_not_authenticated(make_app):
    app = make_app(token=None)
    with pytest.raises(SessionExpired):
        app.sessions.require_identity()
    asyncio.run(app.teardown())
