"""
Main module for Slink Client.

Responsibilities:
    - Wire credential strategy, API client, session store, link collection
      and analytics behind one application object (create_app)
    - Give that object an explicit initialize/teardown lifecycle
    - Expose a small command-line front end

Architecture:
    - App Factory pattern (create_app) for test isolation and DI.
    - The credential strategy (cookie or bearer) is chosen once, here.
    - The session store is passed by reference to every consumer; there is no
      ambient global session.

Usage:
    python main.py --mode bearer login --email me@example.com --password secret
    python main.py --mode bearer links --limit 10 --offset 0
    python main.py --mode bearer create https://example.com/long --alias my-link
    python main.py --mode bearer analytics 42
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional

import httpx

from slink_client.analytics.service import AnalyticsService
from slink_client.api.client import APIClient
from slink_client.auth.strategy_factory import get_credential_strategy
from slink_client.config import settings
from slink_client.errors import SlinkClientError, ValidationError
from slink_client.links.collection import URLCollectionManager
from slink_client.models import CreateLinkRequest, SessionStatus
from slink_client.session.guard import GuardDecision, RouteGuard
from slink_client.session.manager import AuthSessionManager, CallbackOutcome

log = logging.getLogger("slink_client")

# The CLI runs one process per command, so credentials always live on disk.
DEFAULT_TOKEN_FILE = "~/.slink/token.json"
DEFAULT_COOKIE_FILE = "~/.slink/cookies.lwp"


class SlinkClientApp:
    """Container for the wired components and their shared lifecycle."""

    def __init__(
        self,
        api: APIClient,
        sessions: AuthSessionManager,
        links: URLCollectionManager,
        analytics: AnalyticsService,
    ):
        self.api = api
        self.sessions = sessions
        self.links = links
        self.analytics = analytics
        self.guard = RouteGuard(sessions)

    async def initialize(self) -> SessionStatus:
        return await self.sessions.initialize()

    async def teardown(self) -> None:
        await self.sessions.teardown()
        self.links.reset()
        await self.api.aclose()

    async def __aenter__(self) -> "SlinkClientApp":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.teardown()


def create_app(
    mode: Optional[str] = None,
    base_url: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **kwargs: Any,
) -> SlinkClientApp:
    """
    Factory function to build a fully wired client.

    Args:
        mode (Optional[str]): "cookie" or "bearer"; defaults to SLINK_CREDENTIAL_MODE.
        base_url (Optional[str]): Backend origin; defaults to SLINK_API_BASE_URL.
        transport (Optional[httpx.AsyncBaseTransport]): Custom transport (tests).
        kwargs: Forwarded where they belong: `store`/`token_file`/`cookie_file` to the strategy
            factory, `limit`/`overflow_policy` to the link collection, and
            `navigator`/`callback_*`/`sleep` to the session manager.

    Returns:
        SlinkClientApp: Components with isolated state, not yet initialized.
    """
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO)

    strategy_kwargs = {k: kwargs.pop(k) for k in ("store", "token_file", "cookie_file") if k in kwargs}
    links_kwargs = {k: kwargs.pop(k) for k in ("limit", "overflow_policy") if k in kwargs}

    strategy = get_credential_strategy(mode, **strategy_kwargs)
    api = APIClient(strategy, base_url=base_url, transport=transport)
    sessions = AuthSessionManager(api, strategy, **kwargs)
    links = URLCollectionManager(api, sessions, **links_kwargs)
    analytics = AnalyticsService(api, sessions)
    log.info("Slink client credential mode: %s", strategy.mode.value)
    return SlinkClientApp(api, sessions, links, analytics)


# ----------------------------------------------------------------
# Command-line front end
# ----------------------------------------------------------------
def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _run(args: argparse.Namespace) -> int:
    app = create_app(
        mode=args.mode,
        base_url=args.base,
        token_file=args.token_file,
        cookie_file=args.cookie_file,
    )
    try:
        await app.initialize()

        if args.command == "login":
            if args.email:
                identity = await app.sessions.login(args.email, args.password or "")
                _emit({"message": "Logged in", "user": identity.model_dump()})
            else:
                auth_url = await app.sessions.start_external_login()
                _emit({"message": "Continue in your browser", "auth_url": auth_url})
            return 0

        if args.command == "callback":
            result = await app.sessions.complete_external_callback(
                args.code, args.state, args.error, exchange_code=not args.no_exchange
            )
            if result.outcome == CallbackOutcome.PROCEED:
                _emit({"message": "Successfully signed in!", "user": app.sessions.identity.model_dump()})
                return 0
            _emit({"message": result.error.message if result.error else "Authentication failed"})
            return 1

        if args.command == "logout":
            result = await app.sessions.logout()
            _emit({"ok": result.ok, "message": result.message})
            return 0 if result.ok else 1

        if args.command == "create":
            link = await app.links.create(CreateLinkRequest(
                original_url=args.url,
                custom_alias=args.alias,
                title=args.title,
                description=args.description,
            ))
            _emit({"message": "URL shortened", "short_url": app.links.redirect_url(link.short_code),
                   "url": link.model_dump()})
            return 0

        if app.guard.decide(protected=True) != GuardDecision.ALLOW:
            _emit({"message": "Not signed in"})
            return 1

        if args.command == "whoami":
            _emit(app.sessions.identity.model_dump())
        elif args.command == "refresh":
            await app.sessions.refresh_credential()
            _emit({"message": "Token refreshed successfully"})
        elif args.command == "links":
            items = await app.links.list(args.limit, args.offset)
            _emit({
                "urls": [link.model_dump() for link in items],
                "total": app.links.total,
                "limit": app.links.limit,
                "offset": app.links.offset,
            })
        elif args.command == "delete":
            if not args.yes:
                _emit({"message": "Refusing to delete without --yes"})
                return 1
            await app.links.remove(args.id)
            _emit({"message": "URL deleted successfully"})
        elif args.command == "analytics":
            report = await app.analytics.fetch(args.id)
            _emit(report.model_dump() if report else {"message": "Analytics not found"})
        return 0
    except ValidationError as exc:
        _emit({"message": "Invalid request", "errors": exc.errors})
        return 2
    except SlinkClientError as exc:
        _emit({"message": exc.message or exc.__class__.__name__})
        return 1
    finally:
        await app.teardown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="slink", description="Slink link-shortener client")
    parser.add_argument("--base", default=settings.API_BASE_URL, help="backend origin")
    parser.add_argument("--mode", choices=("cookie", "bearer"), default=None, help="credential mode")
    parser.add_argument(
        "--token-file", default=settings.TOKEN_FILE or DEFAULT_TOKEN_FILE, help="bearer token file"
    )
    parser.add_argument(
        "--cookie-file", default=settings.COOKIE_FILE or DEFAULT_COOKIE_FILE, help="cookie-mode jar file"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="start OAuth login, or password login with --email")
    login.add_argument("--email")
    login.add_argument("--password")

    callback = sub.add_parser("callback", help="complete the OAuth callback")
    callback.add_argument("--code")
    callback.add_argument("--state")
    callback.add_argument("--error")
    callback.add_argument(
        "--no-exchange", action="store_true",
        help="only poll the session; the backend already handled the provider redirect",
    )

    sub.add_parser("logout")
    sub.add_parser("whoami")
    sub.add_parser("refresh", help="refresh the bearer token")

    links = sub.add_parser("links", help="list your links")
    links.add_argument("--limit", type=int, default=settings.PAGE_LIMIT)
    links.add_argument("--offset", type=int, default=0)

    create = sub.add_parser("create", help="shorten a URL")
    create.add_argument("url")
    create.add_argument("--alias")
    create.add_argument("--title")
    create.add_argument("--description")

    delete = sub.add_parser("delete", help="delete a link")
    delete.add_argument("id", type=int)
    delete.add_argument("--yes", action="store_true", help="confirm deletion")

    analytics = sub.add_parser("analytics", help="click analytics for a link")
    analytics.add_argument("id", type=int)
    return parser


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
