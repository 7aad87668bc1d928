"""Authentication session state machine and its read-only guard."""

from .guard import GuardDecision, RouteGuard
from .manager import AuthSessionManager, CallbackOutcome, CallbackResult, LogoutResult

__all__ = [
    "AuthSessionManager",
    "CallbackOutcome",
    "CallbackResult",
    "GuardDecision",
    "LogoutResult",
    "RouteGuard",
]
