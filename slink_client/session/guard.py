"""
RouteGuard: thin read-only consumer of the session status.

It never triggers a check or a redirect itself; it only tells the caller
what to do with a protected view given the current status.
"""

from enum import Enum

from ..models import SessionStatus
from .manager import AuthSessionManager


class GuardDecision(str, Enum):
    ALLOW = "allow"
    WAIT = "wait"
    LOGIN = "login"


class RouteGuard:
    def __init__(self, sessions: AuthSessionManager):
        self.sessions = sessions

    def decide(self, protected: bool = True) -> GuardDecision:
        if not protected:
            return GuardDecision.ALLOW
        status = self.sessions.status
        if status in (SessionStatus.UNINITIALIZED, SessionStatus.CHECKING):
            return GuardDecision.WAIT
        if self.sessions.session.is_authenticated:
            return GuardDecision.ALLOW
        return GuardDecision.LOGIN
