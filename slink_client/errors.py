"""
Error taxonomy for Slink Client.

Responsibilities:
    - Give every failure a small, explicit type callers can branch on
    - Carry per-field messages for client-side validation failures
    - Carry HTTP status and backend message for server-side failures

Propagation:
    - ValidationError is raised before any network call.
    - SessionExpired is raised for any 401; the session manager is notified
      separately so the state machine never gets bypassed.
    - NotFound is usually turned into an explicit empty state (None) by the
      operation closest to the caller.
"""

from typing import Dict, Optional


class SlinkClientError(Exception):
    """Base class for all client errors."""

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(SlinkClientError, ValueError):
    """
    One or more request fields failed client-side validation.

    Attributes:
        errors (Dict[str, str]): field name -> human readable message.
    """

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        summary = "; ".join(f"{field}: {msg}" for field, msg in self.errors.items())
        super().__init__(summary or "Invalid request")


class AuthError(SlinkClientError):
    """Login, register, refresh or OAuth callback failed."""


class SessionExpired(SlinkClientError):
    """The backend answered 401 or no authenticated session is available."""


class NetworkError(SlinkClientError):
    """Transport-level failure (DNS, connect, timeout...). Never retried."""


class NotFound(SlinkClientError):
    """The requested link or analytics target does not exist."""


class ApiError(SlinkClientError):
    """Any other non-successful backend answer."""
