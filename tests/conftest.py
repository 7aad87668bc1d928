"""
Global pytest fixtures for the Slink Client test suite.

Responsibilities:
    - Provide a StubBackend (httpx.MockTransport handler) for unit tests
    - Provide an app factory fixture that wires a fresh client to that stub
    - Provide a FastAPI fake backend for integration tests

Why an app factory?
    Using `create_app()` ensures each test gets fresh session, window and
    credential state, eliminating cross-test flakiness.

Async code is driven with asyncio.run() from plain test functions.
"""

import httpx
import pytest

from main import create_app
from slink_client.auth.strategies import MemoryTokenStore
from fake_backend import FakeStore, create_backend_app
from stubs import StubBackend


@pytest.fixture
def backend() -> StubBackend:
    """Fresh stub backend; unknown routes answer 404."""
    return StubBackend()


@pytest.fixture
def make_app(backend):
    """
    Build a client wired to the stub backend.

    Bearer mode with a pre-stored token by default, so the first session
    check does reach the backend; pass token=None for an empty store.
    """

    def _make(mode: str = "bearer", token="stored-token", **kwargs):
        if mode == "bearer" and "store" not in kwargs:
            kwargs["store"] = MemoryTokenStore(token)
        kwargs.setdefault("callback_settle", 0.0)
        kwargs.setdefault("callback_max_delay", 0.01)
        kwargs.setdefault("callback_timeout", 1.0)
        kwargs.setdefault("navigator", lambda url: None)
        return create_app(
            mode=mode,
            base_url="http://backend.test",
            transport=httpx.MockTransport(backend),
            **kwargs,
        )

    return _make


@pytest.fixture
def fake_store() -> FakeStore:
    """In-memory state of the FastAPI fake backend."""
    return FakeStore()


@pytest.fixture
def live_app(fake_store):
    """
    Build a client wired to the FastAPI fake backend through ASGITransport.

    No stored credential by default: the first check is answered by the
    backend itself (cookie mode) or skipped (bearer mode, empty store).
    """

    def _make(mode: str = "bearer", **kwargs):
        if mode == "bearer" and "store" not in kwargs:
            kwargs["store"] = MemoryTokenStore()
        kwargs.setdefault("callback_settle", 0.0)
        kwargs.setdefault("callback_max_delay", 0.01)
        kwargs.setdefault("callback_timeout", 1.0)
        kwargs.setdefault("navigator", lambda url: None)
        return create_app(
            mode=mode,
            base_url="http://backend.test",
            transport=httpx.ASGITransport(app=create_backend_app(fake_store)),
            **kwargs,
        )

    return _make
