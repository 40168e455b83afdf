"""
tests/conftest.py -- Shared test fixtures for Paylink.

This module provides:
  - store: an isolated UserStore on a named shared-memory SQLite DB
  - client: TestClient over the real app with a patched lifespan
  - make_user(): signup helper returning a SignupResult

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

Environment must be set before any auth/core import: get_settings() is
cached on first call and auth.tokens reads it at import time.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set env before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECURE_COOKIES", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("SIGNUP_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("DATABASE_URL", "sqlite:///file:paylink_default?mode=memory&cache=shared&uri=true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth import service
from auth.models import SignupResult
from auth.store import UserStore


def _memory_url() -> str:
    return f"sqlite:///file:test_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def _patch_lifespan(user_store: UserStore):
    """Return an async context manager that wires the test store into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        yield

    return test_lifespan


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    """A fresh, empty UserStore per test."""
    s = UserStore(db_url=_memory_url())
    yield s
    s.close()


@pytest.fixture
def client(store: UserStore) -> Generator[TestClient, None, None]:
    """TestClient hitting real route handlers against the per-test store.

    Function-scoped on purpose: signin sets cookies in the client's jar, and
    a leftover access_token cookie would authenticate later requests.
    """
    app.router.lifespan_context = _patch_lifespan(store)
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c


@pytest.fixture
def make_user(store: UserStore):
    """Return a helper that signs up a user through the real flow."""

    def _make(first: str = "Ann", last: str = "Lee", user_id: str = "ann1", password: str = "p") -> SignupResult:
        return service.signup(store, first, last, user_id, password)

    return _make
