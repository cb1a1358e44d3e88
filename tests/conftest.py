"""
tests/conftest.py -- Shared test fixtures for Neon's auth core.

This module provides:
  - make_user / settings_factory: build users and Settings variants
  - FakeProvider: stands in for the OAuth provider's token/userinfo endpoints
  - store / settings: isolated in-memory store and dev-mode Settings for unit tests
  - api_client: TestClient over the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
TestClient fixtures because sync route handlers run in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format shares one in-memory instance across all
connections in the same process. Unit tests run in one thread and use plain
:memory:.

The DEBUG env var must be set before any api/core import so get_settings()
accepts insecure (non-HTTPS) cookies instead of raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set DEBUG before any api/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.credentials import hash_password
from auth.models import Role, User
from auth.oauth import LinkingFlow
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import Settings

# Rate limiting is exercised by slowapi's own tests; here it would make the
# order of login-heavy tests matter.
limiter.enabled = False

PASSWORD = "correct-horse"


def _make_user(store: UserStore, handle: str, password: str = PASSWORD, role: str = Role.user.value) -> int:
    return store.create_user(
        User(
            handle=handle,
            nickname=handle.capitalize(),
            email=f"{handle}@example.com",
            role=role,
            hashed_password=hash_password(password),
        )
    )


class FakeProvider:
    """Records exchanges and returns a fixed external handle (or raises)."""

    def __init__(self, handle: str = "alice_draws", error: Exception | None = None) -> None:
        self.handle = handle
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def fetch_external_handle(self, code: str, code_verifier: str) -> str:
        self.calls.append((code, code_verifier))
        if self.error is not None:
            raise self.error
        return self.handle


def _make_settings(**overrides) -> Settings:
    values = {
        "debug": True,
        "base_url": "https://neon.example",
        "oauth_client_id": "client-123",
        "oauth_client_secret": "secret-456",
    }
    values.update(overrides)
    return Settings(**values)


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return _make_settings()


@pytest.fixture
def settings_factory():
    """Build a dev-mode Settings with field overrides: settings_factory(secure_cookies=True)."""
    return _make_settings


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def make_user():
    """Insert a user: make_user(store, "alice", role="admin") -> user id."""
    return _make_user


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


# ---------------------------------------------------------------------------
# TestClient fixture
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    store: UserStore
    provider: FakeProvider
    settings: Settings

    def login(self, handle: str, password: str = PASSWORD, persist: bool = False):
        return self.client.post("/api/user/login", json={"handle": handle, "password": password, "persist": persist})

    def use_token(self, token: str) -> None:
        """Replace the cookie jar's session cookie with an arbitrary value."""
        self.client.cookies.clear()
        self.client.cookies.set(self.settings.cookie_name, token)


def _patch_lifespan(store: UserStore, settings: Settings, provider: FakeProvider):
    """Return an async context manager that replaces the real lifespan.

    Wires the isolated store and a FakeProvider-backed LinkingFlow into
    app.state so routes never touch the real database or the network.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.user_store = store
        app.state.sessions = SessionManager(store, settings)
        app.state.linking = LinkingFlow(store, settings, provider=provider)
        yield

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness with a fresh database per test.

    follow_redirects=False so OAuth tests can assert on Location headers.
    """
    db_url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    store = UserStore(db_url)
    settings = _make_settings()
    provider = FakeProvider()

    app.router.lifespan_context = _patch_lifespan(store, settings, provider)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, store=store, provider=provider, settings=settings)

    store.close()
