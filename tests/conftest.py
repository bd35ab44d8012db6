"""
tests/conftest.py -- Shared test fixtures for Express Connect auth tests.

This module provides:
  - RecordingNotifier: captures every send() and can be told to fail
  - FrozenClock: injectable clock for exact expiry boundaries
  - store / credentials / orchestrator: unit-level fixtures on a fresh
    in-memory database per test
  - seed_account: seed helper shared by unit and integration tests
  - api_client: TestClient over the real app with a patched lifespan

Design: the integration store uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit fixtures run in one thread, so plain :memory: is enough.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi import APIRouter
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.credentials import CredentialService
from auth.models import Account, SessionClaims
from auth.orchestrator import AuthOrchestrator
from auth.store import AccountStore
from auth.tokens import create_session_token, hash_password
from core.config import Settings
from notify.base import NotificationError, NotificationKind

TEST_SECRET = "test-secret-key-that-is-long-enough-0123456789"

# Per-IP limits would trip across a module's worth of sign-ins from one client.
limiter.enabled = False


# ---------------------------------------------------------------------------
# Page stand-in
#
# The gate forwards non-API paths to whatever renders pages. In tests a
# catch-all route echoes the path so "forwarded" is observable as a 200.
# ---------------------------------------------------------------------------

_pages = APIRouter()


@_pages.get("/{path:path}")
def _echo_page(path: str) -> dict:
    return {"page": f"/{path}"}


_pages_mounted = False


def _mount_pages() -> None:
    """Include the catch-all once; it must stay the last route on the app."""
    global _pages_mounted
    if not _pages_mounted:
        app.include_router(_pages)
        _pages_mounted = True


_mount_pages()


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class RecordingNotifier:
    """Notifier that records instead of sending. Set .fail to simulate an outage."""

    def __init__(self) -> None:
        self.sent: list[tuple[NotificationKind, str, dict]] = []
        self.fail = False

    def send(self, kind: NotificationKind, to: str, template_data: dict) -> None:
        if self.fail:
            raise NotificationError("provider unavailable")
        self.sent.append((kind, to, template_data))

    def last_to(self, email: str) -> tuple[NotificationKind, dict]:
        for kind, to, data in reversed(self.sent):
            if to == email:
                return kind, data
        raise AssertionError(f"nothing was sent to {email}")


class FrozenClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


def make_settings(**overrides) -> Settings:
    values = {"debug": True, "secret_key": TEST_SECRET, "database_url": "sqlite:///:memory:"}
    values.update(overrides)
    return Settings(**values)


def _make_account(
    store: AccountStore,
    email: str,
    role: str = "ATTENDEE",
    password: str | None = None,
    **fields,
) -> Account:
    """Insert an account (tenant ids defaulted from the role) and return the stored row."""
    if role in ("HOST_ADMIN", "HOST_TEAM_MEMBER"):
        fields.setdefault("host_id", "H1")
    elif role in ("ATTENDEE", "ATTENDEE_ADMIN"):
        fields.setdefault("attendee_company_id", "A1")
    hashed = hash_password(password) if password else None
    store.create_account(
        Account(email=email, role=role, hashed_password=hashed, password_set=hashed is not None, **fields)
    )
    account = store.find_by_email(email)
    assert account is not None
    return account


# ---------------------------------------------------------------------------
# Unit fixtures -- fresh database per test
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def credentials(store, notifier, settings, clock) -> CredentialService:
    return CredentialService(store, notifier, settings, now=clock)


@pytest.fixture
def orchestrator(store, credentials, notifier, settings) -> AuthOrchestrator:
    return AuthOrchestrator(store, credentials, notifier, settings)


@pytest.fixture
def seed_account(store):
    """seed_account(email, role="ATTENDEE", password=None, **fields) -> Account"""

    def seed(email: str, role: str = "ATTENDEE", password: str | None = None, **fields) -> Account:
        return _make_account(store, email, role, password, **fields)

    return seed


# ---------------------------------------------------------------------------
# Integration fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    store: AccountStore
    notifier: RecordingNotifier
    settings: Settings
    _counter: list[int] = field(default_factory=lambda: [0])

    def unique_email(self, prefix: str = "user") -> str:
        self._counter[0] += 1
        return f"{prefix}{self._counter[0]}@example.com"

    def bearer(self, claims: SessionClaims, expire_seconds: int | None = None) -> dict[str, str]:
        token = create_session_token(
            claims,
            self.settings.secret_key,
            expire_seconds or self.settings.session_max_age_seconds,
        )
        return {"Authorization": f"Bearer {token}"}

    def seed(self, email: str, role: str = "ATTENDEE", password: str | None = None, **fields) -> Account:
        return _make_account(self.store, email, role, password, **fields)


def _patch_lifespan(settings: Settings, store: AccountStore, notifier: RecordingNotifier):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and recording notifier into app.state so routes and
    the gate see isolated state and nothing leaves the process.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.store = store
        app.state.notifier = notifier
        app.state.credentials = CredentialService(store, notifier, settings)
        app.state.orchestrator = AuthOrchestrator(store, app.state.credentials, notifier, settings)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness over the real app for HTTP integration tests.

    follow_redirects=False is essential: gate tests assert on redirect
    Location headers, which are invisible once the client follows them.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    settings = make_settings(database_url=f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true")
    store = AccountStore(settings.database_url)
    notifier = RecordingNotifier()

    app.router.lifespan_context = _patch_lifespan(settings, store, notifier)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, store=store, notifier=notifier, settings=settings)

    store.close()
