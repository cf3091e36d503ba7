"""
tests/conftest.py -- Shared test fixtures for the Satsang API tests.

This module provides:
  - FrozenClock: a controllable clock injected into TokenIssuer/AuthService
  - RecordingNotifier: captures cleartext reset tokens instead of sending them
  - store / hasher / issuer / service: unit-level building blocks, one fresh
    in-memory database per test
  - api_client: TestClient over the real app with a patched lifespan, plus an
    approved admin and its access token
  - make_member: factory that registers (and optionally approves) a user
    through the public API and returns its tokens

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares one
in-memory instance across all connections in the same process.

Environment must be set before any auth/core import:
  DEBUG=true               -- get_settings() generates JWT secrets
  BCRYPT_ROUNDS=4          -- keeps hashing fast
  RATE_LIMIT_ENABLED=false -- the rate limit tests switch it on explicitly
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

# CRITICAL: set before any auth/core import -- get_settings() is cached.
os.environ["DEBUG"] = "true"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("ADMIN_PASSWORD", None)

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Role, User
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenIssuer

ACCESS_SECRET = "a" * 40
REFRESH_SECRET = "r" * 40
ADMIN_EMAIL = "admin@satsang.test"
ADMIN_PASSWORD = "AdminPass1"
MEMBER_PASSWORD = "Passw0rd"


class FrozenClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


@dataclass
class RecordingNotifier:
    sent: list[tuple[User, str]] = field(default_factory=list)

    def send_password_reset(self, user: User, token: str) -> None:
        self.sent.append((user, token))

    @property
    def last_token(self) -> str:
        return self.sent[-1][1]


def _memory_db_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    user_store = UserStore(_memory_db_url("test_store"))
    yield user_store
    user_store.close()


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def issuer(clock: FrozenClock) -> TokenIssuer:
    return TokenIssuer(ACCESS_SECRET, REFRESH_SECRET, 3600, 7 * 24 * 3600, clock=clock)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(
    store: UserStore, hasher: PasswordHasher, issuer: TokenIssuer, notifier: RecordingNotifier, clock: FrozenClock
) -> AuthService:
    return AuthService(store, hasher, issuer, notifier, reset_expire_seconds=600, clock=clock)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    service: AuthService
    notifier: RecordingNotifier
    admin: User
    admin_token: str

    @property
    def admin_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.admin_token}"}


def _patch_lifespan(service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test service into app.state so TestClient routes see
    an isolated database, and mocks the OAuth registry so no request ever
    leaves the process.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = service.store
        app.state.auth_service = service
        app.state.oauth = MagicMock()
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers, middleware and exception handlers. The admin is
    created before the client starts; its token is a real access token.
    """
    user_store = UserStore(_memory_db_url("test_api"))
    notifier = RecordingNotifier()
    issuer = TokenIssuer(ACCESS_SECRET, REFRESH_SECRET, 3600, 7 * 24 * 3600)
    service = AuthService(user_store, PasswordHasher(rounds=4), issuer, notifier)
    admin = service.ensure_admin(ADMIN_EMAIL, ADMIN_PASSWORD, "Test Admin")

    app.router.lifespan_context = _patch_lifespan(service)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield ApiHarness(
            client=client,
            service=service,
            notifier=notifier,
            admin=admin,
            admin_token=issuer.issue_access_token(admin),
        )

    user_store.close()


@pytest.fixture
def make_member(api_client: ApiHarness) -> Callable[..., dict]:
    """Factory: register a user via the API, optionally approve/promote, then log in.

    Returns {"id", "email", "token", "refresh_token", "headers"}.
    """

    def _make(approved: bool = True, role: Role = Role.LEARNER, email: str | None = None) -> dict:
        client = api_client.client
        email = email or f"member-{uuid.uuid4().hex[:10]}@satsang.test"
        resp = client.post(
            "/api/v1/auth/register",
            json={"email": email, "password": MEMBER_PASSWORD, "fullName": "Test Member"},
        )
        assert resp.status_code == 201, resp.text
        user_id = resp.json()["userId"]
        if approved:
            api_client.service.approve_user(user_id)
        if role is not Role.LEARNER:
            api_client.service.update_user(api_client.admin, user_id, role=role)

        resp = client.post("/api/v1/auth/login", json={"email": email, "password": MEMBER_PASSWORD})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        return {
            "id": user_id,
            "email": email,
            "token": body["token"],
            "refresh_token": body["refreshToken"],
            "headers": {"Authorization": f"Bearer {body['token']}"},
        }

    return _make
