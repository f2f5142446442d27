"""
tests/conftest.py -- Shared test fixtures for the Samaj identity backend.

This module provides:
  - FakeClock / RecordingMailer: deterministic time and captured OTP emails
  - store, codec, clock, mailer, otp, lifecycle: unit-level identity core
  - seed: factory that inserts an identity straight into a store
  - app_env: TestClient over the real ASGI app with a patched lifespan

Design: HTTP tests use named shared-memory SQLite URIs (not plain :memory:)
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. Each app_env gets its own DB name so tests never share state.

SECRET_KEY must be set before any api/ import: Settings refuse to load
without it, and api/main.py loads Settings at import time.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

# CRITICAL: Set SECRET_KEY before any api/ or core/ import.
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789abcdef")
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import build_lifecycle
from asgi import app
from auth.errors import UpstreamFailure
from auth.lifecycle import IdentityLifecycle
from auth.models import ROLE_MEMBER, Identity
from auth.otp import OtpEngine
from auth.store import IdentityStore
from auth.tokens import SessionTokenCodec, hash_password
from realtime.hub import ConnectionHub

TEST_SECRET = os.environ["SECRET_KEY"]
PASSWORD = "pw123456"

# bcrypt is deliberately slow; hash the shared test password once.
PASSWORD_HASH = hash_password(PASSWORD)

_counter = iter(range(1, 1_000_000))


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@dataclass
class RecordingMailer:
    """Captures OTP emails instead of sending them; can be told to fail."""

    sent: list[tuple[str, str]] = field(default_factory=list)
    fail: bool = False

    def send_otp(self, to_email: str, code: str) -> None:
        if self.fail:
            raise UpstreamFailure("Could not deliver the verification email.")
        self.sent.append((to_email, code))

    def last_code(self, email: str) -> str:
        codes = [c for e, c in self.sent if e == email]
        assert codes, f"no OTP was sent to {email}"
        return codes[-1]


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[IdentityStore, None, None]:
    s = IdentityStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def codec() -> SessionTokenCodec:
    return SessionTokenCodec(TEST_SECRET)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def otp(store: IdentityStore, clock: FakeClock) -> OtpEngine:
    return OtpEngine(store, ttl_seconds=120, clock=clock)


@pytest.fixture
def lifecycle(store, otp, codec, mailer) -> IdentityLifecycle:
    return IdentityLifecycle(store=store, otp=otp, codec=codec, mailer=mailer)


def _seed_identity(store: IdentityStore, **overrides) -> Identity:
    n = next(_counter)
    values = {
        "username": f"user{n}",
        "email": f"user{n}@example.com",
        "phone": f"+1555000{n:04d}",
        "membership_no": f"M{n:04d}",
        "hashed_password": PASSWORD_HASH,
        "role": ROLE_MEMBER,
        "is_verified": True,
    }
    values.update(overrides)
    identity_id = store.create_identity(Identity(**values))
    return store.get_by_id(identity_id)


@pytest.fixture
def seed(store: IdentityStore):
    """Return a factory: seed(role="admin", is_blocked=True, ...) -> Identity."""

    def _seed(**overrides) -> Identity:
        return _seed_identity(store, **overrides)

    return _seed


# ---------------------------------------------------------------------------
# ASGI-level fixture
# ---------------------------------------------------------------------------


@dataclass
class AppEnv:
    client: TestClient
    store: IdentityStore
    codec: SessionTokenCodec
    mailer: RecordingMailer
    clock: FakeClock
    hub: ConnectionHub

    def seed(self, **overrides) -> Identity:
        return _seed_identity(self.store, **overrides)

    def headers_for(self, identity: Identity) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.codec.issue(identity)}"}


def _patch_lifespan(env_parts: dict):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store, codec, recording mailer and fake clock into
    app.state so routes hit real handlers over isolated state.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        store = env_parts["store"]
        app.state.identity_store = store
        app.state.codec = env_parts["codec"]
        app.state.mailer = env_parts["mailer"]
        app.state.lifecycle = build_lifecycle(
            store,
            env_parts["codec"],
            env_parts["mailer"],
            otp=OtpEngine(store, ttl_seconds=120, clock=env_parts["clock"]),
        )
        app.state.hub = env_parts["hub"]
        yield

    return test_lifespan


@pytest.fixture
def app_env() -> Generator[AppEnv, None, None]:
    """Yield an AppEnv whose TestClient runs the full app over a fresh DB."""
    db_url = f"sqlite:///file:test_identity_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    parts = {
        "store": IdentityStore(db_url),
        "codec": SessionTokenCodec(TEST_SECRET),
        "mailer": RecordingMailer(),
        "clock": FakeClock(),
        "hub": ConnectionHub(),
    }
    app.router.lifespan_context = _patch_lifespan(parts)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield AppEnv(client=client, **parts)

    parts["store"].close()
