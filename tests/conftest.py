"""Shared fixtures: a controllable clock, cheap hashing and a fresh engine."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from lexguard.core.auth import (
    AuthEngine,
    CredentialHasher,
    RoleCatalog,
    SessionRegistry,
    UserDirectory,
)
from lexguard.db.store import SqliteAuthStore
from lexguard.security.audit import AuditLog


STRONG_PASSWORD = "Str0ng!Pass"
OTHER_STRONG_PASSWORD = "An0ther#Secret"


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hasher() -> CredentialHasher:
    # Minimum legal Argon2 cost keeps the suite fast
    return CredentialHasher(memory_cost=8, time_cost=1, parallelism=1)


@pytest.fixture
def roles() -> RoleCatalog:
    return RoleCatalog()


@pytest.fixture
def store(tmp_path) -> SqliteAuthStore:
    return SqliteAuthStore(tmp_path / "lexguard.db")


@pytest.fixture
def users(roles, hasher, clock) -> UserDirectory:
    return UserDirectory(roles, hasher, clock=clock)


@pytest.fixture
def sessions(users, clock) -> SessionRegistry:
    return SessionRegistry(users, lifetime=timedelta(hours=8), clock=clock)


@pytest.fixture
def audit(clock) -> AuditLog:
    return AuditLog(clock=clock)


@pytest.fixture
def engine(roles, hasher, users, sessions, audit, clock) -> AuthEngine:
    return AuthEngine(roles, hasher, users, sessions, audit, clock=clock)


@pytest.fixture
def make_user(users):
    """Create a user directly in the directory, bypassing permission checks."""

    def _make(username: str, role_id: str, password: str = STRONG_PASSWORD, **kwargs):
        return users.create(
            username=username,
            email=kwargs.pop("email", f"{username}@firm.example"),
            password=password,
            role_id=role_id,
            **kwargs,
        )

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("founder", "founding_partner")


@pytest.fixture
def admin_engine(engine, admin) -> AuthEngine:
    """Engine with the founding partner logged in."""
    engine.login("founder", STRONG_PASSWORD)
    return engine


@pytest.fixture(autouse=True)
def reset_lexguard_logging():
    """Drop handlers installed by ``AuthEngine.from_config`` between tests."""
    yield
    root = logging.getLogger("lexguard")
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
