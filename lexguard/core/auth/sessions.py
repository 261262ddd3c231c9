"""
Session Control
================

Session issuance and lifecycle with lazy expiration.

Security Features:
- Cryptographically random session tokens (256 bits)
- Registry indexed by token digest; raw tokens are only held by callers
- One session per user: a new login replaces the previous session
- Expiry checked on every access, no background timer
- Optional persistence so a session survives an application restart

Lifecycle:
    Active --(now >= expires_at, observed)--> Expired   (entry removed)
    Active --(extend)--> Active                          (new expiry)
    Active --(terminate / new login)--> Terminated       (entry removed)
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Final, Optional

from lexguard.core.auth.errors import AccountInactive, SessionExpired, SessionNotFound
from lexguard.core.auth.users import UserDirectory

if TYPE_CHECKING:
    from lexguard.db.store import AuthStore


SESSION_TOKEN_BYTES: Final[int] = 32
DEFAULT_SESSION_LIFETIME: Final[timedelta] = timedelta(hours=8)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class Session:
    """
    An authenticated user's login window.

    The token is excluded from repr so sessions can be logged safely.
    Sessions listed by the registry (rather than returned for a token the
    caller presented) carry an empty token.
    """
    token: str = field(repr=False)
    user_id: str
    issued_at: datetime
    expires_at: datetime
    last_activity_at: datetime

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at

    def remaining(self, now: datetime) -> timedelta:
        return max(self.expires_at - now, timedelta(0))


class SessionRegistry:
    """
    Tracks the live session of each user.

    The registry keeps sessions by token digest and never stores the raw
    token; it is attached to a session only when handed back to the
    caller that presented it. With a store attached, every change is saved
    before it takes effect in memory.

    Usage:
        registry = SessionRegistry(users, store=store)
        registry.load()
        session = registry.issue(user.id)
        registry.get(session.token)      # Session, or raises
        registry.extend(session.token)
        registry.terminate(session.token)
    """

    __slots__ = ("_users", "_lifetime", "_clock", "_store", "_sessions", "_lock", "_log")

    def __init__(
        self,
        users: UserDirectory,
        lifetime: timedelta = DEFAULT_SESSION_LIFETIME,
        clock: Callable[[], datetime] = _utcnow,
        store: Optional[AuthStore] = None,
    ) -> None:
        if lifetime <= timedelta(0):
            raise ValueError("Session lifetime must be positive")

        self._users = users
        self._lifetime = lifetime
        self._clock = clock
        self._store = store
        self._sessions: dict[str, Session] = {}  # token digest -> session (token blanked)
        self._lock = threading.RLock()
        self._log = logging.getLogger("lexguard.sessions")

    @property
    def lifetime(self) -> timedelta:
        return self._lifetime

    @staticmethod
    def _generate_token() -> str:
        return secrets.token_urlsafe(SESSION_TOKEN_BYTES)

    @staticmethod
    def _hash_token(token: str) -> str:
        return hashlib.sha256(token.encode()).hexdigest()

    def load(self) -> int:
        """
        Replace in-memory sessions with the store's live ones.

        Expired entries are discarded.

        Returns:
            Number of live sessions restored
        """
        if self._store is None:
            return 0

        now = self._clock()
        restored = {
            digest: replace(session, token="")
            for digest, session in self._store.load_sessions().items()
            if session.is_active(now)
        }
        with self._lock:
            self._commit(restored)
        self._log.info("Restored %d sessions", len(restored))
        return len(restored)

    def _commit(self, sessions: dict[str, Session]) -> None:
        """Save the new session table, then adopt it. Caller holds the lock."""
        if self._store is not None:
            self._store.save_sessions(sessions)
        self._sessions = sessions

    def _without(self, predicate: Callable[[Session], bool]) -> dict[str, Session]:
        return {d: s for d, s in self._sessions.items() if not predicate(s)}

    def _live(self, token: str) -> tuple[str, Session]:
        """Resolve a token to a live session, expiring it lazily."""
        if not token:
            raise SessionNotFound()

        digest = self._hash_token(token)
        session = self._sessions.get(digest)
        if session is None:
            raise SessionNotFound()

        if not session.is_active(self._clock()):
            self._commit({d: s for d, s in self._sessions.items() if d != digest})
            self._log.info("Session for user %s expired", session.user_id)
            raise SessionExpired()

        return digest, session

    def issue(self, user_id: str) -> Session:
        """
        Start a new session, replacing any existing one for the user.

        Raises:
            UserNotFound: If the user does not exist
            AccountInactive: If the user is deactivated
        """
        user = self._users.get(user_id)
        if not user.is_active:
            raise AccountInactive()

        now = self._clock()
        token = self._generate_token()
        stored = Session(
            token="",
            user_id=user_id,
            issued_at=now,
            expires_at=now + self._lifetime,
            last_activity_at=now,
        )

        with self._lock:
            sessions = self._without(lambda s: s.user_id == user_id)
            if len(sessions) != len(self._sessions):
                self._log.info("Replaced previous session for user %s", user_id)
            sessions[self._hash_token(token)] = stored
            self._commit(sessions)

        return replace(stored, token=token)

    def get(self, token: str) -> Session:
        """
        Look up a session and record activity on it.

        Raises:
            SessionNotFound: If the token is unknown, terminated or replaced
            SessionExpired: If the session has expired (it is removed)
        """
        with self._lock:
            digest, session = self._live(token)
            session = replace(session, last_activity_at=self._clock())
            self._commit({**self._sessions, digest: session})
        return replace(session, token=token)

    def extend(self, token: str) -> Session:
        """
        Push the expiry to ``now + lifetime``.

        Raises:
            SessionNotFound: If the token is unknown
            SessionExpired: If the session already expired
        """
        with self._lock:
            digest, session = self._live(token)
            now = self._clock()
            expires_at = now + self._lifetime
            # Expiry never stands still or moves backwards
            if expires_at <= session.expires_at:
                expires_at = session.expires_at + timedelta(microseconds=1)

            session = replace(session, expires_at=expires_at, last_activity_at=now)
            self._commit({**self._sessions, digest: session})
        return replace(session, token=token)

    def terminate(self, token: str) -> None:
        """End a session. Unknown tokens are ignored."""
        if not token:
            return
        digest = self._hash_token(token)
        with self._lock:
            if digest in self._sessions:
                self._commit({d: s for d, s in self._sessions.items() if d != digest})

    def terminate_user(self, user_id: str) -> int:
        """
        End the session of a user (password change, deletion).

        Returns:
            Number of sessions ended
        """
        with self._lock:
            sessions = self._without(lambda s: s.user_id == user_id)
            ended = len(self._sessions) - len(sessions)
            if ended:
                self._commit(sessions)
            return ended

    def session_for_user(self, user_id: str) -> Optional[Session]:
        """The user's live session (token blanked), or None."""
        now = self._clock()
        with self._lock:
            for session in self._sessions.values():
                if session.user_id == user_id and session.is_active(now):
                    return session
        return None

    def active_sessions(self) -> list[Session]:
        now = self._clock()
        with self._lock:
            return [s for s in self._sessions.values() if s.is_active(now)]

    def purge_expired(self) -> int:
        """
        Remove every expired session.

        Returns:
            Number of sessions removed
        """
        now = self._clock()
        with self._lock:
            sessions = self._without(lambda s: not s.is_active(now))
            removed = len(self._sessions) - len(sessions)
            if removed:
                self._commit(sessions)
        return removed

    def __len__(self) -> int:
        return len(self._sessions)
