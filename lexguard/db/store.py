"""
Auth Persistence
================

Durable storage for the user table, live sessions and the audit trail.

The engine only needs load-all/save-all semantics for users and sessions
and append semantics for audit events; ``AuthStore`` describes that contract
and ``SqliteAuthStore`` implements it on a local SQLite file.

Security Notes:
- All statements are parameterized
- Only password hashes are stored, never plaintext
- Sessions are keyed by token digest; raw tokens never reach the disk
- Audit rows are inserted, never updated or deleted
"""

from __future__ import annotations

import sqlite3
from contextlib import closing
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Final, Iterable, Mapping, Optional, Protocol

from lexguard.security.audit import AuditEvent

if TYPE_CHECKING:
    from lexguard.core.auth.sessions import Session
    from lexguard.core.auth.users import User


class AuthStore(Protocol):
    """Persistence collaborator consumed by UserDirectory, SessionRegistry and AuditLog."""

    def load_users(self) -> list[User]: ...

    def save_users(self, users: Iterable[User]) -> None: ...

    def load_audit_events(self) -> list[AuditEvent]: ...

    def append_audit_event(self, event: AuditEvent) -> None: ...

    def load_sessions(self) -> dict[str, Session]: ...

    def save_sessions(self, sessions: Mapping[str, Session]) -> None: ...


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SqliteAuthStore:
    """
    SQLite implementation of ``AuthStore``.

    Usage:
        store = SqliteAuthStore(config.paths.database_path)
        users = store.load_users()
    """

    __slots__ = ("_db_path",)

    _SCHEMA: Final[str] = """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        username TEXT UNIQUE NOT NULL COLLATE NOCASE,
        email TEXT UNIQUE NOT NULL COLLATE NOCASE,
        password_hash TEXT NOT NULL,
        first_name TEXT NOT NULL DEFAULT '',
        last_name TEXT NOT NULL DEFAULT '',
        role_id TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        last_login_at TEXT
    );

    CREATE TABLE IF NOT EXISTS audit_log (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        event_id TEXT UNIQUE NOT NULL,
        timestamp TEXT NOT NULL,
        kind TEXT NOT NULL,
        actor_user_id TEXT,
        target_user_id TEXT,
        detail TEXT NOT NULL DEFAULT '',
        previous_hash TEXT NOT NULL,
        event_hash TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS sessions (
        token_digest TEXT PRIMARY KEY,
        user_id TEXT UNIQUE NOT NULL,
        issued_at TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        last_activity_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
    CREATE INDEX IF NOT EXISTS idx_audit_actor ON audit_log(actor_user_id);
    """

    def __init__(self, db_path: Path | str) -> None:
        """
        Open (and create if needed) the database.

        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = Path(db_path)
        self.initialize_db()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize_db(self) -> None:
        """Create tables if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        with closing(self._get_connection()) as conn:
            conn.executescript(self._SCHEMA)
            conn.commit()

    def load_users(self) -> list[User]:
        """All users in creation order."""
        from lexguard.core.auth.users import User

        with closing(self._get_connection()) as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY rowid").fetchall()

        return [
            User(
                id=row["id"],
                username=row["username"],
                email=row["email"],
                password_hash=row["password_hash"],
                first_name=row["first_name"],
                last_name=row["last_name"],
                role_id=row["role_id"],
                is_active=bool(row["is_active"]),
                created_at=datetime.fromisoformat(row["created_at"]),
                updated_at=datetime.fromisoformat(row["updated_at"]),
                last_login_at=_parse(row["last_login_at"]),
            )
            for row in rows
        ]

    def save_users(self, users: Iterable[User]) -> None:
        """Replace the user table atomically, preserving the given order."""
        rows = [
            (
                u.id, u.username, u.email, u.password_hash,
                u.first_name, u.last_name, u.role_id, int(u.is_active),
                _iso(u.created_at), _iso(u.updated_at), _iso(u.last_login_at),
            )
            for u in users
        ]

        with closing(self._get_connection()) as conn:
            with conn:
                conn.execute("DELETE FROM users")
                conn.executemany("""
                    INSERT INTO users (
                        id, username, email, password_hash, first_name, last_name,
                        role_id, is_active, created_at, updated_at, last_login_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, rows)

    def load_audit_events(self) -> list[AuditEvent]:
        """All audit events in insertion order."""
        with closing(self._get_connection()) as conn:
            rows = conn.execute("SELECT * FROM audit_log ORDER BY seq").fetchall()

        return [AuditEvent.from_dict(dict(row)) for row in rows]

    def append_audit_event(self, event: AuditEvent) -> None:
        data = event.to_dict()
        with closing(self._get_connection()) as conn:
            with conn:
                conn.execute("""
                    INSERT INTO audit_log (
                        event_id, timestamp, kind, actor_user_id, target_user_id,
                        detail, previous_hash, event_hash
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    data["event_id"],
                    data["timestamp"],
                    data["kind"],
                    data["actor_user_id"],
                    data["target_user_id"],
                    data["detail"],
                    data["previous_hash"],
                    data["event_hash"],
                ))

    def load_sessions(self) -> dict[str, Session]:
        """
        Persisted sessions keyed by token digest.

        The returned sessions carry an empty token; only the digest is stored.
        """
        from lexguard.core.auth.sessions import Session

        with closing(self._get_connection()) as conn:
            rows = conn.execute("SELECT * FROM sessions").fetchall()

        return {
            row["token_digest"]: Session(
                token="",
                user_id=row["user_id"],
                issued_at=datetime.fromisoformat(row["issued_at"]),
                expires_at=datetime.fromisoformat(row["expires_at"]),
                last_activity_at=datetime.fromisoformat(row["last_activity_at"]),
            )
            for row in rows
        }

    def save_sessions(self, sessions: Mapping[str, Session]) -> None:
        """Replace the session table atomically."""
        rows = [
            (digest, s.user_id, _iso(s.issued_at), _iso(s.expires_at), _iso(s.last_activity_at))
            for digest, s in sessions.items()
        ]

        with closing(self._get_connection()) as conn:
            with conn:
                conn.execute("DELETE FROM sessions")
                conn.executemany("""
                    INSERT INTO sessions (
                        token_digest, user_id, issued_at, expires_at, last_activity_at
                    ) VALUES (?, ?, ?, ?, ?)
                """, rows)
