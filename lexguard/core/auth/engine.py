"""
Authentication Engine
=====================

The single entry point the application uses for login, logout,
permission checks, session maintenance and user administration.

Every attempt and every mutation, successful or not, is written to the
audit log before control returns to the caller.

Usage:
    engine = AuthEngine.from_config(config, store=SqliteAuthStore(db_path))
    engine.initialize()

    result = engine.login("alice", "Sup3r-Secret!")
    if engine.has_permission("billing.view"):
        ...
    engine.logout()
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, TypeVar

from lexguard.core.auth.credentials import CredentialHasher
from lexguard.core.auth.errors import (
    AccountInactive,
    AuthError,
    HashingError,
    InvalidCredentials,
    PermissionDenied,
    SessionExpired,
    SessionNotFound,
    UserNotFound,
)
from lexguard.core.auth.roles import Role, RoleCatalog
from lexguard.core.auth.sessions import Session, SessionRegistry
from lexguard.core.auth.users import User, UserDirectory, UserStats
from lexguard.core.config import LexGuardConfig
from lexguard.core.logging import configure_root_logger
from lexguard.db.store import AuthStore
from lexguard.security.audit import AuditAnnouncer, AuditEvent, AuditEventKind, AuditLog


T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class LoginResult:
    """Outcome of a successful login."""
    user: User
    session: Session
    permissions: frozenset[str]


@dataclass(frozen=True, slots=True)
class SecurityOverview:
    """Snapshot for the administrator's security panel."""
    active_sessions: int
    failed_logins_24h: int
    last_failed_login_at: Optional[datetime]
    audit_chain_valid: bool


class AuthEngine:
    """
    Orchestrates authentication, authorization and session lifecycle.

    One engine instance holds at most one current session: the single
    interactive actor of this process. Construct one engine per process
    (or per test); there is no global state.
    """

    def __init__(
        self,
        roles: RoleCatalog,
        hasher: CredentialHasher,
        users: UserDirectory,
        sessions: SessionRegistry,
        audit: AuditLog,
        clock: Callable[[], datetime] = _utcnow,
        generated_password_length: int = 12,
    ) -> None:
        self._roles = roles
        self._hasher = hasher
        self._users = users
        self._sessions = sessions
        self._audit = audit
        self._clock = clock
        self._generated_password_length = generated_password_length
        self._current: Optional[Session] = None
        self._lock = threading.RLock()
        self._log = logging.getLogger("lexguard.auth")

    @classmethod
    def from_config(
        cls,
        config: Optional[LexGuardConfig] = None,
        store: Optional[AuthStore] = None,
        announcer: Optional[AuditAnnouncer] = None,
        roles: Optional[RoleCatalog] = None,
        clock: Callable[[], datetime] = _utcnow,
        configure_logging: bool = True,
    ) -> AuthEngine:
        """
        Wire up every component from configuration.

        Args:
            config: Configuration (loaded from the environment if omitted)
            store: Persistence collaborator; in-memory only if omitted
            announcer: Optional collaborator notified of audit events
            roles: Role catalog (the firm's default table if omitted)
            clock: Source of the current UTC time
            configure_logging: Install the redacting ``lexguard`` log handlers
                described by ``config.logging`` (creates the data and log dirs)
        """
        config = config or LexGuardConfig.load()
        security = config.security

        if configure_logging:
            config.ensure_directories()
            configure_root_logger(
                log_dir=config.paths.log_dir,
                level=config.logging.level,
                enable_console=config.logging.enable_console,
                enable_file=config.logging.enable_file,
                enable_json=config.logging.enable_json,
            )

        roles = roles or RoleCatalog()
        hasher = CredentialHasher(
            memory_cost=security.hash_memory_cost,
            time_cost=security.hash_time_cost,
            parallelism=security.hash_parallelism,
        )
        users = UserDirectory(roles, hasher, store, clock)
        sessions = SessionRegistry(
            users,
            lifetime=timedelta(seconds=security.session_lifetime_seconds),
            clock=clock,
            store=store,
        )
        audit = AuditLog(store, announcer, clock)

        return cls(
            roles, hasher, users, sessions, audit,
            clock=clock,
            generated_password_length=security.generated_length,
        )

    def initialize(self, bootstrap_admin: bool = True) -> Optional[tuple[User, str]]:
        """
        Load persisted state and, on first run, create an administrator.

        Returns:
            (admin user, one-time password) if an account was bootstrapped
        """
        self._users.load()
        self._sessions.load()
        self._audit.load()

        if not bootstrap_admin:
            return None

        created = self._users.ensure_default_admin(self._generated_password_length)
        if created is not None:
            self._audit.record(
                AuditEventKind.USER_CREATED,
                target_user_id=created[0].id,
                detail="Default administrator account created",
            )
        return created

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def roles(self) -> RoleCatalog:
        return self._roles

    @property
    def hasher(self) -> CredentialHasher:
        return self._hasher

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def login(self, identifier: str, password: str) -> LoginResult:
        """
        Authenticate with a username or email and a password.

        Returns:
            LoginResult with the user, the new session and its permissions

        Raises:
            InvalidCredentials: Unknown identifier or wrong password
            AccountInactive: Correct credentials for a deactivated account
            HashingError: If the hashing backend fails
        """
        try:
            return self._login(identifier, password)
        except HashingError:
            self._audit.record(AuditEventKind.LOGIN_FAILURE, detail="Hashing backend failure")
            raise

    def _login(self, identifier: str, password: str) -> LoginResult:
        try:
            user = self._users.find_by_login_identifier(identifier)
        except UserNotFound:
            # Same work as a real check so timing does not reveal unknown accounts
            self._hasher.dummy_verify(password)
            self._audit.record(AuditEventKind.LOGIN_FAILURE, detail="Unknown identifier")
            self._log.warning("Login failed: unknown identifier")
            raise InvalidCredentials() from None

        if not self._hasher.verify(password, user.password_hash):
            self._audit.record(
                AuditEventKind.LOGIN_FAILURE,
                target_user_id=user.id,
                detail="Password mismatch",
            )
            self._log.warning("Login failed for user %s: password mismatch", user.id)
            raise InvalidCredentials()

        if not user.is_active:
            self._audit.record(
                AuditEventKind.LOGIN_FAILURE,
                actor_user_id=user.id,
                target_user_id=user.id,
                detail="Account inactive",
            )
            self._log.warning("Login refused for inactive user %s", user.id)
            raise AccountInactive()

        if self._hasher.needs_rehash(user.password_hash):
            self._users.replace_hash(user.id, self._hasher.hash(password))
            self._log.info("Upgraded password hash parameters for user %s", user.id)

        with self._lock:
            self._end_current("Replaced by a new login")
            user = self._users.record_login(user.id)
            session = self._sessions.issue(user.id)
            self._current = session

        self._audit.record(
            AuditEventKind.LOGIN_SUCCESS,
            actor_user_id=user.id,
            target_user_id=user.id,
        )
        self._log.info("User %s logged in", user.id)

        role = self._roles.role_by_id(user.role_id)
        return LoginResult(user, session, self._roles.effective_permissions(role))

    async def login_async(self, identifier: str, password: str) -> LoginResult:
        """
        ``login`` on a worker thread so an event loop stays responsive.

        Cancelling the awaiting task does not interrupt the hashing thread.
        """
        return await asyncio.to_thread(self.login, identifier, password)

    def _end_current(self, detail: str) -> None:
        if self._current is None:
            return
        session, self._current = self._current, None
        self._sessions.terminate(session.token)
        self._audit.record(
            AuditEventKind.LOGOUT,
            actor_user_id=session.user_id,
            target_user_id=session.user_id,
            detail=detail,
        )

    def logout(self) -> None:
        """End the current session. Does nothing when no one is logged in."""
        with self._lock:
            user_id = self._current.user_id if self._current else None
            self._end_current("User logout")
        if user_id is not None:
            self._log.info("User %s logged out", user_id)

    def resume(self, token: str) -> User:
        """
        Adopt an existing live session, e.g. after an application restart.

        Raises:
            SessionNotFound: If the token is unknown or terminated
            SessionExpired: If the session has expired
            AccountInactive: If the account was deactivated meanwhile
        """
        try:
            session = self._sessions.get(token)
        except (SessionNotFound, SessionExpired) as e:
            self._resume_rejected(None, str(e))
            raise

        try:
            user = self._users.get(session.user_id)
        except UserNotFound:
            self._sessions.terminate(token)
            self._resume_rejected(session.user_id, "user no longer exists")
            raise SessionNotFound() from None
        if not user.is_active:
            self._sessions.terminate(token)
            self._resume_rejected(user.id, "account inactive")
            raise AccountInactive()

        with self._lock:
            if self._current is not None and self._current.token != token:
                self._end_current("Replaced by a resumed session")
            self._current = session

        self._audit.record(
            AuditEventKind.LOGIN_SUCCESS,
            actor_user_id=user.id,
            target_user_id=user.id,
            detail="Session resumed",
        )
        return user

    def _resume_rejected(self, user_id: Optional[str], reason: str) -> None:
        self._audit.record(
            AuditEventKind.LOGIN_FAILURE,
            target_user_id=user_id,
            detail=f"Session resume rejected: {reason}",
        )
        self._log.warning("Session resume rejected: %s", reason)

    # ------------------------------------------------------------------
    # Current session
    # ------------------------------------------------------------------

    def current_session(self) -> Optional[Session]:
        """The live current session, or None (expiry is detected here)."""
        with self._lock:
            if self._current is None:
                return None
            try:
                self._current = self._sessions.get(self._current.token)
            except SessionExpired:
                expired, self._current = self._current, None
                self._audit.record(
                    AuditEventKind.SESSION_EXPIRED,
                    actor_user_id=expired.user_id,
                    target_user_id=expired.user_id,
                )
                return None
            except SessionNotFound:
                self._current = None
                return None
            return self._current

    def current_user(self) -> Optional[User]:
        session = self.current_session()
        if session is None:
            return None
        try:
            return self._users.get(session.user_id)
        except UserNotFound:
            with self._lock:
                self._current = None
            return None

    def current_role(self) -> Optional[Role]:
        user = self.current_user()
        return self._roles.role_by_id(user.role_id) if user else None

    def is_logged_in(self) -> bool:
        return self.current_session() is not None

    def extend_session(self) -> None:
        """Push the current session's expiry forward; no-op if not logged in."""
        with self._lock:
            if self._current is None:
                return
            try:
                self._current = self._sessions.extend(self._current.token)
            except (SessionExpired, SessionNotFound):
                self._current = None

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def has_permission(self, permission: str) -> bool:
        """
        Passive check for UI gating. Never audited.

        False when nobody is logged in.
        """
        role = self.current_role()
        return role is not None and self._roles.grants(role, permission)

    def permissions(self) -> frozenset[str]:
        """Effective permissions of the current user (wildcard expanded)."""
        role = self.current_role()
        return self._roles.effective_permissions(role) if role else frozenset()

    def require_permission(self, permission: str) -> User:
        """
        Gate an action. Denials are audited.

        Returns:
            The acting user

        Raises:
            PermissionDenied: If not logged in or the role lacks the permission
        """
        user = self.current_user()
        if user is not None and self._roles.grants(self._roles.role_by_id(user.role_id), permission):
            return user

        self._audit.record(
            AuditEventKind.PERMISSION_DENIED,
            actor_user_id=user.id if user else None,
            detail=permission,
        )
        self._log.warning(
            "Permission %s denied for %s", permission, user.id if user else "anonymous",
        )
        raise PermissionDenied(permission, self._roles.describe(permission))

    def audit_log(self) -> tuple[AuditEvent, ...]:
        """Chronological audit trail. Requires ``users.view``."""
        self.require_permission("users.view")
        return self._audit.events()

    def security_overview(self) -> SecurityOverview:
        """Active sessions and recent login failures. Requires ``users.view``."""
        self.require_permission("users.view")
        failures = self._audit.events(
            kind=AuditEventKind.LOGIN_FAILURE,
            since=self._clock() - timedelta(hours=24),
        )
        valid, _ = self._audit.verify_integrity()
        return SecurityOverview(
            active_sessions=len(self._sessions.active_sessions()),
            failed_logins_24h=len(failures),
            last_failed_login_at=failures[-1].timestamp if failures else None,
            audit_chain_valid=valid,
        )

    # ------------------------------------------------------------------
    # User administration
    # ------------------------------------------------------------------

    def _audited(
        self,
        kind: AuditEventKind,
        actor: User,
        target_id: Optional[str],
        action: Callable[[], T],
    ) -> T:
        """Run a directory call, auditing and re-raising any rejection."""
        try:
            return action()
        except AuthError as e:
            self._audit.record(
                kind,
                actor_user_id=actor.id,
                target_user_id=target_id,
                detail=f"rejected: {e}",
            )
            raise

    def create_user(self, **fields: Any) -> User:
        """
        Create a user. Requires ``users.create``.

        Accepts the keyword arguments of ``UserDirectory.create``.
        """
        actor = self.require_permission("users.create")
        user = self._audited(
            AuditEventKind.USER_CREATED, actor, None,
            lambda: self._users.create(**fields),
        )
        self._audit.record(
            AuditEventKind.USER_CREATED,
            actor_user_id=actor.id,
            target_user_id=user.id,
            detail=f"Created '{user.username}' with role {user.role_id}",
        )
        return user

    def edit_user(self, user_id: str, **patch: Any) -> User:
        """Edit profile fields. Requires ``users.edit``."""
        actor = self.require_permission("users.edit")
        user = self._audited(
            AuditEventKind.USER_MODIFIED, actor, user_id,
            lambda: self._users.edit(user_id, actor_id=actor.id, **patch),
        )
        if not user.is_active:
            self._sessions.terminate_user(user_id)
        self._audit.record(
            AuditEventKind.USER_MODIFIED,
            actor_user_id=actor.id,
            target_user_id=user_id,
            detail=f"Changed fields: {', '.join(sorted(patch)) or 'none'}",
        )
        return user

    def set_user_active(self, user_id: str, is_active: bool) -> User:
        """Activate or deactivate a user. Requires ``users.edit``."""
        return self.edit_user(user_id, is_active=is_active)

    def reset_password(self, user_id: str, new_password: Optional[str] = None) -> Optional[str]:
        """
        Set another user's password. Requires ``users.edit``.

        The target's session is terminated.

        Returns:
            The generated password when ``new_password`` is omitted
        """
        actor = self.require_permission("users.edit")
        generated = None
        if new_password is None:
            generated = new_password = self._hasher.generate_secure_password(
                self._generated_password_length
            )

        self._audited(
            AuditEventKind.PASSWORD_CHANGED, actor, user_id,
            lambda: self._users.set_password(user_id, new_password),
        )
        self._sessions.terminate_user(user_id)
        self._audit.record(
            AuditEventKind.PASSWORD_CHANGED,
            actor_user_id=actor.id,
            target_user_id=user_id,
            detail="Password reset by administrator",
        )
        return generated

    def delete_user(self, user_id: str) -> None:
        """Delete a user permanently. Requires ``users.delete``."""
        actor = self.require_permission("users.delete")
        self._audited(
            AuditEventKind.USER_DELETED, actor, user_id,
            lambda: self._users.delete(user_id, actor.id),
        )
        self._sessions.terminate_user(user_id)
        self._audit.record(
            AuditEventKind.USER_DELETED,
            actor_user_id=actor.id,
            target_user_id=user_id,
        )

    def list_users(self) -> list[User]:
        """All users in creation order. Requires ``users.view``."""
        self.require_permission("users.view")
        return self._users.all()

    def user_stats(self) -> UserStats:
        """Requires ``users.view``."""
        self.require_permission("users.view")
        return self._users.stats()

    def change_password(self, current_password: str, new_password: str) -> None:
        """
        Change the logged-in user's own password.

        On success the session ends and the user must log in again.

        Raises:
            SessionNotFound: If nobody is logged in
            InvalidCredentials: If the current password is wrong
            WeakPassword: If the new password violates the policy
        """
        user = self.current_user()
        if user is None:
            self._audit.record(
                AuditEventKind.PASSWORD_CHANGED,
                detail="rejected: Not logged in",
            )
            raise SessionNotFound("Not logged in")

        if not self._hasher.verify(current_password, user.password_hash):
            self._audit.record(
                AuditEventKind.PASSWORD_CHANGED,
                actor_user_id=user.id,
                target_user_id=user.id,
                detail="rejected: current password incorrect",
            )
            raise InvalidCredentials("Current password is incorrect")

        self._audited(
            AuditEventKind.PASSWORD_CHANGED, user, user.id,
            lambda: self._users.set_password(user.id, new_password),
        )

        with self._lock:
            self._current = None
            self._sessions.terminate_user(user.id)

        self._audit.record(
            AuditEventKind.PASSWORD_CHANGED,
            actor_user_id=user.id,
            target_user_id=user.id,
            detail="Password changed by owner",
        )
        self._log.info("User %s changed their password", user.id)
