"""
User Directory
==============

In-memory user table with durable save-all persistence.

Security Features:
- Only Argon2id hashes are stored, never plaintext
- Case-insensitive uniqueness of usernames and emails
- Password changes only through a dedicated re-hash path
- Self-deletion and last-administrator protection
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Final, Iterable, Mapping, Optional

from lexguard.core.auth.credentials import CredentialHasher
from lexguard.core.auth.errors import (
    CannotDeactivateSelf,
    CannotDeleteSelf,
    DuplicateUser,
    InvalidUserData,
    LastAdministrator,
    UserNotFound,
    WeakPassword,
)
from lexguard.core.auth.roles import SUPERUSER_ROLE_ID, RoleCatalog
from lexguard.utils import validators

if TYPE_CHECKING:
    from lexguard.db.store import AuthStore


# Holding this permission makes a user an administrator for lockout purposes
USER_ADMIN_PERMISSION: Final[str] = "users.edit"

EDITABLE_FIELDS: Final[frozenset[str]] = frozenset({
    "username", "email", "first_name", "last_name", "role_id", "is_active",
})
_PASSWORD_FIELDS: Final[frozenset[str]] = frozenset({"password", "password_hash"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class User:
    """
    User account.

    Note: password_hash is never exposed in repr or in ``to_public_dict``.
    """
    id: str
    username: str
    email: str
    password_hash: str = field(repr=False)
    role_id: str
    created_at: datetime
    updated_at: datetime
    first_name: str = ""
    last_name: str = ""
    is_active: bool = True
    last_login_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        full = f"{self.first_name} {self.last_name}".strip()
        return full or self.username

    def to_public_dict(self) -> dict[str, Any]:
        """Fields safe to hand to the presentation layer."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role_id": self.role_id,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
        }


@dataclass(frozen=True, slots=True)
class UserStats:
    total: int
    active: int
    by_role: Mapping[str, int]


class UserDirectory:
    """
    Owner of all user records.

    Callers receive copies; the directory's own records are only changed
    through its methods, under a single-writer lock. Permission checks are
    the engine's job, not the directory's.

    Usage:
        users = UserDirectory(RoleCatalog(), CredentialHasher(), store)
        users.load()
        alice = users.create(
            username="alice", email="alice@firm.example",
            password="Sup3r-Secret!", role_id="associate",
        )
    """

    __slots__ = ("_roles", "_hasher", "_store", "_clock", "_users", "_lock", "_log")

    def __init__(
        self,
        roles: RoleCatalog,
        hasher: CredentialHasher,
        store: Optional[AuthStore] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._roles = roles
        self._hasher = hasher
        self._store = store
        self._clock = clock
        self._users: list[User] = []
        self._lock = threading.RLock()
        self._log = logging.getLogger("lexguard.users")

    @property
    def roles(self) -> RoleCatalog:
        return self._roles

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> int:
        """
        Replace in-memory records with the store's content.

        Raises:
            InvalidRole: If a stored user references an unknown role
        """
        if self._store is None:
            return 0

        users = self._store.load_users()
        for user in users:
            self._roles.role_by_id(user.role_id)

        with self._lock:
            self._users = list(users)
        self._log.info("Loaded %d users", len(users))
        return len(users)

    def _commit(self, users: list[User]) -> None:
        """Save the new user table, then adopt it. Caller holds the lock."""
        if self._store is not None:
            self._store.save_users(users)
        self._users = users

    def _replaced(self, updated: User) -> list[User]:
        return [updated if u.id == updated.id else u for u in self._users]

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _record(self, user_id: str) -> User:
        for user in self._users:
            if user.id == user_id:
                return user
        raise UserNotFound()

    def get(self, user_id: str) -> User:
        """Get a copy of a user by id."""
        with self._lock:
            return replace(self._record(user_id))

    def find_by_login_identifier(self, identifier: str) -> User:
        """
        Find a user by username or email, case-insensitively.

        Raises:
            UserNotFound: If nothing matches
        """
        needle = (identifier or "").strip().casefold()
        if not needle:
            raise UserNotFound()

        with self._lock:
            for user in self._users:
                if user.username.casefold() == needle or user.email.casefold() == needle:
                    return replace(user)
        raise UserNotFound()

    def all(self) -> list[User]:
        """All users in creation order."""
        with self._lock:
            return [replace(u) for u in self._users]

    def active(self) -> list[User]:
        with self._lock:
            return [replace(u) for u in self._users if u.is_active]

    def __len__(self) -> int:
        return len(self._users)

    def stats(self) -> UserStats:
        with self._lock:
            users = list(self._users)

        by_role = {role.id: 0 for role in self._roles.all()}
        for user in users:
            if user.is_active:
                by_role[user.role_id] = by_role.get(user.role_id, 0) + 1

        return UserStats(
            total=len(users),
            active=sum(1 for u in users if u.is_active),
            by_role=MappingProxyType(by_role),
        )

    # ------------------------------------------------------------------
    # Invariant helpers
    # ------------------------------------------------------------------

    def _check_unique(self, username: str, email: str, exclude_id: Optional[str] = None) -> None:
        for user in self._users:
            if user.id == exclude_id:
                continue
            if user.username.casefold() == username.casefold():
                raise DuplicateUser(f"Username '{username}' already exists")
            if user.email.casefold() == email.casefold():
                raise DuplicateUser(f"Email '{email}' already exists")

    def _admin_count(self, users: Iterable[User]) -> int:
        return sum(
            1 for u in users
            if u.is_active
            and self._roles.grants(self._roles.role_by_id(u.role_id), USER_ADMIN_PERMISSION)
        )

    def _guard_last_admin(self, after: list[User]) -> None:
        """Refuse a change that leaves no active user able to manage users."""
        if self._admin_count(self._users) > 0 and self._admin_count(after) == 0:
            raise LastAdministrator()

    def _check_password(self, password: str) -> None:
        result = self._hasher.strength(password or "")
        if not result.is_valid:
            raise WeakPassword(list(result.violations))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        *,
        username: str,
        email: str,
        password: str,
        role_id: str,
        first_name: str = "",
        last_name: str = "",
    ) -> User:
        """
        Create a new user account.

        Returns:
            Copy of the created user

        Raises:
            InvalidUserData: If username or email are missing/malformed
            InvalidRole: If role_id is not in the catalog
            DuplicateUser: If username or email already exists
            WeakPassword: If the password violates the policy
            HashingError: If the hashing backend fails
        """
        username = validators.normalize_username(username)
        email = validators.normalize_email(email)
        first_name = validators.normalize_name(first_name, "First name")
        last_name = validators.normalize_name(last_name, "Last name")
        self._roles.role_by_id(role_id)
        self._check_password(password)

        with self._lock:
            self._check_unique(username, email)

        # Hash outside the lock; it is the slow part
        password_hash = self._hasher.hash(password)
        now = self._clock()

        user = User(
            id=str(uuid.uuid4()),
            username=username,
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role_id=role_id,
            created_at=now,
            updated_at=now,
        )

        with self._lock:
            # Re-check: another writer may have won while we were hashing
            self._check_unique(username, email)
            self._commit([*self._users, user])

        self._log.info("Created user %s with role %s", user.id, role_id)
        return replace(user)

    def edit(self, user_id: str, *, actor_id: Optional[str] = None, **patch: Any) -> User:
        """
        Update profile fields of a user.

        Editable fields: username, email, first_name, last_name, role_id,
        is_active. Passwords must go through ``set_password``.

        Raises:
            UserNotFound: If the user does not exist
            InvalidUserData: If a field is unknown, not editable or malformed
            DuplicateUser: If a changed username/email is taken
            InvalidRole: If role_id is unknown
            CannotDeactivateSelf: If the acting user deactivates themselves
            LastAdministrator: If the change removes the last administrator
        """
        if _PASSWORD_FIELDS & patch.keys():
            raise InvalidUserData("Passwords cannot be changed through profile edits")
        unknown = set(patch) - EDITABLE_FIELDS
        if unknown:
            raise InvalidUserData(f"Unknown or read-only fields: {', '.join(sorted(unknown))}")

        changes: dict[str, Any] = {}
        if "username" in patch:
            changes["username"] = validators.normalize_username(patch["username"])
        if "email" in patch:
            changes["email"] = validators.normalize_email(patch["email"])
        if "first_name" in patch:
            changes["first_name"] = validators.normalize_name(patch["first_name"], "First name")
        if "last_name" in patch:
            changes["last_name"] = validators.normalize_name(patch["last_name"], "Last name")
        if "role_id" in patch:
            self._roles.role_by_id(patch["role_id"])
            changes["role_id"] = patch["role_id"]
        if "is_active" in patch:
            changes["is_active"] = bool(patch["is_active"])
            if not changes["is_active"] and actor_id is not None and user_id == actor_id:
                raise CannotDeactivateSelf()

        with self._lock:
            current = self._record(user_id)
            updated = replace(current, **changes, updated_at=self._clock())
            self._check_unique(updated.username, updated.email, exclude_id=user_id)
            after = self._replaced(updated)
            self._guard_last_admin(after)
            self._commit(after)

        self._log.info("Updated user %s (%s)", user_id, ", ".join(sorted(changes)) or "no changes")
        return replace(updated)

    def set_password(self, user_id: str, password: str) -> None:
        """
        Re-hash and store a new password.

        Raises:
            UserNotFound: If the user does not exist
            WeakPassword: If the password violates the policy
        """
        with self._lock:
            self._record(user_id)
        self._check_password(password)
        self.replace_hash(user_id, self._hasher.hash(password))

    def replace_hash(self, user_id: str, password_hash: str) -> None:
        """Store an already-computed hash (rehash on login)."""
        with self._lock:
            current = self._record(user_id)
            updated = replace(current, password_hash=password_hash, updated_at=self._clock())
            self._commit(self._replaced(updated))

    def record_login(self, user_id: str, when: Optional[datetime] = None) -> User:
        with self._lock:
            current = self._record(user_id)
            updated = replace(current, last_login_at=when or self._clock())
            self._commit(self._replaced(updated))
            return replace(updated)

    def delete(self, user_id: str, actor_id: Optional[str]) -> None:
        """
        Permanently delete a user.

        Raises:
            CannotDeleteSelf: If user_id is the acting user
            UserNotFound: If the user does not exist
            LastAdministrator: If the user is the last administrator
        """
        if actor_id is not None and user_id == actor_id:
            raise CannotDeleteSelf()

        with self._lock:
            current = self._record(user_id)
            after = [u for u in self._users if u.id != current.id]
            self._guard_last_admin(after)
            self._commit(after)

        self._log.info("Deleted user %s", user_id)

    def set_active(self, user_id: str, is_active: bool, actor_id: Optional[str] = None) -> None:
        """
        Activate or deactivate a user.

        Raises:
            CannotDeactivateSelf: If the acting user deactivates themselves
            UserNotFound: If the user does not exist
            LastAdministrator: If deactivation removes the last administrator
        """
        self.edit(user_id, actor_id=actor_id, is_active=is_active)

    def ensure_default_admin(self, password_length: int = 12) -> Optional[tuple[User, str]]:
        """
        Bootstrap an administrator on an empty directory.

        Returns:
            (user, generated password) when an account was created, else None.
            The password is returned once and never logged.
        """
        with self._lock:
            if self._users:
                return None

        password = self._hasher.generate_secure_password(password_length)
        user = self.create(
            username="admin",
            email="admin@lexguard.local",
            password=password,
            role_id=SUPERUSER_ROLE_ID,
            first_name="System",
            last_name="Administrator",
        )
        self._log.warning("Created default administrator account %s", user.id)
        return user, password
