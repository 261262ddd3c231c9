"""
Authentication Errors
=====================

Every failure the engine reports to the application is an ``AuthError``.
The ``str()`` of an error is the human-readable message shown to the user,
so messages must never reveal which half of a credential pair was wrong.
"""

from __future__ import annotations

from typing import Optional


class AuthError(Exception):
    """Base class for all recoverable authentication/authorization errors."""
    pass


class InvalidCredentials(AuthError):
    """Raised when the identifier is unknown or the password does not match."""

    def __init__(self, message: str = "Invalid username or password") -> None:
        super().__init__(message)


class AccountInactive(AuthError):
    """Raised when valid credentials belong to a deactivated account."""

    def __init__(self, message: str = "This account has been deactivated") -> None:
        super().__init__(message)


class DuplicateUser(AuthError):
    """Raised when a username or email is already taken."""
    pass


class InvalidRole(AuthError):
    """Raised when a role id has no entry in the role catalog."""

    def __init__(self, role_id: str) -> None:
        self.role_id = role_id
        super().__init__(f"Unknown role '{role_id}'")


class CannotDeleteSelf(AuthError):
    """Raised when the acting user tries to delete their own account."""

    def __init__(self, message: str = "You cannot delete your own account") -> None:
        super().__init__(message)


class CannotDeactivateSelf(AuthError):
    """Raised when the acting user tries to deactivate their own account."""

    def __init__(self, message: str = "You cannot deactivate your own account") -> None:
        super().__init__(message)


class LastAdministrator(AuthError):
    """Raised when an operation would leave nobody able to manage users."""

    def __init__(
        self,
        message: str = "Cannot remove the last administrator able to manage users",
    ) -> None:
        super().__init__(message)


class NotFound(AuthError):
    """Raised when a requested entity does not exist."""
    pass


class UserNotFound(NotFound):
    """Raised when a user lookup fails."""

    def __init__(self, message: str = "User not found") -> None:
        super().__init__(message)


class SessionNotFound(NotFound):
    """Raised when a session token is unknown, terminated or replaced."""

    def __init__(self, message: str = "Session not found") -> None:
        super().__init__(message)


class SessionExpired(AuthError):
    """Raised when a session is observed past its expiry."""

    def __init__(self, message: str = "Session has expired") -> None:
        super().__init__(message)


class PermissionDenied(AuthError):
    """Raised when the current user lacks a required permission."""

    def __init__(self, permission: str, label: Optional[str] = None) -> None:
        self.permission = permission
        super().__init__(f"Access denied. Required permission: {label or permission}")


class WeakPassword(AuthError):
    """Raised when a new password violates the password policy."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__(", ".join(self.violations))


class InvalidUserData(AuthError):
    """Raised when user fields are missing, malformed or not editable."""
    pass


class HashingError(AuthError):
    """
    Raised when the password hashing backend fails.

    This indicates an entropy or resource problem, not a user mistake,
    and is always logged as a system-health signal.
    """

    def __init__(self, message: str = "Password hashing failed") -> None:
        super().__init__(message)
