"""
LexGuard Authentication Module
==============================

Provides secure authentication with:
- Argon2id password hashing
- Role-based access control over a fixed role hierarchy
- Session management with lazy expiration
- Audited user administration

Security Properties:
- Memory-hard password hashing
- Constant-time verification, equalized for unknown accounts
- Secure session tokens
- Failure messages that never reveal which credential was wrong
"""

from lexguard.core.auth.errors import (
    AuthError,
    AccountInactive,
    CannotDeactivateSelf,
    CannotDeleteSelf,
    DuplicateUser,
    HashingError,
    InvalidCredentials,
    InvalidRole,
    InvalidUserData,
    LastAdministrator,
    NotFound,
    PermissionDenied,
    SessionExpired,
    SessionNotFound,
    UserNotFound,
    WeakPassword,
)
from lexguard.core.auth.roles import (
    PERMISSIONS,
    Role,
    RoleCatalog,
    RoleDisplay,
)
from lexguard.core.auth.credentials import (
    CredentialHasher,
    PasswordScore,
    PasswordStrength,
)
from lexguard.core.auth.users import (
    User,
    UserDirectory,
    UserStats,
)
from lexguard.core.auth.sessions import (
    Session,
    SessionRegistry,
)
from lexguard.core.auth.engine import (
    AuthEngine,
    LoginResult,
    SecurityOverview,
)

__all__ = [
    # Errors
    "AuthError",
    "AccountInactive",
    "CannotDeactivateSelf",
    "CannotDeleteSelf",
    "DuplicateUser",
    "HashingError",
    "InvalidCredentials",
    "InvalidRole",
    "InvalidUserData",
    "LastAdministrator",
    "NotFound",
    "PermissionDenied",
    "SessionExpired",
    "SessionNotFound",
    "UserNotFound",
    "WeakPassword",
    # Roles
    "PERMISSIONS",
    "Role",
    "RoleCatalog",
    "RoleDisplay",
    # Credentials
    "CredentialHasher",
    "PasswordScore",
    "PasswordStrength",
    # Users
    "User",
    "UserDirectory",
    "UserStats",
    # Sessions
    "Session",
    "SessionRegistry",
    # Engine
    "AuthEngine",
    "LoginResult",
    "SecurityOverview",
]
