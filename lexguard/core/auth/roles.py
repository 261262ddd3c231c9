"""
Role Catalog
============

Static registry of the firm's roles and the permissions each one grants.

Permissions are ``"domain.action"`` strings (``"users.view"``); the single
wildcard ``"*"`` grants every permission, including ones added later.
The catalog is built once at process start and never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Final, Iterable, Mapping, Optional

from lexguard.core.auth.errors import InvalidRole


WILDCARD: Final[str] = "*"

# Every permission the application knows about, with its display label
PERMISSIONS: Final[Mapping[str, str]] = {
    "clients.view": "View clients",
    "clients.create": "Create new clients",
    "clients.edit": "Edit client information",
    "clients.delete": "Delete clients",

    "matters.view": "View matters",
    "matters.create": "Create new matters",
    "matters.edit": "Edit matter information",
    "matters.delete": "Delete matters",

    "time.view": "View time entries",
    "time.create": "Create time entries",
    "time.edit": "Edit time entries",
    "time.delete": "Delete time entries",

    "billing.view": "View billing information",
    "billing.create": "Create invoices",
    "billing.edit": "Edit invoices",
    "billing.export": "Export billing data",

    "documents.view": "View documents",
    "documents.upload": "Upload documents",
    "documents.edit": "Edit document metadata",
    "documents.delete": "Delete documents",

    "analytics.view": "View analytics",
    "analytics.export": "Export analytics data",

    "users.view": "View users",
    "users.create": "Create new users",
    "users.edit": "Edit user information",
    "users.delete": "Delete users",

    "system.backup": "System backup and maintenance",
}


@dataclass(frozen=True, slots=True)
class RoleDisplay:
    """Presentation metadata owned by the role rather than the UI."""
    avatar: str = "\U0001F464"  # bust in silhouette
    badge_color: str = "#6b7280"


@dataclass(frozen=True, slots=True)
class Role:
    """
    Immutable role definition.

    Attributes:
        id: Stable key stored on user records
        name: Display name
        level: Seniority rank, higher is more senior (display/ordering only)
        hourly_rate: Default billing rate for members of this role
        permissions: Granted permission strings, or the wildcard
        display: Presentation metadata (avatar, badge colour)
    """
    id: str
    name: str
    level: int
    hourly_rate: Decimal
    permissions: frozenset[str]
    display: RoleDisplay = field(default_factory=RoleDisplay)

    @property
    def is_superuser(self) -> bool:
        return WILDCARD in self.permissions


_INTERN = frozenset({
    "clients.view",
    "matters.view",
    "time.view", "time.create",
    "documents.view",
})

_ASSISTANT = _INTERN | {
    "clients.create",
    "matters.create",
    "documents.upload",
    "billing.view",
}

_ASSOCIATE = _ASSISTANT | {
    "clients.edit",
    "matters.edit",
    "time.edit",
    "billing.create",
    "documents.edit",
    "analytics.view",
}

_PARTNER = _ASSOCIATE | {
    "clients.delete",
    "matters.delete",
    "time.delete",
    "billing.edit", "billing.export",
    "documents.delete",
    "analytics.export",
    "users.view", "users.create", "users.edit",
    "system.backup",
}

DEFAULT_ROLES: Final[tuple[Role, ...]] = (
    Role("intern", "Intern", 1, Decimal("50"), _INTERN,
         RoleDisplay("\U0001F393", "#94a3b8")),
    Role("assistant", "Legal Assistant", 2, Decimal("150"), _ASSISTANT,
         RoleDisplay("\U0001F4CB", "#0ea5e9")),
    Role("associate", "Associate", 3, Decimal("250"), _ASSOCIATE,
         RoleDisplay("\u2696\ufe0f", "#22c55e")),
    Role("partner", "Partner", 4, Decimal("500"), _PARTNER,
         RoleDisplay("\U0001F4BC", "#f59e0b")),
    Role("founding_partner", "Founding Partner", 5, Decimal("750"),
         frozenset({WILDCARD}), RoleDisplay("\U0001F451", "#a855f7")),
)

SUPERUSER_ROLE_ID: Final[str] = "founding_partner"


class RoleCatalog:
    """
    Read-only registry of role definitions.

    Usage:
        roles = RoleCatalog()
        partner = roles.role_by_id("partner")
        roles.grants(partner, "users.edit")  # True
    """

    __slots__ = ("_roles",)

    def __init__(self, roles: Optional[Iterable[Role]] = None) -> None:
        ordered = sorted(roles if roles is not None else DEFAULT_ROLES, key=lambda r: r.level)
        by_id: dict[str, Role] = {}
        for role in ordered:
            if role.id in by_id:
                raise ValueError(f"Duplicate role id: {role.id}")
            by_id[role.id] = role
        self._roles = by_id

    def role_by_id(self, role_id: str) -> Role:
        """
        Look up a role.

        Raises:
            InvalidRole: If no role has this id
        """
        try:
            return self._roles[role_id]
        except KeyError:
            raise InvalidRole(role_id) from None

    def __contains__(self, role_id: object) -> bool:
        return role_id in self._roles

    def all(self) -> tuple[Role, ...]:
        """All roles in increasing seniority."""
        return tuple(self._roles.values())

    @staticmethod
    def permissions_for(role: Role) -> frozenset[str]:
        """Permission strings as declared on the role (may be the wildcard)."""
        return role.permissions

    @staticmethod
    def grants(role: Role, permission: str) -> bool:
        return WILDCARD in role.permissions or permission in role.permissions

    @staticmethod
    def effective_permissions(role: Role) -> frozenset[str]:
        """Permissions with the wildcard expanded to every known permission."""
        if role.is_superuser:
            return frozenset(PERMISSIONS)
        return role.permissions

    @staticmethod
    def describe(permission: str) -> str:
        return PERMISSIONS.get(permission, permission)
