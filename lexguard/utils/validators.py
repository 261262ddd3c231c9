"""
Validation Utilities
====================

Input validation for user-supplied account fields.
"""

from __future__ import annotations

import re
from typing import Final

from lexguard.core.auth.errors import InvalidUserData


_USERNAME_RE: Final[re.Pattern[str]] = re.compile(r"^[a-z0-9][a-z0-9._-]{1,63}$")
_EMAIL_RE: Final[re.Pattern[str]] = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_string_safe(
    value: str,
    min_length: int = 0,
    max_length: int = 1000,
    allow_empty: bool = False,
    field_name: str = "value",
) -> str:
    """
    Validate a free-text field.

    Raises:
        InvalidUserData: If validation fails
    """
    if not isinstance(value, str):
        raise InvalidUserData(f"{field_name} must be a string")

    if not allow_empty and not value:
        raise InvalidUserData(f"{field_name} cannot be empty")

    if len(value) < min_length:
        raise InvalidUserData(f"{field_name} must be at least {min_length} characters")

    if len(value) > max_length:
        raise InvalidUserData(f"{field_name} must be at most {max_length} characters")

    # Null bytes would truncate values in some storage layers
    if "\x00" in value:
        raise InvalidUserData(f"{field_name} contains invalid characters")

    return value


def normalize_username(value: str) -> str:
    """Lower-case, strip and validate a username."""
    username = validate_string_safe(
        value.strip().lower() if isinstance(value, str) else value,
        field_name="Username",
    )
    if not _USERNAME_RE.match(username):
        raise InvalidUserData(
            "Username must be 2-64 characters of letters, digits, '.', '_' or '-'"
        )
    return username


def normalize_email(value: str) -> str:
    """Lower-case, strip and validate an email address."""
    email = validate_string_safe(
        value.strip().lower() if isinstance(value, str) else value,
        max_length=254,
        field_name="Email",
    )
    if not _EMAIL_RE.match(email):
        raise InvalidUserData("Email address is not valid")
    return email


def normalize_name(value: str, field_name: str) -> str:
    """Strip an optional personal name field."""
    return validate_string_safe(
        value.strip() if isinstance(value, str) else value,
        max_length=100,
        allow_empty=True,
        field_name=field_name,
    )
