"""
Utils module - Utility functions and helpers.
"""

from lexguard.utils.validators import (
    normalize_email,
    normalize_name,
    normalize_username,
    validate_string_safe,
)

__all__ = [
    "normalize_email",
    "normalize_name",
    "normalize_username",
    "validate_string_safe",
]
