"""
Database module - Persistence for users and the audit trail.

Security Considerations:
- Parameterized statements only
- No plaintext passwords in the database
"""

from lexguard.db.store import AuthStore, SqliteAuthStore

__all__ = ["AuthStore", "SqliteAuthStore"]
