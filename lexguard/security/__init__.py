"""
Security module - Audit trail components.

Security Considerations:
- Audit events are append-only and hash-chained
- Event details are redacted before storage
"""

from lexguard.security.audit import (
    AuditAnnouncer,
    AuditEvent,
    AuditEventKind,
    AuditLog,
    NullAnnouncer,
)

__all__ = [
    "AuditAnnouncer",
    "AuditEvent",
    "AuditEventKind",
    "AuditLog",
    "NullAnnouncer",
]
