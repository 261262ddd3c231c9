"""
Tamper-Aware Audit Log
======================

Append-only record of security-relevant events with a SHA-256 hash chain.

Each event stores the hash of its predecessor, so editing or removing a
persisted entry breaks the chain and is reported by ``verify_integrity``.
Nothing in this module ever removes or rewrites an event.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Final, Optional, Protocol

from lexguard.core.logging import redact

if TYPE_CHECKING:
    from lexguard.db.store import AuthStore


GENESIS_HASH: Final[str] = "genesis"


class AuditEventKind(str, Enum):
    """Types of auditable events."""
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    LOGOUT = "logout"
    SESSION_EXPIRED = "session_expired"
    PERMISSION_DENIED = "permission_denied"
    USER_CREATED = "user_created"
    USER_MODIFIED = "user_modified"
    USER_DELETED = "user_deleted"
    PASSWORD_CHANGED = "password_changed"


@dataclass(frozen=True, slots=True)
class AuditEvent:
    """An immutable security event."""
    event_id: str
    timestamp: datetime
    kind: AuditEventKind
    actor_user_id: Optional[str]
    target_user_id: Optional[str]
    detail: str
    previous_hash: str = ""
    event_hash: str = ""

    def compute_hash(self) -> str:
        """Hash every field except ``event_hash`` itself."""
        data = {
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "kind": self.kind.value,
            "actor_user_id": self.actor_user_id,
            "target_user_id": self.target_user_id,
            "detail": self.detail,
            "previous_hash": self.previous_hash,
        }
        return hashlib.sha256(json.dumps(data, sort_keys=True).encode()).hexdigest()

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "kind": self.kind.value,
            "actor_user_id": self.actor_user_id,
            "target_user_id": self.target_user_id,
            "detail": self.detail,
            "previous_hash": self.previous_hash,
            "event_hash": self.event_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditEvent:
        return cls(
            event_id=data["event_id"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            kind=AuditEventKind(data["kind"]),
            actor_user_id=data.get("actor_user_id"),
            target_user_id=data.get("target_user_id"),
            detail=data.get("detail") or "",
            previous_hash=data.get("previous_hash") or "",
            event_hash=data.get("event_hash") or "",
        )


class AuditAnnouncer(Protocol):
    """Optional collaborator told about every recorded event (e.g. a screen reader bridge)."""

    def announce(self, event: AuditEvent) -> None: ...


class NullAnnouncer:
    """Announcer that does nothing."""

    def announce(self, event: AuditEvent) -> None:
        return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditLog:
    """
    Append-only audit trail.

    Usage:
        audit = AuditLog(store=store)
        audit.load()
        audit.record(AuditEventKind.LOGIN_FAILURE, detail="unknown identifier")
        ok, count = audit.verify_integrity()

    Writes are serialized by a lock; ``events()`` returns a snapshot tuple.
    """

    __slots__ = ("_events", "_last_hash", "_lock", "_store", "_announcer", "_clock", "_log")

    def __init__(
        self,
        store: Optional[AuthStore] = None,
        announcer: Optional[AuditAnnouncer] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._events: list[AuditEvent] = []
        self._last_hash = GENESIS_HASH
        self._lock = threading.RLock()
        self._store = store
        self._announcer: AuditAnnouncer = announcer or NullAnnouncer()
        self._clock = clock
        self._log = logging.getLogger("lexguard.audit")

    def load(self) -> int:
        """
        Load persisted events from the store.

        Returns:
            Number of events loaded
        """
        if self._store is None:
            return 0

        events = self._store.load_audit_events()
        with self._lock:
            self._events = list(events)
            self._last_hash = self._events[-1].event_hash if self._events else GENESIS_HASH

        ok, _ = self.verify_integrity()
        if not ok:
            self._log.critical("Audit trail integrity check failed after load")
        return len(events)

    def record(
        self,
        kind: AuditEventKind,
        *,
        actor_user_id: Optional[str] = None,
        target_user_id: Optional[str] = None,
        detail: str = "",
    ) -> AuditEvent:
        """
        Append an event.

        The detail is passed through credential redaction before storage.

        Returns:
            The recorded, chained event
        """
        with self._lock:
            event = AuditEvent(
                event_id=uuid.uuid4().hex,
                timestamp=self._clock(),
                kind=kind,
                actor_user_id=actor_user_id,
                target_user_id=target_user_id,
                detail=redact(detail),
                previous_hash=self._last_hash,
            )
            event = replace(event, event_hash=event.compute_hash())

            if self._store is not None:
                self._store.append_audit_event(event)
            self._events.append(event)
            self._last_hash = event.event_hash

        self._log.info(
            "audit %s actor=%s target=%s",
            kind.value, actor_user_id or "-", target_user_id or "-",
        )

        try:
            self._announcer.announce(event)
        except Exception as e:
            self._log.warning("Audit announcer failed: %s", e)

        return event

    def events(
        self,
        kind: Optional[AuditEventKind] = None,
        since: Optional[datetime] = None,
    ) -> tuple[AuditEvent, ...]:
        """Chronological snapshot, optionally filtered."""
        with self._lock:
            snapshot = tuple(self._events)
        return tuple(
            e for e in snapshot
            if (kind is None or e.kind is kind) and (since is None or e.timestamp >= since)
        )

    def __len__(self) -> int:
        return len(self._events)

    def verify_integrity(self) -> tuple[bool, int]:
        """
        Walk the hash chain.

        Returns:
            Tuple of (is_valid, number of events verified before a break)
        """
        with self._lock:
            snapshot = tuple(self._events)

        previous_hash = GENESIS_HASH
        for count, event in enumerate(snapshot):
            if event.previous_hash != previous_hash:
                return False, count
            if not hmac.compare_digest(event.compute_hash(), event.event_hash):
                return False, count
            previous_hash = event.event_hash

        return True, len(snapshot)
