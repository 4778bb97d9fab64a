"""
Append-only, tamper-evident audit log for authorization events.

Permission decisions (when decision auditing is enabled) and every
administrative change to roles, assignments and overrides are recorded as
structured entries.  Entries are linked by a SHA-256 hash chain: if an
entry is modified after the fact, ``verify_chain()`` reports where.

**Scope note:**  The hash chain gives structural tamper evidence for
access reviews.  It is not a substitute for write-once storage; a
deployment that needs stronger guarantees should ship entries to WORM
storage or an external log with its own integrity anchor.

**Practice isolation:**  Queries and exports are scoped by
``practice_id``.  Entries of practice A never appear in queries or
exports for practice B.  System-wide events (no practice) are queried
with ``practice_id=None``.
"""

from __future__ import annotations

import enum
import hashlib
import json
import re
import threading
import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from vetguard.models import PermissionCheckResult, PermissionContext, _as_utc, utcnow


# ---------------------------------------------------------------------------
# Audit event types
# ---------------------------------------------------------------------------

class AuditEventType(str, enum.Enum):
    """Every auditable authorization event."""

    # Decisions
    PERMISSION_CHECKED = "PERMISSION_CHECKED"

    # Role definitions
    ROLE_CREATED = "ROLE_CREATED"
    ROLE_UPDATED = "ROLE_UPDATED"
    ROLE_DELETED = "ROLE_DELETED"

    # Assignments
    ROLE_ASSIGNED = "ROLE_ASSIGNED"
    ROLE_REVOKED = "ROLE_REVOKED"

    # Overrides
    OVERRIDE_CREATED = "OVERRIDE_CREATED"
    OVERRIDE_REVOKED = "OVERRIDE_REVOKED"

    # Cache
    ROLE_CACHE_INVALIDATED = "ROLE_CACHE_INVALIDATED"


# ---------------------------------------------------------------------------
# Audit entry model
# ---------------------------------------------------------------------------

class AuditEntry(BaseModel):
    """A single audit log entry.

    Records who did what, when, in which practice, and links to the
    previous entry by hash.
    """

    entry_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique identifier for this audit entry (UUID).",
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="UTC timestamp of the event.",
    )
    practice_id: Optional[int] = Field(
        default=None,
        description="Practice the event belongs to; None for system-wide events.",
    )
    actor_id: str = Field(
        ...,
        description="User or service that caused the event.",
    )
    actor_role: str = Field(
        default="",
        description="Role name(s) of the actor at the time of the event.",
    )
    event_type: AuditEventType = Field(
        ...,
        description="The type of event being recorded.",
    )
    target_entity: str = Field(
        default="",
        description="Identifier of the target (permission key, role id, override id).",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Event-specific data.  Redacted on export.",
    )
    previous_hash: str = Field(
        default="",
        description=(
            "SHA-256 hash of the previous entry's canonical representation. "
            "Empty string for the first entry in the chain."
        ),
    )

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    def canonical_bytes(self) -> bytes:
        """Deterministic byte representation for hashing (sorted JSON)."""
        data = {
            "entry_id": self.entry_id,
            "timestamp": self.timestamp.isoformat(),
            "practice_id": self.practice_id,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "event_type": self.event_type.value,
            "target_entity": self.target_entity,
            "metadata": self.metadata,
            "previous_hash": self.previous_hash,
        }
        return json.dumps(data, sort_keys=True, default=str).encode("utf-8")

    def compute_hash(self) -> str:
        return hashlib.sha256(self.canonical_bytes()).hexdigest()


def create_decision_entry(
    context: PermissionContext,
    result: PermissionCheckResult,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> AuditEntry:
    """Build a ``PERMISSION_CHECKED`` entry for one decision.

    Args:
        context: The context that was checked.
        result: The resolver's decision.
        ip_address: Client address, when the caller knows it.
        user_agent: Client user agent, when the caller knows it.
        timestamp: Event time; defaults to now.

    Returns:
        An entry ready to ``append``.
    """
    metadata: dict[str, Any] = {
        "resource_type": context.resource_type,
        "action": context.action,
        "resource_id": context.resource_id,
        "allowed": result.allowed,
        "reason": result.reason,
        "missing_permissions": list(result.missing_permissions or []),
    }
    if ip_address is not None:
        metadata["ip_address"] = ip_address
    if user_agent is not None:
        metadata["user_agent"] = user_agent

    return AuditEntry(
        timestamp=timestamp or utcnow(),
        practice_id=context.practice_id,
        actor_id=context.user_id,
        actor_role=",".join(context.legacy_roles),
        event_type=AuditEventType.PERMISSION_CHECKED,
        target_entity=context.key,
        metadata=metadata,
    )


# ---------------------------------------------------------------------------
# PII redaction
# ---------------------------------------------------------------------------

# Patterns that might appear in free-text metadata.
_PII_PATTERNS: dict[str, re.Pattern] = {
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    "phone": re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"),
    "ipv4": re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b"),
}

# Keys whose values are replaced wholesale.
_PII_KEYS = {"name", "full_name", "first_name", "last_name", "owner_name",
             "client_name", "email", "phone", "address", "zip_code",
             "ip_address", "user_agent"}


def redact_pii_from_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Replace client and request identifying data with ``[REDACTED]`` markers.

    Applied by ``export_for_review`` before entries leave the practice.

    Args:
        metadata: The original metadata dictionary.

    Returns:
        A new dictionary; the input is not modified.
    """
    redacted: dict[str, Any] = {}
    for key, value in metadata.items():
        if key.lower() in _PII_KEYS:
            redacted[key] = "[REDACTED]"
        elif isinstance(value, str):
            redacted_value = value
            for pattern_name, pattern in _PII_PATTERNS.items():
                redacted_value = pattern.sub(f"[REDACTED-{pattern_name.upper()}]", redacted_value)
            redacted[key] = redacted_value
        elif isinstance(value, dict):
            redacted[key] = redact_pii_from_metadata(value)
        else:
            redacted[key] = value
    return redacted


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

class AuditLog:
    """Append-only audit log with SHA-256 hash chaining.

    * **Append-only writes** -- there is no update or delete.
    * **Hash chain verification** -- ``verify_chain()`` walks the log and
      returns the index of the first broken link.
    * **Practice isolation** -- ``query()`` and ``export_for_review()`` are
      always scoped by ``practice_id``.
    * **Thread-safe appends** -- the resolver may append from several
      request threads at once.
    """

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._hashes: list[str] = []  # parallel list of computed hashes
        self._lock = threading.Lock()

    def append(self, entry: AuditEntry) -> AuditEntry:
        """Link ``entry`` to the chain and store it.

        Returns:
            The entry with ``previous_hash`` populated.
        """
        with self._lock:
            entry.previous_hash = self._hashes[-1] if self._hashes else ""
            self._entries.append(entry)
            self._hashes.append(entry.compute_hash())
        return entry

    def verify_chain(self) -> tuple[bool, Optional[int]]:
        """Validate every hash link.

        Returns:
            ``(valid, broken_at)`` where ``broken_at`` is the index of the
            first broken link, or None if the chain is intact.
        """
        with self._lock:
            entries = list(self._entries)
            hashes = list(self._hashes)

        for i, entry in enumerate(entries):
            if i == 0:
                if entry.previous_hash != "":
                    return (False, 0)
            elif entry.previous_hash != entries[i - 1].compute_hash():
                return (False, i)

            if hashes[i] != entry.compute_hash():
                return (False, i)

        return (True, None)

    def query(
        self,
        practice_id: Optional[int],
        event_type: Optional[AuditEventType] = None,
        time_start: Optional[datetime] = None,
        time_end: Optional[datetime] = None,
        actor_id: Optional[str] = None,
    ) -> list[AuditEntry]:
        """Entries of one practice, optionally filtered.

        Args:
            practice_id: Required.  Only entries with exactly this practice
                id are returned (None selects system-wide entries).
            event_type: Optional filter by event type.
            time_start: Optional inclusive start time.
            time_end: Optional inclusive end time.
            actor_id: Optional filter by actor.

        Returns:
            Copies of the matching entries in append order.
        """
        time_start = _as_utc(time_start)
        time_end = _as_utc(time_end)
        with self._lock:
            entries = list(self._entries)

        results = []
        for entry in entries:
            if entry.practice_id != practice_id:
                continue
            if event_type is not None and entry.event_type != event_type:
                continue
            if time_start is not None and entry.timestamp < time_start:
                continue
            if time_end is not None and entry.timestamp > time_end:
                continue
            if actor_id is not None and entry.actor_id != actor_id:
                continue
            results.append(entry.model_copy(deep=True))
        return results

    def export_for_review(
        self,
        practice_id: Optional[int],
        time_start: Optional[datetime] = None,
        time_end: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """JSON-serializable bundle of one practice's entries, redacted.

        Includes the chain verification result.
        """
        entries = self.query(practice_id, time_start=time_start, time_end=time_end)

        redacted_entries = []
        for entry in entries:
            entry_dict = entry.model_dump(mode="json")
            entry_dict["metadata"] = redact_pii_from_metadata(entry.metadata)
            redacted_entries.append(entry_dict)

        chain_valid, broken_at = self.verify_chain()

        return {
            "export_metadata": {
                "practice_id": practice_id,
                "exported_at": utcnow().isoformat(),
                "entry_count": len(redacted_entries),
                "chain_integrity": "VALID" if chain_valid else f"BROKEN_AT_INDEX_{broken_at}",
            },
            "entries": redacted_entries,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
