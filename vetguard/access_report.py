"""
Access review report.

Summarizes one practice's permission decisions and administrative changes
from the audit log over a time window: how many checks were made, how many
were denied and why, which permissions users most often lacked, and who
was denied most.  Practice administrators use it to spot roles that are
missing a permission staff genuinely need, and requests that should not be
happening at all.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Any, Optional

from vetguard.audit import AuditEventType, AuditLog
from vetguard.models import utcnow

_ADMIN_EVENTS = (
    AuditEventType.ROLE_CREATED,
    AuditEventType.ROLE_UPDATED,
    AuditEventType.ROLE_DELETED,
    AuditEventType.ROLE_ASSIGNED,
    AuditEventType.ROLE_REVOKED,
    AuditEventType.OVERRIDE_CREATED,
    AuditEventType.OVERRIDE_REVOKED,
)


class AccessReport:
    """Aggregated permission activity for one practice."""

    def __init__(
        self,
        practice_id: Optional[int],
        time_start: Optional[datetime],
        time_end: Optional[datetime],
        total_checks: int,
        denied_checks: int,
        denials_by_reason: dict[str, int],
        top_missing_permissions: list[tuple[str, int]],
        denials_by_user: dict[str, int],
        admin_changes: list[dict[str, Any]],
        generated_at: str,
    ) -> None:
        self.practice_id = practice_id
        self.time_start = time_start
        self.time_end = time_end
        self.total_checks = total_checks
        self.denied_checks = denied_checks
        self.denials_by_reason = denials_by_reason
        self.top_missing_permissions = top_missing_permissions
        self.denials_by_user = denials_by_user
        self.admin_changes = admin_changes
        self.generated_at = generated_at

    @property
    def allowed_checks(self) -> int:
        return self.total_checks - self.denied_checks

    @property
    def denial_rate(self) -> float:
        if self.total_checks == 0:
            return 0.0
        return self.denied_checks / self.total_checks

    def to_dict(self) -> dict[str, Any]:
        """Serialize the report to a dictionary."""
        return {
            "report_type": "Access Review Report",
            "practice_id": self.practice_id,
            "time_start": self.time_start.isoformat() if self.time_start else None,
            "time_end": self.time_end.isoformat() if self.time_end else None,
            "total_checks": self.total_checks,
            "allowed_checks": self.allowed_checks,
            "denied_checks": self.denied_checks,
            "denial_rate": round(self.denial_rate, 4),
            "denials_by_reason": self.denials_by_reason,
            "top_missing_permissions": [
                {"permission": key, "count": count}
                for key, count in self.top_missing_permissions
            ],
            "denials_by_user": self.denials_by_user,
            "admin_changes": self.admin_changes,
            "generated_at": self.generated_at,
        }

    def __repr__(self) -> str:
        return (
            f"AccessReport(practice_id={self.practice_id}, "
            f"checks={self.total_checks}, denied={self.denied_checks})"
        )


def generate_access_report(
    audit_log: AuditLog,
    practice_id: Optional[int],
    time_start: Optional[datetime] = None,
    time_end: Optional[datetime] = None,
    top_n: int = 10,
) -> AccessReport:
    """Build an ``AccessReport`` from the audit log.

    Only ``PERMISSION_CHECKED`` entries contribute to the decision counts,
    so decision auditing must be enabled on the resolver for them to be
    non-zero.  Administrative changes are always listed.

    Args:
        audit_log: The log to read.
        practice_id: Practice to report on.
        time_start: Optional inclusive start of the window.
        time_end: Optional inclusive end of the window.
        top_n: How many missing permissions to list.

    Returns:
        The report.
    """
    decisions = audit_log.query(
        practice_id,
        event_type=AuditEventType.PERMISSION_CHECKED,
        time_start=time_start,
        time_end=time_end,
    )

    reasons: Counter[str] = Counter()
    missing: Counter[str] = Counter()
    users: Counter[str] = Counter()
    denied = 0
    for entry in decisions:
        if entry.metadata.get("allowed"):
            continue
        denied += 1
        reasons[entry.metadata.get("reason") or "unspecified"] += 1
        users[entry.actor_id] += 1
        missing.update(entry.metadata.get("missing_permissions") or [])

    admin_changes = [
        {
            "timestamp": entry.timestamp.isoformat(),
            "event_type": entry.event_type.value,
            "actor_id": entry.actor_id,
            "target_entity": entry.target_entity,
        }
        for entry in audit_log.query(practice_id, time_start=time_start, time_end=time_end)
        if entry.event_type in _ADMIN_EVENTS
    ]

    return AccessReport(
        practice_id=practice_id,
        time_start=time_start,
        time_end=time_end,
        total_checks=len(decisions),
        denied_checks=denied,
        denials_by_reason=dict(reasons.most_common()),
        top_missing_permissions=missing.most_common(top_n),
        denials_by_user=dict(users.most_common()),
        admin_changes=admin_changes,
        generated_at=utcnow().isoformat(),
    )
