"""
Tests for vetguard.access_report -- access review reports from the audit log.

Covers: decision counts and denial rate, grouping by reason, user and
missing permission, administrative change listing, practice isolation,
time windows, empty logs and serialization.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from vetguard.access_report import generate_access_report
from vetguard.audit import AuditEntry, AuditEventType, AuditLog, create_decision_entry
from vetguard.models import PermissionCheckResult, PermissionContext

BASE = datetime(2026, 2, 1, 9, 0, tzinfo=timezone.utc)


def _decision(
    log: AuditLog,
    user_id: str,
    key: str,
    allowed: bool,
    reason: str = "Permission not found in role",
    practice_id: int = 1,
    at: datetime = BASE,
) -> None:
    resource, action = key.split(":")
    context = PermissionContext(
        user_id=user_id, practice_id=practice_id, resource_type=resource, action=action
    )
    result = PermissionCheckResult(
        allowed=allowed,
        reason="Permission granted by role" if allowed else reason,
        missing_permissions=None if allowed else [key],
    )
    log.append(create_decision_entry(context, result, timestamp=at))


def _populated_log() -> AuditLog:
    log = AuditLog()
    _decision(log, "tech_1", "pets:READ", True)
    _decision(log, "tech_1", "billing:DELETE", False)
    _decision(log, "tech_2", "billing:DELETE", False)
    _decision(log, "tech_2", "pets:DELETE", False, reason="Permission explicitly denied")
    _decision(log, "other", "pets:DELETE", False, practice_id=2)
    log.append(AuditEntry(
        timestamp=BASE,
        practice_id=1,
        actor_id="admin_1",
        event_type=AuditEventType.ROLE_ASSIGNED,
        target_entity="technician",
    ))
    return log


# ---------------------------------------------------------------------------
# 1. Counts
# ---------------------------------------------------------------------------

class TestCounts:
    def test_totals_and_rate(self):
        report = generate_access_report(_populated_log(), 1)
        assert report.total_checks == 4
        assert report.denied_checks == 3
        assert report.allowed_checks == 1
        assert report.denial_rate == 0.75

    def test_grouping(self):
        report = generate_access_report(_populated_log(), 1)
        assert report.denials_by_reason == {
            "Permission not found in role": 2,
            "Permission explicitly denied": 1,
        }
        assert report.top_missing_permissions[0] == ("billing:DELETE", 2)
        assert report.denials_by_user == {"tech_2": 2, "tech_1": 1}

    def test_top_n_limits_missing_permissions(self):
        report = generate_access_report(_populated_log(), 1, top_n=1)
        assert report.top_missing_permissions == [("billing:DELETE", 2)]

    def test_admin_changes_listed(self):
        report = generate_access_report(_populated_log(), 1)
        assert len(report.admin_changes) == 1
        assert report.admin_changes[0]["event_type"] == "ROLE_ASSIGNED"
        assert report.admin_changes[0]["actor_id"] == "admin_1"


# ---------------------------------------------------------------------------
# 2. Scoping
# ---------------------------------------------------------------------------

class TestScoping:
    def test_other_practice_excluded(self):
        report = generate_access_report(_populated_log(), 2)
        assert report.total_checks == 1
        assert report.admin_changes == []

    def test_time_window(self):
        log = AuditLog()
        for hours in range(5):
            _decision(log, "tech_1", "billing:DELETE", False, at=BASE + timedelta(hours=hours))
        report = generate_access_report(
            log, 1, time_start=BASE + timedelta(hours=1), time_end=BASE + timedelta(hours=3)
        )
        assert report.total_checks == 3

    def test_empty_log(self):
        report = generate_access_report(AuditLog(), 1)
        assert report.total_checks == 0
        assert report.denial_rate == 0.0
        assert report.top_missing_permissions == []


# ---------------------------------------------------------------------------
# 3. Serialization
# ---------------------------------------------------------------------------

class TestSerialization:
    def test_to_dict(self):
        report = generate_access_report(_populated_log(), 1, time_start=BASE)
        data = report.to_dict()
        assert data["report_type"] == "Access Review Report"
        assert data["practice_id"] == 1
        assert data["time_start"] == BASE.isoformat()
        assert data["time_end"] is None
        assert data["denial_rate"] == 0.75
        assert data["top_missing_permissions"][0] == {"permission": "billing:DELETE", "count": 2}

    def test_repr(self):
        report = generate_access_report(_populated_log(), 1)
        assert repr(report) == "AccessReport(practice_id=1, checks=4, denied=3)"
