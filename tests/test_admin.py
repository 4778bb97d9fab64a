"""
Tests for vetguard.admin -- audited role, assignment and override changes.

Covers: custom role lifecycle, system role protection, practice isolation,
immediate visibility of changes to the resolver, idempotent assignment,
soft revocation, override validation, and the audit trail of each change.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from vetguard.admin import (
    OverrideNotFoundError,
    RoleAdministrator,
    RoleNotFoundError,
    SystemRoleMutationError,
)
from vetguard.assignments import RoleAssignmentResolver
from vetguard.audit import AuditEventType, AuditLog
from vetguard.catalog import RoleCatalog
from vetguard.models import OverrideStatus, Permission, PermissionContext
from vetguard.resolver import PermissionResolver
from vetguard.stores import InMemoryAssignmentStore, InMemoryOverrideStore, InMemoryRoleStore

NOW = datetime(2026, 5, 4, 8, 30, tzinfo=timezone.utc)


class Harness:
    """Administrator and resolver sharing the same stores and catalog."""

    def __init__(self) -> None:
        self.roles = InMemoryRoleStore()
        self.assignments = InMemoryAssignmentStore()
        self.overrides = InMemoryOverrideStore()
        self.log = AuditLog()
        self.catalog = RoleCatalog(self.roles)
        self.admin = RoleAdministrator(
            self.catalog,
            self.roles,
            self.assignments,
            self.overrides,
            self.log,
            clock=lambda: NOW,
        )
        self.resolver = PermissionResolver(
            self.catalog,
            RoleAssignmentResolver(self.assignments, self.catalog),
            override_store=self.overrides,
            clock=lambda: NOW,
        )

    def allowed(self, user_id: str, resource: str, action: str, practice_id: int = 1) -> bool:
        context = PermissionContext(
            user_id=user_id, practice_id=practice_id, resource_type=resource, action=action
        )
        return self.resolver.check_permission(context).allowed

    def events(self, practice_id=1) -> list[AuditEventType]:
        return [e.event_type for e in self.log.query(practice_id)]


def _kennel_permissions() -> list[Permission]:
    return [Permission(resource="pets", action="READ")]


# ---------------------------------------------------------------------------
# 1. Custom role lifecycle
# ---------------------------------------------------------------------------

class TestCustomRoles:
    def test_create_role_audited_and_visible(self):
        h = Harness()
        role = h.admin.create_custom_role(
            "admin_1", 1, "Kennel Staff", "Looks after boarders", _kennel_permissions()
        )
        assert role.id.startswith("custom_kennel_staff_")
        assert role.practice_id == 1
        assert h.catalog.get_role(role.id, 1) is not None
        assert h.events() == [AuditEventType.ROLE_CREATED]
        entry = h.log.query(1)[0]
        assert entry.metadata == {"role_name": "Kennel Staff", "permissions": ["pets:READ"]}
        assert entry.timestamp == NOW

    def test_create_role_logged(self, caplog):
        h = Harness()
        with caplog.at_level("INFO", logger="vetguard.admin"):
            h.admin.create_custom_role("admin_1", 1, "Groomer", "", [])
        assert "created in practice 1" in caplog.text

    @pytest.mark.parametrize("name", ["", "  ", "VETERINARIAN", "SUPER_ADMIN"])
    def test_invalid_names_rejected(self, name):
        h = Harness()
        with pytest.raises(ValueError):
            h.admin.create_custom_role("admin_1", 1, name, "", [])
        assert len(h.log) == 0

    def test_update_role_takes_effect_immediately(self):
        h = Harness()
        role = h.admin.create_custom_role("admin_1", 1, "Kennel", "", _kennel_permissions())
        h.admin.assign_role("admin_1", "u1", role.id, practice_id=1)
        assert h.allowed("u1", "pets", "READ") is True

        h.admin.update_role(
            "admin_1", role.id, 1,
            permissions=[Permission(resource="pets", action="READ", granted=False)],
        )
        assert h.allowed("u1", "pets", "READ") is False
        update = h.log.query(1, event_type=AuditEventType.ROLE_UPDATED)[0]
        assert update.metadata == {"changed_fields": ["permissions"]}

    def test_update_keeps_unchanged_fields(self):
        h = Harness()
        role = h.admin.create_custom_role("admin_1", 1, "Kennel", "original", _kennel_permissions())
        updated = h.admin.update_role("admin_1", role.id, 1, display_name="Kennel Team")
        assert updated.description == "original"
        assert updated.display_name == "Kennel Team"
        assert [p.key for p in updated.permissions] == ["pets:READ"]

    def test_delete_role(self):
        h = Harness()
        role = h.admin.create_custom_role("admin_1", 1, "Kennel", "", _kennel_permissions())
        h.admin.assign_role("admin_1", "u1", role.id, practice_id=1)
        h.admin.delete_role("admin_1", role.id, 1)
        assert h.catalog.get_role(role.id, 1) is None
        assert h.allowed("u1", "pets", "READ") is False
        assert h.events()[-1] == AuditEventType.ROLE_DELETED


# ---------------------------------------------------------------------------
# 2. Protection and isolation
# ---------------------------------------------------------------------------

class TestProtection:
    @pytest.mark.parametrize("role_id", ["veterinarian", "SUPER_ADMIN"])
    def test_system_role_cannot_be_updated(self, role_id):
        h = Harness()
        with pytest.raises(SystemRoleMutationError):
            h.admin.update_role("admin_1", role_id, 1, description="hacked")

    def test_stored_system_role_cannot_be_deleted(self):
        h = Harness()
        h.roles.save_role(h.catalog.get_role("CASHIER"))
        with pytest.raises(SystemRoleMutationError):
            h.admin.delete_role("admin_1", "cashier", 1)

    def test_other_practice_role_reported_missing(self):
        h = Harness()
        role = h.admin.create_custom_role("admin_1", 1, "Kennel", "", _kennel_permissions())
        with pytest.raises(RoleNotFoundError):
            h.admin.update_role("admin_2", role.id, 2, description="mine now")
        with pytest.raises(RoleNotFoundError):
            h.admin.delete_role("admin_2", role.id, 2)

    def test_unknown_role(self):
        h = Harness()
        with pytest.raises(RoleNotFoundError):
            h.admin.delete_role("admin_1", "custom_ghost", 1)

    def test_cannot_assign_other_practice_role(self):
        h = Harness()
        role = h.admin.create_custom_role("admin_1", 1, "Kennel", "", _kennel_permissions())
        with pytest.raises(RoleNotFoundError):
            h.admin.assign_role("admin_2", "u9", role.id, practice_id=2)


# ---------------------------------------------------------------------------
# 3. Assignments
# ---------------------------------------------------------------------------

class TestAssignments:
    def test_assign_system_role(self):
        h = Harness()
        assignment = h.admin.assign_role("admin_1", "u1", "TECHNICIAN", practice_id=1)
        assert assignment.role_id == "technician"
        assert assignment.assigned_by == "admin_1"
        assert h.allowed("u1", "pets", "READ") is True
        assert h.events() == [AuditEventType.ROLE_ASSIGNED]

    def test_assign_is_idempotent(self):
        h = Harness()
        first = h.admin.assign_role("admin_1", "u1", "technician", practice_id=1)
        second = h.admin.assign_role("admin_1", "u1", "technician", practice_id=1)
        assert first.id == second.id
        assert h.events() == [AuditEventType.ROLE_ASSIGNED]

    def test_revoke_is_soft(self):
        h = Harness()
        h.admin.assign_role("admin_1", "u1", "technician", practice_id=1)
        assert h.admin.revoke_role("admin_2", "u1", "technician", practice_id=1) == 1
        assert h.allowed("u1", "pets", "READ") is False

        history = h.assignments.history("u1")
        assert len(history) == 1
        assert history[0].is_active is False
        assert history[0].revoked_by == "admin_2"
        assert h.events() == [AuditEventType.ROLE_ASSIGNED, AuditEventType.ROLE_REVOKED]

    def test_revoke_nothing_not_audited(self):
        h = Harness()
        assert h.admin.revoke_role("admin_1", "u1", "technician", practice_id=1) == 0
        assert len(h.log) == 0

    def test_unknown_role_rejected(self):
        h = Harness()
        with pytest.raises(RoleNotFoundError):
            h.admin.assign_role("admin_1", "u1", "JANITOR", practice_id=1)


# ---------------------------------------------------------------------------
# 4. Overrides
# ---------------------------------------------------------------------------

class TestOverrides:
    def test_override_denies_then_revoke_restores(self):
        h = Harness()
        h.admin.assign_role("admin_1", "u1", "technician", practice_id=1)
        override = h.admin.create_override(
            "admin_1", "u1", 1, "pets", "READ", granted=False, reason="Under investigation"
        )
        assert override.created_by == "admin_1"
        assert h.allowed("u1", "pets", "READ") is False

        revoked = h.admin.revoke_override("admin_1", override.id, 1)
        assert revoked.status == OverrideStatus.REVOKED
        assert h.allowed("u1", "pets", "READ") is True
        assert h.events()[-2:] == [
            AuditEventType.OVERRIDE_CREATED,
            AuditEventType.OVERRIDE_REVOKED,
        ]

    def test_override_audit_metadata(self):
        h = Harness()
        h.admin.create_override(
            "admin_1", "u1", 1, "backups", "EXPORT", granted=True, reason="Year-end audit"
        )
        entry = h.log.query(1, event_type=AuditEventType.OVERRIDE_CREATED)[0]
        assert entry.metadata["permission"] == "backups:EXPORT"
        assert entry.metadata["granted"] is True
        assert entry.metadata["expires_at"] is None

    @pytest.mark.parametrize("reason", ["", "   "])
    def test_reason_required(self, reason):
        h = Harness()
        with pytest.raises(ValueError, match="reason"):
            h.admin.create_override("admin_1", "u1", 1, "pets", "READ", True, reason)

    def test_expiry_must_be_in_future(self):
        h = Harness()
        with pytest.raises(ValueError, match="future"):
            h.admin.create_override(
                "admin_1", "u1", 1, "pets", "READ", True, "cover shift",
                expires_at=NOW - timedelta(minutes=1),
            )
        assert len(h.log) == 0

    def test_revoke_override_of_other_practice(self):
        h = Harness()
        override = h.admin.create_override("admin_1", "u1", 1, "pets", "READ", True, "cover")
        with pytest.raises(OverrideNotFoundError):
            h.admin.revoke_override("admin_2", override.id, 2)

    def test_revoke_unknown_override(self):
        h = Harness()
        with pytest.raises(OverrideNotFoundError):
            h.admin.revoke_override("admin_1", "nope", 1)
