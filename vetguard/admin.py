"""
Role administration service.

Creates, edits and deletes practice custom roles, assigns and revokes roles,
and manages per-user overrides.  Every change is written to the audit log,
and every change to a role definition invalidates the catalog cache for the
practice at once, so the next permission check sees it.

**Key properties:**

* System roles cannot be edited or deleted.
* A practice can only touch its own custom roles; another practice's role
  is reported as not found.
* Assigning an already-assigned role is a no-op.  Revocation is soft.
* An override must carry a reason and may not start out expired.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from vetguard.audit import AuditEntry, AuditEventType, AuditLog
from vetguard.catalog import RoleCatalog
from vetguard.models import (
    Permission,
    PermissionOverride,
    Role,
    RoleAssignment,
    utcnow,
)
from vetguard.roles import DEFAULT_ROLES, create_custom_role, get_template_role
from vetguard.stores import MutableAssignmentStore, MutableOverrideStore, MutableRoleStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class RoleNotFoundError(Exception):
    """Raised when a role does not exist in the caller's practice."""
    pass


class SystemRoleMutationError(Exception):
    """Raised on an attempt to edit or delete a system-defined role."""
    pass


class OverrideNotFoundError(Exception):
    """Raised when an override does not exist in the caller's practice."""
    pass


# ---------------------------------------------------------------------------
# Administrator
# ---------------------------------------------------------------------------

class RoleAdministrator:
    """Audited write operations on roles, assignments and overrides."""

    def __init__(
        self,
        catalog: RoleCatalog,
        role_store: MutableRoleStore,
        assignment_store: MutableAssignmentStore,
        override_store: MutableOverrideStore,
        audit_log: AuditLog,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._catalog = catalog
        self._roles = role_store
        self._assignments = assignment_store
        self._overrides = override_store
        self._audit_log = audit_log
        self._clock = clock

    # -- helpers --

    def _emit_audit(
        self,
        event_type: AuditEventType,
        actor_id: str,
        practice_id: Optional[int],
        target_entity: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        self._audit_log.append(AuditEntry(
            timestamp=self._clock(),
            practice_id=practice_id,
            actor_id=actor_id,
            actor_role="ADMIN",
            event_type=event_type,
            target_entity=target_entity,
            metadata=metadata or {},
        ))

    def _get_custom_role(self, role_id: str, practice_id: int) -> Role:
        role = self._roles.get_role(role_id)
        if (role is not None and role.is_system_defined) or (
            role is None and get_template_role(role_id) is not None
        ):
            raise SystemRoleMutationError(
                f"Role '{role_id}' is system-defined and cannot be modified."
            )
        if role is None or role.practice_id != practice_id:
            raise RoleNotFoundError(
                f"No custom role '{role_id}' in practice {practice_id}."
            )
        return role

    # -- role definitions --

    def create_custom_role(
        self,
        actor_id: str,
        practice_id: int,
        name: str,
        description: str,
        permissions: Iterable[Permission],
        display_name: str = "",
        inherits_from: Optional[list[str]] = None,
    ) -> Role:
        """Create a custom role owned by ``practice_id``.

        Raises:
            ValueError: If ``name`` is blank or is the name of a system role.
        """
        if not name or not name.strip():
            raise ValueError("Custom role name must not be blank.")
        if name in DEFAULT_ROLES:
            raise ValueError(f"'{name}' is reserved for a system role.")

        role = create_custom_role(
            name=name,
            description=description,
            permissions=permissions,
            practice_id=practice_id,
            display_name=display_name,
            inherits_from=inherits_from,
        )
        self._roles.save_role(role)
        self._catalog.invalidate(practice_id)
        self._emit_audit(
            AuditEventType.ROLE_CREATED,
            actor_id,
            practice_id,
            role.id,
            {"role_name": role.name, "permissions": [p.key for p in role.permissions]},
        )
        logger.info("Custom role %s created in practice %s", role.id, practice_id)
        return role

    def update_role(
        self,
        actor_id: str,
        role_id: str,
        practice_id: int,
        description: Optional[str] = None,
        display_name: Optional[str] = None,
        permissions: Optional[Iterable[Permission]] = None,
        inherits_from: Optional[list[str]] = None,
    ) -> Role:
        """Replace the given fields of a custom role; None leaves a field as is.

        Raises:
            RoleNotFoundError: If the role is not a custom role of the practice.
            SystemRoleMutationError: If the role is system-defined.
        """
        role = self._get_custom_role(role_id, practice_id)
        changes: dict[str, Any] = {}
        if description is not None:
            changes["description"] = description
        if display_name is not None:
            changes["display_name"] = display_name
        if permissions is not None:
            changes["permissions"] = [p.model_copy(deep=True) for p in permissions]
        if inherits_from is not None:
            changes["inherits_from"] = list(inherits_from)

        updated = role.model_copy(update=changes, deep=True)
        self._roles.save_role(updated)
        self._catalog.invalidate(practice_id)
        self._emit_audit(
            AuditEventType.ROLE_UPDATED,
            actor_id,
            practice_id,
            role_id,
            {"changed_fields": sorted(changes)},
        )
        return updated

    def delete_role(self, actor_id: str, role_id: str, practice_id: int) -> None:
        """Delete a custom role.

        Assignments that point at it stop resolving to anything.

        Raises:
            RoleNotFoundError: If the role is not a custom role of the practice.
            SystemRoleMutationError: If the role is system-defined.
        """
        role = self._get_custom_role(role_id, practice_id)
        self._roles.delete_role(role_id)
        self._catalog.invalidate(practice_id)
        self._emit_audit(
            AuditEventType.ROLE_DELETED, actor_id, practice_id, role_id, {"role_name": role.name}
        )

    # -- assignments --

    def assign_role(
        self,
        actor_id: str,
        user_id: str,
        role_id: str,
        practice_id: Optional[int] = None,
    ) -> RoleAssignment:
        """Assign a role to a user; returns the existing assignment if any.

        Raises:
            RoleNotFoundError: If the role does not resolve in the practice.
        """
        role = self._catalog.get_role(role_id, practice_id)
        if role is None or (not role.is_system_defined and role.practice_id != practice_id):
            raise RoleNotFoundError(f"No role '{role_id}' in practice {practice_id}.")

        existing = {
            a.id for a in self._assignments.get_active_assignments(user_id, practice_id)
        }
        assignment = self._assignments.assign(
            user_id, role.id, assigned_by=actor_id, practice_id=practice_id
        )
        if assignment.id not in existing:
            self._emit_audit(
                AuditEventType.ROLE_ASSIGNED,
                actor_id,
                practice_id,
                role.id,
                {"user_id": user_id, "assignment_id": assignment.id},
            )
        return assignment

    def revoke_role(
        self,
        actor_id: str,
        user_id: str,
        role_id: str,
        practice_id: Optional[int] = None,
    ) -> int:
        """Soft-revoke a user's active assignment of a role.

        Returns:
            Number of assignments revoked (0 if none was active).
        """
        revoked = self._assignments.revoke(
            user_id, role_id, revoked_by=actor_id, practice_id=practice_id
        )
        if revoked:
            self._emit_audit(
                AuditEventType.ROLE_REVOKED,
                actor_id,
                practice_id,
                role_id,
                {"user_id": user_id, "revoked": revoked},
            )
        return revoked

    # -- overrides --

    def create_override(
        self,
        actor_id: str,
        user_id: str,
        practice_id: int,
        resource: str,
        action: str,
        granted: bool,
        reason: str,
        expires_at: Optional[datetime] = None,
    ) -> PermissionOverride:
        """Create a per-user override in ``practice_id``.

        Raises:
            ValueError: If ``reason`` is blank or ``expires_at`` is not in
                the future.
        """
        if not reason or not reason.strip():
            raise ValueError("An override requires a reason.")
        override = PermissionOverride(
            user_id=user_id,
            resource=resource,
            action=action,
            granted=granted,
            reason=reason,
            practice_id=practice_id,
            created_at=self._clock(),
            created_by=actor_id,
            expires_at=expires_at,
        )
        if override.expires_at is not None and not override.is_effective(self._clock()):
            raise ValueError("expires_at must be in the future.")

        self._overrides.create(override)
        self._emit_audit(
            AuditEventType.OVERRIDE_CREATED,
            actor_id,
            practice_id,
            override.id,
            {
                "user_id": user_id,
                "permission": f"{override.resource}:{override.action}",
                "granted": granted,
                "reason": reason,
                "expires_at": override.expires_at.isoformat() if override.expires_at else None,
            },
        )
        return override

    def revoke_override(
        self, actor_id: str, override_id: str, practice_id: int
    ) -> PermissionOverride:
        """Revoke an override of ``practice_id``.

        Raises:
            OverrideNotFoundError: If no such override exists in the practice.
        """
        current = self._overrides.get_override(override_id)
        if current is None or current.practice_id != practice_id:
            raise OverrideNotFoundError(
                f"No override '{override_id}' in practice {practice_id}."
            )
        revoked = self._overrides.revoke(override_id)
        self._emit_audit(
            AuditEventType.OVERRIDE_REVOKED,
            actor_id,
            practice_id,
            override_id,
            {"user_id": current.user_id},
        )
        return revoked if revoked is not None else current

