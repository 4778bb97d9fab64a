"""
Backing-store interfaces consumed by the authorization core.

The core never talks to a database directly.  It depends on three narrow
protocols -- roles, role assignments and permission overrides -- and must
keep working (with degraded freshness) when any of them fails.

The in-memory implementations below are complete, thread-safe reference
stores.  They back the test-suite and the example walkthrough, and are a
reasonable choice for single-process deployments seeded from YAML.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Iterable, Optional, Protocol, runtime_checkable

from vetguard.models import (
    OverrideStatus,
    PermissionOverride,
    Role,
    RoleAssignment,
    utcnow,
)


class StoreError(Exception):
    """Raised by a store when a read or write cannot be completed."""
    pass


class StoreUnavailableError(StoreError):
    """Raised when the backing store cannot be reached (network, timeout)."""
    pass


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

@runtime_checkable
class RoleStore(Protocol):
    """Source of dynamically stored roles."""

    def get_roles(self, practice_id: Optional[int]) -> list[Role]:
        """System roles plus the custom roles of ``practice_id``.

        With ``practice_id=None`` only system roles are returned.
        """
        ...


@runtime_checkable
class AssignmentStore(Protocol):
    """Source of user-to-role assignments.

    Practice scoping of the returned roles is applied by the caller, so a
    store may return more than the practice needs.
    """

    def get_active_assignments(
        self, user_id: str, practice_id: Optional[int]
    ) -> list[RoleAssignment]: ...


@runtime_checkable
class OverrideStore(Protocol):
    """Source of per-user permission overrides."""

    def get_active(
        self, user_id: str, practice_id: int, resource: str, action: str
    ) -> list[PermissionOverride]: ...


# Write side, used by the administration service only.

@runtime_checkable
class MutableRoleStore(RoleStore, Protocol):
    def get_role(self, role_id: str) -> Optional[Role]: ...

    def save_role(self, role: Role) -> Role: ...

    def delete_role(self, role_id: str) -> bool: ...


@runtime_checkable
class MutableAssignmentStore(AssignmentStore, Protocol):
    def assign(
        self,
        user_id: str,
        role_id: str,
        assigned_by: Optional[str] = None,
        practice_id: Optional[int] = None,
    ) -> RoleAssignment: ...

    def revoke(
        self,
        user_id: str,
        role_id: str,
        revoked_by: Optional[str] = None,
        practice_id: Optional[int] = None,
    ) -> int: ...


@runtime_checkable
class MutableOverrideStore(OverrideStore, Protocol):
    def get_override(self, override_id: str) -> Optional[PermissionOverride]: ...

    def create(self, override: PermissionOverride) -> PermissionOverride: ...

    def revoke(self, override_id: str) -> Optional[PermissionOverride]: ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------

class InMemoryRoleStore:
    """Dictionary-backed ``RoleStore`` with the mutations admin code needs."""

    def __init__(self, roles: Optional[Iterable[Role]] = None) -> None:
        self._roles: dict[str, Role] = {}
        self._lock = threading.Lock()
        for role in roles or []:
            self._roles[role.id] = role.model_copy(deep=True)

    def get_roles(self, practice_id: Optional[int]) -> list[Role]:
        with self._lock:
            return [
                role.model_copy(deep=True)
                for role in self._roles.values()
                if (role.is_system_defined and role.practice_id is None)
                or (practice_id is not None and role.practice_id == practice_id)
            ]

    def get_role(self, role_id: str) -> Optional[Role]:
        with self._lock:
            role = self._roles.get(role_id)
            return role.model_copy(deep=True) if role is not None else None

    def save_role(self, role: Role) -> Role:
        """Insert or replace a role by id."""
        with self._lock:
            self._roles[role.id] = role.model_copy(deep=True)
        return role

    def delete_role(self, role_id: str) -> bool:
        with self._lock:
            return self._roles.pop(role_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._roles)


class InMemoryAssignmentStore:
    """List-backed ``AssignmentStore``.  Revocation only flips ``is_active``."""

    def __init__(self, assignments: Optional[Iterable[RoleAssignment]] = None) -> None:
        self._assignments: list[RoleAssignment] = [
            a.model_copy(deep=True) for a in assignments or []
        ]
        self._lock = threading.Lock()

    def get_active_assignments(
        self, user_id: str, practice_id: Optional[int]
    ) -> list[RoleAssignment]:
        """Active assignments of ``user_id``.

        With a ``practice_id``, only unscoped assignments and those made in
        that practice are returned.  Without one, every active assignment is.
        """
        with self._lock:
            return [
                a.model_copy(deep=True)
                for a in self._assignments
                if a.user_id == user_id
                and a.is_active
                and (practice_id is None or a.practice_id in (None, practice_id))
            ]

    def assign(
        self,
        user_id: str,
        role_id: str,
        assigned_by: Optional[str] = None,
        practice_id: Optional[int] = None,
    ) -> RoleAssignment:
        """Create an assignment; returns the existing one if already active."""
        with self._lock:
            for existing in self._assignments:
                if (
                    existing.user_id == user_id
                    and existing.role_id == role_id
                    and existing.practice_id == practice_id
                    and existing.is_active
                ):
                    return existing.model_copy(deep=True)
            assignment = RoleAssignment(
                user_id=user_id,
                role_id=role_id,
                practice_id=practice_id,
                assigned_by=assigned_by,
            )
            self._assignments.append(assignment)
            return assignment.model_copy(deep=True)

    def revoke(
        self,
        user_id: str,
        role_id: str,
        revoked_by: Optional[str] = None,
        practice_id: Optional[int] = None,
    ) -> int:
        """Soft-revoke matching active assignments.

        Returns:
            Number of assignments revoked.
        """
        now = utcnow()
        revoked = 0
        with self._lock:
            for assignment in self._assignments:
                if (
                    assignment.user_id == user_id
                    and assignment.role_id == role_id
                    and assignment.practice_id == practice_id
                    and assignment.is_active
                ):
                    assignment.is_active = False
                    assignment.revoked_at = now
                    assignment.revoked_by = revoked_by
                    revoked += 1
        return revoked

    def history(self, user_id: str) -> list[RoleAssignment]:
        """Every assignment ever made to ``user_id``, revoked ones included."""
        with self._lock:
            return [a.model_copy(deep=True) for a in self._assignments if a.user_id == user_id]


class InMemoryOverrideStore:
    """List-backed ``OverrideStore``."""

    def __init__(
        self, overrides: Optional[Iterable[PermissionOverride]] = None
    ) -> None:
        self._overrides: list[PermissionOverride] = [
            o.model_copy(deep=True) for o in overrides or []
        ]
        self._lock = threading.Lock()

    def get_active(
        self,
        user_id: str,
        practice_id: int,
        resource: str,
        action: str,
        now: Optional[datetime] = None,
    ) -> list[PermissionOverride]:
        now = now or utcnow()
        with self._lock:
            return [
                o.model_copy(deep=True)
                for o in self._overrides
                if o.user_id == user_id
                and o.practice_id == practice_id
                and o.resource == resource
                and o.action == action
                and o.is_effective(now)
            ]

    def get_override(self, override_id: str) -> Optional[PermissionOverride]:
        with self._lock:
            for override in self._overrides:
                if override.id == override_id:
                    return override.model_copy(deep=True)
        return None

    def create(self, override: PermissionOverride) -> PermissionOverride:
        with self._lock:
            self._overrides.append(override.model_copy(deep=True))
        return override

    def revoke(self, override_id: str) -> Optional[PermissionOverride]:
        """Mark an override revoked.  Returns the updated record, if found."""
        with self._lock:
            for override in self._overrides:
                if override.id == override_id:
                    override.status = OverrideStatus.REVOKED
                    return override.model_copy(deep=True)
        return None

    def list_for_user(
        self, user_id: str, practice_id: Optional[int] = None
    ) -> list[PermissionOverride]:
        with self._lock:
            return [
                o.model_copy(deep=True)
                for o in self._overrides
                if o.user_id == user_id
                and (practice_id is None or o.practice_id == practice_id)
            ]
