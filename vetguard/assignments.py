"""
Role assignment resolver.

Turns a user id into the list of ``Role`` objects that apply to them in a
practice.  Explicit assignments from the ``AssignmentStore`` are preferred.
Users who have not been migrated to explicit assignments still carry a
legacy role name on their session; when the store fails or yields nothing,
that name is resolved instead.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from vetguard.catalog import RoleCatalog
from vetguard.models import Permission, Role, RoleAssignment
from vetguard.roles import (
    ALL_PRACTICES_ID,
    RoleName,
    get_all_role_permissions,
    is_super_admin_role,
)
from vetguard.stores import AssignmentStore

logger = logging.getLogger(__name__)


def _in_scope(role: Role, practice_id: Optional[int]) -> bool:
    if role.is_system_defined:
        return True
    return practice_id is not None and role.practice_id == practice_id


class RoleAssignmentResolver:
    """Resolves the effective roles of a user within a practice."""

    def __init__(
        self,
        assignment_store: Optional[AssignmentStore],
        catalog: RoleCatalog,
        enable_inheritance: bool = True,
        super_admin_role: str = RoleName.SUPER_ADMIN.value,
    ) -> None:
        self._store = assignment_store
        self._catalog = catalog
        self.enable_inheritance = enable_inheritance
        self.super_admin_role = super_admin_role

    @property
    def catalog(self) -> RoleCatalog:
        return self._catalog

    def _fetch_assignments(
        self, user_id: str, practice_id: Optional[int]
    ) -> Optional[list[RoleAssignment]]:
        """Active assignments, or None when the store is missing or failing."""
        if self._store is None:
            return None
        try:
            return [
                a for a in self._store.get_active_assignments(user_id, practice_id)
                if a.is_active
            ]
        except Exception as exc:
            logger.warning(
                "RoleAssignmentResolver: assignment store failed for user %s "
                "(practice %s): %s",
                user_id,
                practice_id,
                exc,
            )
            return None

    def _resolve(self, name_or_id: str, practice_id: Optional[int]) -> Optional[Role]:
        return self._catalog.get_role(name_or_id, practice_id)

    def get_assigned_roles(
        self,
        user_id: str,
        practice_id: Optional[int] = None,
        legacy_roles: Optional[Iterable[str]] = None,
    ) -> list[Role]:
        """Roles that apply to ``user_id`` in ``practice_id``.

        Args:
            user_id: The user to resolve.
            practice_id: Practice of the request.  Custom roles of other
                practices are never returned; with None only system roles
                are.
            legacy_roles: Role name(s) carried by the user's session, used
                when no explicit assignment resolves.

        Returns:
            Distinct roles in assignment order.  Unknown role ids and names
            resolve to nothing, so the list may be empty.
        """
        roles: list[Role] = []
        seen: set[str] = set()

        def add(role: Optional[Role]) -> None:
            if role is None or role.id in seen or not _in_scope(role, practice_id):
                return
            seen.add(role.id)
            roles.append(role)

        for assignment in self._fetch_assignments(user_id, practice_id) or []:
            if practice_id is not None and assignment.practice_id not in (None, practice_id):
                continue
            add(self._resolve(assignment.role_id, practice_id))

        if roles:
            return roles

        for name in legacy_roles or []:
            add(self._resolve(name, practice_id))
        if roles:
            logger.debug(
                "RoleAssignmentResolver: user %s resolved from legacy role(s) %s",
                user_id,
                [r.name for r in roles],
            )
        return roles

    def has_any_role(
        self,
        user_id: str,
        target_role_names: Iterable[str],
        practice_id: Optional[int] = None,
        legacy_roles: Optional[Iterable[str]] = None,
    ) -> bool:
        """True iff any resolved role name is in ``target_role_names``."""
        targets = {getattr(name, "value", name) for name in target_role_names}
        return any(
            role.name in targets
            for role in self.get_assigned_roles(user_id, practice_id, legacy_roles)
        )

    def is_super_admin(
        self, user_id: str, legacy_roles: Optional[Iterable[str]] = None
    ) -> bool:
        return any(
            is_super_admin_role(role, self.super_admin_role)
            for role in self.get_assigned_roles(user_id, None, legacy_roles)
        )

    def role_permissions(self, role: Role, practice_id: Optional[int]) -> list[Permission]:
        """A role's own permissions followed by inherited ones, if enabled."""
        return get_all_role_permissions(
            role,
            self.enable_inheritance,
            lambda role_id: self._catalog.get_role(role_id, practice_id),
        )

    def get_accessible_practices(self, user_id: str) -> list[int]:
        """Practice ids the user holds roles in.

        Returns ``[ALL_PRACTICES_ID]`` for a super administrator.  A store
        failure yields an empty list.
        """
        assignments = self._fetch_assignments(user_id, None) or []
        practices: list[int] = []
        for assignment in assignments:
            role = self._resolve(assignment.role_id, assignment.practice_id)
            if role is None:
                continue
            if is_super_admin_role(role, self.super_admin_role):
                return [ALL_PRACTICES_ID]
            for pid in (role.practice_id, assignment.practice_id):
                if pid is not None and pid not in practices:
                    practices.append(pid)
        return practices

    def can_switch_practices(self, user_id: str) -> bool:
        """Super administrators, and roles granting ``practice_switching:MANAGE``.

        Inherited permissions count when inheritance is enabled.
        """
        assignments = self._fetch_assignments(user_id, None) or []
        for assignment in assignments:
            role = self._resolve(assignment.role_id, assignment.practice_id)
            if role is None:
                continue
            if is_super_admin_role(role, self.super_admin_role):
                return True
            permissions = self.role_permissions(role, assignment.practice_id)
            if any(
                p.resource == "practice_switching" and p.action == "MANAGE" and p.granted
                for p in permissions
            ):
                return True
        return False
