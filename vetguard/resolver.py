"""
Permission resolver: the decision engine of vetguard.

**Decision order** (first rule that applies wins):

1. An effective override for (user, resource, action) decides outright.
   Overrides beat every role rule, including the super administrator
   bypass, so an override can deny a super administrator.
2. A user holding the system-defined super administrator role is allowed.
   A practice custom role that reuses the name grants nothing extra.
3. The permissions of all the user's roles are concatenated, each role's
   own entries before its inherited ones.
4. The first entry whose resource is the requested resource (or one of its
   configured aliases) and whose action matches is the relevant entry.
5. No entry: denied, "Permission not found in role".
6. Entry with ``granted=False``: denied, "Permission explicitly denied".
7. Entry with conditions: every condition must pass.
8. Otherwise allowed, "Permission granted by role".

Every path returns a ``PermissionCheckResult``.  Failures of the role,
assignment or override stores degrade to cached or built-in data and are
logged at WARNING for operators; they never surface to the caller as an
exception and never look different from an ordinary denial.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Sequence, Union

from vetguard.assignments import RoleAssignmentResolver
from vetguard.audit import AuditEntry, AuditEventType, AuditLog, create_decision_entry
from vetguard.catalog import RoleCatalog
from vetguard.conditions import evaluate_conditions
from vetguard.config import DEFAULT_CONFIG, RBACConfig
from vetguard.models import (
    Permission,
    PermissionCheckResult,
    PermissionContext,
    PermissionOverride,
    PermissionRequirement,
    Role,
    utcnow,
)
from vetguard.roles import get_all_role_permissions, is_super_admin_role
from vetguard.stores import OverrideStore

logger = logging.getLogger(__name__)

REASON_OVERRIDE_GRANTED = "Permission granted by override"
REASON_OVERRIDE_DENIED = "Permission denied by override"
REASON_SUPER_ADMIN = "Permission granted by SUPER_ADMIN role"
REASON_UNKNOWN_ROLE = "Unknown user role"
REASON_NOT_FOUND = "Permission not found in role"
REASON_EXPLICIT_DENY = "Permission explicitly denied"
REASON_GRANTED = "Permission granted by role"
REASON_ALL_GRANTED = "All required permissions granted"
REASON_OWNERSHIP_REQUIRED = "Resource ownership required"

OwnerLookup = Callable[[str, str], Optional[Any]]
Requirement = Union[PermissionRequirement, tuple[str, str]]


class PermissionDeniedError(Exception):
    """Raised by ``require_permission`` when a check is denied."""

    def __init__(self, context: PermissionContext, result: PermissionCheckResult) -> None:
        self.context = context
        self.result = result
        super().__init__(
            f"User '{context.user_id}' is not permitted to perform "
            f"'{context.key}': {result.reason}"
        )


class PermissionResolver:
    """Answers "may this user do this action on this resource?".

    Args:
        catalog: Role definitions (dynamic roles with template fallback).
        assignments: Resolves a user's roles.  Built from ``catalog`` with
            no assignment store (legacy roles only) when omitted.
        override_store: Source of stored per-user overrides.
        config: Engine switches; ``DEFAULT_CONFIG`` when omitted.
        audit_log: Receives decision entries when
            ``config.enable_audit_logging`` is set.
        clock: Current UTC time, used to expire overrides.
    """

    def __init__(
        self,
        catalog: RoleCatalog,
        assignments: Optional[RoleAssignmentResolver] = None,
        override_store: Optional[OverrideStore] = None,
        config: Optional[RBACConfig] = None,
        audit_log: Optional[AuditLog] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config or DEFAULT_CONFIG
        self._catalog = catalog
        self._assignments = assignments or RoleAssignmentResolver(
            None,
            catalog,
            enable_inheritance=self.config.enable_inheritance,
            super_admin_role=self.config.super_admin_role,
        )
        self._override_store = override_store
        self._audit_log = audit_log
        self._clock = clock

    # -- role and override lookup --

    def _legacy_roles(self, context: PermissionContext) -> list[str]:
        legacy = context.legacy_roles
        if not legacy and self.config.default_role:
            legacy = [self.config.default_role]
        return legacy

    def resolve_roles(self, context: PermissionContext) -> list[Role]:
        """Roles that apply to the context's user in its practice."""
        return self._assignments.get_assigned_roles(
            context.user_id, context.practice_id, self._legacy_roles(context)
        )

    def _applies(
        self, override: PermissionOverride, context: PermissionContext, now: datetime
    ) -> bool:
        if override.user_id != context.user_id:
            return False
        if override.resource != context.resource_type or override.action != context.action:
            return False
        if (
            override.practice_id is not None
            and context.practice_id is not None
            and override.practice_id != context.practice_id
        ):
            return False
        return override.is_effective(now)

    def _stored_overrides(self, context: PermissionContext) -> list[PermissionOverride]:
        if self._override_store is None or context.practice_id is None:
            return []
        try:
            return list(self._override_store.get_active(
                context.user_id, context.practice_id, context.resource_type, context.action
            ))
        except Exception as exc:
            logger.warning(
                "PermissionResolver: override store failed for user %s (%s); "
                "continuing without overrides: %s",
                context.user_id,
                context.key,
                exc,
            )
            return []

    def find_override(
        self,
        context: PermissionContext,
        overrides: Optional[Iterable[PermissionOverride]] = None,
    ) -> Optional[PermissionOverride]:
        """First effective override for the context, caller-supplied ones first."""
        if not self.config.enable_overrides:
            return None
        now = self._clock()
        for override in list(overrides or []) + self._stored_overrides(context):
            if self._applies(override, context, now):
                return override
        return None

    def _aggregate_permissions(
        self, roles: Sequence[Role], practice_id: Optional[int]
    ) -> list[Permission]:
        def lookup(role_id: str) -> Optional[Role]:
            return self._catalog.get_role(role_id, practice_id)

        permissions: list[Permission] = []
        for role in roles:
            permissions.extend(
                get_all_role_permissions(role, self.config.enable_inheritance, lookup)
            )
        return permissions

    def get_effective_permissions(self, context: PermissionContext) -> list[Permission]:
        """All permissions the context's user holds through roles, in match order."""
        return self._aggregate_permissions(self.resolve_roles(context), context.practice_id)

    # -- decisions --

    def _evaluate(
        self,
        context: PermissionContext,
        overrides: Optional[Iterable[PermissionOverride]],
        roles: Optional[Sequence[Role]],
    ) -> PermissionCheckResult:
        key = context.key

        override = self.find_override(context, overrides)
        if override is not None:
            return PermissionCheckResult(
                allowed=override.granted,
                reason=REASON_OVERRIDE_GRANTED if override.granted else REASON_OVERRIDE_DENIED,
            )

        if roles is None:
            roles = self.resolve_roles(context)
        if not roles:
            return PermissionCheckResult(
                allowed=False, reason=REASON_UNKNOWN_ROLE, missing_permissions=[key]
            )
        if any(is_super_admin_role(role, self.config.super_admin_role) for role in roles):
            return PermissionCheckResult(allowed=True, reason=REASON_SUPER_ADMIN)

        candidates = self.config.candidate_resources(context.resource_type)
        relevant = next(
            (
                p for p in self._aggregate_permissions(roles, context.practice_id)
                if p.resource in candidates and p.action == context.action
            ),
            None,
        )

        if relevant is None:
            return PermissionCheckResult(
                allowed=False, reason=REASON_NOT_FOUND, missing_permissions=[key]
            )
        if not relevant.granted:
            return PermissionCheckResult(
                allowed=False, reason=REASON_EXPLICIT_DENY, missing_permissions=[key]
            )
        if relevant.conditions:
            outcome = evaluate_conditions(relevant.conditions, context.condition_context())
            if not outcome.passed:
                return PermissionCheckResult(
                    allowed=False,
                    reason=f"Condition failed: {outcome.reason}",
                    missing_permissions=[key],
                )
        return PermissionCheckResult(allowed=True, reason=REASON_GRANTED)

    def _record(self, context: PermissionContext, result: PermissionCheckResult) -> None:
        if not result.allowed:
            logger.debug(
                "Denied %s for user %s (practice %s): %s",
                context.key,
                context.user_id,
                context.practice_id,
                result.reason,
            )
        if self.config.enable_audit_logging and self._audit_log is not None:
            self._audit_log.append(
                create_decision_entry(context, result, timestamp=self._clock())
            )

    def check_permission(
        self,
        context: PermissionContext,
        overrides: Optional[Iterable[PermissionOverride]] = None,
        roles: Optional[Sequence[Role]] = None,
    ) -> PermissionCheckResult:
        """Decide a single (resource, action) request.

        Args:
            context: Who is asking, for what, in which practice.
            overrides: Overrides already held by the caller.  They are
                considered before those of the override store.
            roles: Pre-resolved roles.  When given, the assignment lookup
                is skipped.

        Returns:
            The decision.  Never raises for store failures or malformed
            conditions.
        """
        result = self._evaluate(context, overrides, roles)
        self._record(context, result)
        return result

    def check_multiple_permissions(
        self,
        base_context: PermissionContext,
        requirements: Iterable[Requirement],
        overrides: Optional[Iterable[PermissionOverride]] = None,
    ) -> PermissionCheckResult:
        """Allowed only if every requirement is allowed.

        Each requirement is checked independently with the resource and
        action of ``base_context`` replaced.  A denial lists every failing
        ``resource:action``, in requirement order.
        """
        overrides = list(overrides or [])
        roles = self.resolve_roles(base_context)

        failed: list[str] = []
        for requirement in requirements:
            if not isinstance(requirement, PermissionRequirement):
                resource_type, action = requirement
                requirement = PermissionRequirement(resource_type=resource_type, action=action)
            context = base_context.model_copy(
                update={"resource_type": requirement.resource_type, "action": requirement.action}
            )
            result = self.check_permission(context, overrides, roles)
            if not result.allowed and requirement.key not in failed:
                failed.append(requirement.key)

        if failed:
            return PermissionCheckResult(
                allowed=False,
                reason=f"Missing required permissions: {', '.join(failed)}",
                missing_permissions=failed,
            )
        return PermissionCheckResult(allowed=True, reason=REASON_ALL_GRANTED)

    def check_resource_ownership(
        self,
        context: PermissionContext,
        get_resource_owner: OwnerLookup,
        overrides: Optional[Iterable[PermissionOverride]] = None,
    ) -> PermissionCheckResult:
        """Basic check, then require ownership of ``context.resource_id``.

        ``get_resource_owner(resource_type, resource_id)`` returns the
        owning user id, or None when the resource has no known owner.
        Resolved roles named in ``config.ownership_bypass_roles`` act
        regardless of ownership.  The session role name counts only when
        it is what the roles resolved from.  If the lookup raises,
        ownership cannot be verified and only bypass roles are allowed.
        """
        roles = self.resolve_roles(context)
        result = self._evaluate(context, overrides, roles)
        if result.allowed and context.resource_id:
            try:
                owner = get_resource_owner(context.resource_type, context.resource_id)
                verified = not owner or str(owner) == context.user_id
            except Exception as exc:
                logger.warning(
                    "PermissionResolver: owner lookup failed for %s/%s: %s",
                    context.resource_type,
                    context.resource_id,
                    exc,
                )
                verified = False

            if not verified:
                held = {role.name for role in roles}
                if not held.intersection(self.config.ownership_bypass_roles):
                    result = PermissionCheckResult(
                        allowed=False,
                        reason=REASON_OWNERSHIP_REQUIRED,
                        missing_permissions=[f"{context.key}:ownership"],
                    )

        self._record(context, result)
        return result

    def require_permission(
        self,
        context: PermissionContext,
        overrides: Optional[Iterable[PermissionOverride]] = None,
    ) -> PermissionCheckResult:
        """Like ``check_permission`` but raise when denied.

        Raises:
            PermissionDeniedError: If the check is denied.
        """
        result = self.check_permission(context, overrides)
        if not result.allowed:
            raise PermissionDeniedError(context, result)
        return result

    def invalidate_role_cache(
        self, practice_id: Optional[int] = None, actor_id: str = "SYSTEM"
    ) -> None:
        """Drop cached roles for one practice, or all of them."""
        self._catalog.invalidate(practice_id)
        if self._audit_log is not None:
            self._audit_log.append(AuditEntry(
                timestamp=self._clock(),
                practice_id=practice_id,
                actor_id=actor_id,
                event_type=AuditEventType.ROLE_CACHE_INVALIDATED,
                target_entity="all" if practice_id is None else str(practice_id),
            ))


def create_permission_context(
    user_id: str,
    user_role: Union[str, list[str], None],
    resource_type: str,
    action: str,
    practice_id: Optional[int] = None,
    resource_id: Optional[str] = None,
    additional_context: Optional[dict[str, Any]] = None,
) -> PermissionContext:
    """Build a ``PermissionContext`` from request data."""
    return PermissionContext(
        user_id=user_id,
        user_role=user_role,
        resource_type=resource_type,
        action=action,
        practice_id=practice_id,
        resource_id=resource_id,
        additional_context=additional_context or {},
    )
