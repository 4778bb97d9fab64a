"""
Built-in role templates for vetguard.

These roles exist in every practice, whether or not the practice database
has been seeded.  They are the known-safe fallback when dynamic role data
cannot be loaded.

**Roles:**

* SUPER_ADMIN            -- complete system access across all practices.
* PRACTICE_ADMINISTRATOR -- full management of one practice.
* ADMINISTRATOR          -- administrative access across several practices.
* PRACTICE_ADMIN         -- alternative practice admin role.
* PRACTICE_MANAGER       -- operations and staff coordination.
* OFFICE_MANAGER         -- office operations.
* VETERINARIAN           -- medical care and patient management.
* TECHNICIAN             -- veterinary support and basic medical functions.
* RECEPTIONIST           -- front desk and billing.
* ACCOUNTANT             -- financial management.
* CASHIER                -- payment processing.
* CLIENT                 -- pet owner, limited to their own records.
"""

from __future__ import annotations

import enum
import re
import uuid
from typing import Any, Callable, Iterable, Optional, TypeVar

from vetguard.models import (
    Condition,
    ConditionOperator,
    Permission,
    ResourceType,
    Role,
    StandardAction,
)
from vetguard.permissions import PERMISSION_TEMPLATES


class RoleName(str, enum.Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    PRACTICE_ADMINISTRATOR = "PRACTICE_ADMINISTRATOR"
    ADMINISTRATOR = "ADMINISTRATOR"
    PRACTICE_ADMIN = "PRACTICE_ADMIN"
    PRACTICE_MANAGER = "PRACTICE_MANAGER"
    OFFICE_MANAGER = "OFFICE_MANAGER"
    VETERINARIAN = "VETERINARIAN"
    TECHNICIAN = "TECHNICIAN"
    RECEPTIONIST = "RECEPTIONIST"
    ACCOUNTANT = "ACCOUNTANT"
    CASHIER = "CASHIER"
    CLIENT = "CLIENT"


# ---------------------------------------------------------------------------
# Role families
# ---------------------------------------------------------------------------

ADMINISTRATIVE_ROLES: frozenset[str] = frozenset({
    RoleName.SUPER_ADMIN.value,
    RoleName.PRACTICE_ADMINISTRATOR.value,
    RoleName.ADMINISTRATOR.value,
    RoleName.PRACTICE_ADMIN.value,
    RoleName.PRACTICE_MANAGER.value,
    RoleName.OFFICE_MANAGER.value,
})

# Roles that may act on a resource regardless of who owns it.
OWNERSHIP_BYPASS_ROLES: tuple[str, ...] = (
    RoleName.SUPER_ADMIN.value,
    RoleName.PRACTICE_ADMINISTRATOR.value,
    RoleName.ADMINISTRATOR.value,
)

USER_MANAGER_ROLES: frozenset[str] = frozenset({
    RoleName.SUPER_ADMIN.value,
    RoleName.PRACTICE_ADMINISTRATOR.value,
    RoleName.ADMINISTRATOR.value,
    RoleName.PRACTICE_ADMIN.value,
})

FINANCIAL_ROLES: frozenset[str] = USER_MANAGER_ROLES | {
    RoleName.ACCOUNTANT.value,
    RoleName.CASHIER.value,
    RoleName.RECEPTIONIST.value,
    RoleName.PRACTICE_MANAGER.value,
    RoleName.OFFICE_MANAGER.value,
}

MEDICAL_ROLES: frozenset[str] = USER_MANAGER_ROLES | {
    RoleName.VETERINARIAN.value,
    RoleName.TECHNICIAN.value,
}


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

R = ResourceType
A = StandardAction


def _owned_by_user(field: str) -> list[Condition]:
    return [Condition(field=field, operator=ConditionOperator.EQUALS, value="${userId}")]


def _template_permissions(*template_names: str) -> list[Permission]:
    permissions: list[Permission] = []
    for template_name in template_names:
        permissions.extend(
            p.model_copy(deep=True) for p in PERMISSION_TEMPLATES[template_name].permissions
        )
    return permissions


def _system_role(
    name: RoleName,
    display_name: str,
    description: str,
    permissions: list[Permission],
) -> Role:
    return Role(
        id=name.value.lower(),
        name=name.value,
        display_name=display_name,
        description=description,
        is_system_defined=True,
        practice_id=None,
        permissions=permissions,
        inherits_from=list(ROLE_HIERARCHY.get(name.value.lower(), [])),
    )


# Parent role ids, by child role id.
ROLE_HIERARCHY: dict[str, list[str]] = {
    "practice_manager": ["receptionist"],
    "office_manager": ["receptionist"],
    "accountant": ["cashier"],
}

_CLIENT_PERMISSIONS = [
    Permission(resource=R.PET, action=A.READ, conditions=_owned_by_user("ownerId")),
    Permission(resource=R.APPOINTMENT, action=A.READ, conditions=_owned_by_user("clientId")),
    Permission(resource=R.APPOINTMENT, action=A.CREATE),
    Permission(resource=R.MEDICAL_RECORD, action=A.READ, conditions=_owned_by_user("clientId")),
    Permission(resource=R.INVOICE, action=A.READ, conditions=_owned_by_user("clientId")),
    Permission(resource=R.PAYMENT, action=A.CREATE),
    Permission(resource=R.MESSAGE, action=A.READ),
    Permission(resource=R.MESSAGE, action=A.CREATE),
    Permission(resource=R.NOTIFICATION, action=A.READ),
]

_ACCOUNTANT_PERMISSIONS = [
    Permission(resource=R.BILLING, action=A.MANAGE),
    Permission(resource=R.INVOICE, action=A.MANAGE),
    Permission(resource=R.PAYMENT, action=A.MANAGE),
    Permission(resource=R.INSURANCE, action=A.MANAGE),
    Permission(resource=R.PRICING, action=A.UPDATE),
    Permission(resource=R.REPORT, action=A.READ),
    Permission(resource=R.ANALYTICS, action=A.READ),
    Permission(resource=R.PATIENT, action=A.READ),
    Permission(resource=R.PET, action=A.READ),
    Permission(resource=R.APPOINTMENT, action=A.READ),
]

_CASHIER_PERMISSIONS = [
    Permission(resource=R.PAYMENT, action=A.CREATE),
    Permission(resource=R.PAYMENT, action=A.READ),
    Permission(resource=R.INVOICE, action=A.READ),
    Permission(resource=R.BILLING, action=A.READ),
    Permission(resource=R.PATIENT, action=A.READ),
    Permission(resource=R.PET, action=A.READ),
    Permission(resource=R.APPOINTMENT, action=A.READ),
]

_OFFICE_MANAGER_EXTRAS = [
    Permission(resource=R.STAFF, action=A.READ),
    Permission(resource=R.SCHEDULE, action=A.MANAGE),
    Permission(resource=R.ROOM, action=A.MANAGE),
    Permission(resource=R.EQUIPMENT, action=A.READ),
    Permission(resource=R.SUPPLIER, action=A.MANAGE),
    Permission(resource=R.PURCHASE_ORDER, action=A.CREATE),
    Permission(resource=R.REPORT, action=A.READ),
]

# Resources a practice manager does not administer.
_PRACTICE_MANAGER_EXCLUDED = {R.USER.value, R.ROLE.value, R.SYSTEM_SETTING.value}

DEFAULT_ROLES: dict[str, Role] = {
    role.name: role
    for role in (
        _system_role(
            RoleName.SUPER_ADMIN, "Super Administrator",
            "Complete system access across all practices",
            _template_permissions("SUPER_ADMIN_FULL"),
        ),
        _system_role(
            RoleName.PRACTICE_ADMINISTRATOR, "Practice Administrator",
            "Full practice management within assigned practice",
            _template_permissions("PRACTICE_ADMIN_FULL"),
        ),
        _system_role(
            RoleName.ADMINISTRATOR, "Multi-Practice Administrator",
            "Administrative access across multiple practices",
            _template_permissions("PRACTICE_ADMIN_FULL"),
        ),
        _system_role(
            RoleName.PRACTICE_ADMIN, "Practice Admin (Alternative)",
            "Alternative practice admin role",
            _template_permissions("PRACTICE_ADMIN_FULL"),
        ),
        _system_role(
            RoleName.PRACTICE_MANAGER, "Practice Manager",
            "Practice operations and staff coordination",
            _template_permissions("RECEPTIONIST_BASIC") + [
                p for p in _template_permissions("PRACTICE_ADMIN_FULL")
                if p.resource not in _PRACTICE_MANAGER_EXCLUDED
            ],
        ),
        _system_role(
            RoleName.OFFICE_MANAGER, "Office Manager",
            "Office operations and coordination",
            _template_permissions("RECEPTIONIST_BASIC") + _OFFICE_MANAGER_EXTRAS,
        ),
        _system_role(
            RoleName.VETERINARIAN, "Veterinarian",
            "Full medical care and patient management",
            _template_permissions("VETERINARIAN_BASIC"),
        ),
        _system_role(
            RoleName.TECHNICIAN, "Veterinary Technician",
            "Veterinary support and basic medical functions",
            _template_permissions("TECHNICIAN_BASIC"),
        ),
        _system_role(
            RoleName.RECEPTIONIST, "Receptionist",
            "Front desk operations and customer service",
            _template_permissions("RECEPTIONIST_BASIC"),
        ),
        _system_role(
            RoleName.ACCOUNTANT, "Accountant",
            "Financial management and billing",
            _ACCOUNTANT_PERMISSIONS,
        ),
        _system_role(
            RoleName.CASHIER, "Cashier",
            "Payment processing and basic billing",
            _CASHIER_PERMISSIONS,
        ),
        _system_role(
            RoleName.CLIENT, "Client",
            "Pet owner with limited access to their records",
            _CLIENT_PERMISSIONS,
        ),
    )
}


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_template_role(name_or_id: str) -> Optional[Role]:
    """Return a deep copy of a built-in role by name or id.

    Args:
        name_or_id: Role name (``'CLIENT'``) or role id (``'client'``).

    Returns:
        The template role, or None if no built-in role matches.
    """
    role = DEFAULT_ROLES.get(name_or_id)
    if role is None:
        role = next((r for r in DEFAULT_ROLES.values() if r.id == name_or_id), None)
    return role.model_copy(deep=True) if role is not None else None


def get_system_roles() -> list[Role]:
    """Return copies of every built-in role."""
    return [role.model_copy(deep=True) for role in DEFAULT_ROLES.values()]


def get_all_role_permissions(
    role: Role,
    enable_inheritance: bool = True,
    lookup: Optional[Callable[[str], Optional[Role]]] = None,
) -> list[Permission]:
    """Return a role's permissions followed by those it inherits.

    The role's own entries come first.  An inherited entry is appended only
    if no entry for the same (resource, action) is already present, so the
    child role always takes precedence over its parents.

    Args:
        role: The role to expand.
        enable_inheritance: When False only the role's own permissions are
            returned.
        lookup: Resolves a parent role id.  Defaults to the built-in
            templates.

    Returns:
        Ordered list of permissions.
    """
    lookup = lookup or get_template_role
    return _collect_permissions(role, enable_inheritance, lookup, seen={role.id})


def _collect_permissions(
    role: Role,
    enable_inheritance: bool,
    lookup: Callable[[str], Optional[Role]],
    seen: set[str],
) -> list[Permission]:
    permissions = list(role.permissions)
    if not enable_inheritance:
        return permissions

    present = {(p.resource, p.action) for p in permissions}
    for parent_id in role.inherits_from:
        if parent_id in seen:
            continue  # cycle
        parent = lookup(parent_id)
        if parent is None:
            continue
        seen.add(parent_id)
        for inherited in _collect_permissions(parent, True, lookup, seen):
            pair = (inherited.resource, inherited.action)
            if pair not in present:
                present.add(pair)
                permissions.append(inherited)
    return permissions


def role_has_permission(role: Role, resource: str, action: str) -> bool:
    """True if the role's own permissions grant (resource, action)."""
    return any(
        p.resource == resource and p.action == action and p.granted
        for p in role.permissions
    )


def create_custom_role(
    name: str,
    description: str,
    permissions: Iterable[Permission],
    practice_id: int,
    display_name: str = "",
    inherits_from: Optional[list[str]] = None,
) -> Role:
    """Build a practice-scoped custom role with a fresh id."""
    slug = re.sub(r"\s+", "_", name.strip().lower())
    return Role(
        id=f"custom_{slug}_{uuid.uuid4().hex[:8]}",
        name=name,
        display_name=display_name or name,
        description=description,
        is_system_defined=False,
        practice_id=practice_id,
        permissions=[p.model_copy(deep=True) for p in permissions],
        inherits_from=inherits_from or [],
    )


# ---------------------------------------------------------------------------
# Role family predicates
# ---------------------------------------------------------------------------

def is_administrative_role(role_name: str) -> bool:
    return role_name in ADMINISTRATIVE_ROLES


def can_manage_users(role_name: str) -> bool:
    return role_name in USER_MANAGER_ROLES


def has_financial_access(role_name: str) -> bool:
    return role_name in FINANCIAL_ROLES


def has_medical_access(role_name: str) -> bool:
    return role_name in MEDICAL_ROLES


def has_system_access(role_name: str) -> bool:
    return role_name == RoleName.SUPER_ADMIN.value


def is_super_admin_role(role: Role, super_admin_role: str = RoleName.SUPER_ADMIN.value) -> bool:
    """True only for the system-defined role named ``super_admin_role``.

    A practice custom role that happens to carry the same name does not
    qualify.
    """
    return role.is_system_defined and role.name == super_admin_role


# ---------------------------------------------------------------------------
# Practice access
# ---------------------------------------------------------------------------

# Sentinel practice id meaning "every practice".
ALL_PRACTICES_ID = -1

_SINGLE_PRACTICE_ROLES = {
    RoleName.PRACTICE_ADMINISTRATOR.value,
    RoleName.PRACTICE_ADMIN.value,
    RoleName.PRACTICE_MANAGER.value,
    RoleName.VETERINARIAN.value,
    RoleName.TECHNICIAN.value,
    RoleName.RECEPTIONIST.value,
    RoleName.ACCOUNTANT.value,
    RoleName.CASHIER.value,
    RoleName.OFFICE_MANAGER.value,
    RoleName.CLIENT.value,
}


def get_accessible_practice_ids(
    role_name: str,
    user_practice_id: Optional[int] = None,
    administrator_practice_ids: Optional[list[int]] = None,
) -> list[int]:
    """Practices a legacy role may see.

    Returns ``[ALL_PRACTICES_ID]`` for SUPER_ADMIN, the administered
    practices for ADMINISTRATOR, the user's own practice for every other
    built-in role, and nothing for unknown roles.
    """
    if role_name == RoleName.SUPER_ADMIN.value:
        return [ALL_PRACTICES_ID]
    if role_name == RoleName.ADMINISTRATOR.value:
        return list(administrator_practice_ids or [])
    if role_name in _SINGLE_PRACTICE_ROLES:
        return [user_practice_id] if user_practice_id is not None else []
    return []


T = TypeVar("T")


def _practice_of(item: Any) -> Any:
    if isinstance(item, dict):
        return item.get("practice_id")
    return getattr(item, "practice_id", None)


def filter_by_practice_access(
    items: Iterable[T],
    role_name: str,
    user_practice_id: Optional[int] = None,
    administrator_practice_ids: Optional[list[int]] = None,
) -> list[T]:
    """Keep only items whose ``practice_id`` the role may access."""
    accessible = get_accessible_practice_ids(
        role_name, user_practice_id, administrator_practice_ids
    )
    if ALL_PRACTICES_ID in accessible:
        return list(items)
    return [item for item in items if _practice_of(item) in accessible]
