"""
Engine configuration and YAML loaders for vetguard.

This module holds the knobs that change how the permission resolver
decides, plus loaders that read configuration and seed roles from YAML.

**Why these are configurable:**

Practices migrate onto the RBAC model at different speeds.  A deployment
that still relies on legacy session roles may need a ``default_role``; one
that has not reviewed its role hierarchy may want inheritance switched off.
Audit logging of every decision is valuable during access reviews and too
noisy for everyday traffic.  The alias table and the set of roles that
bypass ownership are small, reviewed lists; they live here so a change to
them is a configuration change and shows up in review.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from vetguard.catalog import DEFAULT_ROLE_CACHE_TTL_SECONDS
from vetguard.models import Permission, Role
from vetguard.permissions import parse_permission_string
from vetguard.roles import DEFAULT_ROLES, OWNERSHIP_BYPASS_ROLES, RoleName


# ---------------------------------------------------------------------------
# Engine configuration
# ---------------------------------------------------------------------------

class RBACConfig(BaseModel):
    """Behavior switches for the permission resolver."""

    enable_inheritance: bool = Field(
        default=True,
        description=(
            "Whether a role also receives the permissions of the roles named "
            "in its inherits_from list.  A role's own entries always take "
            "precedence over inherited ones."
        ),
    )
    enable_overrides: bool = Field(
        default=True,
        description=(
            "Whether per-user permission overrides are consulted before "
            "role-based evaluation.  Disabling this ignores both stored and "
            "caller-supplied overrides."
        ),
    )
    enable_audit_logging: bool = Field(
        default=False,
        description=(
            "Append every permission decision to the attached audit log.  "
            "Administrative mutations are always audited."
        ),
    )
    super_admin_role: str = Field(
        default=RoleName.SUPER_ADMIN.value,
        description=(
            "Name of the distinguished role that bypasses role-based checks.  "
            "Overrides are still applied to it."
        ),
    )
    default_role: Optional[str] = Field(
        default=None,
        description=(
            "Legacy role name assumed when a request context names no role "
            "and the user has no resolvable assignment.  None means such "
            "users hold no roles and are denied."
        ),
    )
    role_cache_ttl_seconds: float = Field(
        default=DEFAULT_ROLE_CACHE_TTL_SECONDS,
        gt=0,
        description=(
            "How long role definitions read from the store are reused before "
            "being fetched again.  Administrative changes invalidate the "
            "cache immediately regardless of this value."
        ),
    )
    resource_aliases: dict[str, list[str]] = Field(
        default_factory=lambda: {"checklists": ["treatments"]},
        description=(
            "Legacy or alternate resource names mapped to the canonical "
            "resources whose permissions also satisfy them.  Keep this a "
            "short, reviewed list."
        ),
    )
    ownership_bypass_roles: list[str] = Field(
        default_factory=lambda: list(OWNERSHIP_BYPASS_ROLES),
        description=(
            "Roles that may act on a resource regardless of who owns it in "
            "ownership checks."
        ),
    )

    @field_validator("super_admin_role")
    @classmethod
    def validate_super_admin_role(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("super_admin_role must be a non-empty role name")
        return v

    @field_validator("resource_aliases")
    @classmethod
    def validate_resource_aliases(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        for resource, targets in v.items():
            if resource in targets:
                raise ValueError(f"resource '{resource}' may not alias itself")
        return v

    def candidate_resources(self, resource: str) -> list[str]:
        """``resource`` followed by the resources it aliases to."""
        return [resource, *self.resource_aliases.get(resource, [])]


DEFAULT_CONFIG = RBACConfig()
"""Configuration used when none is supplied."""


# ---------------------------------------------------------------------------
# YAML loaders
# ---------------------------------------------------------------------------

def _read_yaml(path: str | Path, kind: str) -> Any:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{kind} file not found: {path}")
    with open(path, "r") as f:
        return yaml.safe_load(f)


def load_config_from_yaml(path: str | Path) -> RBACConfig:
    """Load engine configuration from a YAML file.

    Example YAML structure::

        rbac:
          enable_audit_logging: true
          role_cache_ttl_seconds: 60
          resource_aliases:
            checklists: [treatments]

    Args:
        path: Path to the YAML file.

    Returns:
        A validated ``RBACConfig``.  Keys that are absent keep their
        defaults.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the YAML structure is invalid.
        pydantic.ValidationError: If a value fails validation.
    """
    raw = _read_yaml(path, "Config")
    if not isinstance(raw, dict) or "rbac" not in raw:
        raise ValueError("YAML file must contain a top-level 'rbac' mapping.")
    section = raw["rbac"] or {}
    if not isinstance(section, dict):
        raise ValueError("'rbac' must be a mapping of configuration values.")
    return RBACConfig(**section)


def _coerce_permission(entry: Any, role_idx: int) -> Any:
    # "resource:action" shorthand for an unconditional grant.
    if isinstance(entry, str):
        parsed = parse_permission_string(entry)
        if parsed is None:
            raise ValueError(
                f"Role entry at index {role_idx}: invalid permission string '{entry}'"
            )
        resource, action = parsed
        return Permission(resource=resource, action=action)
    return entry


def load_roles_from_yaml(path: str | Path) -> list[Role]:
    """Load role definitions from a YAML file.

    The file needs a top-level ``roles`` key with a list of role objects.
    Permissions may be written as mappings or as ``"resource:action"``
    strings::

        roles:
          - id: "custom_kennel_staff"
            name: "KENNEL_STAFF"
            practice_id: 3
            permissions:
              - "pets:READ"
              - resource: "treatments"
                action: "UPDATE"
                conditions:
                  - {field: "assignedTo", operator: "equals", value: "${userId}"}

    Args:
        path: Path to the YAML file.

    Returns:
        List of validated ``Role`` instances, ready to seed a role store.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the YAML structure is invalid, or a custom role
            reuses the name of a system role.
        pydantic.ValidationError: If any role fails validation.
    """
    raw = _read_yaml(path, "Roles")
    if not isinstance(raw, dict) or "roles" not in raw:
        raise ValueError(
            "YAML file must contain a top-level 'roles' key with a list of role objects."
        )

    roles_data = raw["roles"]
    if not isinstance(roles_data, list):
        raise ValueError("'roles' must be a list of role objects.")

    roles: list[Role] = []
    for idx, entry in enumerate(roles_data):
        if not isinstance(entry, dict):
            raise ValueError(f"Role entry at index {idx} must be a mapping.")
        entry = dict(entry)
        entry["permissions"] = [
            _coerce_permission(p, idx) for p in entry.get("permissions") or []
        ]
        role = Role(**entry)
        if not role.is_system_defined and role.name in DEFAULT_ROLES:
            raise ValueError(
                f"Role entry at index {idx}: '{role.name}' is reserved for a system role."
            )
        roles.append(role)

    return roles
