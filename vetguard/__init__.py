"""
vetguard
========

Role-based authorization core for multi-tenant veterinary practice
software.  Decides whether a user may perform an action on a resource by
combining built-in role templates, practice-scoped custom roles stored in a
database, time-boxed per-user overrides, and attribute conditions such as
"only the owner of this pet".

Failures of the backing stores never crash a check: the engine falls back
to cached or built-in role data and logs the failure for operators.
"""

from vetguard.catalog import RoleCatalog
from vetguard.assignments import RoleAssignmentResolver
from vetguard.config import DEFAULT_CONFIG, RBACConfig
from vetguard.models import (
    PermissionCheckResult,
    PermissionContext,
    PermissionOverride,
    PermissionRequirement,
)
from vetguard.resolver import PermissionDeniedError, PermissionResolver

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_CONFIG",
    "PermissionCheckResult",
    "PermissionContext",
    "PermissionDeniedError",
    "PermissionOverride",
    "PermissionRequirement",
    "PermissionResolver",
    "RBACConfig",
    "RoleAssignmentResolver",
    "RoleCatalog",
]
