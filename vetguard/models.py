"""
Core data models for the vetguard authorization core.

Roles, permissions, assignments and overrides are plain pydantic records.
They carry no behavior beyond small helpers; the decision logic lives in
``vetguard.resolver`` and ``vetguard.conditions``.

Resources and actions are stored as plain strings so that roles loaded from
a practice database may name resources the built-in catalog does not know.
The ``ResourceType`` and ``StandardAction`` enums are accepted anywhere a
string is expected and are normalized to their value.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class StandardAction(str, enum.Enum):
    """Operations that can be granted on a resource.

    ``MANAGE`` is its own action.  It is matched literally and does **not**
    imply CREATE/READ/UPDATE/DELETE.
    """

    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    MANAGE = "MANAGE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    ASSIGN = "ASSIGN"
    UNASSIGN = "UNASSIGN"
    EXPORT = "EXPORT"
    IMPORT = "IMPORT"
    ARCHIVE = "ARCHIVE"
    RESTORE = "RESTORE"


class ResourceCategory(str, enum.Enum):
    """UI grouping for resources.  Not used in decisions."""

    USER_MANAGEMENT = "User Management"
    PATIENT_CARE = "Patient Care"
    PRACTICE_MANAGEMENT = "Practice Management"
    FINANCIAL = "Financial"
    INVENTORY = "Inventory"
    REPORTS = "Reports"
    SYSTEM = "System Administration"
    COMMUNICATION = "Communication"
    LABORATORY = "Laboratory"
    MEDICAL_IMAGING = "Medical Imaging"


class ResourceType(str, enum.Enum):
    """Canonical identifiers of the protectable entity types of a practice."""

    # User management
    USER = "users"
    ROLE = "roles"
    PERMISSION = "permissions"
    USER_SESSION = "user_sessions"

    # Patient care
    PATIENT = "patients"
    PET = "pets"
    APPOINTMENT = "appointments"
    MEDICAL_RECORD = "medical_records"
    SOAP_NOTE = "soap_notes"
    PRESCRIPTION = "prescriptions"
    TREATMENT = "treatments"
    VACCINATION = "vaccinations"

    # Practice management
    PRACTICE = "practice_settings"
    STAFF = "staff"
    SCHEDULE = "schedules"
    ROOM = "rooms"
    EQUIPMENT = "equipment"

    # Financial
    BILLING = "billing"
    INVOICE = "invoices"
    PAYMENT = "payments"
    INSURANCE = "insurance"
    PRICING = "pricing"

    # Inventory
    INVENTORY = "inventory"
    PRODUCT = "products"
    SUPPLIER = "suppliers"
    PURCHASE_ORDER = "purchase_orders"
    STOCK_MOVEMENT = "stock_movements"

    # Laboratory
    LAB_ORDER = "lab_orders"
    LAB_RESULT = "lab_results"
    LAB_PROVIDER = "lab_providers"

    # Medical imaging
    IMAGING_ORDER = "imaging_orders"
    IMAGING_RESULT = "imaging_results"
    IMAGING_EQUIPMENT = "imaging_equipment"

    # Communication
    MESSAGE = "messages"
    NOTIFICATION = "notifications"
    EMAIL = "emails"
    SMS = "sms"
    REFERRAL = "referrals"

    # Reports
    REPORT = "reports"
    ANALYTICS = "analytics"
    DASHBOARD = "dashboard"

    # System
    SYSTEM_SETTING = "system_settings"
    AUDIT_LOG = "audit_logs"
    BACKUP = "backups"
    INTEGRATION = "integrations"
    API_KEY = "api_keys"


class ConditionOperator(str, enum.Enum):
    """Operators understood by the condition evaluator."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    IN = "in"
    NOT_IN = "not_in"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


class OverrideStatus(str, enum.Enum):
    """Lifecycle of a permission override.

    ``EXPIRED`` is mostly informational: an ``ACTIVE`` override whose
    ``expires_at`` has passed is treated as expired at read time.
    """

    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _enum_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    return value


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Naive timestamps from stores are taken to be UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def permission_key(resource: str, action: str) -> str:
    """Format a ``resource:action`` identifier."""
    return f"{_enum_value(resource)}:{_enum_value(action)}"


# ---------------------------------------------------------------------------
# Permissions and roles
# ---------------------------------------------------------------------------

class Condition(BaseModel):
    """Attribute-based restriction attached to a permission.

    ``value`` may be a literal or a ``${name}`` token that is replaced by
    ``context[name]`` at evaluation time (e.g. ``${userId}``).

    ``operator`` is kept as a plain string so that a role stored with an
    operator this version does not support can still be loaded.  Such a
    condition fails closed when evaluated.
    """

    field: str = Field(..., min_length=1, description="Context key to compare.")
    operator: str = Field(..., description="One of the ConditionOperator values.")
    value: Any = Field(default=None, description="Literal or ${name} token.")

    @field_validator("operator", mode="before")
    @classmethod
    def unwrap_operator(cls, v: Any) -> Any:
        return _enum_value(v)


class Permission(BaseModel):
    """A (resource, action) grant or explicit denial within a role."""

    resource: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)
    granted: bool = Field(
        default=True,
        description="False records an explicit denial for the pair.",
    )
    conditions: list[Condition] = Field(
        default_factory=list,
        description="Conditions ANDed together when the permission is granted.",
    )

    @field_validator("resource", "action", mode="before")
    @classmethod
    def unwrap_enum(cls, v: Any) -> Any:
        return _enum_value(v)

    @property
    def key(self) -> str:
        return permission_key(self.resource, self.action)


class Role(BaseModel):
    """A named bundle of permissions.

    System-defined roles have no ``practice_id`` and are visible to every
    practice.  Custom roles belong to exactly one practice.
    """

    id: str = Field(..., min_length=1, description="Stable role identifier.")
    name: str = Field(
        ...,
        min_length=1,
        description="Role name used in checks (e.g. 'SUPER_ADMIN', 'CLIENT').",
    )
    display_name: str = Field(default="")
    description: str = Field(default="")
    is_system_defined: bool = Field(default=False)
    practice_id: Optional[int] = Field(
        default=None,
        description="Owning practice for custom roles; None for system roles.",
    )
    permissions: list[Permission] = Field(default_factory=list)
    inherits_from: list[str] = Field(
        default_factory=list,
        description="Ids of roles whose permissions this role inherits.",
    )

    @property
    def is_custom(self) -> bool:
        return not self.is_system_defined


class RoleAssignment(BaseModel):
    """Links a user to a role.  Revocation is soft: rows are never deleted."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = Field(..., min_length=1)
    role_id: str = Field(..., min_length=1)
    practice_id: Optional[int] = Field(default=None)
    assigned_at: datetime = Field(default_factory=utcnow)
    assigned_by: Optional[str] = Field(default=None)
    is_active: bool = Field(default=True)
    revoked_at: Optional[datetime] = Field(default=None)
    revoked_by: Optional[str] = Field(default=None)


class PermissionOverride(BaseModel):
    """A per-user exception that beats any role-derived decision.

    Scoped to one (user, practice) pair.  Expiry is evaluated at read time
    by ``is_effective``; nothing rewrites ``status`` in the background.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = Field(..., min_length=1)
    resource: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)
    granted: bool = Field(...)
    reason: str = Field(default="")
    practice_id: Optional[int] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    created_by: Optional[str] = Field(default=None)
    expires_at: Optional[datetime] = Field(default=None)
    status: OverrideStatus = Field(default=OverrideStatus.ACTIVE)

    @field_validator("resource", "action", mode="before")
    @classmethod
    def unwrap_enum(cls, v: Any) -> Any:
        return _enum_value(v)

    @field_validator("created_at", "expires_at")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    def is_effective(self, now: Optional[datetime] = None) -> bool:
        """True iff the override is active and not past its expiry."""
        if self.status != OverrideStatus.ACTIVE:
            return False
        if self.expires_at is None:
            return True
        now = _as_utc(now) or utcnow()
        return self.expires_at > now


# ---------------------------------------------------------------------------
# Check input / output
# ---------------------------------------------------------------------------

class PermissionContext(BaseModel):
    """Input to every permission check.

    ``user_role`` is the legacy role name (or names) carried by the session.
    It is only used when no explicit role assignment can be resolved.
    """

    user_id: str = Field(..., min_length=1)
    user_role: Union[str, list[str], None] = Field(default=None)
    practice_id: Optional[int] = Field(default=None)
    resource_id: Optional[str] = Field(default=None)
    resource_type: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)
    additional_context: dict[str, Any] = Field(default_factory=dict)

    @field_validator("resource_type", "action", mode="before")
    @classmethod
    def unwrap_enum(cls, v: Any) -> Any:
        return _enum_value(v)

    @field_validator("user_role", mode="before")
    @classmethod
    def unwrap_roles(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple, set)):
            return [_enum_value(r) for r in v]
        return _enum_value(v)

    @property
    def legacy_roles(self) -> list[str]:
        if self.user_role is None:
            return []
        if isinstance(self.user_role, str):
            return [self.user_role] if self.user_role else []
        return [r for r in self.user_role if r]

    @property
    def key(self) -> str:
        return permission_key(self.resource_type, self.action)

    def condition_context(self) -> dict[str, Any]:
        """Flat mapping that conditions are evaluated against."""
        return {
            "userId": self.user_id,
            "practiceId": self.practice_id,
            "resourceId": self.resource_id,
            **self.additional_context,
        }


class PermissionRequirement(BaseModel):
    """One (resource, action) pair of a batch check."""

    resource_type: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)

    @field_validator("resource_type", "action", mode="before")
    @classmethod
    def unwrap_enum(cls, v: Any) -> Any:
        return _enum_value(v)

    @property
    def key(self) -> str:
        return permission_key(self.resource_type, self.action)


class PermissionCheckResult(BaseModel):
    """Outcome of a check.  Every path through the resolver ends in one."""

    allowed: bool
    reason: str = ""
    missing_permissions: Optional[list[str]] = None
