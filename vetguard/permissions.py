"""
Permission Catalog -- static resource and action definitions.

Maps every resource type of the practice to its category, description and
the actions that make sense for it, and defines the permission templates
from which the built-in roles are assembled.  This module is pure lookup
data: nothing here is mutated at runtime.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from vetguard.models import (
    Permission,
    ResourceCategory,
    ResourceType,
    StandardAction,
)


class ActionDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: StandardAction
    description: str


class ResourceDefinition(BaseModel):
    """Display metadata and the valid actions for one resource type."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    category: ResourceCategory
    actions: tuple[ActionDefinition, ...]


class PermissionTemplate(BaseModel):
    """A named permission bundle used to build roles quickly."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    category: ResourceCategory
    permissions: tuple[Permission, ...]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

_ACTION_DESCRIPTIONS: dict[StandardAction, str] = {
    StandardAction.CREATE: "Create new records",
    StandardAction.READ: "View existing records",
    StandardAction.UPDATE: "Modify existing records",
    StandardAction.DELETE: "Remove records",
    StandardAction.MANAGE: "Full control over records",
    StandardAction.APPROVE: "Approve pending items",
    StandardAction.REJECT: "Reject pending items",
    StandardAction.ASSIGN: "Assign to users/resources",
    StandardAction.UNASSIGN: "Remove assignments",
    StandardAction.EXPORT: "Export data",
    StandardAction.IMPORT: "Import data",
    StandardAction.ARCHIVE: "Archive records",
    StandardAction.RESTORE: "Restore archived records",
}

A = StandardAction

_USER_MANAGEMENT_ACTIONS = (
    A.CREATE, A.READ, A.UPDATE, A.DELETE, A.MANAGE, A.ASSIGN, A.UNASSIGN, A.ARCHIVE,
)
_PATIENT_CARE_ACTIONS = (
    A.CREATE, A.READ, A.UPDATE, A.DELETE, A.MANAGE, A.ASSIGN, A.APPROVE, A.EXPORT,
)
_FINANCIAL_ACTIONS = (
    A.CREATE, A.READ, A.UPDATE, A.DELETE, A.APPROVE, A.REJECT, A.EXPORT, A.IMPORT,
)
_SYSTEM_ACTIONS = (
    A.READ, A.UPDATE, A.MANAGE, A.EXPORT, A.IMPORT, A.ARCHIVE, A.RESTORE,
)
_SETTINGS_ACTIONS = (A.READ, A.UPDATE, A.MANAGE)
_RESULT_ACTIONS = (A.CREATE, A.READ, A.UPDATE, A.EXPORT, A.APPROVE)
_MESSAGE_ACTIONS = (A.CREATE, A.READ, A.UPDATE, A.DELETE)
_OUTBOUND_ACTIONS = (A.CREATE, A.READ, A.EXPORT)


def _actions(names: tuple[StandardAction, ...]) -> tuple[ActionDefinition, ...]:
    # Keep the canonical StandardAction ordering regardless of input order.
    return tuple(
        ActionDefinition(name=a, description=_ACTION_DESCRIPTIONS[a])
        for a in StandardAction
        if a in names
    )


def _resource(
    name: str,
    description: str,
    category: ResourceCategory,
    actions: tuple[StandardAction, ...],
) -> ResourceDefinition:
    return ResourceDefinition(
        name=name,
        description=description,
        category=category,
        actions=_actions(actions),
    )


# ---------------------------------------------------------------------------
# Resource definitions
# ---------------------------------------------------------------------------

R = ResourceType
C = ResourceCategory

RESOURCE_DEFINITIONS: dict[ResourceType, ResourceDefinition] = {
    # User management
    R.USER: _resource("Users", "System users and their accounts",
                      C.USER_MANAGEMENT, _USER_MANAGEMENT_ACTIONS),
    R.ROLE: _resource("Roles", "User roles and permissions",
                      C.USER_MANAGEMENT, _USER_MANAGEMENT_ACTIONS),
    R.PERMISSION: _resource("Permissions", "System permissions and access control",
                            C.USER_MANAGEMENT, _SETTINGS_ACTIONS),
    R.USER_SESSION: _resource("User Sessions", "Active user sessions",
                              C.USER_MANAGEMENT, (A.READ, A.DELETE, A.MANAGE)),

    # Patient care
    R.PATIENT: _resource("Patients", "Pet owners and client information",
                         C.PATIENT_CARE, _PATIENT_CARE_ACTIONS),
    R.PET: _resource("Pets", "Pet records and information",
                     C.PATIENT_CARE, _PATIENT_CARE_ACTIONS),
    R.APPOINTMENT: _resource("Appointments", "Appointment scheduling and management",
                             C.PATIENT_CARE, _PATIENT_CARE_ACTIONS),
    R.MEDICAL_RECORD: _resource("Medical Records", "Pet medical history and records",
                                C.PATIENT_CARE, _PATIENT_CARE_ACTIONS),
    R.SOAP_NOTE: _resource("SOAP Notes", "Subjective, Objective, Assessment, Plan notes",
                           C.PATIENT_CARE, _PATIENT_CARE_ACTIONS),
    R.PRESCRIPTION: _resource("Prescriptions", "Medication prescriptions",
                              C.PATIENT_CARE, _PATIENT_CARE_ACTIONS),
    R.TREATMENT: _resource("Treatments", "Medical treatments and procedures",
                           C.PATIENT_CARE, _PATIENT_CARE_ACTIONS),
    R.VACCINATION: _resource("Vaccinations", "Vaccination records and schedules",
                             C.PATIENT_CARE, _PATIENT_CARE_ACTIONS),

    # Practice management
    R.PRACTICE: _resource("Practice Settings", "Practice configuration and settings",
                          C.PRACTICE_MANAGEMENT, _SETTINGS_ACTIONS),
    R.STAFF: _resource("Staff", "Staff members and assignments",
                       C.PRACTICE_MANAGEMENT, _USER_MANAGEMENT_ACTIONS),
    R.SCHEDULE: _resource("Schedules", "Staff and resource scheduling",
                          C.PRACTICE_MANAGEMENT, _PATIENT_CARE_ACTIONS),
    R.ROOM: _resource("Rooms", "Examination and treatment rooms",
                      C.PRACTICE_MANAGEMENT, (A.CREATE, A.READ, A.UPDATE, A.DELETE, A.ASSIGN)),
    R.EQUIPMENT: _resource("Equipment", "Medical and practice equipment",
                           C.PRACTICE_MANAGEMENT, _PATIENT_CARE_ACTIONS),

    # Financial
    R.BILLING: _resource("Billing", "Billing and payment processing",
                         C.FINANCIAL, _FINANCIAL_ACTIONS),
    R.INVOICE: _resource("Invoices", "Invoice generation and management",
                         C.FINANCIAL, _FINANCIAL_ACTIONS),
    R.PAYMENT: _resource("Payments", "Payment processing and tracking",
                         C.FINANCIAL, _FINANCIAL_ACTIONS),
    R.INSURANCE: _resource("Insurance", "Pet insurance claims and processing",
                           C.FINANCIAL, _FINANCIAL_ACTIONS),
    R.PRICING: _resource("Pricing", "Service and product pricing",
                         C.FINANCIAL, _SETTINGS_ACTIONS),

    # Inventory
    R.INVENTORY: _resource("Inventory", "Inventory management and tracking",
                           C.INVENTORY, _PATIENT_CARE_ACTIONS),
    R.PRODUCT: _resource("Products", "Products and supplies",
                         C.INVENTORY, _PATIENT_CARE_ACTIONS),
    R.SUPPLIER: _resource("Suppliers", "Vendor and supplier management",
                          C.INVENTORY, _PATIENT_CARE_ACTIONS),
    R.PURCHASE_ORDER: _resource("Purchase Orders", "Purchase order management",
                                C.INVENTORY, _FINANCIAL_ACTIONS),
    R.STOCK_MOVEMENT: _resource("Stock Movements", "Inventory movements and adjustments",
                                C.INVENTORY, _OUTBOUND_ACTIONS),

    # Laboratory
    R.LAB_ORDER: _resource("Lab Orders", "Laboratory test orders",
                           C.LABORATORY, _PATIENT_CARE_ACTIONS),
    R.LAB_RESULT: _resource("Lab Results", "Laboratory test results",
                            C.LABORATORY, _RESULT_ACTIONS),
    R.LAB_PROVIDER: _resource("Lab Providers", "External laboratory providers",
                              C.LABORATORY, _PATIENT_CARE_ACTIONS),

    # Medical imaging
    R.IMAGING_ORDER: _resource("Imaging Orders", "Medical imaging orders",
                               C.MEDICAL_IMAGING, _PATIENT_CARE_ACTIONS),
    R.IMAGING_RESULT: _resource("Imaging Results", "Medical imaging results",
                                C.MEDICAL_IMAGING, _RESULT_ACTIONS),
    R.IMAGING_EQUIPMENT: _resource("Imaging Equipment", "Medical imaging equipment",
                                   C.MEDICAL_IMAGING, _PATIENT_CARE_ACTIONS),

    # Communication
    R.MESSAGE: _resource("Messages", "Internal messaging system",
                         C.COMMUNICATION, _MESSAGE_ACTIONS),
    R.NOTIFICATION: _resource("Notifications", "System notifications",
                              C.COMMUNICATION, _MESSAGE_ACTIONS),
    R.EMAIL: _resource("Email", "Email communications",
                       C.COMMUNICATION, _OUTBOUND_ACTIONS),
    R.SMS: _resource("SMS", "SMS communications",
                     C.COMMUNICATION, _OUTBOUND_ACTIONS),
    R.REFERRAL: _resource("Referrals", "Patient referrals to specialists",
                          C.COMMUNICATION, _PATIENT_CARE_ACTIONS),

    # Reports
    R.REPORT: _resource("Reports", "System reports and analytics",
                        C.REPORTS, (A.READ, A.CREATE, A.EXPORT)),
    R.ANALYTICS: _resource("Analytics", "Business analytics and insights",
                           C.REPORTS, (A.READ, A.EXPORT)),
    R.DASHBOARD: _resource("Dashboard", "Dashboard configuration and access",
                           C.REPORTS, (A.READ, A.UPDATE)),

    # System
    R.SYSTEM_SETTING: _resource("System Settings", "System configuration and settings",
                                C.SYSTEM, _SYSTEM_ACTIONS),
    R.AUDIT_LOG: _resource("Audit Logs", "System audit and activity logs",
                           C.SYSTEM, (A.READ, A.EXPORT)),
    R.BACKUP: _resource("Backups", "Data backup and restore",
                        C.SYSTEM, _SYSTEM_ACTIONS),
    R.INTEGRATION: _resource("Integrations", "Third-party integrations",
                             C.SYSTEM, _SYSTEM_ACTIONS),
    R.API_KEY: _resource("API Keys", "API key management",
                         C.SYSTEM, _USER_MANAGEMENT_ACTIONS),
}


# ---------------------------------------------------------------------------
# Permission templates
# ---------------------------------------------------------------------------

def _grant(resource: ResourceType, action: StandardAction) -> Permission:
    return Permission(resource=resource, action=action, granted=True)


PERMISSION_TEMPLATES: dict[str, PermissionTemplate] = {
    "VETERINARIAN_BASIC": PermissionTemplate(
        name="Basic Veterinarian",
        description="Standard permissions for veterinarians",
        category=C.PATIENT_CARE,
        permissions=(
            _grant(R.PATIENT, A.READ),
            _grant(R.PET, A.MANAGE),
            _grant(R.APPOINTMENT, A.MANAGE),
            _grant(R.MEDICAL_RECORD, A.MANAGE),
            _grant(R.SOAP_NOTE, A.MANAGE),
            _grant(R.PRESCRIPTION, A.MANAGE),
            _grant(R.TREATMENT, A.MANAGE),
            _grant(R.VACCINATION, A.MANAGE),
            _grant(R.LAB_ORDER, A.MANAGE),
            _grant(R.LAB_RESULT, A.READ),
            _grant(R.IMAGING_ORDER, A.MANAGE),
            _grant(R.IMAGING_RESULT, A.READ),
            _grant(R.INVENTORY, A.READ),
            _grant(R.PRODUCT, A.READ),
            _grant(R.MESSAGE, A.MANAGE),
            _grant(R.NOTIFICATION, A.READ),
            _grant(R.REFERRAL, A.MANAGE),
        ),
    ),
    "TECHNICIAN_BASIC": PermissionTemplate(
        name="Basic Technician",
        description="Standard permissions for veterinary technicians",
        category=C.PATIENT_CARE,
        permissions=(
            _grant(R.PATIENT, A.READ),
            _grant(R.PET, A.READ),
            _grant(R.APPOINTMENT, A.READ),
            _grant(R.MEDICAL_RECORD, A.READ),
            _grant(R.SOAP_NOTE, A.CREATE),
            _grant(R.SOAP_NOTE, A.READ),
            _grant(R.VACCINATION, A.UPDATE),
            _grant(R.LAB_ORDER, A.CREATE),
            _grant(R.LAB_RESULT, A.READ),
            _grant(R.IMAGING_ORDER, A.CREATE),
            _grant(R.INVENTORY, A.READ),
            _grant(R.STOCK_MOVEMENT, A.CREATE),
            _grant(R.MESSAGE, A.MANAGE),
            _grant(R.NOTIFICATION, A.READ),
        ),
    ),
    "RECEPTIONIST_BASIC": PermissionTemplate(
        name="Basic Receptionist",
        description="Standard permissions for receptionists",
        category=C.PATIENT_CARE,
        permissions=(
            _grant(R.PATIENT, A.MANAGE),
            _grant(R.PET, A.MANAGE),
            _grant(R.APPOINTMENT, A.MANAGE),
            _grant(R.MEDICAL_RECORD, A.READ),
            _grant(R.BILLING, A.MANAGE),
            _grant(R.INVOICE, A.MANAGE),
            _grant(R.PAYMENT, A.MANAGE),
            _grant(R.INSURANCE, A.MANAGE),
            _grant(R.MESSAGE, A.MANAGE),
            _grant(R.NOTIFICATION, A.MANAGE),
            _grant(R.EMAIL, A.CREATE),
            _grant(R.SMS, A.CREATE),
            _grant(R.INVENTORY, A.READ),
        ),
    ),
    "PRACTICE_ADMIN_FULL": PermissionTemplate(
        name="Practice Administrator",
        description="Full practice management permissions",
        category=C.PRACTICE_MANAGEMENT,
        permissions=(
            _grant(R.USER, A.MANAGE),
            _grant(R.ROLE, A.MANAGE),
            _grant(R.STAFF, A.MANAGE),
            _grant(R.PRACTICE, A.MANAGE),
            _grant(R.SCHEDULE, A.MANAGE),
            _grant(R.ROOM, A.MANAGE),
            _grant(R.EQUIPMENT, A.MANAGE),
            _grant(R.BILLING, A.MANAGE),
            _grant(R.INVOICE, A.MANAGE),
            _grant(R.PAYMENT, A.MANAGE),
            _grant(R.INSURANCE, A.MANAGE),
            _grant(R.PRICING, A.MANAGE),
            _grant(R.INVENTORY, A.MANAGE),
            _grant(R.PRODUCT, A.MANAGE),
            _grant(R.SUPPLIER, A.MANAGE),
            _grant(R.PURCHASE_ORDER, A.MANAGE),
            _grant(R.REPORT, A.MANAGE),
            _grant(R.ANALYTICS, A.READ),
            _grant(R.DASHBOARD, A.UPDATE),
            _grant(R.MESSAGE, A.MANAGE),
            _grant(R.NOTIFICATION, A.MANAGE),
            _grant(R.EMAIL, A.MANAGE),
            _grant(R.SMS, A.MANAGE),
        ),
    ),
    "SUPER_ADMIN_FULL": PermissionTemplate(
        name="Super Administrator",
        description="Complete system access",
        category=C.SYSTEM,
        permissions=tuple(_grant(resource, A.MANAGE) for resource in ResourceType),
    ),
}


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_resource_definition(resource: str) -> Optional[ResourceDefinition]:
    """Return the definition for a resource identifier, or None if unknown."""
    try:
        return RESOURCE_DEFINITIONS[ResourceType(resource)]
    except ValueError:
        return None


def get_resource_actions(resource: str) -> list[StandardAction]:
    """Return the actions defined for a resource (empty if unknown)."""
    definition = get_resource_definition(resource)
    if definition is None:
        return []
    return [a.name for a in definition.actions]


def is_known_permission(resource: str, action: str) -> bool:
    """True if the catalog defines ``action`` for ``resource``."""
    return any(a.value == action for a in get_resource_actions(resource))


def get_permissions_by_category(category: ResourceCategory) -> list[dict[str, str]]:
    """List every (resource, action) pair in a category with a description.

    Used by administration screens to render the permission matrix.
    """
    rows: list[dict[str, str]] = []
    for resource_type, definition in RESOURCE_DEFINITIONS.items():
        if definition.category != category:
            continue
        for action in definition.actions:
            rows.append({
                "resource": resource_type.value,
                "action": action.name.value,
                "description": f"{action.description} for {definition.name}",
            })
    return rows


# ---------------------------------------------------------------------------
# Permission strings
# ---------------------------------------------------------------------------

def validate_permission_string(permission: str) -> bool:
    """Check the ``resource:action`` format."""
    parts = permission.split(":")
    return len(parts) == 2 and all(parts)


def parse_permission_string(permission: str) -> Optional[tuple[str, str]]:
    """Split ``resource:action`` into its parts; None if malformed."""
    if not validate_permission_string(permission):
        return None
    resource, action = permission.split(":")
    return resource, action


def format_permission_for_display(resource: str, action: str) -> str:
    """Render a pair for humans, e.g. ``('lab_orders', 'READ')`` -> ``'read Lab Orders'``."""
    formatted_resource = resource.replace("_", " ").title()
    formatted_action = action.replace("_", " ").lower()
    return f"{formatted_action} {formatted_resource}"
