"""
Clinic Scenario: A Day of Permission Checks at a Veterinary Practice
====================================================================

This script walks through the vetguard authorization core using entirely
synthetic data.  No real client, patient or staff data is used.

The scenario follows Riverside Animal Clinic (practice 3) through a
morning of requests from its staff and one of its clients.

Steps demonstrated:
  1. Load engine configuration and custom roles from YAML
  2. Assign system and custom roles to staff
  3. Check single permissions, including an aliased resource
  4. Check a client's access to their own pet and to someone else's
  5. Run a batch check for a front-desk workflow
  6. Create and revoke a temporary override
  7. Check resource ownership for an invoice
  8. Generate an access review report and export the audit log

Usage:
    python -m examples.clinic_scenario
    # or: python examples/clinic_scenario.py
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from vetguard.access_report import generate_access_report
from vetguard.admin import RoleAdministrator
from vetguard.assignments import RoleAssignmentResolver
from vetguard.audit import AuditLog
from vetguard.catalog import RoleCatalog
from vetguard.config import RBACConfig, load_config_from_yaml, load_roles_from_yaml
from vetguard.models import PermissionRequirement, ResourceType, StandardAction
from vetguard.resolver import PermissionResolver, create_permission_context
from vetguard.stores import InMemoryAssignmentStore, InMemoryOverrideStore, InMemoryRoleStore

PRACTICE_ID = 3


def _banner(text: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def _show(label: str, result) -> None:
    verdict = "ALLOWED" if result.allowed else "DENIED"
    print(f"{label:<48} {verdict:<8} {result.reason}")
    if result.missing_permissions:
        print(f"{'':<48} missing: {', '.join(result.missing_permissions)}")


def main() -> None:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    _banner("vetguard Clinic Scenario: Riverside Animal Clinic")
    print("All data in this demo is entirely synthetic.\n")

    # ------------------------------------------------------------------
    # Step 1: Configuration and custom roles
    # ------------------------------------------------------------------
    _banner("Step 1: Load Configuration and Roles")

    here = Path(__file__).parent
    config_yaml = here / "rbac.yaml"
    roles_yaml = here / "roles.yaml"
    config = load_config_from_yaml(config_yaml) if config_yaml.exists() else RBACConfig(
        enable_audit_logging=True
    )
    custom_roles = load_roles_from_yaml(roles_yaml) if roles_yaml.exists() else []
    print(f"Decision auditing: {config.enable_audit_logging}")
    print(f"Resource aliases: {config.resource_aliases}")
    print(f"Custom roles loaded: {[r.name for r in custom_roles]}")

    role_store = InMemoryRoleStore(custom_roles)
    assignment_store = InMemoryAssignmentStore()
    override_store = InMemoryOverrideStore()
    audit_log = AuditLog()

    catalog = RoleCatalog(role_store, ttl_seconds=config.role_cache_ttl_seconds)
    assignments = RoleAssignmentResolver(
        assignment_store,
        catalog,
        enable_inheritance=config.enable_inheritance,
        super_admin_role=config.super_admin_role,
    )
    resolver = PermissionResolver(
        catalog, assignments, override_store=override_store, config=config, audit_log=audit_log
    )
    admin = RoleAdministrator(catalog, role_store, assignment_store, override_store, audit_log)

    # ------------------------------------------------------------------
    # Step 2: Assign roles
    # ------------------------------------------------------------------
    _banner("Step 2: Assign Roles")

    staff = {
        "dr_synthetic": "VETERINARIAN",
        "front_desk_1": "RECEPTIONIST",
        "kennel_1": "KENNEL_STAFF",
        "nurse_1": "SENIOR_NURSE",
    }
    for user_id, role_name in staff.items():
        if catalog.get_role(role_name, PRACTICE_ID) is None:
            print(f"Skipping {user_id}: role {role_name} not available")
            continue
        admin.assign_role("practice_admin", user_id, role_name, practice_id=PRACTICE_ID)
        roles = assignments.get_assigned_roles(user_id, PRACTICE_ID)
        print(f"{user_id:<14} -> {[r.name for r in roles]}")

    # ------------------------------------------------------------------
    # Step 3: Single checks
    # ------------------------------------------------------------------
    _banner("Step 3: Single Permission Checks")

    checks = [
        ("dr_synthetic", ResourceType.PET, StandardAction.MANAGE, {}),
        ("dr_synthetic", ResourceType.PET, StandardAction.READ, {}),
        ("front_desk_1", ResourceType.INVOICE, StandardAction.MANAGE, {}),
        ("front_desk_1", ResourceType.BACKUP, StandardAction.EXPORT, {}),
        ("kennel_1", "checklists", StandardAction.UPDATE, {"assignedTo": "kennel_1"}),
        ("kennel_1", "checklists", StandardAction.UPDATE, {"assignedTo": "kennel_2"}),
        ("nurse_1", ResourceType.PRESCRIPTION, StandardAction.DELETE, {}),
        ("nurse_1", ResourceType.SOAP_NOTE, StandardAction.CREATE, {}),
    ]
    for user_id, resource, action, extra in checks:
        context = create_permission_context(
            user_id, None, resource, action, practice_id=PRACTICE_ID, additional_context=extra
        )
        _show(f"{user_id} {context.key}", resolver.check_permission(context))

    # ------------------------------------------------------------------
    # Step 4: Client ownership
    # ------------------------------------------------------------------
    _banner("Step 4: Client Access to Pets")

    for owner_id in ("client_42", "client_7"):
        context = create_permission_context(
            "client_42", "CLIENT", ResourceType.PET, StandardAction.READ,
            practice_id=PRACTICE_ID, resource_id="pet_biscuit",
            additional_context={"ownerId": owner_id},
        )
        _show(f"client_42 reads pet owned by {owner_id}", resolver.check_permission(context))

    # ------------------------------------------------------------------
    # Step 5: Batch check
    # ------------------------------------------------------------------
    _banner("Step 5: Front Desk Checkout Workflow")

    checkout = [
        PermissionRequirement(resource_type=ResourceType.INVOICE, action=StandardAction.MANAGE),
        PermissionRequirement(resource_type=ResourceType.PAYMENT, action=StandardAction.MANAGE),
        PermissionRequirement(resource_type=ResourceType.PRICING, action=StandardAction.UPDATE),
    ]
    base = create_permission_context(
        "front_desk_1", None, ResourceType.INVOICE, StandardAction.READ, practice_id=PRACTICE_ID
    )
    _show("front_desk_1 checkout", resolver.check_multiple_permissions(base, checkout))

    # ------------------------------------------------------------------
    # Step 6: Temporary override
    # ------------------------------------------------------------------
    _banner("Step 6: Temporary Override")

    export_ctx = create_permission_context(
        "front_desk_1", None, ResourceType.BACKUP, StandardAction.EXPORT, practice_id=PRACTICE_ID
    )
    override = admin.create_override(
        "practice_admin", "front_desk_1", PRACTICE_ID,
        ResourceType.BACKUP, StandardAction.EXPORT,
        granted=True, reason="Year-end records handover (synthetic)",
    )
    _show("with override", resolver.check_permission(export_ctx))
    admin.revoke_override("practice_admin", override.id, PRACTICE_ID)
    _show("after revocation", resolver.check_permission(export_ctx))

    # ------------------------------------------------------------------
    # Step 7: Ownership check
    # ------------------------------------------------------------------
    _banner("Step 7: Invoice Ownership")

    invoice_owners = {"inv_100": "front_desk_1", "inv_101": "front_desk_2"}

    def owner_of(resource_type: str, resource_id: str):
        return invoice_owners.get(resource_id)

    for invoice_id in invoice_owners:
        context = create_permission_context(
            "front_desk_1", None, ResourceType.INVOICE, StandardAction.MANAGE,
            practice_id=PRACTICE_ID, resource_id=invoice_id,
        )
        _show(f"front_desk_1 manages {invoice_id}", resolver.check_resource_ownership(context, owner_of))

    # ------------------------------------------------------------------
    # Step 8: Report and export
    # ------------------------------------------------------------------
    _banner("Step 8: Access Review Report")

    report = generate_access_report(audit_log, PRACTICE_ID)
    print(json.dumps(report.to_dict(), indent=2, default=str))

    export = audit_log.export_for_review(PRACTICE_ID)
    print("\nExport metadata:")
    print(json.dumps(export["export_metadata"], indent=2))

    valid, broken_at = audit_log.verify_chain()
    print(f"\nFull chain verification: valid={valid}, broken_at={broken_at}")


if __name__ == "__main__":
    main()
