"""Role-based permissions for organization members."""

from enum import Enum

from invoicing.invoices.lifecycle import EDITABLE_STATUSES
from invoicing.invoices.schema import InvoiceStatus


class OrgRole(str, Enum):
    OWNER = "owner"
    EMPLOYEE = "employee"


class Permission(str, Enum):
    MANAGE_ORGANIZATION = "manage_organization"
    MANAGE_MEMBERS = "manage_members"
    VIEW_MEMBERS = "view_members"
    MANAGE_PROJECTS = "manage_projects"
    VIEW_PROJECTS = "view_projects"
    UPLOAD_INVOICES = "upload_invoices"
    VIEW_INVOICES = "view_invoices"
    EDIT_INVOICES = "edit_invoices"
    CONFIRM_INVOICES = "confirm_invoices"
    DELETE_INVOICES = "delete_invoices"
    GENERATE_REPORTS = "generate_reports"
    VIEW_REPORTS = "view_reports"
    SEND_REPORTS = "send_reports"


ROLE_PERMISSIONS: dict[OrgRole, frozenset[Permission]] = {
    OrgRole.OWNER: frozenset(Permission),
    OrgRole.EMPLOYEE: frozenset(Permission)
    - {
        Permission.MANAGE_ORGANIZATION,
        Permission.MANAGE_MEMBERS,
        Permission.DELETE_INVOICES,
    },
}


class PermissionDeniedError(Exception):
    """Raised when a member lacks the permission an action needs."""

    def __init__(self, permission: Permission, message: str | None = None) -> None:
        self.permission = permission
        super().__init__(message or f"Missing permission: {permission.value}")


def has_permission(role: OrgRole | None, permission: Permission) -> bool:
    if role is None:
        return False
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def has_all_permissions(role: OrgRole | None, permissions: list[Permission]) -> bool:
    return all(has_permission(role, p) for p in permissions)


def has_any_permission(role: OrgRole | None, permissions: list[Permission]) -> bool:
    return any(has_permission(role, p) for p in permissions)


def get_permissions(role: OrgRole) -> frozenset[Permission]:
    return ROLE_PERMISSIONS.get(role, frozenset())


def can_edit_invoice(role: OrgRole | None, status: InvoiceStatus) -> bool:
    """Edits are allowed until the invoice has been sent to the accountant."""
    return has_permission(role, Permission.EDIT_INVOICES) and status in EDITABLE_STATUSES


def can_confirm_invoice(role: OrgRole | None, status: InvoiceStatus) -> bool:
    """Only invoices waiting for review can be confirmed."""
    return has_permission(role, Permission.CONFIRM_INVOICES) and status == InvoiceStatus.PROCESSED


def can_delete_invoice(role: OrgRole | None, status: InvoiceStatus) -> bool:
    return (
        has_permission(role, Permission.DELETE_INVOICES)
        and status != InvoiceStatus.SENT_TO_ACCOUNTANT
    )
