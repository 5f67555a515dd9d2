"""Invoice review endpoints: list, read, edit, confirm, send, delete."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from invoicing.api.deps import (
    CurrentMember,
    get_current_member,
    get_invoice_service,
    get_project_service,
)
from invoicing.auth.permissions import (
    Permission,
    PermissionDeniedError,
    can_confirm_invoice,
    can_delete_invoice,
    can_edit_invoice,
)
from invoicing.invoices.lifecycle import InvalidTransitionError
from invoicing.invoices.schema import InvoiceEdit, InvoiceRead, InvoiceStatus, InvoiceType
from invoicing.invoices.service import InvoiceService
from invoicing.projects.service import ProjectNotFoundError, ProjectService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/invoices", tags=["Invoices"])


def _check_project(edits: InvoiceEdit, member: CurrentMember, projects: ProjectService) -> None:
    """Reject a project assignment outside the caller's organization."""
    if not edits.project_id:
        return
    try:
        projects.get(edits.project_id, member.organization_id)
    except ProjectNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown project: {edits.project_id}",
        ) from None


@router.get("", response_model=list[InvoiceRead])
def list_invoices(
    status_filter: InvoiceStatus | None = Query(None, alias="status"),
    invoice_type: InvoiceType | None = None,
    project_id: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    invoices: InvoiceService = Depends(get_invoice_service),  # noqa: B008
) -> list[InvoiceRead]:
    member.require(Permission.VIEW_INVOICES)
    rows = invoices.list_invoices(
        member.organization_id,
        status=status_filter,
        invoice_type=invoice_type.value if invoice_type else None,
        project_id=project_id,
        limit=limit,
        offset=offset,
    )
    return [InvoiceRead.model_validate(row) for row in rows]


@router.get("/{invoice_id}", response_model=InvoiceRead)
def get_invoice(
    invoice_id: str,
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    invoices: InvoiceService = Depends(get_invoice_service),  # noqa: B008
) -> InvoiceRead:
    member.require(Permission.VIEW_INVOICES)
    return InvoiceRead.model_validate(invoices.get(invoice_id, member.organization_id))


@router.patch("/{invoice_id}", response_model=InvoiceRead)
def save_invoice_edits(
    invoice_id: str,
    edits: InvoiceEdit,
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    invoices: InvoiceService = Depends(get_invoice_service),  # noqa: B008
    projects: ProjectService = Depends(get_project_service),  # noqa: B008
) -> InvoiceRead:
    """Save reviewer edits without changing the status."""
    member.require(Permission.EDIT_INVOICES)
    invoice = invoices.get(invoice_id, member.organization_id)
    if not can_edit_invoice(member.role, InvoiceStatus(invoice.status)):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Invoice {invoice_id} can no longer be edited (status: {invoice.status})",
        )
    _check_project(edits, member, projects)
    return InvoiceRead.model_validate(invoices.save_edits(invoice, edits))


@router.post("/{invoice_id}/confirm", response_model=InvoiceRead)
def confirm_invoice(
    invoice_id: str,
    edits: InvoiceEdit,
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    invoices: InvoiceService = Depends(get_invoice_service),  # noqa: B008
    projects: ProjectService = Depends(get_project_service),  # noqa: B008
) -> InvoiceRead:
    """Confirm a processed invoice with the reviewer's final values."""
    member.require(Permission.CONFIRM_INVOICES)
    invoice = invoices.get(invoice_id, member.organization_id)
    current = InvoiceStatus(invoice.status)
    if not can_confirm_invoice(member.role, current):
        raise InvalidTransitionError(invoice.id, current, InvoiceStatus.CONFIRMED)
    _check_project(edits, member, projects)
    confirmed = invoices.confirm(invoice, edits, member.user_id)
    logger.info(f"Invoice {invoice_id} confirmed by {member.user_id}")
    return InvoiceRead.model_validate(confirmed)


@router.post("/{invoice_id}/send-to-accountant", response_model=InvoiceRead)
def send_to_accountant(
    invoice_id: str,
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    invoices: InvoiceService = Depends(get_invoice_service),  # noqa: B008
) -> InvoiceRead:
    member.require(Permission.SEND_REPORTS)
    invoice = invoices.get(invoice_id, member.organization_id)
    return InvoiceRead.model_validate(invoices.send_to_accountant(invoice))


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: str,
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    invoices: InvoiceService = Depends(get_invoice_service),  # noqa: B008
) -> Response:
    """Delete an invoice (owners only, not once sent to the accountant)."""
    member.require(Permission.DELETE_INVOICES)
    invoice = invoices.get(invoice_id, member.organization_id)
    if not can_delete_invoice(member.role, InvoiceStatus(invoice.status)):
        raise PermissionDeniedError(
            Permission.DELETE_INVOICES, "Invoices sent to the accountant cannot be deleted"
        )
    invoices.delete(invoice)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
