"""Dashboard aggregates: invoice stats and the PDV (VAT) summary."""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status

from invoicing.api.deps import CurrentMember, get_current_member, get_invoice_service
from invoicing.auth.permissions import Permission
from invoicing.invoices.service import InvoiceService
from invoicing.reports.summary import DashboardStats, PdvSummary, dashboard_stats, pdv_summary

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


@router.get("/stats", response_model=DashboardStats)
def get_dashboard_stats(
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    invoices: InvoiceService = Depends(get_invoice_service),  # noqa: B008
) -> DashboardStats:
    member.require(Permission.VIEW_INVOICES)
    return dashboard_stats(invoices.repository.all_for_organization(member.organization_id))


@router.get("/pdv", response_model=PdvSummary)
def get_pdv_summary(
    date_from: date = Query(...),
    date_to: date = Query(...),
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    invoices: InvoiceService = Depends(get_invoice_service),  # noqa: B008
) -> PdvSummary:
    """Input and output VAT for a period, with the net amount owed."""
    member.require(Permission.VIEW_INVOICES)
    if date_from > date_to:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="date_from must not be after date_to",
        )
    rows = invoices.repository.all_for_organization(member.organization_id)
    return pdv_summary(rows, date_from, date_to)
