"""Aggregates over an organization's invoices: dashboard stats and PDV summary."""

from collections.abc import Iterable
from datetime import date, datetime

from pydantic import BaseModel

from invoicing.database.models import Invoice
from invoicing.invoices.lifecycle import PENDING_STATUSES
from invoicing.invoices.schema import InvoiceStatus

PDV_STATUSES = frozenset(
    {
        InvoiceStatus.PROCESSING.value,
        InvoiceStatus.PROCESSED.value,
        InvoiceStatus.CONFIRMED.value,
        InvoiceStatus.SENT_TO_ACCOUNTANT.value,
    }
)
PENDING_REVIEW_STATUSES = frozenset(status.value for status in PENDING_STATUSES)


class AmountTotals(BaseModel):
    count: int = 0
    subtotal: float = 0.0
    tax: float = 0.0
    total: float = 0.0

    def add(self, invoice: Invoice) -> None:
        self.count += 1
        self.subtotal += float(invoice.subtotal or 0)
        self.tax += float(invoice.tax_amount or 0)
        self.total += float(invoice.total_amount or 0)


class PdvSummary(BaseModel):
    date_from: date
    date_to: date
    incoming: AmountTotals
    outgoing: AmountTotals
    net_pdv: float


class DashboardStats(BaseModel):
    total_invoices: int
    pending_invoices: int
    total_amount: float
    this_month: int


def effective_date(invoice: Invoice) -> date | None:
    """Invoice date, falling back to the day the row was created."""
    if invoice.invoice_date is not None:
        return invoice.invoice_date
    if invoice.created_at is not None:
        return invoice.created_at.date()
    return None


def in_period(invoice: Invoice, date_from: date, date_to: date) -> bool:
    """True if the invoice falls in ``[date_from, date_to]``, both days inclusive."""
    day = effective_date(invoice)
    return day is not None and date_from <= day <= date_to


def is_outgoing(invoice: Invoice) -> bool:
    return invoice.invoice_type == "outgoing"


def split_totals(invoices: Iterable[Invoice]) -> tuple[AmountTotals, AmountTotals]:
    """Sum invoices into (incoming, outgoing); a missing type counts as incoming."""
    incoming, outgoing = AmountTotals(), AmountTotals()
    for invoice in invoices:
        (outgoing if is_outgoing(invoice) else incoming).add(invoice)
    return incoming, outgoing


def pdv_summary(invoices: Iterable[Invoice], date_from: date, date_to: date) -> PdvSummary:
    relevant = [
        invoice
        for invoice in invoices
        if invoice.status in PDV_STATUSES and in_period(invoice, date_from, date_to)
    ]
    incoming, outgoing = split_totals(relevant)
    return PdvSummary(
        date_from=date_from,
        date_to=date_to,
        incoming=incoming,
        outgoing=outgoing,
        net_pdv=round(outgoing.tax - incoming.tax, 2),
    )


def dashboard_stats(invoices: Iterable[Invoice], today: date | None = None) -> DashboardStats:
    today = today or datetime.now().date()
    invoices = list(invoices)
    this_month = 0
    for invoice in invoices:
        created = invoice.created_at.date() if invoice.created_at is not None else None
        if created is not None and (created.year, created.month) == (today.year, today.month):
            this_month += 1

    return DashboardStats(
        total_invoices=len(invoices),
        pending_invoices=sum(1 for i in invoices if i.status in PENDING_REVIEW_STATUSES),
        total_amount=sum(float(i.total_amount or 0) for i in invoices),
        this_month=this_month,
    )
