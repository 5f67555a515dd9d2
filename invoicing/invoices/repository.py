"""Data access for invoice rows."""

from collections.abc import Iterable
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from invoicing.database.models import Invoice
from invoicing.invoices.schema import InvoiceStatus


class InvoiceRepository:
    """Thin query layer over the invoices table. Every write commits."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, invoice_id: str, organization_id: str | None = None) -> Invoice | None:
        """Fetch an invoice, optionally scoped to an organization."""
        stmt = select(Invoice).where(Invoice.id == invoice_id)
        if organization_id is not None:
            stmt = stmt.where(Invoice.organization_id == organization_id)
        return self.session.scalars(stmt).first()

    def search(
        self,
        organization_id: str,
        status: InvoiceStatus | None = None,
        invoice_type: str | None = None,
        project_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Invoice]:
        """List an organization's invoices, newest first."""
        stmt = select(Invoice).where(Invoice.organization_id == organization_id)
        if status is not None:
            stmt = stmt.where(Invoice.status == status.value)
        if invoice_type is not None:
            stmt = stmt.where(Invoice.invoice_type == invoice_type)
        if project_id is not None:
            stmt = stmt.where(Invoice.project_id == project_id)
        stmt = stmt.order_by(Invoice.created_at.desc(), Invoice.id).offset(offset).limit(limit)
        return list(self.session.scalars(stmt))

    def all_for_organization(self, organization_id: str) -> list[Invoice]:
        stmt = select(Invoice).where(Invoice.organization_id == organization_id)
        return list(self.session.scalars(stmt))

    def count_for_project(self, project_id: str) -> int:
        stmt = select(func.count()).select_from(Invoice).where(Invoice.project_id == project_id)
        return self.session.scalar(stmt) or 0

    def create(self, **values: Any) -> Invoice:
        invoice = Invoice(**values)
        self.session.add(invoice)
        self.session.commit()
        self.session.refresh(invoice)
        return invoice

    def update_if_status(
        self,
        invoice_id: str,
        expected: Iterable[InvoiceStatus],
        values: dict[str, Any],
    ) -> bool:
        """Update a row only while its status is one of ``expected``.

        The status check is part of the UPDATE statement, so two concurrent
        writers cannot both pass it.

        Returns:
            True if the row was updated
        """
        stmt = (
            update(Invoice)
            .where(Invoice.id == invoice_id)
            .where(Invoice.status.in_([s.value for s in expected]))
            .values(**values, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        self.session.commit()
        return result.rowcount == 1

    def refresh(self, invoice: Invoice) -> Invoice:
        self.session.refresh(invoice)
        return invoice

    def delete(self, invoice: Invoice) -> None:
        self.session.delete(invoice)
        self.session.commit()
