"""Invoice lifecycle operations.

All status changes go through ``transition``, which refuses edges that are not
part of the lifecycle and emits a change event after each committed write.
"""

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from invoicing.database.models import Invoice
from invoicing.invoices.confidence import calculate_confidence, parse_date
from invoicing.invoices.lifecycle import InvalidTransitionError, sources_for
from invoicing.invoices.repository import InvoiceRepository
from invoicing.invoices.schema import (
    CallbackPayload,
    InvoiceEdit,
    InvoiceRead,
    InvoiceStatus,
    parse_line_items,
)
from invoicing.realtime.events import ChangeEvent, ChangePublisher
from invoicing.shared import metrics

logger = logging.getLogger(__name__)

MONEY_FIELDS = ("subtotal", "tax_rate", "tax_amount", "total_amount")

# Editable columns that cannot be cleared; an explicit null keeps the stored value
REQUIRED_EDIT_FIELDS = ("currency",)

# A duplicate callback for an already processed invoice rewrites its fields
CALLBACK_SOURCES = frozenset({InvoiceStatus.PROCESSING, InvoiceStatus.PROCESSED})


class InvoiceNotFoundError(Exception):
    """Raised when an invoice does not exist (or is outside the caller's organization)."""

    def __init__(self, invoice_id: str) -> None:
        self.invoice_id = invoice_id
        super().__init__(f"Invoice {invoice_id} not found")


def to_decimal(value: float | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


class InvoiceService:
    """Creates invoices and moves them through their lifecycle."""

    def __init__(self, session: Session, publisher: ChangePublisher) -> None:
        self.repository = InvoiceRepository(session)
        self.publisher = publisher

    def _publish(
        self,
        event_type: str,
        invoice: Invoice,
        old_status: InvoiceStatus | None = None,
    ) -> None:
        event = ChangeEvent(
            event_type=event_type,
            invoice=InvoiceRead.model_validate(invoice),
            old_status=old_status,
        )
        self.publisher.publish(event)

    def get(self, invoice_id: str, organization_id: str | None = None) -> Invoice:
        invoice = self.repository.get(invoice_id, organization_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def list_invoices(self, organization_id: str, **filters: Any) -> list[Invoice]:
        return self.repository.search(organization_id, **filters)

    def create(
        self,
        organization_id: str,
        user_id: str,
        invoice_type: str,
        file_url: str | None,
        file_type: str,
        original_filename: str | None,
        currency: str,
        project_id: str | None = None,
        is_general_expense: bool = False,
    ) -> Invoice:
        """Pre-create the invoice row for a new upload in ``uploading``."""
        invoice = self.repository.create(
            organization_id=organization_id,
            user_id=user_id,
            project_id=project_id,
            is_general_expense=is_general_expense,
            invoice_type=invoice_type,
            file_url=file_url,
            file_type=file_type,
            original_filename=original_filename,
            status=InvoiceStatus.UPLOADING.value,
            requires_confirmation=True,
            currency=currency,
            line_items=[],
            extraction_confidence={},
        )
        logger.info(f"Pre-created invoice {invoice.id} for organization {organization_id}")
        self._publish("INSERT", invoice)
        return invoice

    def transition(
        self,
        invoice_id: str,
        target: InvoiceStatus,
        values: dict[str, Any] | None = None,
        expected: Iterable[InvoiceStatus] | None = None,
        organization_id: str | None = None,
    ) -> Invoice:
        """Move an invoice to ``target`` and write ``values`` in the same UPDATE.

        Args:
            invoice_id: Invoice to update
            target: New status
            values: Extra columns to write alongside the status
            expected: Statuses the row must currently have (defaults to every
                status with a lifecycle edge into ``target``)
            organization_id: Restrict the lookup to this organization

        Raises:
            InvoiceNotFoundError: If the invoice does not exist
            InvalidTransitionError: If the row is not in an expected status
        """
        invoice = self.get(invoice_id, organization_id)
        old_status = InvoiceStatus(invoice.status)
        expected = frozenset(expected) if expected is not None else sources_for(target)

        updated = self.repository.update_if_status(
            invoice_id, expected, {**(values or {}), "status": target.value}
        )
        invoice = self.repository.refresh(invoice)
        if not updated:
            raise InvalidTransitionError(invoice_id, InvoiceStatus(invoice.status), target)

        logger.info(f"Invoice {invoice_id}: {old_status.value} -> {target.value}")
        self._publish("UPDATE", invoice, old_status)
        return invoice

    def mark_processing(self, invoice_id: str) -> Invoice:
        return self.transition(invoice_id, InvoiceStatus.PROCESSING)

    def mark_error(self, invoice_id: str, notes: str) -> Invoice:
        """Fail an invoice that is still in the automated pipeline."""
        return self.transition(invoice_id, InvoiceStatus.ERROR, {"notes": notes})

    def apply_extraction(self, payload: CallbackPayload, default_currency: str) -> Invoice:
        """Write extracted fields from a workflow callback and mark the invoice processed."""
        if payload.extraction_confidence is not None:
            confidence = payload.extraction_confidence
        else:
            confidence = calculate_confidence(payload)

        invoice_date = parse_date(payload.invoice_date)
        if payload.invoice_date and invoice_date is None:
            logger.warning(
                f"Invoice {payload.invoice_id}: unparseable invoice_date {payload.invoice_date!r}"
            )
        due_date = parse_date(payload.due_date)
        if payload.due_date and due_date is None:
            logger.warning(f"Invoice {payload.invoice_id}: unparseable due_date {payload.due_date!r}")

        values: dict[str, Any] = {
            "invoice_number": payload.invoice_number,
            "invoice_date": invoice_date,
            "due_date": due_date,
            "vendor_name": payload.vendor_name,
            "vendor_address": payload.vendor_address,
            "vendor_tax_id": payload.vendor_tax_id,
            "vendor_pdv": payload.vendor_pdv,
            "buyer_name": payload.buyer_name,
            "buyer_address": payload.buyer_address,
            "buyer_tax_id": payload.buyer_tax_id,
            "currency": payload.currency or default_currency,
            "line_items": parse_line_items(payload.line_items),
            "extraction_confidence": confidence,
            "requires_confirmation": True,
        }
        for field in MONEY_FIELDS:
            values[field] = to_decimal(getattr(payload, field))

        return self.transition(
            payload.invoice_id, InvoiceStatus.PROCESSED, values, expected=CALLBACK_SOURCES
        )

    def _edit_values(self, edits: InvoiceEdit) -> dict[str, Any]:
        values = edits.model_dump(exclude_unset=True)
        for field in REQUIRED_EDIT_FIELDS:
            if field in values and values[field] is None:
                del values[field]
        for field in MONEY_FIELDS:
            if field in values:
                values[field] = to_decimal(values[field])
        return values

    def save_edits(self, invoice: Invoice, edits: InvoiceEdit) -> Invoice:
        """Persist user edits without changing the status."""
        status = InvoiceStatus(invoice.status)
        values = self._edit_values(edits)
        if not values:
            return invoice
        if not self.repository.update_if_status(invoice.id, [status], values):
            invoice = self.repository.refresh(invoice)
            raise InvalidTransitionError(invoice.id, InvoiceStatus(invoice.status), status)
        invoice = self.repository.refresh(invoice)
        self._publish("UPDATE", invoice, status)
        return invoice

    def confirm(self, invoice: Invoice, edits: InvoiceEdit, user_id: str) -> Invoice:
        """Finalize reviewed fields and move the invoice to ``confirmed``.

        Money fields left empty by the reviewer are stored as 0 so that a
        confirmed invoice always carries numeric amounts.
        """
        values = self._edit_values(edits)
        for field in MONEY_FIELDS:
            if field not in values:
                values[field] = getattr(invoice, field)
            if values[field] is None:
                values[field] = Decimal("0")
        values.update(
            requires_confirmation=False,
            confirmed_by=user_id,
            confirmed_at=datetime.now(UTC),
        )
        invoice = self.transition(invoice.id, InvoiceStatus.CONFIRMED, values)
        metrics.invoices_confirmed_total.inc()
        return invoice

    def send_to_accountant(self, invoice: Invoice) -> Invoice:
        return self.transition(invoice.id, InvoiceStatus.SENT_TO_ACCOUNTANT)

    def delete(self, invoice: Invoice) -> None:
        snapshot = InvoiceRead.model_validate(invoice)
        self.repository.delete(invoice)
        logger.info(f"Deleted invoice {snapshot.id}")
        self.publisher.publish(
            ChangeEvent(event_type="DELETE", invoice=snapshot, old_status=snapshot.status)
        )
