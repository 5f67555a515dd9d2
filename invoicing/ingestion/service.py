"""Invoice ingestion handshake.

Upload:   create row (uploading) -> processing -> dispatch to workflow
Callback: workflow result -> processed (fields + confidence) | error (notes)

Each step is its own committed write. A failed dispatch leaves the invoice in
``error`` rather than rolling the row back, so the client can still refer to it.
"""

import logging

from pydantic import BaseModel

from invoicing.database.models import Invoice
from invoicing.ingestion.dispatcher import DispatchRequest, WorkflowDispatcher
from invoicing.invoices.schema import CallbackPayload, InvoiceType
from invoicing.invoices.service import InvoiceService
from invoicing.shared import metrics
from invoicing.shared.config import Settings

logger = logging.getLogger(__name__)


class UploadOutcome(BaseModel):
    """Result of an upload.

    ``invoice_id`` is set whenever a row was created, including on failure.
    """

    success: bool
    invoice_id: str
    error: str | None = None
    details: str | None = None


def detect_file_type(content_type: str | None) -> str:
    """Map an upload content type to the stored file type (pdf, png or jpg)."""
    content_type = content_type or ""
    if "pdf" in content_type:
        return "pdf"
    if "png" in content_type:
        return "png"
    return "jpg"


class IngestionService:
    """Runs the upload and callback halves of the extraction handshake."""

    def __init__(
        self,
        invoices: InvoiceService,
        dispatcher: WorkflowDispatcher,
        settings: Settings,
    ) -> None:
        self.invoices = invoices
        self.dispatcher = dispatcher
        self.settings = settings

    def upload(
        self,
        *,
        organization_id: str,
        user_id: str,
        user_email: str,
        file_content: bytes,
        content_type: str | None,
        file_url: str,
        filename: str,
        invoice_type: InvoiceType,
        project_id: str | None = None,
        is_general_expense: bool = False,
    ) -> UploadOutcome:
        """Register an uploaded invoice and hand it to the extraction workflow.

        Args:
            organization_id: Tenant that owns the invoice
            user_id: Uploader id
            user_email: Uploader email, forwarded to the workflow
            file_content: Raw file bytes
            content_type: MIME type of the upload
            file_url: Where the client already stored the file
            filename: Original filename
            invoice_type: incoming or outgoing
            project_id: Optional project assignment
            is_general_expense: Mark as a general (non-project) expense

        Returns:
            UploadOutcome with the invoice id
        """
        file_type = detect_file_type(content_type)
        invoice = self.invoices.create(
            organization_id=organization_id,
            user_id=user_id,
            invoice_type=invoice_type.value,
            file_url=file_url,
            file_type=file_type,
            original_filename=filename,
            currency=self.settings.default_currency,
            project_id=project_id,
            is_general_expense=is_general_expense,
        )
        self.invoices.mark_processing(invoice.id)

        result = self.dispatcher.dispatch(
            DispatchRequest(
                invoice_id=invoice.id,
                organization_id=organization_id,
                user_id=user_id,
                user_email=user_email,
                file_content=file_content,
                content_type=content_type or "application/octet-stream",
                file_url=file_url,
                file_type=file_type,
                filename=filename,
                invoice_type=invoice_type.value,
                callback_url=self.settings.callback_url,
            )
        )

        if result.success:
            metrics.invoices_uploaded_total.labels(status="dispatched").inc()
            return UploadOutcome(success=True, invoice_id=invoice.id)

        metrics.invoices_uploaded_total.labels(status="failed").inc()
        self.invoices.mark_error(invoice.id, result.error or "Extraction dispatch failed")
        summary = (
            "Failed to process invoice"
            if result.status_code is not None
            else "Failed to send to processing"
        )
        return UploadOutcome(
            success=False,
            invoice_id=invoice.id,
            error=summary,
            details=result.response_text if result.status_code is not None else result.error,
        )

    def handle_callback(self, payload: CallbackPayload) -> Invoice:
        """Apply a workflow result to its invoice.

        An ``error`` in the payload wins over any extracted fields sent with it.

        Raises:
            InvoiceNotFoundError: If the invoice does not exist
            InvalidTransitionError: If the invoice already left the pipeline
        """
        if payload.error:
            logger.warning(f"Extraction failed for invoice {payload.invoice_id}: {payload.error}")
            invoice = self.invoices.mark_error(payload.invoice_id, payload.error)
            metrics.extraction_callbacks_total.labels(outcome="error").inc()
            return invoice

        invoice = self.invoices.apply_extraction(payload, self.settings.default_currency)
        metrics.extraction_callbacks_total.labels(outcome="processed").inc()
        logger.info(f"Invoice {invoice.id} processed, awaiting confirmation")
        return invoice
