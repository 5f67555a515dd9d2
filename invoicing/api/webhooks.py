"""Callback endpoint for the extraction workflow."""

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status

from invoicing.api.deps import get_app_settings, get_ingestion_service
from invoicing.ingestion.service import IngestionService
from invoicing.invoices.schema import CallbackPayload, CallbackResponse, InvoiceStatus
from invoicing.shared import metrics
from invoicing.shared.config import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


def verify_webhook_secret(
    x_webhook_secret: str | None = Header(None),
    settings: Settings = Depends(get_app_settings),  # noqa: B008
) -> None:
    """Check the shared secret when one is configured."""
    expected = settings.extraction_webhook_secret
    if not expected:
        return
    if x_webhook_secret is None or not hmac.compare_digest(
        x_webhook_secret.encode(), expected.encode()
    ):
        metrics.extraction_callbacks_total.labels(outcome="unauthorized").inc()
        logger.warning("Rejected extraction callback with invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.post(
    "/extraction-callback",
    response_model=CallbackResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(verify_webhook_secret)],
)
def extraction_callback(
    payload: CallbackPayload,
    ingestion: IngestionService = Depends(get_ingestion_service),  # noqa: B008
) -> CallbackResponse:
    """Receive the workflow result for one invoice.

    An ``error`` in the body fails the invoice with that text as its notes.
    Otherwise the extracted fields are stored and the invoice is marked
    ``processed`` for review.

    Unknown invoices yield 404; an invoice that already left the extraction
    stage yields 409.
    """
    if not payload.invoice_id:
        metrics.extraction_callbacks_total.labels(outcome="rejected").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing invoice_id")

    logger.info(f"Extraction callback for invoice {payload.invoice_id}")
    invoice = ingestion.handle_callback(payload)

    if invoice.status == InvoiceStatus.ERROR.value:
        return CallbackResponse(success=True, status=InvoiceStatus.ERROR)
    return CallbackResponse(
        success=True, status=InvoiceStatus.PROCESSED, invoice_id=invoice.id
    )
