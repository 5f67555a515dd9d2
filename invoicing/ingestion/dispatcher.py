"""Dispatch of uploaded invoices to the external extraction workflow.

The workflow receives the file and a callback URL as a multipart POST and
reports back asynchronously. A dispatch is attempted exactly once; there is
no retry, so a failed attempt fails the invoice.
"""

import logging
import time

import httpx
from pydantic import BaseModel

from invoicing.shared import metrics
from invoicing.shared.config import Settings

logger = logging.getLogger(__name__)


class DispatchRequest(BaseModel):
    """Everything the workflow needs to process one invoice."""

    invoice_id: str
    organization_id: str
    user_id: str
    user_email: str
    file_content: bytes
    content_type: str
    file_url: str
    file_type: str
    filename: str
    invoice_type: str
    callback_url: str


class DispatchResult(BaseModel):
    """Result of a dispatch attempt.

    Attributes:
        success: Whether the workflow accepted the invoice
        status_code: HTTP status returned by the workflow, if any
        response_text: Body returned by the workflow
        error: Failure reason suitable for the invoice notes
    """

    success: bool
    status_code: int | None = None
    response_text: str | None = None
    error: str | None = None


class WorkflowDispatcher:
    """HTTP client for the extraction workflow webhook."""

    def __init__(self, settings: Settings, transport: httpx.BaseTransport | None = None) -> None:
        """Initialize dispatcher.

        Args:
            settings: Application settings
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.settings = settings
        self._webhook_url = settings.extraction_webhook_url
        self._client = httpx.Client(
            timeout=httpx.Timeout(settings.extraction_dispatch_timeout),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _form_fields(request: DispatchRequest) -> dict[str, str]:
        return {
            "invoice_id": request.invoice_id,
            "organization_id": request.organization_id,
            "user_id": request.user_id,
            "user_email": request.user_email,
            "file_url": request.file_url,
            "file_type": request.file_type,
            "filename": request.filename,
            "invoice_type": request.invoice_type,
            "callback_url": request.callback_url,
        }

    def dispatch(self, request: DispatchRequest) -> DispatchResult:
        """Send one invoice to the workflow.

        Args:
            request: Invoice file and metadata

        Returns:
            DispatchResult; never raises for transport or HTTP errors
        """
        files = {
            "Invoice File": (request.filename, request.file_content, request.content_type),
        }
        logger.info(
            f"Dispatching invoice {request.invoice_id} to {self._webhook_url} "
            f"(callback: {request.callback_url})"
        )

        start = time.time()
        try:
            response = self._client.post(
                self._webhook_url, data=self._form_fields(request), files=files
            )
        except httpx.HTTPError as e:
            metrics.extraction_dispatch_total.labels(status="unreachable").inc()
            logger.error(f"Extraction workflow unreachable for invoice {request.invoice_id}: {e}")
            return DispatchResult(
                success=False,
                error=f"Extraction workflow unreachable: {e}",
            )
        finally:
            metrics.extraction_dispatch_duration_seconds.observe(time.time() - start)

        if response.is_success:
            metrics.extraction_dispatch_total.labels(status="success").inc()
            logger.info(f"Workflow accepted invoice {request.invoice_id} ({response.status_code})")
            return DispatchResult(
                success=True,
                status_code=response.status_code,
                response_text=response.text,
            )

        metrics.extraction_dispatch_total.labels(status="rejected").inc()
        logger.error(
            f"Workflow rejected invoice {request.invoice_id} "
            f"({response.status_code}): {response.text}"
        )
        return DispatchResult(
            success=False,
            status_code=response.status_code,
            response_text=response.text,
            error=f"Extraction workflow error: {response.text}",
        )
