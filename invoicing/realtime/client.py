"""HTTP polling source for observers, backed by the invoice API."""

import logging

import httpx

from invoicing.invoices.schema import InvoiceRead

logger = logging.getLogger(__name__)


class InvoiceApiClient:
    """Reads invoices through the API with the caller's identity headers."""

    def __init__(
        self,
        base_url: str,
        user_id: str,
        organization_id: str,
        user_email: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "X-User-Id": user_id,
                "X-User-Email": user_email,
                "X-Organization-Id": organization_id,
            },
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_invoice(self, invoice_id: str) -> InvoiceRead | None:
        response = await self._client.get(f"/api/invoices/{invoice_id}")
        if response.status_code == 404:
            logger.debug(f"Invoice {invoice_id} not found")
            return None
        response.raise_for_status()
        return InvoiceRead.model_validate(response.json())

    async def list_invoices(self, organization_id: str, limit: int = 200) -> list[InvoiceRead]:
        response = await self._client.get(
            "/api/invoices",
            params={"limit": limit},
            headers={"X-Organization-Id": organization_id},
        )
        response.raise_for_status()
        return [InvoiceRead.model_validate(item) for item in response.json()]
