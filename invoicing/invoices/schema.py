"""Invoice data models shared by the API, the ingestion pipeline and observers."""

import json
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class InvoiceStatus(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    SENT_TO_ACCOUNTANT = "sent_to_accountant"
    ERROR = "error"


class InvoiceType(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


def parse_line_items(raw: Any) -> list[dict[str, Any]]:
    """Normalize a line items value to a list of records.

    The extraction workflow sends either a JSON array or a string holding one.
    Anything that does not resolve to a list becomes an empty list.
    """
    if not raw:
        return []
    if isinstance(raw, list):
        return [item for item in raw if isinstance(item, dict)]
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.warning("Discarding line items that are not valid JSON")
            return []
        return parse_line_items(parsed) if isinstance(parsed, list) else []
    return []


class ExtractedFields(BaseModel):
    """Business fields the extraction workflow can fill in."""

    invoice_number: str | None = None
    invoice_date: str | None = None
    due_date: str | None = None

    # Vendor (seller) information
    vendor_name: str | None = None
    vendor_address: str | None = None
    vendor_tax_id: str | None = None
    vendor_pdv: str | None = None

    # Buyer information
    buyer_name: str | None = None
    buyer_address: str | None = None
    buyer_tax_id: str | None = None

    # Financial details
    subtotal: float | None = None
    tax_rate: float | None = None
    tax_amount: float | None = None
    total_amount: float | None = None
    currency: str | None = None

    line_items: list[dict[str, Any]] | str | None = None


class CallbackPayload(ExtractedFields):
    """Body posted by the extraction workflow when it finishes.

    Either ``error`` is set, or the extracted fields are. ``invoice_id`` is
    validated by the endpoint so a missing id yields a 400 rather than a 422.
    """

    model_config = ConfigDict(extra="ignore")

    invoice_id: str | None = None
    error: str | None = None
    extraction_confidence: dict[str, float] | None = None

    @field_validator("extraction_confidence")
    @classmethod
    def confidence_in_range(cls, v: dict[str, float] | None) -> dict[str, float] | None:
        if v is None:
            return v
        for field, score in v.items():
            if not 0.0 <= score <= 1.0:
                raise ValueError(f"confidence for {field} must be within [0, 1], got {score}")
        return v


class InvoiceEdit(BaseModel):
    """User edits applied during review.

    Only fields present in the request body are written.
    """

    invoice_number: str | None = None
    invoice_date: date | None = None
    due_date: date | None = None
    vendor_name: str | None = None
    vendor_address: str | None = None
    vendor_tax_id: str | None = None
    buyer_name: str | None = None
    buyer_address: str | None = None
    buyer_tax_id: str | None = None
    subtotal: float | None = None
    tax_rate: float | None = None
    tax_amount: float | None = None
    total_amount: float | None = None
    currency: str | None = Field(None, min_length=3, max_length=3)
    project_id: str | None = None
    notes: str | None = None


class InvoiceRead(BaseModel):
    """Invoice as returned by the API and carried in change events."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    user_id: str
    project_id: str | None = None
    is_general_expense: bool = False
    invoice_type: InvoiceType = InvoiceType.INCOMING
    file_url: str | None = None
    file_type: str | None = None
    original_filename: str | None = None
    invoice_number: str | None = None
    invoice_date: date | None = None
    due_date: date | None = None
    vendor_name: str | None = None
    vendor_address: str | None = None
    vendor_tax_id: str | None = None
    vendor_pdv: str | None = None
    buyer_name: str | None = None
    buyer_address: str | None = None
    buyer_tax_id: str | None = None
    subtotal: float | None = None
    tax_rate: float | None = None
    tax_amount: float | None = None
    total_amount: float | None = None
    currency: str = "EUR"
    line_items: list[dict[str, Any]] = Field(default_factory=list)
    status: InvoiceStatus
    requires_confirmation: bool = True
    confirmed_at: datetime | None = None
    confirmed_by: str | None = None
    extraction_confidence: dict[str, float] = Field(default_factory=dict)
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("line_items", mode="before")
    @classmethod
    def normalize_line_items(cls, v: Any) -> list[dict[str, Any]]:
        return parse_line_items(v)

    @field_validator("extraction_confidence", mode="before")
    @classmethod
    def default_confidence(cls, v: Any) -> Any:
        return v or {}


class UploadResponse(BaseModel):
    """Successful upload response."""

    success: bool
    message: str
    invoice_id: str


class CallbackResponse(BaseModel):
    """Callback endpoint response."""

    success: bool
    status: InvoiceStatus
    invoice_id: str | None = None
