"""Heuristic per-field confidence scores for extracted invoice data.

Used when the extraction workflow does not report its own confidence map.
Scores are a fixed rule table over field presence and format, so the same
input always yields the same output:

- field absent: 0
- present and passing a light format check: high score (0.85 - 0.95)
- present but failing the check: medium score (0.5 - 0.7)
"""

import re
from datetime import date, datetime

from invoicing.invoices.schema import ExtractedFields

TAX_ID_PATTERN = re.compile(r"^[A-Z0-9]{8,15}$", re.IGNORECASE)

DATE_FORMATS = (
    "%Y-%m-%d",
    "%d.%m.%Y",
    "%d.%m.%Y.",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%Y/%m/%d",
)


def parse_date(value: str | None) -> date | None:
    """Parse the date formats the extraction workflow is known to emit.

    Returns:
        Parsed date, or None if the value is empty or unparseable
    """
    if not value:
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def is_valid_tax_id(tax_id: str) -> bool:
    """Alphanumeric, 8 to 15 characters, ignoring spaces and hyphens."""
    return bool(TAX_ID_PATTERN.match(re.sub(r"[\s-]", "", tax_id)))


def _text_score(value: str | None, min_length: int, high: float, medium: float) -> float:
    if not value:
        return 0.0
    return high if len(value) > min_length else medium


def _date_score(value: str | None) -> float:
    if not value:
        return 0.0
    return 0.95 if parse_date(value) is not None else 0.6


def _amount_score(value: float | None, high: float, allow_zero: bool = False) -> float:
    if value is None:
        return 0.0
    passes = value >= 0 if allow_zero else value > 0
    return high if passes else 0.5


def calculate_confidence(fields: ExtractedFields) -> dict[str, float]:
    """Derive a confidence map from the extracted fields.

    Args:
        fields: Extracted invoice fields (a callback payload works as-is)

    Returns:
        Mapping of field name to score in [0, 1]
    """
    tax_id_score = 0.0
    if fields.vendor_tax_id:
        tax_id_score = 0.95 if is_valid_tax_id(fields.vendor_tax_id) else 0.7

    return {
        "invoice_number": _text_score(fields.invoice_number, 3, high=0.9, medium=0.7),
        "invoice_date": _date_score(fields.invoice_date),
        "due_date": _date_score(fields.due_date),
        "vendor_name": _text_score(fields.vendor_name, 2, high=0.85, medium=0.5),
        "vendor_tax_id": tax_id_score,
        "total_amount": _amount_score(fields.total_amount, 0.9),
        "subtotal": _amount_score(fields.subtotal, 0.85),
        "tax_amount": _amount_score(fields.tax_amount, 0.85, allow_zero=True),
    }
