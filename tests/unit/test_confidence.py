"""Unit tests for the heuristic confidence scorer."""

from datetime import date

import pytest

from invoicing.invoices.confidence import calculate_confidence, is_valid_tax_id, parse_date
from invoicing.invoices.schema import ExtractedFields


class TestParseDate:
    """Test date parsing."""

    @pytest.mark.parametrize(
        "value",
        ["2024-03-15", "15.03.2024", "15.03.2024.", "15/03/2024", "2024-03-15T10:30:00"],
    )
    def test_known_formats(self, value: str) -> None:
        """Should parse every format the workflow emits."""
        assert parse_date(value) == date(2024, 3, 15)

    def test_empty_and_garbage(self) -> None:
        """Should return None for empty or unparseable input."""
        assert parse_date(None) is None
        assert parse_date("") is None
        assert parse_date("sometime in March") is None


class TestTaxId:
    """Test tax id format check."""

    def test_valid_ids(self) -> None:
        """Alphanumeric ids of 8 to 15 characters pass."""
        assert is_valid_tax_id("123456789") is True
        assert is_valid_tax_id("RS 1234-5678") is True
        assert is_valid_tax_id("de123456789") is True

    def test_invalid_ids(self) -> None:
        """Too short, too long or punctuated ids fail."""
        assert is_valid_tax_id("1234") is False
        assert is_valid_tax_id("1234567890123456") is False
        assert is_valid_tax_id("1234/5678") is False


class TestCalculateConfidence:
    """Test the confidence rule table."""

    def test_all_fields_absent(self) -> None:
        """Absent fields score zero."""
        scores = calculate_confidence(ExtractedFields())

        assert set(scores) == {
            "invoice_number",
            "invoice_date",
            "due_date",
            "vendor_name",
            "vendor_tax_id",
            "total_amount",
            "subtotal",
            "tax_amount",
        }
        assert all(score == 0.0 for score in scores.values())

    def test_passing_fields_score_high(self) -> None:
        """Fields that pass their check get the high score."""
        scores = calculate_confidence(
            ExtractedFields(
                invoice_number="INV-2024-001",
                invoice_date="2024-03-15",
                due_date="15.04.2024",
                vendor_name="Acme d.o.o.",
                vendor_tax_id="123456789",
                total_amount=120.50,
                subtotal=100.0,
                tax_amount=20.50,
            )
        )

        assert scores == {
            "invoice_number": 0.9,
            "invoice_date": 0.95,
            "due_date": 0.95,
            "vendor_name": 0.85,
            "vendor_tax_id": 0.95,
            "total_amount": 0.9,
            "subtotal": 0.85,
            "tax_amount": 0.85,
        }

    def test_failing_fields_score_medium(self) -> None:
        """Present fields that fail their check get the medium score."""
        scores = calculate_confidence(
            ExtractedFields(
                invoice_number="42",
                invoice_date="next tuesday",
                vendor_name="AB",
                vendor_tax_id="12-34",
                total_amount=0,
                subtotal=-5,
                tax_amount=-1,
            )
        )

        assert scores["invoice_number"] == 0.7
        assert scores["invoice_date"] == 0.6
        assert scores["vendor_name"] == 0.5
        assert scores["vendor_tax_id"] == 0.7
        assert scores["total_amount"] == 0.5
        assert scores["subtotal"] == 0.5
        assert scores["tax_amount"] == 0.5

    def test_zero_tax_passes(self) -> None:
        """A zero tax amount is valid (tax-exempt invoices)."""
        assert calculate_confidence(ExtractedFields(tax_amount=0))["tax_amount"] == 0.85

    def test_vendor_and_amounts_example(self) -> None:
        """Vendor name with total and tax amounts."""
        scores = calculate_confidence(
            ExtractedFields(vendor_name="Acme d.o.o.", total_amount=120.50, tax_amount=20.50)
        )

        assert scores["vendor_name"] == 0.85
        assert scores["total_amount"] == 0.9
        assert scores["tax_amount"] == 0.85
        assert scores["invoice_number"] == 0.0

    def test_deterministic(self) -> None:
        """Same input, same output."""
        fields = ExtractedFields(invoice_number="INV-1", vendor_name="Acme", total_amount=10)
        assert calculate_confidence(fields) == calculate_confidence(fields.model_copy())
