"""Unit tests for report renderers."""

import csv
import io
from datetime import date, datetime

import pytest
from openpyxl import load_workbook

from invoicing.reports.generator import (
    ReportInvoice,
    ReportOptions,
    ReportType,
    compute_totals,
    generate_csv_report,
    generate_excel_report,
    generate_pdf_report,
    get_report_content_type,
    get_report_extension,
    render_report,
)


@pytest.fixture
def options() -> ReportOptions:
    return ReportOptions(
        invoices=[
            ReportInvoice(
                id="inv-1",
                invoice_type="incoming",
                invoice_number="UL-001",
                invoice_date=date(2024, 3, 5),
                vendor_name="Dobavljac d.o.o.",
                vendor_tax_id="100200300",
                buyer_name="Acme d.o.o.",
                subtotal=100.0,
                tax_amount=20.0,
                total_amount=120.0,
                status="confirmed",
                project_name="Renovation",
                project_code="REN",
            ),
            ReportInvoice(
                id="inv-2",
                invoice_type="outgoing",
                invoice_number="IZ-014",
                created_at=datetime(2024, 3, 9, 14, 0),
                vendor_name="Acme d.o.o.",
                buyer_name="Kupac & Sinovi",
                buyer_tax_id="400500600",
                subtotal=50.0,
                tax_amount=10.0,
                total_amount=60.0,
                status="processed",
            ),
        ],
        date_from=date(2024, 3, 1),
        date_to=date(2024, 3, 31),
        organization_name="Acme d.o.o.",
        report_name="Mart 2024",
        generated_at=datetime(2024, 4, 1, 9, 30),
    )


class TestRowLabels:
    """Test row presentation rules."""

    def test_partner_follows_direction(self, options: ReportOptions) -> None:
        incoming, outgoing = options.invoices
        assert incoming.type_label == "Ulazna"
        assert incoming.partner_name == "Dobavljac d.o.o."
        assert outgoing.type_label == "Izlazna"
        assert outgoing.partner_name == "Kupac & Sinovi"
        assert outgoing.partner_tax_id == "400500600"

    def test_project_label(self, options: ReportOptions) -> None:
        incoming, outgoing = options.invoices
        assert incoming.project_label == "[REN] Renovation"
        assert outgoing.project_label == "Opsti trosak"

    def test_date_falls_back_to_created_at(self, options: ReportOptions) -> None:
        assert options.invoices[1].effective_date == date(2024, 3, 9)

    def test_totals(self, options: ReportOptions) -> None:
        totals = compute_totals(options.invoices)
        assert (totals.subtotal, totals.tax_amount, totals.total_amount) == (150.0, 30.0, 180.0)


class TestCsvReport:
    """Test CSV rendering."""

    def test_bom_and_headers(self, options: ReportOptions) -> None:
        content = generate_csv_report(options)

        assert content.startswith(b"\xef\xbb\xbf")
        rows = list(csv.reader(io.StringIO(content.decode("utf-8-sig"))))
        assert rows[0][:3] == ["Tip", "Broj fakture", "Datum"]
        assert rows[1] == [
            "Ulazna",
            "UL-001",
            "05.03.2024",
            "Dobavljac d.o.o.",
            "100200300",
            "[REN] Renovation",
            "100.00",
            "20.00",
            "120.00",
            "EUR",
            "confirmed",
        ]
        assert rows[2][0] == "Izlazna"
        assert rows[2][5] == "Opsti trosak"
        assert len(rows) == 3

    def test_empty_report_has_header_only(self, options: ReportOptions) -> None:
        options.invoices = []
        rows = list(csv.reader(io.StringIO(generate_csv_report(options).decode("utf-8-sig"))))
        assert len(rows) == 1


class TestExcelReport:
    """Test Excel rendering."""

    def test_workbook_content(self, options: ReportOptions) -> None:
        workbook = load_workbook(io.BytesIO(generate_excel_report(options)))
        sheet = workbook.active

        assert sheet.title == "Fakture"
        assert sheet["A1"].value == "Mart 2024"
        assert sheet["A2"].value == "Period: 01.03.2024 - 31.03.2024"
        assert sheet["A5"].value == "Tip"
        assert sheet["B6"].value == "UL-001"
        assert sheet["I6"].value == 120.0
        assert sheet["D7"].value == "Kupac & Sinovi"
        assert sheet["F9"].value == "UKUPNO:"
        assert sheet["I9"].value == 180.0


class TestHtmlReport:
    """Test the printable HTML report."""

    def test_escapes_and_totals(self, options: ReportOptions) -> None:
        html = generate_pdf_report(options).decode("utf-8")

        assert "<h1>Mart 2024</h1>" in html
        assert "Kupac &amp; Sinovi" in html
        assert "UKUPNO" in html
        assert "180.00" in html
        assert "Generisano: 01.04.2024 09:30" in html


class TestReportTypes:
    """Test per-type file metadata."""

    def test_extensions(self) -> None:
        assert get_report_extension(ReportType.PDF) == "html"
        assert get_report_extension(ReportType.EXCEL) == "xlsx"
        assert get_report_extension(ReportType.CSV) == "csv"

    def test_content_types(self) -> None:
        assert get_report_content_type(ReportType.PDF) == "text/html"
        assert get_report_content_type(ReportType.CSV).startswith("text/csv")
        assert "spreadsheetml" in get_report_content_type(ReportType.EXCEL)

    def test_render_dispatches_by_type(self, options: ReportOptions) -> None:
        assert render_report(ReportType.CSV, options) == generate_csv_report(options)
