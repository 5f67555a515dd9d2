"""Report renderers for invoice listings.

Three formats share one data contract (ReportOptions):
- csv:   UTF-8 with BOM so spreadsheet apps detect the encoding
- excel: .xlsx workbook built with openpyxl
- pdf:   printable HTML document (stored with an .html extension)
"""

import csv
import html
import io
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

GENERAL_EXPENSE_LABEL = "Opsti trosak"
MONEY_FORMAT = "#,##0.00"


class ReportType(str, Enum):
    PDF = "pdf"
    EXCEL = "excel"
    CSV = "csv"


REPORT_EXTENSIONS = {
    ReportType.PDF: "html",
    ReportType.EXCEL: "xlsx",
    ReportType.CSV: "csv",
}

REPORT_CONTENT_TYPES = {
    ReportType.PDF: "text/html",
    ReportType.EXCEL: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ReportType.CSV: "text/csv; charset=utf-8",
}


@dataclass
class ReportInvoice:
    """One invoice row as it appears in a report."""

    id: str
    invoice_type: str
    invoice_number: str | None = None
    invoice_date: date | None = None
    created_at: datetime | None = None
    vendor_name: str | None = None
    vendor_tax_id: str | None = None
    buyer_name: str | None = None
    buyer_tax_id: str | None = None
    subtotal: float | None = None
    tax_amount: float | None = None
    total_amount: float | None = None
    currency: str = "EUR"
    status: str = ""
    project_name: str | None = None
    project_code: str | None = None

    @property
    def is_incoming(self) -> bool:
        return self.invoice_type != "outgoing"

    @property
    def type_label(self) -> str:
        return "Ulazna" if self.is_incoming else "Izlazna"

    @property
    def partner_name(self) -> str | None:
        return self.vendor_name if self.is_incoming else self.buyer_name

    @property
    def partner_tax_id(self) -> str | None:
        return self.vendor_tax_id if self.is_incoming else self.buyer_tax_id

    @property
    def effective_date(self) -> date | None:
        if self.invoice_date is not None:
            return self.invoice_date
        return self.created_at.date() if self.created_at is not None else None

    @property
    def project_label(self) -> str:
        if not self.project_name:
            return GENERAL_EXPENSE_LABEL
        if self.project_code:
            return f"[{self.project_code}] {self.project_name}"
        return self.project_name


@dataclass
class ReportOptions:
    invoices: list[ReportInvoice]
    date_from: date
    date_to: date
    organization_name: str
    report_name: str
    project_name: str | None = None
    generated_at: datetime = field(default_factory=datetime.now)


@dataclass
class ReportTotals:
    subtotal: float = 0.0
    tax_amount: float = 0.0
    total_amount: float = 0.0


def compute_totals(invoices: list[ReportInvoice]) -> ReportTotals:
    totals = ReportTotals()
    for invoice in invoices:
        totals.subtotal += invoice.subtotal or 0
        totals.tax_amount += invoice.tax_amount or 0
        totals.total_amount += invoice.total_amount or 0
    return totals


def format_date(value: date | None, empty: str = "-") -> str:
    return value.strftime("%d.%m.%Y") if value else empty


def get_report_extension(report_type: ReportType) -> str:
    return REPORT_EXTENSIONS[report_type]


def get_report_content_type(report_type: ReportType) -> str:
    return REPORT_CONTENT_TYPES[report_type]


def generate_csv_report(options: ReportOptions) -> bytes:
    headers = [
        "Tip",
        "Broj fakture",
        "Datum",
        "Partner",
        "PIB",
        "Projekat",
        "Osnovica",
        "PDV",
        "Ukupno",
        "Valuta",
        "Status",
    ]

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    for invoice in options.invoices:
        writer.writerow(
            [
                invoice.type_label,
                invoice.invoice_number or "",
                format_date(invoice.effective_date, empty=""),
                invoice.partner_name or "",
                invoice.partner_tax_id or "",
                invoice.project_label,
                f"{invoice.subtotal or 0:.2f}",
                f"{invoice.tax_amount or 0:.2f}",
                f"{invoice.total_amount or 0:.2f}",
                invoice.currency,
                invoice.status,
            ]
        )

    return ("\ufeff" + buffer.getvalue()).encode("utf-8")


def generate_excel_report(options: ReportOptions) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Fakture"

    centered = Alignment(horizontal="center")
    for row, text in enumerate(
        [
            options.report_name,
            f"Period: {format_date(options.date_from)} - {format_date(options.date_to)}",
            f"Organizacija: {options.organization_name}",
        ],
        start=1,
    ):
        sheet.merge_cells(start_row=row, start_column=1, end_row=row, end_column=9)
        cell = sheet.cell(row=row, column=1, value=text)
        cell.alignment = centered
    sheet["A1"].font = Font(bold=True, size=16)

    headers = ["Tip", "Br. fakture", "Datum", "Partner", "PIB", "Projekat", "Osnovica", "PDV", "Ukupno"]
    thin = Side(style="thin")
    header_row = 5
    for column, header in enumerate(headers, start=1):
        cell = sheet.cell(row=header_row, column=column, value=header)
        cell.font = Font(bold=True, color="FFFFFFFF")
        cell.fill = PatternFill(fill_type="solid", fgColor="FF4F46E5")
        cell.alignment = Alignment(horizontal="center", vertical="center")
        cell.border = Border(top=thin, left=thin, bottom=thin, right=thin)

    for letter, width in zip("ABCDEFGHI", (10, 15, 12, 30, 15, 20, 12, 12, 12), strict=True):
        sheet.column_dimensions[letter].width = width

    row = header_row
    for invoice in options.invoices:
        row += 1
        values = [
            invoice.type_label,
            invoice.invoice_number or "-",
            format_date(invoice.effective_date),
            invoice.partner_name or "-",
            invoice.partner_tax_id or "-",
            invoice.project_label,
            invoice.subtotal or 0,
            invoice.tax_amount or 0,
            invoice.total_amount or 0,
        ]
        for column, value in enumerate(values, start=1):
            cell = sheet.cell(row=row, column=column, value=value)
            if column >= 7:
                cell.number_format = MONEY_FORMAT

    totals = compute_totals(options.invoices)
    row += 2
    sheet.cell(row=row, column=6, value="UKUPNO:")
    for column, value in ((7, totals.subtotal), (8, totals.tax_amount), (9, totals.total_amount)):
        cell = sheet.cell(row=row, column=column, value=value)
        cell.number_format = MONEY_FORMAT
    for column in range(1, 10):
        sheet.cell(row=row, column=column).font = Font(bold=True)

    output = io.BytesIO()
    workbook.save(output)
    return output.getvalue()


_HTML_STYLE = """
    body { font-family: Arial, sans-serif; padding: 40px; }
    h1 { color: #4F46E5; margin-bottom: 10px; }
    .meta { color: #666; margin-bottom: 30px; }
    table { width: 100%; border-collapse: collapse; margin-top: 20px; }
    th { background: #4F46E5; color: white; padding: 10px; text-align: left; }
    td { padding: 10px; border-bottom: 1px solid #ddd; }
    tr:nth-child(even) { background: #f9f9f9; }
    .total-row { font-weight: bold; background: #f0f0f0 !important; }
    .number { text-align: right; }
"""


def generate_pdf_report(options: ReportOptions) -> bytes:
    """Render the printable HTML version of the report."""
    esc = html.escape
    rows = []
    for invoice in options.invoices:
        rows.append(
            "<tr>"
            f"<td>{invoice.type_label}</td>"
            f"<td>{esc(invoice.invoice_number or '-')}</td>"
            f"<td>{format_date(invoice.effective_date)}</td>"
            f"<td>{esc(invoice.partner_name or '-')}</td>"
            f"<td>{esc(invoice.partner_tax_id or '-')}</td>"
            f'<td class="number">{invoice.subtotal or 0:.2f}</td>'
            f'<td class="number">{invoice.tax_amount or 0:.2f}</td>'
            f'<td class="number">{invoice.total_amount or 0:.2f}</td>'
            "</tr>"
        )
    totals = compute_totals(options.invoices)

    document = f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{esc(options.report_name)}</title>
  <style>{_HTML_STYLE}</style>
</head>
<body>
  <h1>{esc(options.report_name)}</h1>
  <div class="meta">
    <p>Organizacija: {esc(options.organization_name)}</p>
    <p>Period: {format_date(options.date_from)} - {format_date(options.date_to)}</p>
    <p>Generisano: {options.generated_at.strftime("%d.%m.%Y %H:%M")}</p>
  </div>
  <table>
    <thead>
      <tr>
        <th>Tip</th><th>Br. fakture</th><th>Datum</th><th>Partner</th><th>PIB</th>
        <th class="number">Osnovica</th><th class="number">PDV</th><th class="number">Ukupno</th>
      </tr>
    </thead>
    <tbody>
      {"".join(rows)}
      <tr class="total-row">
        <td colspan="5">UKUPNO</td>
        <td class="number">{totals.subtotal:.2f}</td>
        <td class="number">{totals.tax_amount:.2f}</td>
        <td class="number">{totals.total_amount:.2f}</td>
      </tr>
    </tbody>
  </table>
</body>
</html>
"""
    return document.encode("utf-8")


RENDERERS = {
    ReportType.PDF: generate_pdf_report,
    ReportType.EXCEL: generate_excel_report,
    ReportType.CSV: generate_csv_report,
}


def render_report(report_type: ReportType, options: ReportOptions) -> bytes:
    return RENDERERS[report_type](options)
