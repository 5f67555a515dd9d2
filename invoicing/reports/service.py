"""Report generation, storage and retrieval."""

import logging
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, model_validator
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from invoicing.database.models import Invoice, Organization, Report
from invoicing.invoices.schema import InvoiceStatus
from invoicing.projects.service import ProjectService
from invoicing.reports.generator import (
    ReportInvoice,
    ReportOptions,
    ReportType,
    get_report_content_type,
    get_report_extension,
    render_report,
)
from invoicing.reports.summary import in_period
from invoicing.shared import metrics
from invoicing.storage.service import StorageService

logger = logging.getLogger(__name__)


class ReportStatus:
    GENERATING = "generating"
    COMPLETED = "completed"
    ERROR = "error"


class ReportNotFoundError(Exception):
    def __init__(self, report_id: str) -> None:
        self.report_id = report_id
        super().__init__(f"Report {report_id} not found")


class ReportGenerationError(Exception):
    """Raised when a report could not be rendered or stored."""

    def __init__(self, report_id: str, reason: str) -> None:
        self.report_id = report_id
        self.reason = reason
        super().__init__(f"Failed to generate report {report_id}: {reason}")


class ReportNotReadyError(Exception):
    def __init__(self, report_id: str, status: str) -> None:
        self.report_id = report_id
        self.status = status
        super().__init__(f"Report {report_id} is not available (status: {status})")


class ReportCreate(BaseModel):
    name: str
    type: ReportType
    date_from: date
    date_to: date
    project_id: str | None = None
    status: InvoiceStatus | None = None

    @model_validator(mode="after")
    def period_in_order(self) -> "ReportCreate":
        if self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        if not self.name.strip():
            raise ValueError("Report name is required")
        return self


class ReportRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    created_by: str
    project_id: str | None = None
    name: str
    type: ReportType
    date_from: date
    date_to: date
    status: str
    file_url: str | None = None
    created_at: datetime | None = None


def to_report_invoice(invoice: Invoice) -> ReportInvoice:
    project = invoice.project
    return ReportInvoice(
        id=invoice.id,
        invoice_type=invoice.invoice_type,
        invoice_number=invoice.invoice_number,
        invoice_date=invoice.invoice_date,
        created_at=invoice.created_at,
        vendor_name=invoice.vendor_name,
        vendor_tax_id=invoice.vendor_tax_id,
        buyer_name=invoice.buyer_name,
        buyer_tax_id=invoice.buyer_tax_id,
        subtotal=float(invoice.subtotal) if invoice.subtotal is not None else None,
        tax_amount=float(invoice.tax_amount) if invoice.tax_amount is not None else None,
        total_amount=float(invoice.total_amount) if invoice.total_amount is not None else None,
        currency=invoice.currency,
        status=invoice.status,
        project_name=project.name if project is not None else None,
        project_code=project.code if project is not None else None,
    )


class ReportService:
    """Builds report files and keeps their rows in sync with storage."""

    def __init__(self, session: Session, storage: StorageService) -> None:
        self.session = session
        self.storage = storage

    def get(self, report_id: str, organization_id: str) -> Report:
        stmt = select(Report).where(
            Report.id == report_id, Report.organization_id == organization_id
        )
        report = self.session.scalars(stmt).first()
        if report is None:
            raise ReportNotFoundError(report_id)
        return report

    def list_reports(self, organization_id: str) -> list[Report]:
        stmt = (
            select(Report)
            .where(Report.organization_id == organization_id)
            .order_by(Report.created_at.desc(), Report.id)
        )
        return list(self.session.scalars(stmt))

    def _collect_invoices(self, organization_id: str, request: ReportCreate) -> list[ReportInvoice]:
        stmt = (
            select(Invoice)
            .where(Invoice.organization_id == organization_id)
            .options(selectinload(Invoice.project))
        )
        if request.project_id:
            stmt = stmt.where(Invoice.project_id == request.project_id)
        if request.status is not None:
            stmt = stmt.where(Invoice.status == request.status.value)

        invoices = [
            invoice
            for invoice in self.session.scalars(stmt)
            if in_period(invoice, request.date_from, request.date_to)
        ]
        invoices.sort(key=lambda i: (i.invoice_date or i.created_at.date()), reverse=True)
        return [to_report_invoice(invoice) for invoice in invoices]

    def _set_status(self, report: Report, status: str, file_url: str | None = None) -> None:
        report.status = status
        if file_url is not None:
            report.file_url = file_url
        self.session.commit()

    def create(self, organization_id: str, user_id: str, request: ReportCreate) -> Report:
        """Render a report and upload it to storage.

        The report row exists from the start in ``generating`` and ends in
        ``completed`` or ``error``.

        Raises:
            ProjectNotFoundError: If project_id is not in the organization
            ReportGenerationError: If rendering or upload fails
        """
        project_name = None
        if request.project_id:
            project_name = ProjectService(self.session).get(request.project_id, organization_id).name

        organization = self.session.get(Organization, organization_id)
        report = Report(
            organization_id=organization_id,
            created_by=user_id,
            project_id=request.project_id,
            name=request.name.strip(),
            type=request.type.value,
            date_from=request.date_from,
            date_to=request.date_to,
            status=ReportStatus.GENERATING,
        )
        self.session.add(report)
        self.session.commit()
        self.session.refresh(report)

        options = ReportOptions(
            invoices=self._collect_invoices(organization_id, request),
            date_from=request.date_from,
            date_to=request.date_to,
            organization_name=organization.name if organization is not None else "",
            report_name=report.name,
            project_name=project_name,
        )
        logger.info(
            f"Generating {request.type.value} report {report.id} "
            f"with {len(options.invoices)} invoices"
        )

        try:
            content = render_report(request.type, options)
        except Exception as e:
            logger.exception(f"Rendering report {report.id} failed")
            raise self._fail(report, request.type, f"render failed: {e}") from e

        object_name = f"{organization_id}/{report.id}.{get_report_extension(request.type)}"
        result = self.storage.upload_bytes(
            content, object_name, content_type=get_report_content_type(request.type)
        )
        if not result.success:
            raise self._fail(report, request.type, result.error or "upload failed")

        self._set_status(report, ReportStatus.COMPLETED, file_url=object_name)
        metrics.reports_generated_total.labels(type=request.type.value, status="completed").inc()
        logger.info(f"Report {report.id} stored at {object_name}")
        return report

    def _fail(self, report: Report, report_type: ReportType, reason: str) -> ReportGenerationError:
        self._set_status(report, ReportStatus.ERROR)
        metrics.reports_generated_total.labels(type=report_type.value, status="error").inc()
        logger.error(f"Report {report.id} failed: {reason}")
        return ReportGenerationError(report.id, reason)

    def download_url(self, report: Report) -> str:
        """Presigned URL for a completed report file.

        Raises:
            ReportNotReadyError: If the report has no stored file
            ReportGenerationError: If storage cannot sign the URL
        """
        if report.status != ReportStatus.COMPLETED or not report.file_url:
            raise ReportNotReadyError(report.id, report.status)

        result = self.storage.get_presigned_url(report.file_url)
        if not result.success or not result.url:
            raise ReportGenerationError(report.id, result.error or "could not sign download URL")
        return result.url

    def delete(self, report: Report) -> None:
        if report.file_url:
            result = self.storage.delete_object(report.file_url)
            if not result.success:
                logger.warning(f"Could not remove file for report {report.id}: {result.error}")
        self.session.delete(report)
        self.session.commit()
        logger.info(f"Deleted report {report.id}")
