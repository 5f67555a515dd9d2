"""Report endpoints: generate, list, download, delete."""

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import RedirectResponse

from invoicing.api.deps import CurrentMember, get_current_member, get_report_service
from invoicing.auth.permissions import Permission
from invoicing.reports.service import ReportCreate, ReportRead, ReportService

router = APIRouter(prefix="/api/reports", tags=["Reports"])


@router.get("", response_model=list[ReportRead])
def list_reports(
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    reports: ReportService = Depends(get_report_service),  # noqa: B008
) -> list[ReportRead]:
    member.require(Permission.VIEW_REPORTS)
    return [ReportRead.model_validate(r) for r in reports.list_reports(member.organization_id)]


@router.post("", response_model=ReportRead, status_code=status.HTTP_201_CREATED)
def create_report(
    request: ReportCreate,
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    reports: ReportService = Depends(get_report_service),  # noqa: B008
) -> ReportRead:
    """Generate a report file for a date range and store it."""
    member.require(Permission.GENERATE_REPORTS)
    report = reports.create(member.organization_id, member.user_id, request)
    return ReportRead.model_validate(report)


@router.get("/{report_id}/download")
def download_report(
    report_id: str,
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    reports: ReportService = Depends(get_report_service),  # noqa: B008
) -> RedirectResponse:
    """Redirect to a short-lived presigned URL for the report file."""
    member.require(Permission.VIEW_REPORTS)
    report = reports.get(report_id, member.organization_id)
    return RedirectResponse(reports.download_url(report), status_code=status.HTTP_302_FOUND)


@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_report(
    report_id: str,
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    reports: ReportService = Depends(get_report_service),  # noqa: B008
) -> Response:
    member.require(Permission.GENERATE_REPORTS)
    reports.delete(reports.get(report_id, member.organization_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
