"""Invoice upload endpoint."""

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse

from invoicing.api.deps import (
    CurrentMember,
    get_current_member,
    get_ingestion_service,
    get_project_service,
)
from invoicing.auth.permissions import Permission
from invoicing.ingestion.service import IngestionService
from invoicing.invoices.schema import InvoiceType, UploadResponse
from invoicing.projects.service import ProjectNotFoundError, ProjectService
from invoicing.shared import metrics

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Invoices"])


@router.post("/upload", response_model=UploadResponse)
def upload_invoice(
    file: UploadFile = File(..., description="Invoice document (PDF, PNG or JPEG)"),  # noqa: B008
    file_url: str = Form(..., description="Where the client stored the file"),
    filename: str | None = Form(None),
    invoice_type: str = Form(InvoiceType.INCOMING.value),
    project_id: str | None = Form(None),
    is_general_expense: bool = Form(False),
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    ingestion: IngestionService = Depends(get_ingestion_service),  # noqa: B008
    projects: ProjectService = Depends(get_project_service),  # noqa: B008
) -> UploadResponse | JSONResponse:
    """Register an uploaded invoice and send it to the extraction workflow.

    The invoice goes ``uploading`` -> ``processing`` before the workflow is
    called. If the workflow cannot be reached or rejects the file, the invoice
    is moved to ``error`` and a 500 is returned with its id.

    Raises:
        HTTPException: 400 for a missing or empty file, an unknown invoice
            type or a project outside the organization
    """
    member.require(Permission.UPLOAD_INVOICES)

    try:
        kind = InvoiceType(invoice_type or InvoiceType.INCOMING.value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid invoice_type: {invoice_type}. Expected incoming or outgoing.",
        ) from None

    content = file.file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file provided")

    if project_id:
        try:
            projects.get(project_id, member.organization_id)
        except ProjectNotFoundError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown project: {project_id}",
            ) from None

    metrics.invoice_upload_size_bytes.observe(len(content))

    outcome = ingestion.upload(
        organization_id=member.organization_id,
        user_id=member.user_id,
        user_email=member.email,
        file_content=content,
        content_type=file.content_type,
        file_url=file_url,
        filename=filename or file.filename or "invoice",
        invoice_type=kind,
        project_id=project_id or None,
        is_general_expense=is_general_expense,
    )

    if not outcome.success:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": outcome.error,
                "details": outcome.details,
                "invoice_id": outcome.invoice_id,
            },
        )

    return UploadResponse(
        success=True,
        message="Invoice uploaded and sent for processing",
        invoice_id=outcome.invoice_id,
    )
