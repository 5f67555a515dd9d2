"""Shared service instances and FastAPI dependencies."""

import logging

from fastapi import Depends, Header, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from invoicing.auth.permissions import OrgRole, Permission, PermissionDeniedError, has_permission
from invoicing.database.models import OrganizationMember
from invoicing.database.session import get_session
from invoicing.ingestion.dispatcher import WorkflowDispatcher
from invoicing.ingestion.service import IngestionService
from invoicing.invoices.service import InvoiceService
from invoicing.projects.service import ProjectService
from invoicing.realtime.events import ChangePublisher, LocalChangeBus, create_broadcaster
from invoicing.reports.service import ReportService
from invoicing.shared.config import Settings, get_settings
from invoicing.storage.service import StorageService

logger = logging.getLogger(__name__)

settings = get_settings()
local_bus = LocalChangeBus()
broadcaster = create_broadcaster(settings, local_bus)
dispatcher = WorkflowDispatcher(settings)
storage_service = StorageService(settings)


def get_app_settings() -> Settings:
    return settings


def get_publisher() -> ChangePublisher:
    return broadcaster


def get_dispatcher() -> WorkflowDispatcher:
    return dispatcher


def get_storage() -> StorageService:
    return storage_service


class CurrentMember(BaseModel):
    """Caller identity resolved from the auth proxy headers."""

    user_id: str
    email: str
    organization_id: str
    role: OrgRole

    def require(self, permission: Permission) -> None:
        if not has_permission(self.role, permission):
            raise PermissionDeniedError(permission)


def get_current_member(
    x_user_id: str | None = Header(None),
    x_user_email: str | None = Header(None),
    x_organization_id: str | None = Header(None),
    session: Session = Depends(get_session),  # noqa: B008
) -> CurrentMember:
    """Resolve the caller and check organization membership.

    Raises:
        HTTPException: 401 without a user, 400 without an organization,
            403 if the user is not a member
    """
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    if not x_organization_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No organization")

    membership = session.scalars(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == x_organization_id,
            OrganizationMember.user_id == x_user_id,
        )
    ).first()
    if membership is None:
        logger.warning(f"User {x_user_id} is not a member of {x_organization_id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a member")

    return CurrentMember(
        user_id=x_user_id,
        email=x_user_email or "",
        organization_id=x_organization_id,
        role=OrgRole(membership.role),
    )


def get_invoice_service(
    session: Session = Depends(get_session),  # noqa: B008
    publisher: ChangePublisher = Depends(get_publisher),  # noqa: B008
) -> InvoiceService:
    return InvoiceService(session, publisher)


def get_ingestion_service(
    invoices: InvoiceService = Depends(get_invoice_service),  # noqa: B008
    workflow: WorkflowDispatcher = Depends(get_dispatcher),  # noqa: B008
    app_settings: Settings = Depends(get_app_settings),  # noqa: B008
) -> IngestionService:
    return IngestionService(invoices, workflow, app_settings)


def get_project_service(session: Session = Depends(get_session)) -> ProjectService:  # noqa: B008
    return ProjectService(session)


def get_report_service(
    session: Session = Depends(get_session),  # noqa: B008
    storage: StorageService = Depends(get_storage),  # noqa: B008
) -> ReportService:
    return ReportService(session, storage)
