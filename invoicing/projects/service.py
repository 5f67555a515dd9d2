"""Projects: cost centers that invoices are assigned to."""

import logging
import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from invoicing.database.models import Invoice, Project
from invoicing.reports.summary import AmountTotals, split_totals

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#6366f1"
COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")


class ProjectNotFoundError(Exception):
    def __init__(self, project_id: str) -> None:
        self.project_id = project_id
        super().__init__(f"Project {project_id} not found")


class DuplicateProjectCodeError(Exception):
    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Project with code {code} already exists")


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class ProjectCreate(BaseModel):
    name: str
    code: str | None = None
    description: str | None = None
    color: str = DEFAULT_COLOR

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Project name is required")
        return v

    @field_validator("code", "description")
    @classmethod
    def strip_optional(cls, v: str | None) -> str | None:
        return _strip_or_none(v)

    @field_validator("color")
    @classmethod
    def valid_color(cls, v: str) -> str:
        if not COLOR_PATTERN.match(v):
            raise ValueError(f"Invalid color {v!r}, expected #rrggbb")
        return v


class ProjectUpdate(BaseModel):
    """Partial update; only fields present in the body are written."""

    name: str | None = None
    code: str | None = None
    description: str | None = None
    color: str | None = None
    is_active: bool | None = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Project name cannot be empty")
        return v

    @field_validator("code", "description")
    @classmethod
    def strip_optional(cls, v: str | None) -> str | None:
        return _strip_or_none(v)

    @field_validator("color")
    @classmethod
    def valid_color(cls, v: str | None) -> str | None:
        if v is not None and not COLOR_PATTERN.match(v):
            raise ValueError(f"Invalid color {v!r}, expected #rrggbb")
        return v


class ProjectRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    name: str
    code: str | None = None
    description: str | None = None
    color: str
    is_active: bool
    created_at: datetime | None = None
    invoice_count: int = 0


class ProjectStats(BaseModel):
    invoice_count: int
    total_amount: float
    total_tax: float
    incoming: AmountTotals
    outgoing: AmountTotals


class ProjectDetail(ProjectRead):
    stats: ProjectStats


class ProjectDeleteResult(BaseModel):
    success: bool = True
    deactivated: bool = Field(False, description="True if the project had invoices and was kept")


class ProjectService:
    """Organization-scoped project CRUD."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _invoice_count(self, project_id: str) -> int:
        stmt = select(func.count()).select_from(Invoice).where(Invoice.project_id == project_id)
        return self.session.scalar(stmt) or 0

    def _read(self, project: Project) -> ProjectRead:
        read = ProjectRead.model_validate(project)
        read.invoice_count = self._invoice_count(project.id)
        return read

    def _code_taken(self, organization_id: str, code: str, exclude_id: str | None = None) -> bool:
        stmt = select(Project.id).where(
            Project.organization_id == organization_id, Project.code == code
        )
        if exclude_id is not None:
            stmt = stmt.where(Project.id != exclude_id)
        return self.session.scalars(stmt).first() is not None

    def get(self, project_id: str, organization_id: str) -> Project:
        stmt = select(Project).where(
            Project.id == project_id, Project.organization_id == organization_id
        )
        project = self.session.scalars(stmt).first()
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def list_projects(self, organization_id: str, include_inactive: bool = True) -> list[ProjectRead]:
        stmt = select(Project).where(Project.organization_id == organization_id)
        if not include_inactive:
            stmt = stmt.where(Project.is_active.is_(True))
        stmt = stmt.order_by(Project.name)
        return [self._read(project) for project in self.session.scalars(stmt)]

    def create(self, organization_id: str, user_id: str, data: ProjectCreate) -> ProjectRead:
        if data.code and self._code_taken(organization_id, data.code):
            raise DuplicateProjectCodeError(data.code)

        project = Project(
            organization_id=organization_id,
            created_by=user_id,
            name=data.name,
            code=data.code,
            description=data.description,
            color=data.color,
            is_active=True,
        )
        self.session.add(project)
        self.session.commit()
        self.session.refresh(project)
        logger.info(f"Created project {project.id} ({project.name}) in {organization_id}")
        return self._read(project)

    def detail(self, project_id: str, organization_id: str) -> ProjectDetail:
        """Project with invoice totals split by direction."""
        project = self.get(project_id, organization_id)
        invoices = list(
            self.session.scalars(select(Invoice).where(Invoice.project_id == project.id))
        )
        incoming, outgoing = split_totals(invoices)
        stats = ProjectStats(
            invoice_count=len(invoices),
            total_amount=incoming.total + outgoing.total,
            total_tax=incoming.tax + outgoing.tax,
            incoming=incoming,
            outgoing=outgoing,
        )
        return ProjectDetail(
            **ProjectRead.model_validate(project).model_dump(exclude={"invoice_count"}),
            invoice_count=len(invoices),
            stats=stats,
        )

    def update(self, project_id: str, organization_id: str, data: ProjectUpdate) -> ProjectRead:
        project = self.get(project_id, organization_id)
        values = data.model_dump(exclude_unset=True)
        for required in ("name", "color", "is_active"):
            if required in values and values[required] is None:
                del values[required]
        if values.get("code") and self._code_taken(organization_id, values["code"], project.id):
            raise DuplicateProjectCodeError(values["code"])

        for key, value in values.items():
            setattr(project, key, value)
        self.session.commit()
        self.session.refresh(project)
        return self._read(project)

    def delete(self, project_id: str, organization_id: str) -> ProjectDeleteResult:
        """Delete a project, or deactivate it if invoices still reference it."""
        project = self.get(project_id, organization_id)
        if self._invoice_count(project.id) > 0:
            project.is_active = False
            self.session.commit()
            logger.info(f"Deactivated project {project.id}: invoices still reference it")
            return ProjectDeleteResult(deactivated=True)

        self.session.delete(project)
        self.session.commit()
        logger.info(f"Deleted project {project_id}")
        return ProjectDeleteResult()
