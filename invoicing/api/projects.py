"""Project (cost center) endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status

from invoicing.api.deps import CurrentMember, get_current_member, get_project_service
from invoicing.auth.permissions import OrgRole, Permission, PermissionDeniedError
from invoicing.projects.service import (
    DuplicateProjectCodeError,
    ProjectCreate,
    ProjectDeleteResult,
    ProjectDetail,
    ProjectRead,
    ProjectService,
    ProjectUpdate,
)

router = APIRouter(prefix="/api/projects", tags=["Projects"])


def _duplicate_code(e: DuplicateProjectCodeError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("", response_model=list[ProjectRead])
def list_projects(
    include_inactive: bool = True,
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    projects: ProjectService = Depends(get_project_service),  # noqa: B008
) -> list[ProjectRead]:
    member.require(Permission.VIEW_PROJECTS)
    return projects.list_projects(member.organization_id, include_inactive=include_inactive)


@router.post("", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
def create_project(
    data: ProjectCreate,
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    projects: ProjectService = Depends(get_project_service),  # noqa: B008
) -> ProjectRead:
    member.require(Permission.MANAGE_PROJECTS)
    try:
        return projects.create(member.organization_id, member.user_id, data)
    except DuplicateProjectCodeError as e:
        raise _duplicate_code(e) from e


@router.get("/{project_id}", response_model=ProjectDetail)
def get_project(
    project_id: str,
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    projects: ProjectService = Depends(get_project_service),  # noqa: B008
) -> ProjectDetail:
    member.require(Permission.VIEW_PROJECTS)
    return projects.detail(project_id, member.organization_id)


@router.patch("/{project_id}", response_model=ProjectRead)
def update_project(
    project_id: str,
    data: ProjectUpdate,
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    projects: ProjectService = Depends(get_project_service),  # noqa: B008
) -> ProjectRead:
    member.require(Permission.MANAGE_PROJECTS)
    try:
        return projects.update(project_id, member.organization_id, data)
    except DuplicateProjectCodeError as e:
        raise _duplicate_code(e) from e


@router.delete("/{project_id}", response_model=ProjectDeleteResult)
def delete_project(
    project_id: str,
    member: CurrentMember = Depends(get_current_member),  # noqa: B008
    projects: ProjectService = Depends(get_project_service),  # noqa: B008
) -> ProjectDeleteResult:
    """Delete a project; one that still has invoices is deactivated instead."""
    if member.role != OrgRole.OWNER:
        raise PermissionDeniedError(
            Permission.MANAGE_PROJECTS, "Only owners can delete projects"
        )
    return projects.delete(project_id, member.organization_id)
