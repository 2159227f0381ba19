"""Project router - API endpoints for project management."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from hourbook.database import get_repository
from hourbook.exceptions import HourbookError
from hourbook.models.catalog import Project, ProjectCreate, ProjectUpdate
from hourbook.routers.errors import http_error
from hourbook.services.catalog_service import CatalogService


router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("", response_model=Project, status_code=status.HTTP_201_CREATED)
async def create_project(project: ProjectCreate, repository=Depends(get_repository)):
    """
    Create a new project.

    Args:
        project: Project creation data
        repository: Storage backend

    Returns:
        Created project object

    Raises:
        HTTPException: If the client does not exist (404)
    """
    service = CatalogService(repository)

    try:
        return await service.create_project(project)
    except HourbookError as e:
        raise http_error(e)


@router.get("", response_model=list[Project])
async def list_projects(
    client_id: Optional[str] = Query(None, description="Filter by client"),
    repository=Depends(get_repository),
):
    """List projects, optionally for one client."""
    service = CatalogService(repository)
    return await service.list_projects(client_id=client_id)


@router.get("/default", response_model=Optional[Project])
async def get_default_project(
    client_id: str = Query(..., description="Client to look up"),
    repository=Depends(get_repository),
):
    """
    Get the default project of a client.

    - Returns null when the client has no default project
    - Returns 404 if the client does not exist
    """
    service = CatalogService(repository)

    try:
        return await service.get_default_project(client_id)
    except HourbookError as e:
        raise http_error(e)


@router.get("/last-used", response_model=Optional[Project])
async def get_last_used_project(repository=Depends(get_repository)):
    """Project of the most recently started timer, or null."""
    service = CatalogService(repository)
    return await service.get_last_used_project()


@router.get("/{project_id}", response_model=Project)
async def get_project(project_id: str, repository=Depends(get_repository)):
    """Get a project by ID."""
    service = CatalogService(repository)

    try:
        return await service.get_project(project_id)
    except HourbookError as e:
        raise http_error(e)


@router.patch("/{project_id}", response_model=Project)
async def update_project(
    project_id: str,
    project_update: ProjectUpdate,
    repository=Depends(get_repository),
):
    """Update a project."""
    service = CatalogService(repository)

    try:
        return await service.update_project(project_id, project_update)
    except HourbookError as e:
        raise http_error(e)


@router.delete("/{project_id}")
async def delete_project(project_id: str, repository=Depends(get_repository)):
    """Delete a project and its tasks; time entries keep their client."""
    service = CatalogService(repository)

    try:
        return await service.delete_project(project_id)
    except HourbookError as e:
        raise http_error(e)
