"""Task router - API endpoints for task management."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from hourbook.database import get_repository
from hourbook.exceptions import HourbookError
from hourbook.models.catalog import Task, TaskCreate, TaskUpdate
from hourbook.routers.errors import http_error
from hourbook.services.catalog_service import CatalogService


router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.post("", response_model=Task, status_code=status.HTTP_201_CREATED)
async def create_task(task: TaskCreate, repository=Depends(get_repository)):
    """Create a task under an existing project."""
    service = CatalogService(repository)

    try:
        return await service.create_task(task)
    except HourbookError as e:
        raise http_error(e)


@router.get("", response_model=list[Task])
async def list_tasks(
    project_id: Optional[str] = Query(None, description="Filter by project"),
    repository=Depends(get_repository),
):
    service = CatalogService(repository)
    return await service.list_tasks(project_id=project_id)


@router.get("/last-used", response_model=Optional[Task])
async def get_last_used_task(repository=Depends(get_repository)):
    """Task of the most recently started timer, or null."""
    service = CatalogService(repository)
    return await service.get_last_used_task()


@router.get("/{task_id}", response_model=Task)
async def get_task(task_id: str, repository=Depends(get_repository)):
    service = CatalogService(repository)

    try:
        return await service.get_task(task_id)
    except HourbookError as e:
        raise http_error(e)


@router.patch("/{task_id}", response_model=Task)
async def update_task(
    task_id: str,
    task_update: TaskUpdate,
    repository=Depends(get_repository),
):
    service = CatalogService(repository)

    try:
        return await service.update_task(task_id, task_update)
    except HourbookError as e:
        raise http_error(e)


@router.delete("/{task_id}")
async def delete_task(task_id: str, repository=Depends(get_repository)):
    service = CatalogService(repository)

    try:
        return await service.delete_task(task_id)
    except HourbookError as e:
        raise http_error(e)
