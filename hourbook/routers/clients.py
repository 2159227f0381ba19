"""Client router - API endpoints for client management."""
from typing import Optional

from fastapi import APIRouter, Depends, status

from hourbook.database import get_repository
from hourbook.exceptions import HourbookError
from hourbook.models.catalog import Client, ClientCreate, ClientUpdate
from hourbook.routers.errors import http_error
from hourbook.services.catalog_service import CatalogService


router = APIRouter(prefix="/clients", tags=["clients"])


@router.post("", response_model=Client, status_code=status.HTTP_201_CREATED)
async def create_client(client: ClientCreate, repository=Depends(get_repository)):
    """
    Create a new client.

    Args:
        client: Client creation data (hourly_rate defaults to 0)
        repository: Storage backend

    Returns:
        Created client object
    """
    service = CatalogService(repository)
    return await service.create_client(client)


@router.get("", response_model=list[Client])
async def list_clients(repository=Depends(get_repository)):
    """List clients ordered by name."""
    service = CatalogService(repository)
    return await service.list_clients()


@router.get("/last-used", response_model=Optional[Client])
async def get_last_used_client(repository=Depends(get_repository)):
    """Client of the most recently started timer, or null."""
    service = CatalogService(repository)
    return await service.get_last_used_client()


@router.get("/{client_id}", response_model=Client)
async def get_client(client_id: str, repository=Depends(get_repository)):
    """Get a client by ID."""
    service = CatalogService(repository)

    try:
        return await service.get_client(client_id)
    except HourbookError as e:
        raise http_error(e)


@router.patch("/{client_id}", response_model=Client)
async def update_client(
    client_id: str,
    client_update: ClientUpdate,
    repository=Depends(get_repository),
):
    """Update a client."""
    service = CatalogService(repository)

    try:
        return await service.update_client(client_id, client_update)
    except HourbookError as e:
        raise http_error(e)


@router.delete("/{client_id}")
async def delete_client(client_id: str, repository=Depends(get_repository)):
    """
    Delete a client.

    - Its projects, tasks and invoices are deleted too
    - Its time entries are kept without a client
    """
    service = CatalogService(repository)

    try:
        return await service.delete_client(client_id)
    except HourbookError as e:
        raise http_error(e)
