"""Catalog service - business logic for clients, projects and tasks."""
import logging
from typing import Optional

from hourbook.exceptions import InvalidInputError, NotFoundError
from hourbook.models.catalog import (
    Client,
    ClientCreate,
    ClientUpdate,
    Project,
    ProjectCreate,
    ProjectUpdate,
    Task,
    TaskCreate,
    TaskUpdate,
)
from hourbook.repositories.base import TimerRepository
from hourbook.services.settings_service import (
    LAST_USED_CLIENT,
    LAST_USED_PROJECT,
    LAST_USED_TASK,
)

logger = logging.getLogger(__name__)


class CatalogService:
    """
    Service for handling the clients, projects and tasks time is billed against.

    Deletes cascade down the hierarchy: a client takes its projects, tasks
    and invoices with it, a project takes its tasks. Time entries are kept
    with the deleted reference cleared.
    """

    def __init__(self, repository: TimerRepository):
        """Initialize service with a repository."""
        self.repository = repository

    async def _get(self, collection: str, record_id: str, label: str) -> dict:
        doc = await self.repository.find_record_by_id(collection, record_id)
        if not doc:
            raise NotFoundError(f"{label} not found: {record_id}")
        return doc

    async def _update(self, collection: str, record_id: str, update, label: str) -> dict:
        update_doc = update.model_dump(exclude_none=True)
        if not update_doc:
            raise InvalidInputError("Update data is required")

        await self._get(collection, record_id, label)
        updated = await self.repository.update_record(collection, record_id, update_doc)
        if not updated:
            raise NotFoundError(f"{label} not found: {record_id}")
        return updated

    async def _last_used(self, key: str, collection: str) -> Optional[dict]:
        record_id = await self.repository.get_setting(key)
        if not record_id:
            return None
        return await self.repository.find_record_by_id(collection, record_id)

    async def _clear_default_project(self, client_id: str) -> None:
        await self.repository.update_records(
            "projects", {"client_id": client_id, "is_default": True}, {"is_default": False}
        )

    async def _delete_project_records(self, project_id: str) -> bool:
        tasks = await self.repository.list_records("tasks", {"project_id": project_id})
        if tasks:
            await self.repository.clear_entry_references("task_id", [task["_id"] for task in tasks])
            await self.repository.delete_records("tasks", {"project_id": project_id})
        await self.repository.clear_entry_references("project_id", [project_id])
        return await self.repository.delete_record("projects", project_id)

    # Clients

    async def create_client(self, client_create: ClientCreate) -> Client:
        doc = await self.repository.create_record("clients", client_create.model_dump())
        return Client(**doc)

    async def list_clients(self) -> list[Client]:
        return [Client(**doc) for doc in await self.repository.list_records("clients")]

    async def get_client(self, client_id: str) -> Client:
        return Client(**await self._get("clients", client_id, "Client"))

    async def get_last_used_client(self) -> Optional[Client]:
        """The client of the most recently started timer, if it still exists."""
        doc = await self._last_used(LAST_USED_CLIENT, "clients")
        return Client(**doc) if doc else None

    async def update_client(self, client_id: str, client_update: ClientUpdate) -> Client:
        return Client(**await self._update("clients", client_id, client_update, "Client"))

    async def delete_client(self, client_id: str) -> dict:
        """
        Delete a client with its projects, tasks and invoices.

        Entries of the client are kept, unassigned and released from any
        deleted invoice.

        Raises:
            NotFoundError: If client not found
        """
        await self._get("clients", client_id, "Client")

        projects = await self.repository.list_records("projects", {"client_id": client_id})
        for project in projects:
            await self._delete_project_records(project["_id"])

        invoices = await self.repository.list_invoices(client_id=client_id)
        for invoice in invoices:
            await self.repository.delete_invoice(invoice.id)
            await self.repository.clear_invoice_marking(invoice.id)

        await self.repository.clear_entry_references("client_id", [client_id])
        deleted = await self.repository.delete_record("clients", client_id)
        logger.info(
            "Deleted client %s with %s projects and %s invoices",
            client_id, len(projects), len(invoices),
        )
        return {"deleted_count": 1 if deleted else 0}

    # Projects

    async def create_project(self, project_create: ProjectCreate) -> Project:
        """
        Create a project under an existing client.

        A new default project replaces the client's previous default.

        Raises:
            NotFoundError: If the client does not exist
        """
        await self._get("clients", project_create.client_id, "Client")
        if project_create.is_default:
            await self._clear_default_project(project_create.client_id)
        doc = await self.repository.create_record("projects", project_create.model_dump())
        return Project(**doc)

    async def list_projects(self, client_id: Optional[str] = None) -> list[Project]:
        filters = {"client_id": client_id} if client_id else None
        return [Project(**doc) for doc in await self.repository.list_records("projects", filters)]

    async def get_project(self, project_id: str) -> Project:
        return Project(**await self._get("projects", project_id, "Project"))

    async def get_default_project(self, client_id: str) -> Optional[Project]:
        """
        Get the client's default project, if one is set.

        Raises:
            NotFoundError: If the client does not exist
        """
        await self._get("clients", client_id, "Client")
        docs = await self.repository.list_records(
            "projects", {"client_id": client_id, "is_default": True}
        )
        return Project(**docs[0]) if docs else None

    async def get_last_used_project(self) -> Optional[Project]:
        """The project of the most recently started timer, if it still exists."""
        doc = await self._last_used(LAST_USED_PROJECT, "projects")
        return Project(**doc) if doc else None

    async def update_project(self, project_id: str, project_update: ProjectUpdate) -> Project:
        """
        Update a project.

        Making it the default clears the default flag on the client's other projects.
        """
        if project_update.is_default:
            project = await self._get("projects", project_id, "Project")
            await self._clear_default_project(project["client_id"])
        return Project(**await self._update("projects", project_id, project_update, "Project"))

    async def delete_project(self, project_id: str) -> dict:
        """
        Delete a project with its tasks; entries keep their client.

        Raises:
            NotFoundError: If project not found
        """
        await self._get("projects", project_id, "Project")
        deleted = await self._delete_project_records(project_id)
        return {"deleted_count": 1 if deleted else 0}

    # Tasks

    async def create_task(self, task_create: TaskCreate) -> Task:
        """
        Create a task under an existing project.

        Raises:
            NotFoundError: If the project does not exist
        """
        await self._get("projects", task_create.project_id, "Project")
        doc = await self.repository.create_record("tasks", task_create.model_dump())
        return Task(**doc)

    async def list_tasks(self, project_id: Optional[str] = None) -> list[Task]:
        filters = {"project_id": project_id} if project_id else None
        return [Task(**doc) for doc in await self.repository.list_records("tasks", filters)]

    async def get_task(self, task_id: str) -> Task:
        return Task(**await self._get("tasks", task_id, "Task"))

    async def get_last_used_task(self) -> Optional[Task]:
        """The task of the most recently started timer, if it still exists."""
        doc = await self._last_used(LAST_USED_TASK, "tasks")
        return Task(**doc) if doc else None

    async def update_task(self, task_id: str, task_update: TaskUpdate) -> Task:
        return Task(**await self._update("tasks", task_id, task_update, "Task"))

    async def delete_task(self, task_id: str) -> dict:
        await self._get("tasks", task_id, "Task")
        await self.repository.clear_entry_references("task_id", [task_id])
        deleted = await self.repository.delete_record("tasks", task_id)
        return {"deleted_count": 1 if deleted else 0}
