"""Persistence contract consumed by the timer, invoice and catalog services."""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from hourbook.models.invoice import Invoice
from hourbook.models.time_entry import BillableEntry, TimeEntry


CATALOG_COLLECTIONS = ("clients", "projects", "tasks")
ENTRY_REFERENCE_FIELDS = ("client_id", "project_id", "task_id")


class TimerRepository(ABC):
    """
    Storage operations the services need.

    Field dicts passed to ``create_*``/``update_*`` use the model field
    names (``start_time``, ``is_active``, ...). Implementations stamp
    ``created_at``/``updated_at`` themselves.
    """

    # Time entries

    @abstractmethod
    async def find_active_entries(self) -> list[TimeEntry]:
        """Return every entry flagged active, most recently started first."""

    @abstractmethod
    async def find_entry_by_id(self, entry_id: str) -> Optional[TimeEntry]:
        """Return the entry, or None if it does not exist or the id is malformed."""

    @abstractmethod
    async def find_last_stopped_entry(self) -> Optional[TimeEntry]:
        """Return the inactive entry with the latest end_time, if any."""

    @abstractmethod
    async def create_entry(self, fields: dict) -> TimeEntry:
        """Insert a new entry."""

    @abstractmethod
    async def update_entry(self, entry_id: str, fields: dict) -> Optional[TimeEntry]:
        """Apply ``fields`` to the entry and return it, or None if it is gone."""

    @abstractmethod
    async def delete_entry(self, entry_id: str) -> bool:
        """Hard delete an entry. Returns False when nothing was deleted."""

    @abstractmethod
    async def list_entries(
        self,
        client_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        is_invoiced: Optional[bool] = None,
    ) -> list[TimeEntry]:
        """List entries, most recently started first."""

    @abstractmethod
    async def find_entries_by_ids(self, entry_ids: Iterable[str]) -> list[BillableEntry]:
        """Return the entries that exist, joined with client and project rates."""

    # Invoices

    @abstractmethod
    async def create_invoice(self, fields: dict) -> Invoice:
        """Insert a new invoice."""

    @abstractmethod
    async def find_invoice_by_id(self, invoice_id: str) -> Optional[Invoice]:
        """Return the invoice or None."""

    @abstractmethod
    async def list_invoices(self, client_id: Optional[str] = None) -> list[Invoice]:
        """List invoices, newest first, optionally for one client."""

    @abstractmethod
    async def update_invoice(self, invoice_id: str, fields: dict) -> Optional[Invoice]:
        """Apply ``fields`` to the invoice and return it, or None if it is gone."""

    @abstractmethod
    async def delete_invoice(self, invoice_id: str) -> bool:
        """Delete the invoice record only; entries are handled by clear_invoice_marking."""

    @abstractmethod
    async def mark_entries_invoiced(self, entry_ids: Iterable[str], invoice_id: str) -> None:
        """Set is_invoiced/invoice_id on the given entries."""

    @abstractmethod
    async def clear_invoice_marking(self, invoice_id: str) -> None:
        """Reset is_invoiced/invoice_id on every entry pointing at the invoice."""

    # Catalog (clients, projects, tasks)

    @abstractmethod
    async def create_record(self, collection: str, fields: dict) -> dict:
        """Insert a catalog record and return it as a document with ``_id``."""

    @abstractmethod
    async def find_record_by_id(self, collection: str, record_id: str) -> Optional[dict]:
        """Return a catalog document or None."""

    @abstractmethod
    async def list_records(self, collection: str, filters: Optional[dict] = None) -> list[dict]:
        """List catalog documents matching equality filters, ordered by name."""

    @abstractmethod
    async def update_record(self, collection: str, record_id: str, fields: dict) -> Optional[dict]:
        """Apply ``fields`` to a catalog record and return it, or None if it is gone."""

    @abstractmethod
    async def delete_record(self, collection: str, record_id: str) -> bool:
        """Delete a catalog record. Returns False when nothing was deleted."""

    @abstractmethod
    async def update_records(self, collection: str, filters: dict, fields: dict) -> int:
        """Apply ``fields`` to every record matching ``filters``. Returns the match count."""

    @abstractmethod
    async def delete_records(self, collection: str, filters: dict) -> int:
        """Delete every record matching ``filters``. Returns the number deleted."""

    @abstractmethod
    async def clear_entry_references(self, field: str, record_ids: Iterable[str]) -> int:
        """Set ``field`` (client_id, project_id or task_id) to None on entries pointing at ``record_ids``."""

    # Settings

    @abstractmethod
    async def get_setting(self, key: str) -> Optional[str]:
        """Return the stored value for ``key``, or None."""

    @abstractmethod
    async def set_setting(self, key: str, value: str) -> None:
        """Insert or replace the value stored under ``key``."""

    @abstractmethod
    async def get_settings(self) -> dict[str, str]:
        """Return every stored setting as a key/value mapping."""
