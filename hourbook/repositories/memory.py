"""In-memory TimerRepository used by tests and local development."""
import copy
from datetime import datetime
from typing import Iterable, Optional
from uuid import uuid4

from hourbook.clock import utcnow
from hourbook.models.invoice import Invoice
from hourbook.models.time_entry import BillableEntry, TimeEntry
from hourbook.repositories.base import CATALOG_COLLECTIONS, ENTRY_REFERENCE_FIELDS, TimerRepository


def _new_id() -> str:
    return uuid4().hex[:24]


class InMemoryTimerRepository(TimerRepository):
    """Dict-backed repository with the same semantics as the MongoDB one."""

    def __init__(self):
        self.entries: dict[str, dict] = {}
        self.invoices: dict[str, dict] = {}
        self.records: dict[str, dict[str, dict]] = {name: {} for name in CATALOG_COLLECTIONS}
        self.settings: dict[str, str] = {}

    def _to_entry(self, doc: dict) -> TimeEntry:
        return TimeEntry(**copy.deepcopy(doc))

    def _to_invoice(self, doc: dict) -> Invoice:
        return Invoice(**copy.deepcopy(doc))

    def _collection(self, name: str) -> dict[str, dict]:
        if name not in self.records:
            raise KeyError(f"Unknown collection: {name}")
        return self.records[name]

    # Time entries

    async def find_active_entries(self) -> list[TimeEntry]:
        active = [doc for doc in self.entries.values() if doc["is_active"]]
        active.sort(key=lambda doc: doc["start_time"], reverse=True)
        return [self._to_entry(doc) for doc in active]

    async def find_entry_by_id(self, entry_id: str) -> Optional[TimeEntry]:
        doc = self.entries.get(entry_id) if entry_id else None
        return self._to_entry(doc) if doc else None

    async def find_last_stopped_entry(self) -> Optional[TimeEntry]:
        stopped = [
            doc for doc in self.entries.values()
            if not doc["is_active"] and doc.get("end_time") is not None
        ]
        if not stopped:
            return None
        latest = max(stopped, key=lambda doc: doc["end_time"])
        return self._to_entry(latest)

    async def create_entry(self, fields: dict) -> TimeEntry:
        now = utcnow()
        doc = {
            "client_id": None,
            "project_id": None,
            "task_id": None,
            "description": "",
            "end_time": None,
            "duration_minutes": 0,
            "is_active": False,
            "is_invoiced": False,
            "invoice_id": None,
            **fields,
            "_id": _new_id(),
            "created_at": now,
            "updated_at": now,
        }
        self.entries[doc["_id"]] = doc
        return self._to_entry(doc)

    async def update_entry(self, entry_id: str, fields: dict) -> Optional[TimeEntry]:
        doc = self.entries.get(entry_id)
        if doc is None:
            return None
        doc.update(fields)
        doc["updated_at"] = utcnow()
        return self._to_entry(doc)

    async def delete_entry(self, entry_id: str) -> bool:
        return self.entries.pop(entry_id, None) is not None

    async def list_entries(
        self,
        client_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        is_invoiced: Optional[bool] = None,
    ) -> list[TimeEntry]:
        docs = list(self.entries.values())
        if client_id:
            docs = [doc for doc in docs if doc["client_id"] == client_id]
        if start_date:
            docs = [doc for doc in docs if doc["start_time"] >= start_date]
        if end_date:
            docs = [doc for doc in docs if doc["start_time"] <= end_date]
        if is_invoiced is not None:
            docs = [doc for doc in docs if doc["is_invoiced"] == is_invoiced]
        docs.sort(key=lambda doc: doc["start_time"], reverse=True)
        return [self._to_entry(doc) for doc in docs]

    async def find_entries_by_ids(self, entry_ids: Iterable[str]) -> list[BillableEntry]:
        billable = []
        for entry_id in dict.fromkeys(entry_ids):
            doc = self.entries.get(entry_id)
            if doc is None:
                continue
            client = self.records["clients"].get(doc["client_id"] or "")
            project = self.records["projects"].get(doc["project_id"] or "")
            billable.append(BillableEntry(
                **copy.deepcopy(doc),
                client_hourly_rate=client.get("hourly_rate") if client else None,
                project_hourly_rate=project.get("hourly_rate") if project else None,
            ))
        return billable

    # Invoices

    async def create_invoice(self, fields: dict) -> Invoice:
        now = utcnow()
        doc = {**copy.deepcopy(fields), "_id": _new_id(), "created_at": now, "updated_at": now}
        self.invoices[doc["_id"]] = doc
        return self._to_invoice(doc)

    async def find_invoice_by_id(self, invoice_id: str) -> Optional[Invoice]:
        doc = self.invoices.get(invoice_id) if invoice_id else None
        return self._to_invoice(doc) if doc else None

    async def list_invoices(self, client_id: Optional[str] = None) -> list[Invoice]:
        docs = [
            doc for doc in self.invoices.values()
            if client_id is None or doc["client_id"] == client_id
        ]
        docs.sort(key=lambda doc: doc["created_at"], reverse=True)
        return [self._to_invoice(doc) for doc in docs]

    async def update_invoice(self, invoice_id: str, fields: dict) -> Optional[Invoice]:
        doc = self.invoices.get(invoice_id)
        if doc is None:
            return None
        doc.update(fields)
        doc["updated_at"] = utcnow()
        return self._to_invoice(doc)

    async def delete_invoice(self, invoice_id: str) -> bool:
        return self.invoices.pop(invoice_id, None) is not None

    async def mark_entries_invoiced(self, entry_ids: Iterable[str], invoice_id: str) -> None:
        now = utcnow()
        for entry_id in entry_ids:
            doc = self.entries.get(entry_id)
            if doc is not None:
                doc.update(is_invoiced=True, invoice_id=invoice_id, updated_at=now)

    async def clear_invoice_marking(self, invoice_id: str) -> None:
        now = utcnow()
        for doc in self.entries.values():
            if doc["invoice_id"] == invoice_id:
                doc.update(is_invoiced=False, invoice_id=None, updated_at=now)

    # Catalog

    async def create_record(self, collection: str, fields: dict) -> dict:
        now = utcnow()
        doc = {**fields, "_id": _new_id(), "created_at": now, "updated_at": now}
        self._collection(collection)[doc["_id"]] = doc
        return dict(doc)

    async def find_record_by_id(self, collection: str, record_id: str) -> Optional[dict]:
        doc = self._collection(collection).get(record_id) if record_id else None
        return dict(doc) if doc else None

    async def list_records(self, collection: str, filters: Optional[dict] = None) -> list[dict]:
        filters = filters or {}
        docs = [
            dict(doc) for doc in self._collection(collection).values()
            if all(doc.get(key) == value for key, value in filters.items())
        ]
        return sorted(docs, key=lambda doc: doc.get("name", ""))

    async def update_record(self, collection: str, record_id: str, fields: dict) -> Optional[dict]:
        doc = self._collection(collection).get(record_id)
        if doc is None:
            return None
        doc.update(fields)
        doc["updated_at"] = utcnow()
        return dict(doc)

    async def delete_record(self, collection: str, record_id: str) -> bool:
        return self._collection(collection).pop(record_id, None) is not None

    def _matching(self, collection: str, filters: dict) -> list[dict]:
        return [
            doc for doc in self._collection(collection).values()
            if all(doc.get(key) == value for key, value in filters.items())
        ]

    async def update_records(self, collection: str, filters: dict, fields: dict) -> int:
        matched = self._matching(collection, filters)
        now = utcnow()
        for doc in matched:
            doc.update(fields)
            doc["updated_at"] = now
        return len(matched)

    async def delete_records(self, collection: str, filters: dict) -> int:
        matched = self._matching(collection, filters)
        for doc in matched:
            del self._collection(collection)[doc["_id"]]
        return len(matched)

    async def clear_entry_references(self, field: str, record_ids: Iterable[str]) -> int:
        if field not in ENTRY_REFERENCE_FIELDS:
            raise KeyError(f"Unknown reference field: {field}")
        ids = set(record_ids)
        now = utcnow()
        cleared = 0
        for doc in self.entries.values():
            if doc.get(field) in ids:
                doc.update({field: None, "updated_at": now})
                cleared += 1
        return cleared

    # Settings

    async def get_setting(self, key: str) -> Optional[str]:
        return self.settings.get(key)

    async def set_setting(self, key: str, value: str) -> None:
        self.settings[key] = value

    async def get_settings(self) -> dict[str, str]:
        return dict(self.settings)
