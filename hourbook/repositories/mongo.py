"""MongoDB-backed TimerRepository using Motor."""
import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from bson import Decimal128, ObjectId
from bson.errors import InvalidId

from hourbook.clock import utcnow
from hourbook.models.invoice import Invoice
from hourbook.models.time_entry import BillableEntry, TimeEntry
from hourbook.repositories.base import CATALOG_COLLECTIONS, ENTRY_REFERENCE_FIELDS, TimerRepository

logger = logging.getLogger(__name__)


def _object_id(value: Optional[str]) -> Optional[ObjectId]:
    """Parse an id string, returning None for malformed ids."""
    if not value:
        return None
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _to_bson(value):
    """Convert values BSON cannot store natively (Decimal, date, Enum)."""
    if isinstance(value, dict):
        return {key: _to_bson(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_bson(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return Decimal128(str(value))
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, datetime.min.time())
    return value


def _from_bson(value):
    """Undo _to_bson for Decimal128 values."""
    if isinstance(value, dict):
        return {key: _from_bson(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_from_bson(item) for item in value]
    if isinstance(value, Decimal128):
        return value.to_decimal()
    return value


def _as_date(value):
    return value.date() if isinstance(value, datetime) else value


class MongoTimerRepository(TimerRepository):
    """Repository over the ``time_entries``, ``invoices`` and catalog collections."""

    def __init__(self, db):
        """Initialize repository with database connection."""
        self.db = db
        self.time_entries = db["time_entries"]
        self.invoices = db["invoices"]
        self.settings = db["settings"]

    def _doc_to_entry(self, doc: dict) -> TimeEntry:
        """
        Convert database document to TimeEntry model.
        """
        return TimeEntry(
            _id=str(doc["_id"]),
            client_id=doc.get("client_id"),
            project_id=doc.get("project_id"),
            task_id=doc.get("task_id"),
            description=doc.get("description") or "",
            start_time=doc["start_time"],
            end_time=doc.get("end_time"),
            duration_minutes=doc.get("duration_minutes") or 0,
            is_active=doc.get("is_active", False),
            is_invoiced=doc.get("is_invoiced", False),
            invoice_id=doc.get("invoice_id"),
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
        )

    def _doc_to_invoice(self, doc: dict) -> Invoice:
        """
        Convert database document to Invoice model.

        Handles Decimal128 money values and datetime to date conversion.
        """
        doc = _from_bson(doc)
        line_items = [
            {**item, "day": _as_date(item["day"])}
            for item in doc.get("line_items", [])
        ]
        return Invoice(
            _id=str(doc["_id"]),
            invoice_number=doc["invoice_number"],
            client_id=doc["client_id"],
            total_amount=doc["total_amount"],
            total_minutes=doc.get("total_minutes", 0),
            hourly_rate=doc.get("hourly_rate"),
            status=doc.get("status", "draft"),
            period_start=_as_date(doc["period_start"]),
            period_end=_as_date(doc["period_end"]),
            due_date=_as_date(doc.get("due_date")),
            line_items=line_items,
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
        )

    def _catalog(self, name: str):
        if name not in CATALOG_COLLECTIONS:
            raise KeyError(f"Unknown collection: {name}")
        return self.db[name]

    # Time entries

    async def find_active_entries(self) -> list[TimeEntry]:
        cursor = self.time_entries.find({"is_active": True}).sort("start_time", -1)
        docs = await cursor.to_list(length=None)
        return [self._doc_to_entry(doc) for doc in docs]

    async def find_entry_by_id(self, entry_id: str) -> Optional[TimeEntry]:
        object_id = _object_id(entry_id)
        if object_id is None:
            return None
        doc = await self.time_entries.find_one({"_id": object_id})
        return self._doc_to_entry(doc) if doc else None

    async def find_last_stopped_entry(self) -> Optional[TimeEntry]:
        doc = await self.time_entries.find_one(
            {"is_active": False, "end_time": {"$ne": None}},
            sort=[("end_time", -1)],
        )
        return self._doc_to_entry(doc) if doc else None

    async def create_entry(self, fields: dict) -> TimeEntry:
        now = utcnow()
        entry_doc = {
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
            "created_at": now,
            "updated_at": now,
        }

        result = await self.time_entries.insert_one(entry_doc)
        entry_doc["_id"] = result.inserted_id

        return self._doc_to_entry(entry_doc)

    async def update_entry(self, entry_id: str, fields: dict) -> Optional[TimeEntry]:
        object_id = _object_id(entry_id)
        if object_id is None:
            return None

        updated_doc = await self.time_entries.find_one_and_update(
            {"_id": object_id},
            {"$set": {**fields, "updated_at": utcnow()}},
            return_document=True,
        )
        return self._doc_to_entry(updated_doc) if updated_doc else None

    async def delete_entry(self, entry_id: str) -> bool:
        object_id = _object_id(entry_id)
        if object_id is None:
            return False
        result = await self.time_entries.delete_one({"_id": object_id})
        return result.deleted_count > 0

    async def list_entries(
        self,
        client_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        is_invoiced: Optional[bool] = None,
    ) -> list[TimeEntry]:
        query = {}

        if client_id:
            query["client_id"] = client_id

        if start_date or end_date:
            query["start_time"] = {}
            if start_date:
                query["start_time"]["$gte"] = start_date
            if end_date:
                query["start_time"]["$lte"] = end_date

        if is_invoiced is not None:
            query["is_invoiced"] = is_invoiced

        cursor = self.time_entries.find(query).sort("start_time", -1)
        entry_docs = await cursor.to_list(length=None)

        return [self._doc_to_entry(doc) for doc in entry_docs]

    async def find_entries_by_ids(self, entry_ids: Iterable[str]) -> list[BillableEntry]:
        object_ids = [oid for oid in (_object_id(i) for i in entry_ids) if oid is not None]
        if not object_ids:
            return []

        cursor = self.time_entries.find({"_id": {"$in": object_ids}})
        entry_docs = await cursor.to_list(length=None)

        client_rates = await self._hourly_rates(
            "clients", {doc.get("client_id") for doc in entry_docs}
        )
        project_rates = await self._hourly_rates(
            "projects", {doc.get("project_id") for doc in entry_docs}
        )

        billable = []
        for doc in entry_docs:
            entry = self._doc_to_entry(doc)
            billable.append(BillableEntry(
                **entry.model_dump(by_alias=True),
                client_hourly_rate=client_rates.get(entry.client_id),
                project_hourly_rate=project_rates.get(entry.project_id),
            ))
        return billable

    async def _hourly_rates(self, collection: str, ids: set) -> dict[str, Optional[float]]:
        """Map record id to hourly_rate for the given catalog ids."""
        object_ids = [oid for oid in (_object_id(i) for i in ids) if oid is not None]
        if not object_ids:
            return {}
        cursor = self.db[collection].find(
            {"_id": {"$in": object_ids}},
            {"hourly_rate": 1},
        )
        docs = await cursor.to_list(length=None)
        return {str(doc["_id"]): doc.get("hourly_rate") for doc in docs}

    # Invoices

    async def create_invoice(self, fields: dict) -> Invoice:
        now = utcnow()
        invoice_doc = {**_to_bson(fields), "created_at": now, "updated_at": now}

        result = await self.invoices.insert_one(invoice_doc)
        invoice_doc["_id"] = result.inserted_id

        return self._doc_to_invoice(invoice_doc)

    async def find_invoice_by_id(self, invoice_id: str) -> Optional[Invoice]:
        object_id = _object_id(invoice_id)
        if object_id is None:
            return None
        doc = await self.invoices.find_one({"_id": object_id})
        return self._doc_to_invoice(doc) if doc else None

    async def list_invoices(self, client_id: Optional[str] = None) -> list[Invoice]:
        query = {"client_id": client_id} if client_id else {}
        cursor = self.invoices.find(query).sort("created_at", -1)
        docs = await cursor.to_list(length=None)
        return [self._doc_to_invoice(doc) for doc in docs]

    async def update_invoice(self, invoice_id: str, fields: dict) -> Optional[Invoice]:
        object_id = _object_id(invoice_id)
        if object_id is None:
            return None
        updated_doc = await self.invoices.find_one_and_update(
            {"_id": object_id},
            {"$set": {**_to_bson(fields), "updated_at": utcnow()}},
            return_document=True,
        )
        return self._doc_to_invoice(updated_doc) if updated_doc else None

    async def delete_invoice(self, invoice_id: str) -> bool:
        object_id = _object_id(invoice_id)
        if object_id is None:
            return False
        result = await self.invoices.delete_one({"_id": object_id})
        return result.deleted_count > 0

    async def mark_entries_invoiced(self, entry_ids: Iterable[str], invoice_id: str) -> None:
        object_ids = [oid for oid in (_object_id(i) for i in entry_ids) if oid is not None]
        result = await self.time_entries.update_many(
            {"_id": {"$in": object_ids}},
            {"$set": {"is_invoiced": True, "invoice_id": invoice_id, "updated_at": utcnow()}},
        )
        logger.debug("Marked %s entries invoiced on %s", result.modified_count, invoice_id)

    async def clear_invoice_marking(self, invoice_id: str) -> None:
        result = await self.time_entries.update_many(
            {"invoice_id": invoice_id},
            {"$set": {"is_invoiced": False, "invoice_id": None, "updated_at": utcnow()}},
        )
        logger.debug("Cleared invoice %s from %s entries", invoice_id, result.modified_count)

    # Catalog

    async def create_record(self, collection: str, fields: dict) -> dict:
        now = utcnow()
        doc = {**fields, "created_at": now, "updated_at": now}
        result = await self._catalog(collection).insert_one(doc)
        doc["_id"] = result.inserted_id
        return {**doc, "_id": str(doc["_id"])}

    async def find_record_by_id(self, collection: str, record_id: str) -> Optional[dict]:
        object_id = _object_id(record_id)
        if object_id is None:
            return None
        doc = await self._catalog(collection).find_one({"_id": object_id})
        return {**doc, "_id": str(doc["_id"])} if doc else None

    async def list_records(self, collection: str, filters: Optional[dict] = None) -> list[dict]:
        cursor = self._catalog(collection).find(filters or {}).sort("name", 1)
        docs = await cursor.to_list(length=None)
        return [{**doc, "_id": str(doc["_id"])} for doc in docs]

    async def update_record(self, collection: str, record_id: str, fields: dict) -> Optional[dict]:
        object_id = _object_id(record_id)
        if object_id is None:
            return None
        doc = await self._catalog(collection).find_one_and_update(
            {"_id": object_id},
            {"$set": {**fields, "updated_at": utcnow()}},
            return_document=True,
        )
        return {**doc, "_id": str(doc["_id"])} if doc else None

    async def delete_record(self, collection: str, record_id: str) -> bool:
        object_id = _object_id(record_id)
        if object_id is None:
            return False
        result = await self._catalog(collection).delete_one({"_id": object_id})
        return result.deleted_count > 0

    async def update_records(self, collection: str, filters: dict, fields: dict) -> int:
        result = await self._catalog(collection).update_many(
            filters,
            {"$set": {**fields, "updated_at": utcnow()}},
        )
        return result.matched_count

    async def delete_records(self, collection: str, filters: dict) -> int:
        result = await self._catalog(collection).delete_many(filters)
        return result.deleted_count

    async def clear_entry_references(self, field: str, record_ids: Iterable[str]) -> int:
        if field not in ENTRY_REFERENCE_FIELDS:
            raise KeyError(f"Unknown reference field: {field}")
        result = await self.time_entries.update_many(
            {field: {"$in": list(record_ids)}},
            {"$set": {field: None, "updated_at": utcnow()}},
        )
        logger.debug("Cleared %s on %s entries", field, result.modified_count)
        return result.modified_count

    # Settings

    async def get_setting(self, key: str) -> Optional[str]:
        doc = await self.settings.find_one({"key": key})
        return doc["value"] if doc else None

    async def set_setting(self, key: str, value: str) -> None:
        await self.settings.update_one(
            {"key": key},
            {"$set": {"value": value}},
            upsert=True,
        )

    async def get_settings(self) -> dict[str, str]:
        docs = await self.settings.find({}).to_list(length=None)
        return {doc["key"]: doc["value"] for doc in docs}
