"""Invoice model definitions."""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class InvoiceStatus(str, Enum):
    """Invoice lifecycle states."""

    DRAFT = "draft"
    GENERATED = "generated"
    SENT = "sent"
    PAID = "paid"


class InvoiceLineItem(BaseModel):
    """One billed day on an invoice."""

    day: date
    description: str = ""
    minutes: int
    hours: Decimal
    amount: Decimal


class InvoiceGenerate(BaseModel):
    """Request model for generating an invoice from selected entries."""

    entry_ids: list[str]
    invoice_number: Optional[str] = None
    status: InvoiceStatus = InvoiceStatus.GENERATED


class InvoicePeriodGenerate(BaseModel):
    """Request model for invoicing all uninvoiced entries of a client in a date range."""

    client_id: str
    start_date: date
    end_date: date
    invoice_number: Optional[str] = None
    status: InvoiceStatus = InvoiceStatus.GENERATED


class InvoiceStatusUpdate(BaseModel):
    """Request model for moving an invoice to another status."""

    status: InvoiceStatus


class Invoice(BaseModel):
    """Full invoice model with database fields."""

    id: str = Field(alias="_id", serialization_alias="id")
    invoice_number: str
    client_id: str
    total_amount: Decimal
    total_minutes: int = 0
    hourly_rate: Optional[Decimal] = None  # None when rates vary across entries
    status: InvoiceStatus = InvoiceStatus.DRAFT
    period_start: date
    period_end: date
    due_date: Optional[date] = None
    line_items: list[InvoiceLineItem] = []
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}
