"""Time entry model definitions."""
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC; convert aware input to match."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class TimeEntryBase(BaseModel):
    """Base time entry fields."""

    client_id: Optional[str] = None
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    description: str = ""
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: int = Field(default=0, ge=0)


class TimeEntryCreate(BaseModel):
    """Manual (already stopped) time entry creation model."""

    client_id: Optional[str] = None
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    description: str = ""
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_times(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class TimeEntryUpdate(BaseModel):
    """Time entry update model - all fields optional."""

    client_id: Optional[str] = None
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_times(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class TimeEntry(TimeEntryBase):
    """Full time entry model with database fields."""

    id: str = Field(alias="_id", serialization_alias="id")
    is_active: bool = False
    is_invoiced: bool = False
    invoice_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}


class BillableEntry(TimeEntry):
    """Time entry joined with the hourly rates of its client and project."""

    client_hourly_rate: Optional[float] = None
    project_hourly_rate: Optional[float] = None
