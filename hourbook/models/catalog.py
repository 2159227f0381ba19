"""Client, project and task model definitions."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ClientBase(BaseModel):
    """Base client fields."""

    name: str
    email: Optional[str] = None
    hourly_rate: float = Field(default=0, ge=0)


class ClientCreate(ClientBase):
    """Client creation model."""

    pass


class ClientUpdate(BaseModel):
    """Client update model - all fields optional."""

    name: Optional[str] = None
    email: Optional[str] = None
    hourly_rate: Optional[float] = Field(default=None, ge=0)


class Client(ClientBase):
    """Full client model with database fields."""

    id: str = Field(alias="_id", serialization_alias="id")
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}


class ProjectBase(BaseModel):
    """Base project fields."""

    name: str
    client_id: str
    hourly_rate: Optional[float] = Field(default=None, ge=0)  # falls back to the client rate
    is_default: bool = False  # at most one per client


class ProjectCreate(ProjectBase):
    """Project creation model."""

    pass


class ProjectUpdate(BaseModel):
    """Project update model - all fields optional."""

    name: Optional[str] = None
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    is_default: Optional[bool] = None


class Project(ProjectBase):
    """Full project model with database fields."""

    id: str = Field(alias="_id", serialization_alias="id")
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}


class TaskBase(BaseModel):
    """Base task fields."""

    name: str
    project_id: str
    description: str = ""


class TaskCreate(TaskBase):
    """Task creation model."""

    pass


class TaskUpdate(BaseModel):
    """Task update model - all fields optional."""

    name: Optional[str] = None
    description: Optional[str] = None


class Task(TaskBase):
    """Full task model with database fields."""

    id: str = Field(alias="_id", serialization_alias="id")
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}
