"""Stored application setting models."""
from typing import Union

from pydantic import BaseModel

SettingInput = Union[str, int, float, bool]


class Setting(BaseModel):
    """A single stored key/value setting."""

    key: str
    value: str


class SettingUpdate(BaseModel):
    """Request model for storing one setting. Values are stored as text."""

    value: SettingInput
