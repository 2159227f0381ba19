"""Settings router - API endpoints for stored preferences."""
from fastapi import APIRouter, Body, Depends

from hourbook.database import get_repository
from hourbook.exceptions import HourbookError
from hourbook.models.setting import Setting, SettingInput, SettingUpdate
from hourbook.routers.errors import http_error
from hourbook.services.settings_service import SettingsService


router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=dict[str, str])
async def get_settings(repository=Depends(get_repository)):
    """Get the stored company, timer and invoice settings."""
    service = SettingsService(repository)
    return await service.get_settings()


@router.put("", response_model=dict[str, str])
async def update_settings(
    values: dict[str, SettingInput] = Body(...),
    repository=Depends(get_repository),
):
    """
    Store several settings at once.

    - timer_rounding must be a whole number of minutes
    - Returns the stored settings after the update
    """
    service = SettingsService(repository)

    try:
        return await service.update_settings(values)
    except HourbookError as e:
        raise http_error(e)


@router.get("/{key}", response_model=Setting)
async def get_setting(key: str, repository=Depends(get_repository)):
    """Get one stored setting (404 if unset)."""
    service = SettingsService(repository)

    try:
        return await service.get_setting(key)
    except HourbookError as e:
        raise http_error(e)


@router.put("/{key}", response_model=Setting)
async def set_setting(
    key: str,
    setting: SettingUpdate,
    repository=Depends(get_repository),
):
    """Store one setting."""
    service = SettingsService(repository)

    try:
        return await service.set_setting(key, setting.value)
    except HourbookError as e:
        raise http_error(e)
