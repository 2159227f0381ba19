"""Settings service - runtime preferences stored alongside the data."""
import logging
from typing import Optional

from hourbook.config import settings
from hourbook.exceptions import InvalidInputError, NotFoundError
from hourbook.models.setting import Setting, SettingInput
from hourbook.repositories.base import TimerRepository

logger = logging.getLogger(__name__)

TIMER_ROUNDING = "timer_rounding"
INVOICE_TERMS = "invoice_terms"
LAST_USED_CLIENT = "last_used_client_id"
LAST_USED_PROJECT = "last_used_project_id"
LAST_USED_TASK = "last_used_task_id"

# Keys exposed through get_settings; last-used ids are internal
SETTING_KEYS = (
    "company_name",
    "company_email",
    "company_phone",
    "company_website",
    TIMER_ROUNDING,
    "invoice_template",
    INVOICE_TERMS,
)


def _as_text(value: SettingInput) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class SettingsService:
    """
    Service for reading and writing stored settings.

    Stored values override the environment configuration for the keys
    the services consult (timer rounding and invoice terms).
    """

    def __init__(self, repository: TimerRepository, project_settings=None):
        """Initialize service with a repository and configuration fallback."""
        self.repository = repository
        self.settings = project_settings or settings

    async def get_setting(self, key: str) -> Setting:
        """
        Get one stored setting.

        Raises:
            NotFoundError: If nothing is stored under the key
        """
        value = await self.repository.get_setting(key)
        if value is None:
            raise NotFoundError(f"Setting not found: {key}")
        return Setting(key=key, value=value)

    async def set_setting(self, key: str, value: SettingInput) -> Setting:
        """
        Store a setting.

        Raises:
            InvalidInputError: If the key is empty or timer_rounding is not a whole number >= 0
        """
        if not key:
            raise InvalidInputError("Setting key is required")
        text = _as_text(value)
        if key == TIMER_ROUNDING and not text.isdigit():
            raise InvalidInputError(f"{TIMER_ROUNDING} must be a whole number of minutes")

        await self.repository.set_setting(key, text)
        logger.debug("Stored setting %s", key)
        return Setting(key=key, value=text)

    async def get_settings(self) -> dict[str, str]:
        """Return the stored user-facing settings."""
        stored = await self.repository.get_settings()
        return {key: stored[key] for key in SETTING_KEYS if key in stored}

    async def update_settings(self, values: dict[str, SettingInput]) -> dict[str, str]:
        """
        Store several settings at once.

        Every value is validated before anything is written.
        """
        if not values:
            raise InvalidInputError("Update data is required")
        for key, value in values.items():
            if key == TIMER_ROUNDING and not _as_text(value).isdigit():
                raise InvalidInputError(f"{TIMER_ROUNDING} must be a whole number of minutes")

        for key, value in values.items():
            await self.set_setting(key, value)
        return await self.get_settings()

    async def timer_rounding_minutes(self) -> int:
        """Stored rounding interval, else the configured default."""
        stored = await self.repository.get_setting(TIMER_ROUNDING)
        if stored is not None:
            try:
                return int(stored)
            except ValueError:
                logger.warning("Ignoring invalid %s setting: %r", TIMER_ROUNDING, stored)
        return self.settings.timer_rounding_minutes

    async def invoice_terms(self) -> str:
        """Stored payment terms, else the configured default."""
        stored = await self.repository.get_setting(INVOICE_TERMS)
        return stored or self.settings.invoice_terms

    async def remember_last_used(
        self,
        client_id: Optional[str] = None,
        project_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> None:
        """Record the ids a timer was started with; missing ids leave the old value."""
        for key, value in (
            (LAST_USED_CLIENT, client_id),
            (LAST_USED_PROJECT, project_id),
            (LAST_USED_TASK, task_id),
        ):
            if value:
                await self.repository.set_setting(key, value)
