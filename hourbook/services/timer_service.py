"""Timer service - business logic for time tracking."""
import logging
from datetime import datetime, timedelta
from typing import Optional

from hourbook.clock import Clock, SystemClock
from hourbook.config import settings
from hourbook.exceptions import InvalidInputError, InvariantViolationError, NotFoundError
from hourbook.models.time_entry import TimeEntry, TimeEntryCreate, TimeEntryUpdate
from hourbook.repositories.base import TimerRepository
from hourbook.services.events import EventBus, TimerEvent
from hourbook.services.rounding import elapsed_minutes, round_duration
from hourbook.services.settings_service import SettingsService

logger = logging.getLogger(__name__)


class TimerService:
    """
    Service for handling time tracking operations.

    At most one entry may be active across the whole data set. Every
    write path that starts a timer force-stops the others first, and
    the only read path for "the" active timer repairs duplicates before
    answering.
    """

    def __init__(
        self,
        repository: TimerRepository,
        clock: Optional[Clock] = None,
        events: Optional[EventBus] = None,
        project_settings=None,
    ):
        """Initialize service with a repository and time source."""
        self.repository = repository
        self.clock = clock or SystemClock()
        self.events = events or EventBus()
        self.settings = project_settings or settings
        self.preferences = SettingsService(repository, project_settings=self.settings)

    async def _force_stop(self, entry: TimeEntry, now: datetime) -> Optional[TimeEntry]:
        """Close an active entry with its real, unrounded elapsed time."""
        duration = elapsed_minutes(entry.start_time, now)
        stopped = await self.repository.update_entry(entry.id, {
            "is_active": False,
            "end_time": now,
            "duration_minutes": duration,
        })
        logger.debug("Force-stopped timer %s with duration %s minutes", entry.id, duration)
        return stopped

    async def _stop_active_entries(self, now: datetime, keep_id: Optional[str] = None) -> None:
        for entry in await self.repository.find_active_entries():
            if entry.id != keep_id:
                await self._force_stop(entry, now)

    async def _check_references(
        self,
        client_id: Optional[str] = None,
        project_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> None:
        """Raise NotFoundError for any client, project or task id that does not exist."""
        for collection, label, record_id in (
            ("clients", "Client", client_id),
            ("projects", "Project", project_id),
            ("tasks", "Task", task_id),
        ):
            if record_id and await self.repository.find_record_by_id(collection, record_id) is None:
                raise NotFoundError(f"{label} not found: {record_id}")

    async def start_timer(
        self,
        client_id: Optional[str] = None,
        project_id: Optional[str] = None,
        task_id: Optional[str] = None,
        description: str = "",
    ) -> TimeEntry:
        """
        Start a new timer.

        Any timer that is still active is stopped first with its real
        elapsed duration, so concurrent or crashed starts heal here.
        The given client, project and task are remembered as last used.

        Args:
            client_id: Optional client ID
            project_id: Optional project ID
            task_id: Optional task ID
            description: Optional description

        Returns:
            Created time entry

        Raises:
            NotFoundError: If a client, project or task ID does not exist
        """
        await self._check_references(client_id, project_id, task_id)

        now = self.clock.now()
        await self._stop_active_entries(now)

        entry = await self.repository.create_entry({
            "client_id": client_id,
            "project_id": project_id,
            "task_id": task_id,
            "description": description or "",
            "start_time": now,
            "end_time": None,
            "duration_minutes": 0,
            "is_active": True,
        })
        logger.info("Started timer %s", entry.id)
        await self.preferences.remember_last_used(client_id, project_id, task_id)

        await self.events.publish(TimerEvent.TIMER_STARTED, entry)
        await self.events.publish(TimerEvent.ACTIVE_TIMER_CHANGED, entry)
        return entry

    async def stop_timer(
        self,
        entry_id: Optional[str],
        round_to: Optional[int] = None,
    ) -> Optional[TimeEntry]:
        """
        Stop a running timer.

        A stale or unknown ``entry_id`` falls back to whatever timer is
        active; with nothing active this is a no-op returning None.
        Stopping an entry that is already stopped returns it unchanged.

        Args:
            entry_id: Time entry ID the caller believes is running
            round_to: Rounding interval in minutes (defaults to the stored
                timer_rounding setting, then configuration)

        Returns:
            Stopped time entry, or None if nothing was running
        """
        if round_to is None:
            round_to = await self.preferences.timer_rounding_minutes()

        entry = await self.repository.find_entry_by_id(entry_id) if entry_id else None

        if entry is None:
            logger.warning("Timer %s not found, looking for an active timer instead", entry_id)
            entry = await self.reconcile_single_active()
            if entry is None:
                logger.warning("No active timer found to stop")
                return None
            logger.info("Stopping active timer %s instead of %s", entry.id, entry_id)

        if not entry.is_active:
            logger.warning("Timer %s is not active", entry.id)
            return entry

        now = self.clock.now()
        raw = elapsed_minutes(entry.start_time, now)
        duration = round_duration(raw, round_to)
        logger.debug("Duration %sm rounded to %sm intervals: %sm", raw, round_to, duration)

        stopped = await self.repository.update_entry(entry.id, {
            "end_time": now,
            "duration_minutes": duration,
            "is_active": False,
        })
        logger.info("Stopped timer %s after %s minutes", entry.id, duration)

        await self.events.publish(TimerEvent.TIMER_STOPPED, stopped)
        await self.events.publish(TimerEvent.ACTIVE_TIMER_CHANGED, None)
        return stopped

    async def resume_timer(self, entry_id: str) -> TimeEntry:
        """
        Continue work on an existing entry.

        Other active timers are stopped with their real durations. The
        resumed entry gets a fresh start time; earlier elapsed time is
        not carried over.

        Args:
            entry_id: Time entry ID

        Returns:
            The now-active time entry

        Raises:
            NotFoundError: If entry not found
            InvariantViolationError: If the entry is already invoiced
        """
        entry = await self.repository.find_entry_by_id(entry_id)
        if entry is None:
            raise NotFoundError(f"Time entry not found: {entry_id}")
        if entry.is_invoiced:
            raise InvariantViolationError(f"Time entry {entry_id} is already invoiced")

        now = self.clock.now()
        await self._stop_active_entries(now, keep_id=entry.id)

        if entry.is_active:
            return entry

        resumed = await self.repository.update_entry(entry.id, {
            "is_active": True,
            "start_time": now,
            "end_time": None,
            "duration_minutes": 0,
        })
        if resumed is None:
            raise NotFoundError(f"Time entry not found: {entry_id}")
        logger.info("Resumed timer %s", entry.id)

        await self.events.publish(TimerEvent.TIMER_STARTED, resumed)
        await self.events.publish(TimerEvent.ACTIVE_TIMER_CHANGED, resumed)
        return resumed

    async def quick_start(
        self,
        client_id: Optional[str] = None,
        project_id: Optional[str] = None,
        task_id: Optional[str] = None,
        description: str = "",
    ) -> TimeEntry:
        """
        Start a timer, resuming the last stopped entry after a brief interruption.

        The last stopped entry is resumed when it has the same client and
        description and was stopped within ``quick_resume_minutes``.
        Otherwise a new entry is created.
        """
        await self._check_references(client_id, project_id, task_id)

        last = await self.repository.find_last_stopped_entry()
        if self._can_quick_resume(last, client_id, description or ""):
            logger.info("Quick-resuming timer %s", last.id)
            return await self.resume_timer(last.id)

        return await self.start_timer(
            client_id=client_id,
            project_id=project_id,
            task_id=task_id,
            description=description,
        )

    def _can_quick_resume(
        self,
        entry: Optional[TimeEntry],
        client_id: Optional[str],
        description: str,
    ) -> bool:
        grace_minutes = self.settings.quick_resume_minutes
        if entry is None or grace_minutes <= 0 or entry.is_invoiced:
            return False
        if entry.client_id != client_id or entry.description != description:
            return False
        # Manual entries may end in the future
        since_stop = self.clock.now() - entry.end_time
        return timedelta(0) <= since_stop <= timedelta(minutes=grace_minutes)

    async def reconcile_single_active(self) -> Optional[TimeEntry]:
        """
        Restore the single-active-timer invariant.

        Keeps the most recently started active entry and force-stops the
        rest with their real durations.

        Returns:
            The surviving active entry, or None
        """
        active = await self.repository.find_active_entries()
        if len(active) > 1:
            logger.warning("Found %s active timers, stopping older ones", len(active))
            now = self.clock.now()
            for entry in active[1:]:
                await self._force_stop(entry, now)

        return active[0] if active else None

    async def get_active_timer(self) -> Optional[TimeEntry]:
        """
        Get the currently running timer, if any.

        Returns:
            Current running time entry, or None
        """
        return await self.reconcile_single_active()

    async def get_entry(self, entry_id: str) -> TimeEntry:
        """
        Get a specific time entry.

        Raises:
            NotFoundError: If entry not found
        """
        entry = await self.repository.find_entry_by_id(entry_id)
        if entry is None:
            raise NotFoundError(f"Time entry not found: {entry_id}")
        return entry

    async def list_entries(
        self,
        client_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        is_invoiced: Optional[bool] = None,
    ) -> list[TimeEntry]:
        """
        List time entries with optional filtering.

        Args:
            client_id: Optional client filter
            start_date: Optional start date filter
            end_date: Optional end date filter
            is_invoiced: Optional invoiced-state filter

        Returns:
            List of time entries, most recent first
        """
        return await self.repository.list_entries(
            client_id=client_id,
            start_date=start_date,
            end_date=end_date,
            is_invoiced=is_invoiced,
        )

    async def create_entry(self, entry_create: TimeEntryCreate) -> TimeEntry:
        """
        Create a manual (already stopped) time entry.

        Args:
            entry_create: Time entry creation data

        Returns:
            Created time entry

        Raises:
            InvalidInputError: If the times are inconsistent or no duration can be derived
            NotFoundError: If a client, project or task ID does not exist
        """
        start_time = entry_create.start_time
        end_time = entry_create.end_time
        duration = entry_create.duration_minutes

        if end_time is not None:
            if end_time < start_time:
                raise InvalidInputError("end_time must not be before start_time")
            if duration is None:
                duration = elapsed_minutes(start_time, end_time)
        elif duration is not None:
            end_time = start_time + timedelta(minutes=duration)
        else:
            raise InvalidInputError("Manual entries need an end_time or a duration")

        await self._check_references(
            entry_create.client_id, entry_create.project_id, entry_create.task_id,
        )

        return await self.repository.create_entry({
            "client_id": entry_create.client_id,
            "project_id": entry_create.project_id,
            "task_id": entry_create.task_id,
            "description": entry_create.description,
            "start_time": start_time,
            "end_time": end_time,
            "duration_minutes": duration,
            "is_active": False,
        })

    async def update_entry(self, entry_id: str, entry_update: TimeEntryUpdate) -> TimeEntry:
        """
        Update a time entry.

        Changing the times of a stopped entry recomputes its duration.

        Args:
            entry_id: Time entry ID
            entry_update: Update data

        Returns:
            Updated time entry

        Raises:
            InvalidInputError: If nothing to update or the times are inconsistent
            NotFoundError: If the entry or a referenced client, project or task is missing
            InvariantViolationError: If the entry is already invoiced
        """
        update_doc = {
            key: value
            for key, value in entry_update.model_dump(exclude_unset=True).items()
            if value is not None or key in ("client_id", "project_id", "task_id")
        }
        if not update_doc:
            raise InvalidInputError("Update data is required")

        existing = await self.repository.find_entry_by_id(entry_id)
        if existing is None:
            raise NotFoundError(f"Time entry not found: {entry_id}")
        if existing.is_invoiced:
            raise InvariantViolationError(f"Time entry {entry_id} is already invoiced")

        await self._check_references(
            update_doc.get("client_id"), update_doc.get("project_id"), update_doc.get("task_id"),
        )

        if "start_time" in update_doc or "end_time" in update_doc:
            if existing.is_active and "end_time" in update_doc:
                raise InvalidInputError("Stop the running timer instead of setting its end_time")
            start_time = update_doc.get("start_time", existing.start_time)
            end_time = update_doc.get("end_time", existing.end_time)
            if end_time is not None:
                if end_time < start_time:
                    raise InvalidInputError("end_time must not be before start_time")
                update_doc["duration_minutes"] = elapsed_minutes(start_time, end_time)

        updated = await self.repository.update_entry(entry_id, update_doc)
        if updated is None:
            raise NotFoundError(f"Time entry not found: {entry_id}")
        return updated

    async def delete_entry(self, entry_id: str) -> dict:
        """
        Delete a time entry.

        Args:
            entry_id: Time entry ID

        Returns:
            Dictionary with deleted_count

        Raises:
            NotFoundError: If entry not found
            InvariantViolationError: If the entry is the running timer
        """
        existing = await self.repository.find_entry_by_id(entry_id)
        if existing is None:
            raise NotFoundError(f"Time entry not found: {entry_id}")
        if existing.is_active:
            raise InvariantViolationError("Cannot delete the running timer; stop it first")

        deleted = await self.repository.delete_entry(entry_id)
        return {"deleted_count": 1 if deleted else 0}
