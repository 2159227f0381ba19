"""Tests for TimerService."""
import logging

import pytest
from datetime import timedelta
from unittest.mock import AsyncMock

from hourbook.config import Settings
from hourbook.exceptions import InvalidInputError, InvariantViolationError, NotFoundError
from hourbook.models.time_entry import TimeEntryCreate, TimeEntryUpdate
from hourbook.services.events import EventBus, TimerEvent
from hourbook.services.timer_service import TimerService


def make_service(repository, clock, events=None, **overrides):
    project_settings = Settings(**overrides) if overrides else None
    return TimerService(repository, clock=clock, events=events, project_settings=project_settings)


async def active_count(repository) -> int:
    return len(await repository.find_active_entries())


async def add_active_entry(repository, start_time, **fields):
    return await repository.create_entry({
        "start_time": start_time,
        "is_active": True,
        "duration_minutes": 0,
        **fields,
    })


@pytest.mark.asyncio
class TestTimerServiceStart:
    """Tests for starting timers."""

    async def test_start_timer_success(self, repository, clock, client_id):
        """Test starting a timer creates an active zero-duration entry."""
        service = make_service(repository, clock)

        entry = await service.start_timer(
            client_id=client_id,
            description="Reading chapter 3",
        )

        assert entry.client_id == client_id
        assert entry.project_id is None
        assert entry.description == "Reading chapter 3"
        assert entry.is_active is True
        assert entry.duration_minutes == 0
        assert entry.end_time is None
        assert entry.start_time == clock.now()

    async def test_start_timer_stops_running_timer(self, repository, clock, client_id, other_client_id):
        """Test starting while running closes the old timer with its real duration."""
        service = make_service(repository, clock)
        first = await service.start_timer(client_id=client_id)

        clock.advance(minutes=22)
        second = await service.start_timer(client_id=other_client_id)

        old = await repository.find_entry_by_id(first.id)
        assert old.is_active is False
        assert old.duration_minutes == 22  # force-stops are not rounded
        assert old.end_time == clock.now()
        assert second.is_active is True
        assert await active_count(repository) == 1

    async def test_start_timer_heals_duplicate_active_timers(self, repository, clock):
        """Test start reconciles several stray active entries."""
        for minutes_ago in (30, 20, 10):
            await add_active_entry(repository, clock.now() - timedelta(minutes=minutes_ago))

        service = make_service(repository, clock)
        entry = await service.start_timer()

        active = await repository.find_active_entries()
        assert [e.id for e in active] == [entry.id]

    async def test_start_timer_propagates_persistence_failure(self, repository, clock, client_id):
        """Test repository errors reach the caller unchanged."""
        repository.create_entry = AsyncMock(side_effect=RuntimeError("disk full"))
        service = make_service(repository, clock)

        with pytest.raises(RuntimeError, match="disk full"):
            await service.start_timer(client_id=client_id)


@pytest.mark.asyncio
class TestTimerServiceStop:
    """Tests for stopping timers."""

    async def test_stop_timer_rounds_up(self, repository, clock, client_id):
        """Test start at T, stop at T+47m with 15 minute rounding bills 60."""
        service = make_service(repository, clock)
        started_at = clock.now()

        entry = await service.start_timer(client_id=client_id)
        current = await service.get_active_timer()
        assert current.id == entry.id
        assert current.duration_minutes == 0

        clock.advance(minutes=47)
        stopped = await service.stop_timer(entry.id, round_to=15)

        assert stopped.duration_minutes == 60
        assert stopped.is_active is False
        assert stopped.end_time == started_at + timedelta(minutes=47)
        assert await service.get_active_timer() is None

    async def test_stop_timer_without_rounding(self, repository, clock):
        """Test round_to=0 keeps the raw minutes."""
        service = make_service(repository, clock)
        entry = await service.start_timer()

        clock.advance(minutes=47, seconds=30)
        stopped = await service.stop_timer(entry.id, round_to=0)

        assert stopped.duration_minutes == 47

    async def test_stop_timer_uses_configured_rounding(self, repository, clock):
        """Test the default interval comes from settings."""
        service = make_service(repository, clock, timer_rounding_minutes=30)
        entry = await service.start_timer()

        clock.advance(minutes=31)
        stopped = await service.stop_timer(entry.id)

        assert stopped.duration_minutes == 60

    async def test_stop_timer_immediately_bills_nothing(self, repository, clock):
        """Test an instantaneous stop rounds to zero."""
        service = make_service(repository, clock)
        entry = await service.start_timer()

        stopped = await service.stop_timer(entry.id, round_to=15)

        assert stopped.duration_minutes == 0

    async def test_stop_timer_is_idempotent(self, repository, clock):
        """Test stopping twice returns the same duration."""
        service = make_service(repository, clock)
        entry = await service.start_timer()

        clock.advance(minutes=16)
        first = await service.stop_timer(entry.id, round_to=15)
        clock.advance(minutes=30)
        second = await service.stop_timer(entry.id, round_to=15)

        assert first.duration_minutes == 30
        assert second.duration_minutes == first.duration_minutes
        assert second.end_time == first.end_time

    async def test_stop_timer_unknown_id_falls_back_to_active(self, repository, clock, caplog):
        """Test a stale entry id stops whatever timer is running."""
        service = make_service(repository, clock)
        entry = await service.start_timer()
        clock.advance(minutes=5)

        with caplog.at_level(logging.WARNING, logger="hourbook.services.timer_service"):
            stopped = await service.stop_timer("stale-id", round_to=15)

        assert stopped.id == entry.id
        assert stopped.is_active is False
        assert stopped.duration_minutes == 15
        assert "stale-id" in caplog.text

    async def test_stop_timer_without_id_stops_active(self, repository, clock):
        """Test entry_id=None behaves like an unknown id."""
        service = make_service(repository, clock)
        entry = await service.start_timer()

        stopped = await service.stop_timer(None)

        assert stopped.id == entry.id
        assert await active_count(repository) == 0

    async def test_stop_timer_nothing_running_returns_none(self, repository, clock):
        """Test stop with nothing to stop is a benign no-op."""
        service = make_service(repository, clock)

        assert await service.stop_timer("missing-id") is None
        assert await service.stop_timer(None) is None

    async def test_stop_timer_fallback_reconciles_duplicates(self, repository, clock):
        """Test the fallback leaves no active timers behind."""
        await add_active_entry(repository, clock.now() - timedelta(minutes=40))
        await add_active_entry(repository, clock.now() - timedelta(minutes=10))
        service = make_service(repository, clock)

        stopped = await service.stop_timer("missing-id", round_to=15)

        assert stopped.duration_minutes == 15
        assert await active_count(repository) == 0


@pytest.mark.asyncio
class TestTimerServiceResume:
    """Tests for resuming timers."""

    async def test_resume_timer_restarts_from_now(self, repository, clock, client_id):
        """Test resume keeps context but starts a fresh timing window."""
        service = make_service(repository, clock)
        entry = await service.start_timer(client_id=client_id, description="Design review")
        clock.advance(minutes=50)
        await service.stop_timer(entry.id, round_to=15)

        clock.advance(minutes=30)
        resumed = await service.resume_timer(entry.id)

        assert resumed.id == entry.id
        assert resumed.is_active is True
        assert resumed.start_time == clock.now()
        assert resumed.end_time is None
        assert resumed.duration_minutes == 0
        assert resumed.client_id == client_id
        assert resumed.description == "Design review"

    async def test_resume_timer_stops_other_timer_with_real_duration(self, repository, clock, client_id, other_client_id):
        """Test other active timers keep their elapsed time when displaced."""
        service = make_service(repository, clock)
        old = await service.start_timer(client_id=client_id)
        await service.stop_timer(old.id)

        running = await service.start_timer(client_id=other_client_id)
        clock.advance(minutes=7)
        await service.resume_timer(old.id)

        displaced = await repository.find_entry_by_id(running.id)
        assert displaced.is_active is False
        assert displaced.duration_minutes == 7
        assert await active_count(repository) == 1

    async def test_resume_active_timer_is_unchanged(self, repository, clock):
        """Test resuming the running timer does not reset its start."""
        service = make_service(repository, clock)
        entry = await service.start_timer()
        clock.advance(minutes=12)

        resumed = await service.resume_timer(entry.id)

        assert resumed.start_time == entry.start_time
        assert resumed.is_active is True

    async def test_resume_timer_not_found(self, repository, clock):
        """Test resuming a missing entry raises."""
        service = make_service(repository, clock)

        with pytest.raises(NotFoundError, match="Time entry not found"):
            await service.resume_timer("missing-id")

    async def test_resume_invoiced_entry_rejected(self, repository, clock):
        """Test billed entries cannot be resumed."""
        service = make_service(repository, clock)
        entry = await service.start_timer()
        await service.stop_timer(entry.id)
        await repository.mark_entries_invoiced([entry.id], "invoice-1")

        with pytest.raises(InvariantViolationError, match="already invoiced"):
            await service.resume_timer(entry.id)


@pytest.mark.asyncio
class TestTimerServiceQuickStart:
    """Tests for the quick-resume heuristic."""

    async def _stopped_entry(self, service, clock, client_id, description="Bug triage"):
        entry = await service.start_timer(client_id=client_id, description=description)
        clock.advance(minutes=25)
        return await service.stop_timer(entry.id)

    async def test_quick_start_resumes_within_grace_window(self, repository, clock, client_id):
        """Test a brief interruption resumes the same entry."""
        service = make_service(repository, clock, quick_resume_minutes=15)
        stopped = await self._stopped_entry(service, clock, client_id)

        clock.advance(minutes=5)
        entry = await service.quick_start(client_id=client_id, description="Bug triage")

        assert entry.id == stopped.id
        assert entry.is_active is True
        assert len(await repository.list_entries()) == 1

    async def test_quick_start_outside_window_creates_entry(self, repository, clock, client_id):
        """Test a long break starts a new entry."""
        service = make_service(repository, clock, quick_resume_minutes=15)
        stopped = await self._stopped_entry(service, clock, client_id)

        clock.advance(minutes=16)
        entry = await service.quick_start(client_id=client_id, description="Bug triage")

        assert entry.id != stopped.id
        assert len(await repository.list_entries()) == 2

    async def test_quick_start_different_description_creates_entry(self, repository, clock, client_id):
        """Test only matching context is resumed."""
        service = make_service(repository, clock, quick_resume_minutes=15)
        stopped = await self._stopped_entry(service, clock, client_id)

        clock.advance(minutes=1)
        entry = await service.quick_start(client_id=client_id, description="Code review")

        assert entry.id != stopped.id

    async def test_quick_start_window_independent_of_rounding(self, repository, clock, client_id):
        """Test the grace window is not the rounding interval."""
        service = make_service(
            repository, clock, quick_resume_minutes=0, timer_rounding_minutes=15,
        )
        stopped = await self._stopped_entry(service, clock, client_id)

        clock.advance(minutes=1)
        entry = await service.quick_start(client_id=client_id, description="Bug triage")

        assert entry.id != stopped.id


@pytest.mark.asyncio
class TestTimerServiceReconcile:
    """Tests for restoring the single-active-timer invariant."""

    async def test_reconcile_keeps_most_recent(self, repository, clock):
        """Test three active entries collapse to the latest one."""
        t1 = await add_active_entry(repository, clock.now() - timedelta(minutes=30))
        t2 = await add_active_entry(repository, clock.now() - timedelta(minutes=20))
        t3 = await add_active_entry(repository, clock.now() - timedelta(minutes=10))
        service = make_service(repository, clock)

        kept = await service.reconcile_single_active()

        assert kept.id == t3.id
        active = await repository.find_active_entries()
        assert [e.id for e in active] == [t3.id]
        first = await repository.find_entry_by_id(t1.id)
        second = await repository.find_entry_by_id(t2.id)
        assert first.duration_minutes == 30
        assert second.duration_minutes == 20
        assert first.end_time == clock.now()

    async def test_reconcile_with_single_active_changes_nothing(self, repository, clock):
        service = make_service(repository, clock)
        entry = await service.start_timer()

        kept = await service.reconcile_single_active()

        assert kept.id == entry.id
        assert await active_count(repository) == 1

    async def test_get_active_timer_none(self, repository, clock):
        """Test getting current timer when none is running."""
        service = make_service(repository, clock)

        assert await service.get_active_timer() is None

    async def test_get_active_timer_repairs_duplicates(self, repository, clock):
        """Test the read path enforces the invariant."""
        await add_active_entry(repository, clock.now() - timedelta(minutes=3))
        newest = await add_active_entry(repository, clock.now() - timedelta(minutes=1))
        service = make_service(repository, clock)

        current = await service.get_active_timer()

        assert current.id == newest.id
        assert await active_count(repository) == 1

    async def test_single_active_invariant_over_sequence(self, repository, clock, client_id, other_client_id):
        """Test at most one active entry after every operation."""
        service = make_service(repository, clock)

        a = await service.start_timer(client_id=client_id)
        assert await active_count(repository) <= 1
        clock.advance(minutes=3)
        b = await service.start_timer(client_id=other_client_id)
        assert await active_count(repository) <= 1
        clock.advance(minutes=3)
        await service.resume_timer(a.id)
        assert await active_count(repository) <= 1
        await service.stop_timer(b.id)
        assert await active_count(repository) <= 1
        await service.resume_timer(b.id)
        assert await active_count(repository) <= 1
        await service.quick_start(client_id=client_id)
        assert await active_count(repository) <= 1
        await service.stop_timer(None)
        assert await active_count(repository) == 0

        for entry in await repository.list_entries():
            assert entry.duration_minutes >= 0


@pytest.mark.asyncio
class TestTimerServiceEvents:
    """Tests for timer notifications."""

    async def test_events_emitted_on_start_and_stop(self, repository, clock):
        events = EventBus()
        received = []
        for event in TimerEvent:
            events.subscribe(event, lambda event, entry: received.append(event))
        service = make_service(repository, clock, events=events)

        entry = await service.start_timer()
        await service.stop_timer(entry.id)

        assert received == [
            TimerEvent.TIMER_STARTED,
            TimerEvent.ACTIVE_TIMER_CHANGED,
            TimerEvent.TIMER_STOPPED,
            TimerEvent.ACTIVE_TIMER_CHANGED,
        ]

    async def test_failing_receiver_does_not_break_start(self, repository, clock):
        events = EventBus()

        def broken(event, entry):
            raise RuntimeError("tray crashed")

        events.subscribe(TimerEvent.TIMER_STARTED, broken)
        service = make_service(repository, clock, events=events)

        entry = await service.start_timer()

        assert entry.is_active is True


@pytest.mark.asyncio
class TestTimerServiceCreate:
    """Tests for creating manual time entries."""

    async def test_create_entry_calculates_duration(self, repository, clock, client_id):
        """Test creating entry auto-calculates duration if not provided."""
        service = make_service(repository, clock)
        start_time = clock.now() - timedelta(hours=2)

        entry = await service.create_entry(TimeEntryCreate(
            client_id=client_id,
            description="Reading",
            start_time=start_time,
            end_time=clock.now(),
        ))

        assert entry.duration_minutes == 120
        assert entry.is_active is False

    async def test_create_entry_with_duration_only(self, repository, clock):
        """Test end_time is derived from an explicit duration."""
        service = make_service(repository, clock)

        entry = await service.create_entry(TimeEntryCreate(
            start_time=clock.now(),
            duration_minutes=45,
        ))

        assert entry.end_time == clock.now() + timedelta(minutes=45)
        assert entry.duration_minutes == 45

    async def test_create_entry_end_before_start(self, repository, clock):
        service = make_service(repository, clock)

        with pytest.raises(InvalidInputError, match="end_time"):
            await service.create_entry(TimeEntryCreate(
                start_time=clock.now(),
                end_time=clock.now() - timedelta(minutes=1),
            ))

    async def test_create_entry_needs_end_or_duration(self, repository, clock):
        """Test validation happens before any repository call."""
        repository.create_entry = AsyncMock()
        service = make_service(repository, clock)

        with pytest.raises(InvalidInputError):
            await service.create_entry(TimeEntryCreate(start_time=clock.now()))

        repository.create_entry.assert_not_called()


@pytest.mark.asyncio
class TestTimerServiceUpdate:
    """Tests for updating time entries."""

    async def _manual_entry(self, service, clock, client_id):
        return await service.create_entry(TimeEntryCreate(
            client_id=client_id,
            description="Old description",
            start_time=clock.now(),
            end_time=clock.now() + timedelta(minutes=30),
        ))

    async def test_update_entry_fields(self, repository, clock, client_id):
        service = make_service(repository, clock)
        entry = await self._manual_entry(service, clock, client_id)
        project = await repository.create_record("projects", {"client_id": client_id, "name": "Website"})

        updated = await service.update_entry(entry.id, TimeEntryUpdate(
            description="New description",
            project_id=project["_id"],
        ))

        assert updated.description == "New description"
        assert updated.project_id == project["_id"]
        assert updated.duration_minutes == 30

    async def test_update_entry_clears_reference(self, repository, clock, client_id):
        """Test an explicit null unsets a foreign reference."""
        service = make_service(repository, clock)
        entry = await self._manual_entry(service, clock, client_id)

        updated = await service.update_entry(entry.id, TimeEntryUpdate(client_id=None))

        assert updated.client_id is None

    async def test_update_entry_recomputes_duration(self, repository, clock, client_id):
        service = make_service(repository, clock)
        entry = await self._manual_entry(service, clock, client_id)

        updated = await service.update_entry(entry.id, TimeEntryUpdate(
            end_time=entry.start_time + timedelta(minutes=95),
        ))

        assert updated.duration_minutes == 95

    async def test_update_entry_not_found(self, repository, clock):
        """Test updating non-existent entry fails."""
        service = make_service(repository, clock)

        with pytest.raises(NotFoundError, match="Time entry not found"):
            await service.update_entry("missing-id", TimeEntryUpdate(description="x"))

    async def test_update_entry_empty(self, repository, clock):
        service = make_service(repository, clock)

        with pytest.raises(InvalidInputError, match="Update data is required"):
            await service.update_entry("any-id", TimeEntryUpdate())

    async def test_update_invoiced_entry_rejected(self, repository, clock, client_id):
        service = make_service(repository, clock)
        entry = await self._manual_entry(service, clock, client_id)
        await repository.mark_entries_invoiced([entry.id], "invoice-1")

        with pytest.raises(InvariantViolationError):
            await service.update_entry(entry.id, TimeEntryUpdate(description="x"))

    async def test_update_running_timer_end_time_rejected(self, repository, clock):
        service = make_service(repository, clock)
        entry = await service.start_timer()

        with pytest.raises(InvalidInputError):
            await service.update_entry(entry.id, TimeEntryUpdate(
                end_time=clock.now() + timedelta(minutes=5),
            ))


@pytest.mark.asyncio
class TestTimerServiceDelete:
    """Tests for deleting time entries."""

    async def test_delete_entry_success(self, repository, clock):
        """Test deleting a time entry."""
        service = make_service(repository, clock)
        entry = await service.start_timer()
        await service.stop_timer(entry.id)

        result = await service.delete_entry(entry.id)

        assert result["deleted_count"] == 1
        assert await repository.find_entry_by_id(entry.id) is None

    async def test_delete_running_timer_rejected(self, repository, clock):
        service = make_service(repository, clock)
        entry = await service.start_timer()

        with pytest.raises(InvariantViolationError, match="running timer"):
            await service.delete_entry(entry.id)

    async def test_delete_entry_not_found(self, repository, clock):
        """Test deleting non-existent entry fails."""
        service = make_service(repository, clock)

        with pytest.raises(NotFoundError, match="Time entry not found"):
            await service.delete_entry("missing-id")


@pytest.mark.asyncio
class TestTimerServiceReferences:
    """Tests for rejecting unknown clients, projects and tasks."""

    async def test_start_timer_unknown_client(self, repository, clock):
        service = make_service(repository, clock)

        with pytest.raises(NotFoundError, match="Client not found: missing-client"):
            await service.start_timer(client_id="missing-client")

        assert await repository.list_entries() == []

    async def test_rejected_start_keeps_running_timer(self, repository, clock, client_id):
        """Test validation happens before the running timer is stopped."""
        service = make_service(repository, clock)
        running = await service.start_timer(client_id=client_id)

        with pytest.raises(NotFoundError, match="Project not found"):
            await service.start_timer(client_id=client_id, project_id="missing-project")

        current = await service.get_active_timer()
        assert current.id == running.id

    async def test_quick_start_unknown_task(self, repository, clock, client_id):
        service = make_service(repository, clock)

        with pytest.raises(NotFoundError, match="Task not found: missing-task"):
            await service.quick_start(client_id=client_id, task_id="missing-task")

    async def test_create_entry_unknown_project(self, repository, clock):
        repository.create_entry = AsyncMock()
        service = make_service(repository, clock)

        with pytest.raises(NotFoundError, match="Project not found"):
            await service.create_entry(TimeEntryCreate(
                project_id="missing-project",
                start_time=clock.now(),
                duration_minutes=30,
            ))

        repository.create_entry.assert_not_called()

    async def test_update_entry_unknown_client(self, repository, clock, client_id):
        service = make_service(repository, clock)
        entry = await service.create_entry(TimeEntryCreate(
            client_id=client_id,
            start_time=clock.now(),
            duration_minutes=30,
        ))

        with pytest.raises(NotFoundError, match="Client not found"):
            await service.update_entry(entry.id, TimeEntryUpdate(client_id="missing-client"))

        unchanged = await repository.find_entry_by_id(entry.id)
        assert unchanged.client_id == client_id


@pytest.mark.asyncio
class TestTimerServicePreferences:
    """Tests for stored preferences used by the timer."""

    async def test_start_timer_remembers_last_used(self, repository, clock, client_id):
        project = await repository.create_record("projects", {"client_id": client_id, "name": "Website"})
        task = await repository.create_record("tasks", {"project_id": project["_id"], "name": "Layout"})
        service = make_service(repository, clock)

        await service.start_timer(client_id=client_id, project_id=project["_id"], task_id=task["_id"])

        assert await repository.get_setting("last_used_client_id") == client_id
        assert await repository.get_setting("last_used_project_id") == project["_id"]
        assert await repository.get_setting("last_used_task_id") == task["_id"]

    async def test_start_without_references_keeps_last_used(self, repository, clock, client_id):
        service = make_service(repository, clock)
        await service.start_timer(client_id=client_id)

        await service.start_timer()

        assert await repository.get_setting("last_used_client_id") == client_id

    async def test_stored_rounding_overrides_config(self, repository, clock):
        await repository.set_setting("timer_rounding", "30")
        service = make_service(repository, clock, timer_rounding_minutes=15)
        entry = await service.start_timer()

        clock.advance(minutes=31)
        stopped = await service.stop_timer(entry.id)

        assert stopped.duration_minutes == 60

    async def test_explicit_round_to_beats_stored_rounding(self, repository, clock):
        await repository.set_setting("timer_rounding", "30")
        service = make_service(repository, clock)
        entry = await service.start_timer()

        clock.advance(minutes=31)
        stopped = await service.stop_timer(entry.id, round_to=0)

        assert stopped.duration_minutes == 31

    async def test_invalid_stored_rounding_falls_back(self, repository, clock, caplog):
        repository.settings["timer_rounding"] = "quarter"
        service = make_service(repository, clock, timer_rounding_minutes=15)
        entry = await service.start_timer()

        clock.advance(minutes=1)
        with caplog.at_level(logging.WARNING, logger="hourbook.services.settings_service"):
            stopped = await service.stop_timer(entry.id)

        assert stopped.duration_minutes == 15
        assert "quarter" in caplog.text


@pytest.mark.asyncio
class TestTimerServiceQuickStartManualEntries:
    """Tests for quick start next to manually entered time."""

    async def test_entry_ending_in_future_not_resumed(self, repository, clock, client_id):
        """Test a manual entry ending later today is not treated as just stopped."""
        service = make_service(repository, clock, quick_resume_minutes=15)
        planned = await service.create_entry(TimeEntryCreate(
            client_id=client_id,
            description="Bug triage",
            start_time=clock.now(),
            end_time=clock.now() + timedelta(minutes=30),
        ))

        entry = await service.quick_start(client_id=client_id, description="Bug triage")

        assert entry.id != planned.id
        assert entry.is_active is True
        kept = await repository.find_entry_by_id(planned.id)
        assert kept.is_active is False
        assert kept.duration_minutes == 30
