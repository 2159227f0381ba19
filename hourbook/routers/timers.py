"""Timer endpoints - time tracking operations."""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from hourbook.database import get_repository
from hourbook.exceptions import HourbookError
from hourbook.models.time_entry import TimeEntry, TimeEntryCreate, TimeEntryUpdate
from hourbook.routers.errors import http_error
from hourbook.services.events import timer_events
from hourbook.services.timer_service import TimerService


router = APIRouter(prefix="/timers", tags=["timers"])


class TimerStart(BaseModel):
    """Request model for starting a timer."""

    client_id: Optional[str] = None
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    description: str = ""


class TimerStop(BaseModel):
    """Request model for stopping a timer."""

    entry_id: Optional[str] = None
    round_to: Optional[int] = None


def get_timer_service(repository=Depends(get_repository)) -> TimerService:
    """Dependency building a TimerService over the request's repository."""
    return TimerService(repository, events=timer_events)


@router.post("/start", response_model=TimeEntry)
async def start_timer(
    timer_start: TimerStart,
    service: TimerService = Depends(get_timer_service),
):
    """
    Start a new timer.

    - Any running timer is stopped first
    - Client, project and task are optional but must exist when given
    """
    try:
        return await service.start_timer(
            client_id=timer_start.client_id,
            project_id=timer_start.project_id,
            task_id=timer_start.task_id,
            description=timer_start.description,
        )
    except HourbookError as e:
        raise http_error(e)


@router.post("/quick-start", response_model=TimeEntry)
async def quick_start_timer(
    timer_start: TimerStart,
    service: TimerService = Depends(get_timer_service),
):
    """
    Start a timer, resuming the last entry after a short interruption.

    - Resumes when client and description match and the entry stopped within the grace window
    - Otherwise behaves like /timers/start
    """
    try:
        return await service.quick_start(
            client_id=timer_start.client_id,
            project_id=timer_start.project_id,
            task_id=timer_start.task_id,
            description=timer_start.description,
        )
    except HourbookError as e:
        raise http_error(e)


@router.post("/stop", response_model=Optional[TimeEntry])
async def stop_timer(
    timer_stop: TimerStop,
    service: TimerService = Depends(get_timer_service),
):
    """
    Stop a running timer.

    - Unknown entry_id falls back to the active timer
    - Returns null when nothing is running
    - Stopping a stopped entry returns it unchanged
    """
    try:
        return await service.stop_timer(
            entry_id=timer_stop.entry_id,
            round_to=timer_stop.round_to,
        )
    except HourbookError as e:
        raise http_error(e)


@router.get("/current", response_model=TimeEntry)
async def get_current_timer(
    service: TimerService = Depends(get_timer_service),
):
    """
    Get the currently running timer, if any.

    - Duplicate active timers are reconciled first
    - Returns 404 if no timer is running
    """
    entry = await service.get_active_timer()

    if not entry:
        raise HTTPException(status_code=404, detail="No timer running")

    return entry


@router.get("", response_model=list[TimeEntry])
async def list_entries(
    client_id: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    is_invoiced: Optional[bool] = Query(None),
    service: TimerService = Depends(get_timer_service),
):
    """
    List time entries.

    - Optional filters: client_id, start_date, end_date, is_invoiced
    - Results sorted by start_time descending (most recent first)
    """
    return await service.list_entries(
        client_id=client_id,
        start_date=start_date,
        end_date=end_date,
        is_invoiced=is_invoiced,
    )


@router.post("", response_model=TimeEntry)
async def create_entry(
    entry_create: TimeEntryCreate,
    service: TimerService = Depends(get_timer_service),
):
    """
    Create a manual time entry.

    - Needs an end_time or a duration
    - Duration is calculated if not provided
    """
    try:
        return await service.create_entry(entry_create)
    except HourbookError as e:
        raise http_error(e)


@router.get("/{entry_id}", response_model=TimeEntry)
async def get_entry(
    entry_id: str,
    service: TimerService = Depends(get_timer_service),
):
    """Get a specific time entry by ID."""
    try:
        return await service.get_entry(entry_id)
    except HourbookError as e:
        raise http_error(e)


@router.post("/{entry_id}/resume", response_model=TimeEntry)
async def resume_timer(
    entry_id: str,
    service: TimerService = Depends(get_timer_service),
):
    """
    Resume work on an existing entry.

    - Other running timers are stopped
    - The entry restarts from now; earlier elapsed time is not restored
    """
    try:
        return await service.resume_timer(entry_id)
    except HourbookError as e:
        raise http_error(e)


@router.patch("/{entry_id}", response_model=TimeEntry)
async def update_entry(
    entry_id: str,
    entry_update: TimeEntryUpdate,
    service: TimerService = Depends(get_timer_service),
):
    """
    Update a time entry.

    - Invoiced entries cannot be changed
    """
    try:
        return await service.update_entry(entry_id, entry_update)
    except HourbookError as e:
        raise http_error(e)


@router.delete("/{entry_id}")
async def delete_entry(
    entry_id: str,
    service: TimerService = Depends(get_timer_service),
):
    """
    Delete a time entry.

    - The running timer cannot be deleted
    - Hard delete (permanent)
    """
    try:
        return await service.delete_entry(entry_id)
    except HourbookError as e:
        raise http_error(e)
