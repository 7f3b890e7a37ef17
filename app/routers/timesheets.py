# =============================================================================
# app/routers/timesheets.py - Timesheet Endpoints
# =============================================================================
# Providers log weekly hours against a retainer; buyers approve or dispute.
# =============================================================================

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path
from pydantic import BaseModel, Field

from app.dependencies import CurrentUser
from core.services.timesheet_service import TimesheetService

router = APIRouter()

EntryId = Annotated[UUID, Path(description="Timesheet entry UUID")]


class LogHoursRequest(BaseModel):
    """Logging a week that already has an entry replaces it and resets it to draft."""
    week_start: date = Field(..., description="Monday of the week", examples=["2025-03-03"])
    hours: float = Field(..., gt=0, examples=[12.5])
    description: str | None = Field(default=None, max_length=2000)


class DisputeTimesheetRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


@router.post("/retainers/{retainer_id}/timesheets")
async def log_hours(
    retainer_id: Annotated[UUID, Path(description="Retainer UUID")],
    request: LogHoursRequest,
    user: CurrentUser,
):
    return TimesheetService.log_hours(
        user.user_id,
        str(retainer_id),
        request.week_start,
        request.hours,
        description=request.description,
    )


@router.get("/retainers/{retainer_id}/timesheets")
async def list_entries(
    retainer_id: Annotated[UUID, Path(description="Retainer UUID")],
    user: CurrentUser,
):
    return {"entries": TimesheetService.list_entries(user.user_id, str(retainer_id))}


@router.get("/timesheets/pending")
async def pending_for_approval(user: CurrentUser):
    """Submitted timesheets waiting on the caller as buyer."""
    return {"entries": TimesheetService.pending_for_approval(user.user_id)}


@router.post("/timesheets/{entry_id}/submit")
async def submit_timesheet(entry_id: EntryId, user: CurrentUser):
    return TimesheetService.submit_timesheet(user.user_id, str(entry_id))


@router.post("/timesheets/{entry_id}/approve")
async def approve_timesheet(entry_id: EntryId, user: CurrentUser):
    return TimesheetService.approve_timesheet(user.user_id, str(entry_id))


@router.post("/timesheets/{entry_id}/dispute")
async def dispute_timesheet(entry_id: EntryId, request: DisputeTimesheetRequest, user: CurrentUser):
    return TimesheetService.dispute_timesheet(user.user_id, str(entry_id), request.reason)
