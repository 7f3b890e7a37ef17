# =============================================================================
# app/routers/apprenticeship.py - OTJT Time Log Endpoints
# =============================================================================

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query
from pydantic import BaseModel, Field

from app.dependencies import CurrentUser
from core.models.apprenticeship import OTJTActivityType, OTJTStatus
from core.services.otjt_service import OTJTService

router = APIRouter()

EnrollmentId = Annotated[UUID, Path(description="Enrollment UUID")]
LogId = Annotated[UUID, Path(description="OTJT log UUID")]


class LogOTJTRequest(BaseModel):
    log_date: date
    hours: float
    activity_type: OTJTActivityType
    description: str | None = Field(default=None, max_length=2000)
    learning_outcomes: str | None = Field(default=None, max_length=2000)
    module_id: UUID | None = None
    task_id: UUID | None = None
    evidence_url: str | None = None


class RejectRequest(BaseModel):
    reason: str = Field(..., max_length=2000)


class QueryRequest(BaseModel):
    message: str = Field(..., max_length=2000)


class BulkApproveRequest(BaseModel):
    log_ids: list[UUID] = Field(..., min_length=1, max_length=200)


@router.post("/enrollments/{enrollment_id}/otjt-logs")
async def log_otjt_time(enrollment_id: EnrollmentId, request: LogOTJTRequest, user: CurrentUser):
    """
    Log off-the-job training hours.

    At most 8 hours per day across all logs, no future dates.
    """
    return OTJTService.log_otjt_time(
        user.user_id,
        str(enrollment_id),
        request.log_date,
        request.hours,
        request.activity_type,
        description=request.description,
        learning_outcomes=request.learning_outcomes,
        module_id=str(request.module_id) if request.module_id else None,
        task_id=str(request.task_id) if request.task_id else None,
        evidence_url=request.evidence_url,
    )


@router.get("/enrollments/{enrollment_id}/otjt-logs")
async def get_logs(
    enrollment_id: EnrollmentId,
    user: CurrentUser,
    start: Annotated[date | None, Query()] = None,
    end: Annotated[date | None, Query()] = None,
    status: Annotated[OTJTStatus | None, Query()] = None,
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
):
    logs = OTJTService.get_logs(
        user.user_id, str(enrollment_id),
        start_date=start, end_date=end, status=status, limit=limit,
    )
    return {"logs": logs}


@router.get("/enrollments/{enrollment_id}/otjt-summary/weekly")
async def weekly_summary(
    enrollment_id: EnrollmentId,
    user: CurrentUser,
    week_start: Annotated[date | None, Query(description="Any day in the week")] = None,
):
    return OTJTService.weekly_summary(user.user_id, str(enrollment_id), week_start)


@router.get("/enrollments/{enrollment_id}/otjt-summary/progress")
async def progress_summary(enrollment_id: EnrollmentId, user: CurrentUser):
    return OTJTService.progress_summary(user.user_id, str(enrollment_id))


@router.get("/otjt-logs/pending")
async def pending_approvals(user: CurrentUser):
    """Logs waiting on the caller as mentor or workplace buddy."""
    return {"logs": OTJTService.pending_approvals(user.user_id)}


@router.post("/otjt-logs/bulk-approve")
async def bulk_approve(request: BulkApproveRequest, user: CurrentUser):
    return OTJTService.bulk_approve(user.user_id, [str(i) for i in request.log_ids])


@router.post("/otjt-logs/{log_id}/approve")
async def approve_log(log_id: LogId, user: CurrentUser):
    return OTJTService.approve_log(user.user_id, str(log_id))


@router.post("/otjt-logs/{log_id}/reject")
async def reject_log(log_id: LogId, request: RejectRequest, user: CurrentUser):
    return OTJTService.reject_log(user.user_id, str(log_id), request.reason)


@router.post("/otjt-logs/{log_id}/query")
async def query_log(log_id: LogId, request: QueryRequest, user: CurrentUser):
    return OTJTService.query_log(user.user_id, str(log_id), request.message)
