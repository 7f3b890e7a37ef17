# =============================================================================
# app/routers/retainers.py - Retainer Endpoints
# =============================================================================

from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Path, Query
from pydantic import BaseModel, Field

from app.dependencies import CurrentUser
from core.services.retainer_service import RetainerService

router = APIRouter()

RetainerId = Annotated[UUID, Path(description="Retainer UUID")]


class CreateRetainerRequest(BaseModel):
    provider_id: UUID = Field(..., description="Provider profile ID")
    weekly_hours: float = Field(..., gt=0, le=168, examples=[10])
    hourly_rate: float | None = Field(
        default=None,
        gt=0,
        description="Defaults to the provider's hourly rate, then day rate / 8",
    )
    notes: str | None = Field(default=None, max_length=2000)


class RespondRequest(BaseModel):
    accept: bool


class CancelRetainerRequest(BaseModel):
    effective_date: datetime | None = Field(
        default=None,
        description="When the cancellation takes effect; defaults to 14 days from now",
    )


@router.post("")
async def create_retainer(request: CreateRetainerRequest, user: CurrentUser):
    """Propose a retainer to a provider. It starts pending."""
    return RetainerService.create_retainer(
        user.user_id,
        str(request.provider_id),
        request.weekly_hours,
        hourly_rate=request.hourly_rate,
        notes=request.notes,
    )


@router.get("")
async def list_retainers(
    user: CurrentUser,
    role: Annotated[Literal["buyer", "provider"], Query(description="Which side to list")] = "buyer",
):
    return {"retainers": RetainerService.list_retainers(user.user_id, role=role)}


@router.post("/{retainer_id}/respond")
async def respond_to_retainer(retainer_id: RetainerId, request: RespondRequest, user: CurrentUser):
    """Provider accepts or declines a pending retainer."""
    return RetainerService.respond_to_retainer(user.user_id, str(retainer_id), request.accept)


@router.post("/{retainer_id}/toggle-pause")
async def toggle_retainer_pause(retainer_id: RetainerId, user: CurrentUser):
    """Pause an active retainer, or resume a paused one."""
    return RetainerService.toggle_retainer_pause(user.user_id, str(retainer_id))


@router.post("/{retainer_id}/cancel")
async def cancel_retainer(
    retainer_id: RetainerId,
    user: CurrentUser,
    request: CancelRetainerRequest | None = None,
):
    effective = request.effective_date if request else None
    return RetainerService.cancel_retainer(user.user_id, str(retainer_id), effective_date=effective)


@router.get("/{retainer_id}/stats")
async def get_retainer_stats(retainer_id: RetainerId, user: CurrentUser):
    """Hours logged against expected, and the retainer's weekly/monthly cost."""
    return RetainerService.get_retainer_stats(user.user_id, str(retainer_id))
