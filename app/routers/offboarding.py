# =============================================================================
# app/routers/offboarding.py - Member Offboarding Endpoints
# =============================================================================
# Executives and Founders remove members from their foundry.
# =============================================================================

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path
from pydantic import BaseModel, Field

from app.dependencies import CurrentUser
from core.models.offboarding import OffboardingAction
from core.services.offboarding_service import OffboardingService

router = APIRouter()

MemberId = Annotated[UUID, Path(description="Profile UUID of the departing member")]


class OffboardRequest(BaseModel):
    action: OffboardingAction
    reassignments: dict[str, str] = Field(
        default_factory=dict,
        description='"{task_id}-creator" or "{task_id}-assignee" -> new profile id, or "unassign"',
    )


class OffboardingSettingsRequest(BaseModel):
    default_action: OffboardingAction | None = None
    require_task_reassignment: bool | None = None
    retention_days: int | None = Field(default=None, ge=0, le=3650)


@router.get("/members/{member_id}/offboarding-tasks")
async def get_offboarding_tasks(member_id: MemberId, user: CurrentUser):
    """Tasks the member created or is assigned to."""
    return {"tasks": OffboardingService.get_offboarding_tasks(user.user_id, str(member_id))}


@router.post("/members/{member_id}/offboard")
async def offboard_member(member_id: MemberId, request: OffboardRequest, user: CurrentUser):
    """
    Offboard a member.

    - reassign_delete: their work goes to you, then the profile is deleted
    - soft_delete: the profile is deactivated
    - anonymize: personal data is removed and the profile deactivated
    """
    return OffboardingService.offboard_member(
        user.user_id,
        str(member_id),
        request.action,
        reassignments=request.reassignments,
    )


@router.get("/offboarding/settings")
async def get_offboarding_settings(user: CurrentUser):
    return OffboardingService.get_settings_for_user(user.user_id)


@router.put("/offboarding/settings")
async def update_offboarding_settings(request: OffboardingSettingsRequest, user: CurrentUser):
    """Founders only."""
    return OffboardingService.update_offboarding_settings(
        user.user_id,
        request.model_dump(exclude_none=True),
    )
