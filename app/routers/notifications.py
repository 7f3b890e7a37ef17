# =============================================================================
# app/routers/notifications.py - Notification Inbox and Preferences
# =============================================================================

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query
from pydantic import BaseModel, Field

from app.dependencies import CurrentUser
from core.models.notifications import NotificationChannel
from core.services.notification_service import NotificationService

router = APIRouter()


class PreferenceUpdateRequest(BaseModel):
    """Fields left out are unchanged."""
    enabled: bool | None = None
    critical_enabled: bool | None = None
    high_enabled: bool | None = None
    medium_enabled: bool | None = None
    low_enabled: bool | None = None
    push_token: str | None = Field(default=None, max_length=500)
    phone_number: str | None = Field(default=None, max_length=32)


@router.get("/notifications")
async def list_notifications(
    user: CurrentUser,
    unread_only: Annotated[bool, Query()] = False,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
):
    return {
        "notifications": NotificationService.list_notifications(
            user.user_id, unread_only=unread_only, limit=limit
        )
    }


@router.post("/notifications/{notification_id}/read")
async def mark_read(
    notification_id: Annotated[UUID, Path(description="Notification UUID")],
    user: CurrentUser,
):
    return NotificationService.mark_read(user.user_id, str(notification_id))


@router.post("/notifications/read-all")
async def mark_all_read(user: CurrentUser):
    return {"updated": NotificationService.mark_all_read(user.user_id)}


@router.get("/notifications/preferences")
async def get_preferences(user: CurrentUser):
    """Per-channel preferences, defaults filled in."""
    return NotificationService.get_preferences(user.user_id)


@router.put("/notifications/preferences/{channel}")
async def update_preference(
    channel: NotificationChannel,
    request: PreferenceUpdateRequest,
    user: CurrentUser,
):
    return NotificationService.update_preference(
        user.user_id, channel, request.model_dump(exclude_none=True)
    )
