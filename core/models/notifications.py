# =============================================================================
# core/models/notifications.py - Notification Schemas
# =============================================================================
# Priority decides which channels a notification goes to; the recipient's
# stored preferences can switch channels off.
# =============================================================================

from enum import Enum

from pydantic import BaseModel, Field


class NotificationPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class NotificationChannel(str, Enum):
    PUSH = "push"
    SMS = "sms"
    EMAIL = "email"
    IN_APP = "in_app"


# Channels attempted for each priority, in delivery order
PRIORITY_CHANNELS: dict[NotificationPriority, list[NotificationChannel]] = {
    NotificationPriority.CRITICAL: [
        NotificationChannel.PUSH,
        NotificationChannel.SMS,
        NotificationChannel.EMAIL,
        NotificationChannel.IN_APP,
    ],
    NotificationPriority.HIGH: [
        NotificationChannel.PUSH,
        NotificationChannel.EMAIL,
        NotificationChannel.IN_APP,
    ],
    NotificationPriority.MEDIUM: [
        NotificationChannel.PUSH,
        NotificationChannel.EMAIL,
        NotificationChannel.IN_APP,
    ],
    NotificationPriority.LOW: [NotificationChannel.IN_APP],
}


class NotificationRequest(BaseModel):
    """Everything needed to deliver one notification."""
    user_id: str
    title: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., max_length=2000)
    priority: NotificationPriority = NotificationPriority.MEDIUM
    notification_type: str = "general"
    action_url: str | None = None
    metadata: dict = Field(default_factory=dict)


class DeliveryResult(BaseModel):
    """Which channels succeeded, and the errors from those that didn't."""
    success: bool
    notification_id: str | None = None
    channels_delivered: list[NotificationChannel] = []
    errors: list[str] = []
