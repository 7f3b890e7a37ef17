# =============================================================================
# core/services/notification_service.py - Notification Dispatch
# =============================================================================
# Routes a notification to channels based on priority:
# - critical: push + sms + email + in-app
# - high / medium: push + email + in-app
# - low: in-app only
#
# The recipient's notification_preferences rows can switch a channel off
# entirely or per priority. In-app notifications are stored rows; push,
# email and SMS are delivery stubs that only log.
#
# Workflows call notify(), which never raises: a failed notification must
# not fail the state change that triggered it.
# =============================================================================

import logging
from typing import Any

from app.config import settings
from app.exceptions import InvalidInputError, NotFoundError
from app.websocket.broadcast import publish_notification_created
from core.models.notifications import (
    DeliveryResult,
    NotificationChannel,
    NotificationPriority,
    NotificationRequest,
    PRIORITY_CHANNELS,
)
from lib.supabase_client import SupabaseClient
from lib.utils import normalize_uuid, utc_now

logger = logging.getLogger(__name__)

PREFERENCE_FIELDS = ("enabled", "critical_enabled", "high_enabled", "medium_enabled", "low_enabled")


def default_preferences() -> dict[str, dict[str, Any]]:
    """
    Channel preferences for a user who hasn't changed anything.

    Everything is on except SMS; only in-app receives low priority.
    """
    base = {
        "enabled": True,
        "critical_enabled": True,
        "high_enabled": True,
        "medium_enabled": True,
        "low_enabled": False,
        "push_token": None,
        "phone_number": None,
    }
    prefs = {channel.value: dict(base) for channel in NotificationChannel}
    prefs[NotificationChannel.SMS.value]["enabled"] = False
    prefs[NotificationChannel.IN_APP.value]["low_enabled"] = True
    return prefs


class NotificationService:
    """
    Service for notification delivery and the in-app inbox.
    """

    # -------------------------------------------------------------------------
    # Preferences
    # -------------------------------------------------------------------------

    @staticmethod
    def get_preferences(user_id: str) -> dict[str, dict[str, Any]]:
        """
        Merge stored preferences over the defaults.

        Args:
            user_id: The recipient

        Returns:
            Dict keyed by channel name
        """
        prefs = default_preferences()
        client = SupabaseClient.get_client()

        response = (
            client.table("notification_preferences")
            .select("*")
            .eq("user_id", normalize_uuid(user_id))
            .execute()
        )

        for row in response.data or []:
            channel = row.get("channel")
            if channel not in prefs:
                continue
            for field in PREFERENCE_FIELDS:
                if row.get(field) is not None:
                    prefs[channel][field] = row[field]
            for field in ("push_token", "phone_number"):
                if row.get(field):
                    prefs[channel][field] = row[field]

        return prefs

    @staticmethod
    def update_preference(
        user_id: str,
        channel: NotificationChannel,
        updates: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Upsert one channel's preference row.

        Raises:
            InvalidInputError: If no known field is being changed
        """
        allowed = set(PREFERENCE_FIELDS) | {"push_token", "phone_number"}
        data = {k: v for k, v in updates.items() if k in allowed and v is not None}
        if not data:
            raise InvalidInputError("No preference fields to update")

        data.update({
            "user_id": normalize_uuid(user_id),
            "channel": channel.value,
            "updated_at": utc_now().isoformat(),
        })

        client = SupabaseClient.get_client()
        response = (
            client.table("notification_preferences")
            .upsert(data, on_conflict="user_id,channel")
            .execute()
        )
        logger.info(f"Updated {channel.value} notification preference for user {user_id}")
        return response.data[0] if response.data else data

    @staticmethod
    def filter_channels(
        channels: list[NotificationChannel],
        preferences: dict[str, dict[str, Any]],
        priority: NotificationPriority,
    ) -> list[NotificationChannel]:
        """Keep the channels the user has enabled for this priority."""
        enabled = []
        for channel in channels:
            pref = preferences.get(channel.value, {})
            if pref.get("enabled") and pref.get(f"{priority.value}_enabled"):
                enabled.append(channel)
        return enabled

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    @staticmethod
    def send_notification(request: NotificationRequest) -> DeliveryResult:
        """
        Deliver a notification on every enabled channel for its priority.

        Channel failures are collected, not raised. The attempt is written
        to notification_log.

        Args:
            request: Recipient, content and priority

        Returns:
            DeliveryResult; success is True if any channel delivered
        """
        profile = SupabaseClient.fetch_profile(request.user_id)
        preferences = NotificationService.get_preferences(request.user_id)

        target = PRIORITY_CHANNELS[request.priority]
        channels = NotificationService.filter_channels(target, preferences, request.priority)

        result = DeliveryResult(success=False)
        for channel in channels:
            try:
                notification_id = NotificationService._send_to_channel(
                    channel, request, profile, preferences
                )
            except Exception as e:
                logger.warning(f"{channel.value} delivery failed for user {request.user_id}: {e}")
                result.errors.append(f"{channel.value}: {e}")
                continue

            result.channels_delivered.append(channel)
            if notification_id:
                result.notification_id = notification_id

        NotificationService._log_delivery(request, channels, result)
        result.success = bool(result.channels_delivered)
        return result

    @staticmethod
    def _send_to_channel(
        channel: NotificationChannel,
        request: NotificationRequest,
        profile: dict[str, Any] | None,
        preferences: dict[str, dict[str, Any]],
    ) -> str | None:
        """Deliver on one channel. Returns the in-app notification id, if any."""
        if channel == NotificationChannel.IN_APP:
            return NotificationService._create_in_app(request, profile)

        if channel == NotificationChannel.EMAIL:
            email = (profile or {}).get("email")
            if not email:
                raise ValueError("No email address available")
            logger.info(f"Email queued for user {request.user_id}: {request.title}")
            return None

        if channel == NotificationChannel.PUSH:
            if not preferences[channel.value].get("push_token"):
                raise ValueError("No push token registered")
            logger.info(f"Push sent to user {request.user_id}: {request.title}")
            return None

        if channel == NotificationChannel.SMS:
            phone = preferences[channel.value].get("phone_number") or (profile or {}).get("phone_number")
            if not phone:
                raise ValueError("No phone number available")
            logger.info(f"SMS sent to user {request.user_id}: {request.title}")
            return None

        raise ValueError(f"Unknown channel: {channel}")

    @staticmethod
    def _create_in_app(request: NotificationRequest, profile: dict[str, Any] | None) -> str:
        client = SupabaseClient.get_client()
        data = {
            "user_id": normalize_uuid(request.user_id),
            "foundry_id": (profile or {}).get("foundry_id"),
            "type": request.notification_type,
            "title": request.title,
            "message": request.body,
            "link": request.action_url,
            "metadata": request.metadata,
            "is_read": False,
        }
        response = client.table("notifications").insert(data).execute()
        if not response.data:
            raise ValueError("Insert returned no data")

        notification = response.data[0]
        publish_notification_created(request.user_id, notification)
        return notification["id"]

    @staticmethod
    def _log_delivery(
        request: NotificationRequest,
        channels: list[NotificationChannel],
        result: DeliveryResult,
    ) -> None:
        try:
            client = SupabaseClient.get_client()
            client.table("notification_log").insert({
                "user_id": normalize_uuid(request.user_id),
                "priority": request.priority.value,
                "channels": [c.value for c in channels],
                "title": request.title,
                "body": request.body,
                "action_url": request.action_url,
                "delivered_via": [c.value for c in result.channels_delivered],
            }).execute()
        except Exception as e:
            logger.error(f"Error logging notification: {e}")

    # -------------------------------------------------------------------------
    # Inbox
    # -------------------------------------------------------------------------

    @staticmethod
    def list_notifications(
        user_id: str,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """A user's in-app notifications, newest first."""
        client = SupabaseClient.get_client()
        query = (
            client.table("notifications")
            .select("*")
            .eq("user_id", normalize_uuid(user_id))
        )
        if unread_only:
            query = query.eq("is_read", False)
        response = query.order("created_at", desc=True).limit(limit).execute()
        return response.data or []

    @staticmethod
    def mark_read(user_id: str, notification_id: str) -> dict[str, Any]:
        """
        Mark one of the user's notifications read.

        Raises:
            NotFoundError: If the notification doesn't exist or isn't theirs
        """
        client = SupabaseClient.get_client()
        response = (
            client.table("notifications")
            .update({"is_read": True, "read_at": utc_now().isoformat()})
            .eq("id", normalize_uuid(notification_id))
            .eq("user_id", normalize_uuid(user_id))
            .execute()
        )
        if not response.data:
            raise NotFoundError("Notification", str(notification_id))
        return response.data[0]

    @staticmethod
    def mark_all_read(user_id: str) -> int:
        """Mark every unread notification read. Returns how many changed."""
        client = SupabaseClient.get_client()
        response = (
            client.table("notifications")
            .update({"is_read": True, "read_at": utc_now().isoformat()})
            .eq("user_id", normalize_uuid(user_id))
            .eq("is_read", False)
            .execute()
        )
        return len(response.data or [])


# =============================================================================
# Fire-and-Forget Entry Point
# =============================================================================

def notify(
    user_id: str | None,
    title: str,
    body: str,
    priority: NotificationPriority = NotificationPriority.MEDIUM,
    notification_type: str = "marketplace",
    action_url: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """
    Send a notification without letting failures reach the caller.

    Dispatches through Celery when NOTIFICATIONS_ASYNC is set, otherwise
    delivers inline.
    """
    if not user_id:
        return

    try:
        request = NotificationRequest(
            user_id=normalize_uuid(user_id),
            title=title,
            body=body,
            priority=priority,
            notification_type=notification_type,
            action_url=action_url,
            metadata=metadata or {},
        )

        if settings.NOTIFICATIONS_ASYNC:
            from workers.tasks import dispatch_notification
            dispatch_notification.delay(request.model_dump(mode="json"))
            return

        NotificationService.send_notification(request)

    except Exception as e:
        logger.warning(f"Notification to {user_id} failed: {e}")
