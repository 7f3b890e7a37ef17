# =============================================================================
# app/websocket/broadcast.py - Cross-Process Broadcasting
# =============================================================================
# Lets services and Celery workers publish per-user events that the API
# process forwards to that user's WebSocket connections.
#
# Uses Redis pub/sub for cross-process communication:
# - Any process calls publish_event() to send an event
# - FastAPI subscribes and broadcasts to WebSocket clients
#
# Delivery is at-most-once: a failed publish is logged and dropped.
#
# Events:
#   - notification_created: A new in-app notification for the user
#   - order_updated: An order's status or escrow status changed
# =============================================================================

import json
import logging
from typing import Any

from app.config import settings
from lib.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

# Redis channel for WebSocket events
WEBSOCKET_CHANNEL = "centauros:websocket:events"


def get_redis_client():
    """Get a Redis client for pub/sub operations."""
    import redis
    return redis.from_url(settings.REDIS_URL)


def publish_event(user_id: str, event_type: str, data: dict[str, Any]) -> bool:
    """
    Publish an event that will be broadcast to a user's WebSocket clients.

    Args:
        user_id: The user to deliver to
        event_type: Event type (notification_created, order_updated)
        data: Event data to include

    Returns:
        bool: True if published successfully
    """
    if not settings.REALTIME_ENABLED:
        return False

    try:
        client = get_redis_client()

        message = json.dumps({
            "user_id": str(user_id),
            "type": event_type,
            **data
        }, default=str)

        client.publish(WEBSOCKET_CHANNEL, message)

        logger.debug(f"Published {event_type} event for user {user_id}")
        return True

    except Exception as e:
        logger.error(f"Failed to publish event: {e}")
        return False


def publish_notification_created(user_id: str, notification: dict[str, Any]) -> bool:
    """Publish a notification_created event with the new notification row."""
    return publish_event(user_id, "notification_created", {
        "notification_id": notification.get("id"),
        "title": notification.get("title"),
        "message": notification.get("message"),
        "link": notification.get("link"),
    })


def publish_order_updated(
    order: dict[str, Any],
    status: str | None = None,
    escrow_status: str | None = None,
) -> None:
    """
    Publish an order_updated event to both parties of an order.

    Called after a status or escrow transition so open order pages refetch.
    The seller is addressed by the user behind their provider profile.
    """
    if not settings.REALTIME_ENABLED:
        return

    seller_user = None
    if order.get("seller_id"):
        try:
            provider = SupabaseClient.fetch_provider_profile(order["seller_id"])
            seller_user = provider.get("user_id") if provider else None
        except Exception as e:
            logger.warning(f"Could not resolve seller for order {order.get('id')}: {e}")

    payload = {
        "order_id": order.get("id"),
        "status": status or order.get("status"),
        "escrow_status": escrow_status or order.get("escrow_status"),
    }
    for party in (order.get("buyer_id"), seller_user):
        if party:
            publish_event(party, "order_updated", payload)
