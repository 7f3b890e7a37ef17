# =============================================================================
# app/websocket/__init__.py - WebSocket Module
# =============================================================================
# Provides real-time updates for a signed-in user.
#
# Usage:
#   # Broadcast an event to all of a user's connections (from FastAPI)
#   from app.websocket import websocket_manager
#
#   await websocket_manager.broadcast(user_id, {
#       "type": "notification_created",
#       "notification_id": "..."
#   })
#
#   # Publish events from services or Celery workers
#   from app.websocket.broadcast import publish_order_updated
#
#   publish_order_updated(order, status="accepted")
# =============================================================================

from app.websocket.manager import websocket_manager
from app.websocket.broadcast import (
    publish_event,
    publish_notification_created,
    publish_order_updated,
    WEBSOCKET_CHANNEL,
)

__all__ = [
    "websocket_manager",
    "publish_event",
    "publish_notification_created",
    "publish_order_updated",
    "WEBSOCKET_CHANNEL",
]
