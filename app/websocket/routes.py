# =============================================================================
# app/websocket/routes.py - WebSocket Routes
# =============================================================================
# WebSocket endpoint for real-time user updates.
#
# Connect: ws://host/ws/users/{user_id}?token={jwt}
#
# Events:
#   - {"type": "notification_created", "notification_id": "...", ...}
#   - {"type": "order_updated", "order_id": "...", "status": "...", ...}
# =============================================================================

import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from app.auth import decode_token
from app.exceptions import NotAuthenticatedError
from app.websocket.manager import websocket_manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/users/{user_id}")
async def user_websocket(
    websocket: WebSocket,
    user_id: str,
    token: str = Query(..., description="JWT token for authentication")
):
    """
    WebSocket endpoint for a user's live events.

    The token's subject must match the user_id in the path. Clients
    should refetch the affected resource when an event arrives; events
    are best-effort and may be missed.
    """
    try:
        user = decode_token(token)
    except NotAuthenticatedError as e:
        logger.warning(f"WebSocket auth failed: {e.message}")
        await websocket.close(code=4001, reason="Invalid token")
        return

    if user.user_id != user_id:
        logger.warning(f"WebSocket access denied: token for {user.user_id} used for {user_id}")
        await websocket.close(code=4003, reason="Access denied")
        return

    await websocket_manager.connect(user_id, websocket)

    try:
        await websocket.send_json({
            "type": "connected",
            "user_id": user_id,
        })

        while True:
            data = await websocket.receive_text()
            # Keepalive
            if data == "ping":
                await websocket.send_text("pong")

    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected for user {user_id}")
    finally:
        websocket_manager.disconnect(user_id, websocket)


@router.get("/ws/status")
async def websocket_status():
    """Connection statistics for this API process."""
    return {
        "total_connections": websocket_manager.get_connection_count(),
        "connected_users": len(websocket_manager.get_connected_users()),
    }
