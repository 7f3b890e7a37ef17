# =============================================================================
# app/websocket/manager.py - WebSocket Connection Manager
# =============================================================================
# Tracks open WebSocket connections per user and fans events out to them.
#
# Usage:
#   from app.websocket import websocket_manager
#
#   await websocket_manager.connect(user_id, websocket)
#   await websocket_manager.broadcast(user_id, {"type": "order_updated", ...})
#   websocket_manager.disconnect(user_id, websocket)
# =============================================================================

import logging
from collections import defaultdict

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    WebSocket connections grouped by user ID.

    A user can have several connections open (tabs, devices); every event
    for the user goes to all of them. Connections that fail a send are
    dropped.
    """

    def __init__(self):
        self.connections: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        """Accept a connection and register it under the user."""
        await websocket.accept()
        self.connections[user_id].add(websocket)
        logger.info(
            f"WebSocket connected for user {user_id}. "
            f"Total connections: {self.get_connection_count()}"
        )

    def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        """Forget a connection; removes the user entry once it's empty."""
        sockets = self.connections.get(user_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self.connections[user_id]
        logger.info(f"WebSocket disconnected for user {user_id}")

    async def broadcast(self, user_id: str, message: dict) -> int:
        """
        Send a message to every connection of a user.

        Args:
            user_id: Recipient
            message: JSON-serializable event dict

        Returns:
            int: Number of connections the message reached
        """
        sockets = self.connections.get(user_id)
        if not sockets:
            logger.debug(f"No connections for user {user_id}, skipping broadcast")
            return 0

        sent = 0
        dead: list[WebSocket] = []
        for websocket in list(sockets):
            try:
                await websocket.send_json(message)
                sent += 1
            except Exception as e:
                logger.warning(f"Failed to send to WebSocket: {e}")
                dead.append(websocket)

        for websocket in dead:
            self.disconnect(user_id, websocket)

        logger.debug(f"Broadcast {message.get('type')} to user {user_id}: {sent} clients")
        return sent

    def get_connection_count(self, user_id: str | None = None) -> int:
        """Connections for one user, or across all users."""
        if user_id:
            return len(self.connections.get(user_id, ()))
        return sum(len(s) for s in self.connections.values())

    def get_connected_users(self) -> list[str]:
        return list(self.connections.keys())


# Global singleton instance
websocket_manager = ConnectionManager()
