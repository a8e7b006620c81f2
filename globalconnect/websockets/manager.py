from fastapi import WebSocket
from starlette.websockets import WebSocketState
from typing import Dict, Optional, Callable, Awaitable, Any, List, Set
from bson import ObjectId
from pubsub import pub
import asyncio
from globalconnect.websockets.connection import AuthenticatedWebSocket
from globalconnect.config import logger, settings, user_collection
from globalconnect.core.dates import utcnow


class WebSocketManager:
    """Manages all active WebSocket connections, one per user."""

    def __init__(self):
        self.active_connections: Dict[str, AuthenticatedWebSocket] = {}
        self._tasks: Set[asyncio.Task] = set()
        pub.subscribe(self.on_user_authenticated, "user_authenticated")

    def on_user_authenticated(self, user_id: str, connection: AuthenticatedWebSocket):
        """Handle user authentication."""
        logger.info(f"User {user_id} authenticated, adding to active connections")
        previous = self.register_connection(user_id, connection)
        self._spawn(self._announce(previous))

    def _spawn(self, coro: Awaitable[None]):
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _announce(self, previous: Optional[AuthenticatedWebSocket]):
        if previous is not None:
            await previous.close(reason="Connected from another device")
        await self.broadcast_online_users()

    async def create_connection(self, websocket: WebSocket) -> AuthenticatedWebSocket:
        """Create and accept a new WebSocket connection."""
        connection = AuthenticatedWebSocket(websocket)
        await connection.accept()
        return connection

    def register_connection(self, user_id: str, connection: AuthenticatedWebSocket) -> Optional[AuthenticatedWebSocket]:
        """Register an authenticated connection and return the one it replaces, if any."""
        previous = self.active_connections.get(user_id)
        if previous is connection:
            previous = None
        elif previous is not None:
            logger.info(f"Replacing existing WebSocket connection for user {user_id}")

        self.active_connections[user_id] = connection
        logger.info(f"User {user_id} connected to WebSocket")
        return previous

    def disconnect(self, user_id: str, connection: Optional[AuthenticatedWebSocket] = None) -> bool:
        """Remove a connection from active connections.

        When ``connection`` is given the entry is only removed if it is still the
        registered one, so a socket replaced by a newer device does not evict it.
        """
        current = self.active_connections.get(user_id)
        if current is None or (connection is not None and current is not connection):
            return False
        self.active_connections.pop(user_id, None)
        logger.info(f"User {user_id} disconnected")
        return True

    def is_online(self, user_id: str) -> bool:
        return user_id in self.active_connections

    def online_users(self) -> List[str]:
        return list(self.active_connections.keys())

    async def send_message(self, recipient_id: str, message: Dict[str, Any]) -> bool:
        """Send a raw frame to a specific user."""
        connection = self.active_connections.get(recipient_id)
        if connection is None:
            logger.debug(f"User {recipient_id} not connected, frame not delivered")
            return False
        try:
            await connection.send_json(message)
        except Exception as e:
            logger.error(f"Failed to send WebSocket frame to user {recipient_id}: {str(e)}")
            self.disconnect(recipient_id, connection)
            return False
        logger.info(f"Sent {message.get('type')} to user {recipient_id}")
        return True

    async def emit(self, recipient_id: str, event: str, data: Any = None) -> bool:
        """Send an event to a user, returning whether it was delivered."""
        return await self.send_message(recipient_id, {"type": event, "data": data if data is not None else {}})

    async def broadcast(self, event: str, data: Any = None, exclude: Optional[str] = None) -> int:
        """Broadcast an event to all connected users except the excluded one."""
        delivered = 0
        for user_id in list(self.active_connections.keys()):
            if exclude is not None and user_id == exclude:
                continue
            if await self.emit(user_id, event, data):
                delivered += 1

        logger.info(f"Broadcast {event} to {delivered} users")
        return delivered

    async def broadcast_online_users(self):
        await self.broadcast("updateOnlineUsers", {"users": self.online_users()})

    async def cleanup_stale_connections(self) -> int:
        """Drop connections whose socket has already gone away."""
        stale = [
            user_id
            for user_id, connection in list(self.active_connections.items())
            if connection.closed
            or connection.websocket.client_state == WebSocketState.DISCONNECTED
            or connection.websocket.application_state == WebSocketState.DISCONNECTED
        ]
        for user_id in stale:
            self.disconnect(user_id)
        if stale:
            logger.info(f"Cleaned up {len(stale)} stale WebSocket connections")
            await self.broadcast_online_users()
        return len(stale)

    async def run_cleanup_loop(self, interval: int = None):
        interval = interval or settings.WS_CLEANUP_INTERVAL
        while True:
            await asyncio.sleep(interval)
            await self.cleanup_stale_connections()

    async def handle_connection(self, websocket: WebSocket,
                                message_handler: Callable[[Dict[str, Any], AuthenticatedWebSocket], Awaitable[None]]):
        """Handle a WebSocket connection from start to finish."""
        connection = await self.create_connection(websocket)

        try:
            # Wait for authentication and handle messages
            await connection.handle_messages(message_handler)
        finally:
            # Clean up when the connection is closed
            removed = False
            if connection.authenticated and connection.user_id:
                removed = self.disconnect(connection.user_id, connection)

            # Make sure the connection is closed
            await connection.close()
            if removed:
                await self.broadcast_online_users()


def record_user_activity(user_id: str, connection: AuthenticatedWebSocket):
    """Touch ``last_activity`` and bring an idle account back to Active."""
    oid = ObjectId(user_id)
    now = utcnow()
    user_collection.update_one({"_id": oid}, {"$set": {"last_activity": now}})
    user_collection.update_one(
        {"_id": oid, "status": "Inactive"},
        {"$set": {"status": "Active", "updatedAt": now}},
    )


pub.subscribe(record_user_activity, "user_authenticated")

# Global WebSocket manager instance
ws_manager = WebSocketManager()
