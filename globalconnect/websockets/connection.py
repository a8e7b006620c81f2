from fastapi import WebSocket, WebSocketDisconnect, status
from typing import Optional, Dict, Any, Callable, Awaitable
from bson import ObjectId
from bson.errors import InvalidId
from pubsub import pub
import asyncio
import json
from globalconnect.config import logger, settings, user_collection
from globalconnect.core.accounts import account_restriction, lift_expired_suspension
from globalconnect.core.security import verify_access_token


class AuthenticatedWebSocket:
    """A wrapper around the FastAPI WebSocket that handles authentication and timeout."""

    def __init__(self, websocket: WebSocket, auth_timeout: int = None):
        self.websocket = websocket
        self.auth_timeout = auth_timeout if auth_timeout is not None else settings.WS_AUTH_TIMEOUT
        self.user_id: Optional[str] = None
        self.authenticated = False
        self.timeout_task: Optional[asyncio.Task] = None
        self.closed = False

    async def accept(self):
        """Accept the WebSocket connection and start the authentication timeout."""
        await self.websocket.accept()
        logger.debug("WebSocket connection accepted successfully")

        self.timeout_task = asyncio.create_task(self._authentication_timeout())

        token = self.websocket.query_params.get("token")
        if token:
            token_preview = token[:20] + "..." if len(token) > 20 else token
            logger.debug(f"WebSocket connection with token: {token_preview}")
            await self.authenticate(token)

    async def authenticate(self, token: str) -> bool:
        """Authenticate the WebSocket connection using the provided token."""
        user_id = verify_access_token(token)
        if not user_id:
            logger.error("WebSocket connection rejected: Invalid token")
            await self.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
            return False

        try:
            user = user_collection.find_one({"_id": ObjectId(user_id)})
        except InvalidId:
            user = None
        if not user:
            logger.error(f"WebSocket connection rejected: user {user_id} not found")
            await self.close(code=status.WS_1008_POLICY_VIOLATION, reason="User not found")
            return False

        restriction = account_restriction(lift_expired_suspension(user))
        if restriction:
            logger.warning(f"WebSocket connection rejected for user {user_id}: {restriction}")
            await self.close(code=status.WS_1008_POLICY_VIOLATION, reason=restriction)
            return False

        logger.info(f"WebSocket token verified successfully for user {user_id}")
        self.user_id = user_id
        self.authenticated = True

        if self.timeout_task and not self.timeout_task.done():
            self.timeout_task.cancel()

        pub.sendMessage("user_authenticated", user_id=user_id, connection=self)
        await self.emit("joinAcknowledged", {"success": True, "userId": user_id})
        return True

    async def _authentication_timeout(self):
        """Close the connection if authentication doesn't complete within the timeout period."""
        try:
            await asyncio.sleep(self.auth_timeout)
            if not self.authenticated and not self.closed:
                logger.warning(f"WebSocket authentication timeout after {self.auth_timeout} seconds")
                await self.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication timeout")
        except asyncio.CancelledError:
            pass

    async def close(self, code: int = status.WS_1000_NORMAL_CLOSURE, reason: str = "Connection closed"):
        """Close the WebSocket connection."""
        if self.timeout_task and not self.timeout_task.done():
            self.timeout_task.cancel()
        if not self.closed:
            self.closed = True
            try:
                await self.websocket.close(code=code, reason=reason)
            except Exception as e:
                logger.error(f"Error closing WebSocket: {str(e)}")

    async def send_json(self, data: Dict[str, Any]):
        await self.websocket.send_json(data)

    async def emit(self, event: str, data: Any = None):
        """Send an event frame, the unit every client listener is keyed on."""
        await self.send_json({"type": event, "data": data if data is not None else {}})

    async def handle_messages(self, message_handler: Callable[[Dict[str, Any], "AuthenticatedWebSocket"], Awaitable[None]]):
        """Handle incoming messages using the provided message handler."""
        try:
            while not self.closed:
                data = await self.websocket.receive_text()
                logger.debug(f"Received WebSocket message: {data[:100]}")

                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning(f"Received non-JSON message: {data[:50]}")
                    await self.emit("error", {"message": "Messages must be JSON"})
                    continue
                if not isinstance(message, dict):
                    await self.emit("error", {"message": "Messages must be JSON objects"})
                    continue

                if not self.authenticated:
                    if message.get("type") == "authenticate" and message.get("token"):
                        if not await self.authenticate(message["token"]):
                            break
                    else:
                        logger.warning("Received message before authentication")
                        await self.emit("error", {"message": "Not authenticated"})
                    continue

                await message_handler(message, self)
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected for user {self.user_id}")
            self.closed = True
        except RuntimeError as e:
            # Starlette raises RuntimeError when reading from a socket closed on our side.
            logger.debug(f"WebSocket receive after close: {str(e)}")
            self.closed = True
        except Exception as e:
            logger.error(f"Error handling WebSocket messages: {str(e)}")
            await self.close(code=status.WS_1011_INTERNAL_ERROR, reason="Internal error")
