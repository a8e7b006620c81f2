from fastapi import APIRouter, WebSocket, HTTPException
from bson import ObjectId
from bson.errors import InvalidId
from typing import Dict, Any, Optional
from pymongo.errors import PyMongoError
from globalconnect.config import logger, user_collection, messages_collection
from globalconnect.core.chat import assert_can_message, send_direct_message
from globalconnect.core.notifier import notify_user
from globalconnect.websockets.connection import AuthenticatedWebSocket
from globalconnect.websockets.manager import ws_manager

router = APIRouter()


def _load_user(user_id: Any) -> Optional[dict]:
    try:
        return user_collection.find_one({"_id": ObjectId(user_id)})
    except (InvalidId, TypeError):
        return None


async def handle_send_message(data: Dict[str, Any], connection: AuthenticatedWebSocket):
    content = (data.get("content") or "").strip()
    if not content:
        await connection.emit("error", {"event": "sendMessage", "message": "Message content is required"})
        return

    sender = _load_user(connection.user_id)
    receiver = _load_user(data.get("receiverId"))
    if not sender or not receiver:
        await connection.emit("error", {"event": "sendMessage", "message": "User not found"})
        return
    try:
        assert_can_message(sender, receiver)
    except HTTPException as e:
        await connection.emit("error", {"event": "sendMessage", "message": e.detail})
        return

    message, delivered = await send_direct_message(sender, receiver, content)
    await connection.emit("receiveMessage", message)
    await connection.emit("messageSent", {**message, "status": "delivered" if delivered else "stored"})


async def handle_typing(event: str, data: Dict[str, Any], connection: AuthenticatedWebSocket):
    receiver_id = data.get("receiverId")
    if not receiver_id:
        return
    await ws_manager.emit(str(receiver_id), event, {"senderId": connection.user_id})


async def handle_message_read(data: Dict[str, Any], connection: AuthenticatedWebSocket):
    try:
        message_id = ObjectId(data.get("messageId"))
    except (InvalidId, TypeError):
        await connection.emit("error", {"event": "messageRead", "message": "Invalid message ID"})
        return

    message = messages_collection.find_one({"_id": message_id, "receiver": ObjectId(connection.user_id)})
    if not message:
        await connection.emit("error", {"event": "messageRead", "message": "Message not found"})
        return
    messages_collection.update_one({"_id": message_id}, {"$set": {"readByReceiver": True}})
    await ws_manager.emit(
        str(message["sender"]),
        "messageReadAck",
        {"messageId": str(message_id), "readerId": connection.user_id},
    )


async def handle_send_notification(data: Dict[str, Any], connection: AuthenticatedWebSocket):
    recipient = _load_user(data.get("recipientId"))
    text = (data.get("message") or "").strip()
    if not recipient or not text:
        await connection.emit("error", {"event": "sendNotification", "message": "Recipient and message are required"})
        return
    await notify_user(
        recipient["_id"],
        text,
        data.get("type") or "default",
        title=data.get("title"),
        metadata={"senderId": connection.user_id},
    )


async def message_handler(message: Dict[str, Any], connection: AuthenticatedWebSocket):
    """Handle authenticated messages from WebSocket clients."""
    msg_type = message.get("type")
    data = message.get("data") or {}
    logger.info(f"Handling message from user {connection.user_id}: {msg_type or 'unknown'}")

    try:
        if msg_type == "ping":
            # Simple ping-pong for connection testing
            await connection.emit("pong")
        elif msg_type == "join":
            await connection.emit("joinAcknowledged", {"success": True, "userId": connection.user_id})
        elif msg_type == "sendMessage":
            await handle_send_message(data, connection)
        elif msg_type == "startTyping":
            await handle_typing("userTyping", data, connection)
        elif msg_type == "stopTyping":
            await handle_typing("userStoppedTyping", data, connection)
        elif msg_type == "messageRead":
            await handle_message_read(data, connection)
        elif msg_type == "sendNotification":
            await handle_send_notification(data, connection)
        else:
            await connection.emit("error", {"message": f"Unknown event: {msg_type}"})
    except PyMongoError as e:
        logger.error(f"Database error handling WebSocket message: {str(e)}")
        # Send error message to the client
        await connection.emit("error", {"message": "Failed to process your message"})


@router.websocket("")  # This will match /ws when mounted with prefix
async def websocket_endpoint_root(websocket: WebSocket):
    """WebSocket endpoint for the /ws path."""
    logger.debug("WebSocket connection attempt at /ws")
    await ws_manager.handle_connection(websocket, message_handler)
