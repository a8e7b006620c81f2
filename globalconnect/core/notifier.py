import asyncio
from typing import Any, Dict, Optional
from bson import ObjectId
from globalconnect.config import (
    logger,
    user_collection,
    user_notifications_collection,
)
from globalconnect.core.dates import utcnow
from globalconnect.core.push import send_expo_push_notification, send_batch_push_notifications
from globalconnect.schemas.notification_schema import serialize_notification
from globalconnect.websockets.manager import ws_manager


def wants_push(user: Optional[dict]) -> bool:
    if not user or not user.get("expoPushToken"):
        return False
    if user.get("notifications_enabled") is False:
        return False
    preferences = user.get("notification_preferences") or {}
    return preferences.get("push", True)


async def push_to_user(user: dict, title: str, body: str, data: Dict[str, Any] = None,
                       notification_type: str = "default"):
    """Send a push notification to a user if they opted in. Failures are logged only."""
    if not wants_push(user):
        return None
    return await asyncio.to_thread(
        send_expo_push_notification,
        user["expoPushToken"],
        title,
        body,
        data or {},
        notification_type,
    )


async def push_to_all(title: str, body: str, data: Dict[str, Any] = None, notification_type: str = "admin"):
    tokens = [
        user["expoPushToken"]
        for user in user_collection.find(
            {"expoPushToken": {"$exists": True, "$ne": None}, "notifications_enabled": {"$ne": False}},
            {"expoPushToken": 1},
        )
    ]
    if not tokens:
        logger.info("No push tokens registered, skipping batch push")
        return None
    return await asyncio.to_thread(send_batch_push_notifications, tokens, title, body, data or {}, notification_type)


async def notify_user(
    user_id,
    message: str,
    notification_type: str = "default",
    title: str = None,
    metadata: Dict[str, Any] = None,
    push: bool = True,
) -> dict:
    """Store a notification for a user, deliver it live and as a push.

    The stored document is returned in its serialized form. Live and push
    delivery are best effort.
    """
    oid = user_id if isinstance(user_id, ObjectId) else ObjectId(user_id)
    notification = {
        "userId": oid,
        "title": title or "Notification",
        "message": message,
        "type": notification_type,
        "isRead": False,
        "metadata": metadata or {},
        "createdAt": utcnow(),
    }
    result = user_notifications_collection.insert_one(notification)
    notification["_id"] = result.inserted_id
    payload = serialize_notification(notification)

    await ws_manager.emit(str(oid), "receiveNotification", payload)

    if push:
        user = user_collection.find_one(
            {"_id": oid}, {"expoPushToken": 1, "notifications_enabled": 1, "notification_preferences": 1}
        )
        await push_to_user(user, notification["title"], message, {"notificationId": payload["_id"], **(metadata or {})},
                           notification_type)

    logger.info(f"Notification ({notification_type}) sent to user {oid}")
    return payload
