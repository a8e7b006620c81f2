import asyncio
from contextlib import suppress
from typing import Optional, Set
from bson import ObjectId
from fastapi import APIRouter, HTTPException, Depends
from pymongo.errors import PyMongoError
from globalconnect.config import (
    logger,
    user_collection,
    user_notifications_collection,
    global_notifications_collection,
)
from globalconnect.core.dates import utcnow, as_naive_utc
from globalconnect.core.notifier import notify_user, push_to_all
from globalconnect.models.notification_model import (
    NotificationRead,
    NotificationSend,
    GlobalNotificationSend,
    NotificationSchedule,
)
from globalconnect.schemas.notification_schema import (
    list_serialize_notifications,
    serialize_global_notification,
    list_serialize_global_notifications,
)
from globalconnect.websockets.manager import ws_manager
from globalconnect.routers.dependencies import require_user, require_admin, to_object_id

router = APIRouter()

_scheduled_tasks: Set[asyncio.Task] = set()


async def broadcast_global_notification(notification: dict) -> dict:
    """Deliver a stored global notification to every online user and every push token."""
    payload = serialize_global_notification(notification)
    await ws_manager.broadcast("receiveNotification", payload)
    await push_to_all(notification.get("title") or "Admin Notification", notification["message"], {"type": "admin"})
    return payload


async def deliver_scheduled_notification(notification_id: ObjectId, delay: float):
    await asyncio.sleep(max(delay, 0))
    try:
        notification = global_notifications_collection.find_one({"_id": notification_id, "sent_at": None})
        if not notification:
            logger.info(f"Scheduled notification {notification_id} was removed or already sent")
            return
        if notification.get("userId"):
            await notify_user(
                notification["userId"],
                notification["message"],
                notification.get("type", "admin"),
                title=notification.get("title"),
            )
        else:
            await broadcast_global_notification(notification)
        global_notifications_collection.update_one({"_id": notification_id}, {"$set": {"sent_at": utcnow()}})
        logger.info(f"Scheduled notification {notification_id} delivered")
    except PyMongoError as e:
        logger.error(f"Failed to deliver scheduled notification {notification_id}: {e}")


def schedule_delivery(notification: dict):
    delay = (notification["scheduleTime"] - utcnow()).total_seconds()
    task = asyncio.get_running_loop().create_task(deliver_scheduled_notification(notification["_id"], delay))
    _scheduled_tasks.add(task)
    task.add_done_callback(_scheduled_tasks.discard)


def resume_scheduled_notifications() -> int:
    """Re-arm notifications that were scheduled before a restart."""
    pending = list(global_notifications_collection.find({"scheduleTime": {"$ne": None}, "sent_at": None}))
    for notification in pending:
        schedule_delivery(notification)
    if pending:
        logger.info(f"Resumed {len(pending)} scheduled notifications")
    return len(pending)


async def cancel_scheduled_notifications():
    for task in list(_scheduled_tasks):
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
    _scheduled_tasks.clear()


@router.get("/user")
async def get_user_notifications(user: dict = Depends(require_user)):
    notifications = user_notifications_collection.find({"userId": user["_id"]}).sort("createdAt", -1)
    return {"message": "Notifications retrieved successfully", "data": list_serialize_notifications(notifications)}


@router.get("/user/unread-count")
async def get_unread_count(user: dict = Depends(require_user)):
    count = user_notifications_collection.count_documents({"userId": user["_id"], "isRead": False})
    return {"unreadCount": count}


@router.put("/user/notification/read")
async def mark_notification_as_read(body: NotificationRead, user: dict = Depends(require_user)):
    if body.all:
        result = user_notifications_collection.update_many(
            {"userId": user["_id"], "isRead": False}, {"$set": {"isRead": True}}
        )
        return {"message": "All notifications marked as read", "updated": result.modified_count}

    if not body.notificationId:
        raise HTTPException(status_code=400, detail="notificationId is required")
    result = user_notifications_collection.update_one(
        {"_id": to_object_id(body.notificationId, "notification ID"), "userId": user["_id"]},
        {"$set": {"isRead": True}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"message": "Notification marked as read", "updated": result.modified_count}


@router.delete("/user/clear-all")
async def clear_all_notifications(user: dict = Depends(require_user)):
    result = user_notifications_collection.delete_many({"userId": user["_id"]})
    logger.info(f"User {user['_id']} cleared {result.deleted_count} notifications")
    return {"message": "All notifications cleared", "deleted": result.deleted_count}


@router.post("/send", status_code=201)
async def send_notification(body: NotificationSend, admin: dict = Depends(require_admin)):
    target_id = to_object_id(body.userId, "user ID")
    if not user_collection.find_one({"_id": target_id}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="User not found")
    notification = await notify_user(target_id, body.message, body.type, title=body.title, metadata=body.metadata)
    return {"message": "Notification sent successfully", "data": notification}


@router.post("/admin/send/global")
async def send_global_notification(body: GlobalNotificationSend, admin: dict = Depends(require_admin)):
    now = utcnow()
    notification = {
        "title": body.title or "Admin Notification",
        "message": body.message,
        "type": body.type or "admin",
        "scheduleTime": None,
        "sent_at": now,
        "createdAt": now,
    }
    notification["_id"] = global_notifications_collection.insert_one(notification).inserted_id
    payload = await broadcast_global_notification(notification)
    logger.info(f"Admin {admin['_id']} sent global notification {notification['_id']}")
    return {"success": True, "message": "Admin notification sent to all users", "globalNotification": payload}


@router.post("/admin/schedule", status_code=201)
async def schedule_notification(body: NotificationSchedule, admin: dict = Depends(require_admin)):
    schedule_time = as_naive_utc(body.scheduleTime)
    if schedule_time <= utcnow():
        raise HTTPException(status_code=400, detail="Schedule time must be in the future")

    user_id: Optional[ObjectId] = None
    if body.userId:
        user_id = to_object_id(body.userId, "user ID")
        if not user_collection.find_one({"_id": user_id}, {"_id": 1}):
            raise HTTPException(status_code=404, detail="User not found")

    notification = {
        "title": body.title or "Admin Notification",
        "message": body.message,
        "type": body.type or "admin",
        "userId": user_id,
        "scheduleTime": schedule_time,
        "sent_at": None,
        "createdAt": utcnow(),
    }
    notification["_id"] = global_notifications_collection.insert_one(notification).inserted_id
    schedule_delivery(notification)
    logger.info(f"Admin {admin['_id']} scheduled notification {notification['_id']} for {schedule_time}")
    return {"success": True, "message": "Notification scheduled", "notification": serialize_global_notification(notification)}


@router.get("/admin/all")
async def get_global_notifications(admin: dict = Depends(require_admin)):
    notifications = global_notifications_collection.find({}).sort("createdAt", -1)
    return {"notifications": list_serialize_global_notifications(notifications)}


@router.post("/admin/resend/{notification_id}")
async def resend_notification(notification_id: str, admin: dict = Depends(require_admin)):
    notification = global_notifications_collection.find_one({"_id": to_object_id(notification_id, "notification ID")})
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    if notification.get("userId"):
        await notify_user(
            notification["userId"], notification["message"], notification.get("type", "admin"), title=notification.get("title")
        )
        payload = serialize_global_notification(notification)
    else:
        payload = await broadcast_global_notification(notification)
    global_notifications_collection.update_one({"_id": notification["_id"]}, {"$set": {"sent_at": utcnow()}})
    return {"success": True, "message": "Admin notification resent", "notification": payload}


@router.delete("/admin/{notification_id}")
async def delete_notification(notification_id: str, admin: dict = Depends(require_admin)):
    result = global_notifications_collection.delete_one({"_id": to_object_id(notification_id, "notification ID")})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True, "message": "Notification deleted successfully"}
