def serialize_notification(notification: dict) -> dict:
    created_at = notification.get("createdAt")
    return {
        "_id": str(notification["_id"]),
        "userId": str(notification["userId"]) if notification.get("userId") else None,
        "title": notification.get("title"),
        "message": notification["message"],
        "type": notification.get("type", "default"),
        "isRead": notification.get("isRead", False),
        "metadata": notification.get("metadata") or {},
        "createdAt": created_at.isoformat() if created_at else None,
    }


def list_serialize_notifications(notifications) -> list:
    return [serialize_notification(notification) for notification in notifications]


def serialize_global_notification(notification: dict) -> dict:
    return {
        "_id": str(notification["_id"]),
        "title": notification.get("title"),
        "message": notification["message"],
        "type": notification.get("type", "admin"),
        "scheduleTime": notification["scheduleTime"].isoformat() if notification.get("scheduleTime") else None,
        "sent_at": notification["sent_at"].isoformat() if notification.get("sent_at") else None,
        "createdAt": notification["createdAt"].isoformat() if notification.get("createdAt") else None,
    }


def list_serialize_global_notifications(notifications) -> list:
    return [serialize_global_notification(notification) for notification in notifications]
