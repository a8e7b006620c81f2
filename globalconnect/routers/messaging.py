from fastapi import APIRouter, HTTPException, Depends
from globalconnect.config import logger, user_collection, messages_collection
from globalconnect.core.chat import assert_can_message, send_direct_message
from globalconnect.models.message_model import (
    MessageCreate,
    ConversationRequest,
    MarkAsRead,
    AdminConversationRequest,
)
from globalconnect.schemas.message_schema import serialize_message, list_serialize_messages
from globalconnect.schemas.user_schema import USER_SUMMARY_PROJECTION
from globalconnect.websockets.manager import ws_manager
from globalconnect.routers.dependencies import require_any, require_admin, to_object_id

router = APIRouter()


def _find_user(user_id: str, label: str) -> dict:
    user = user_collection.find_one({"_id": to_object_id(user_id, label)})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _conversation_query(first, second) -> dict:
    return {"$or": [
        {"sender": first, "receiver": second},
        {"sender": second, "receiver": first},
    ]}


def _names(user_ids) -> dict:
    return {
        str(user["_id"]): user.get("name", "Unknown")
        for user in user_collection.find({"_id": {"$in": list(user_ids)}}, {"name": 1})
    }


def conversation_list(user_id) -> list:
    """One entry per counterpart with the latest message and the unread count."""
    conversations = {}
    for message in messages_collection.find({"$or": [{"sender": user_id}, {"receiver": user_id}]}).sort("timestamp", -1):
        counterpart = message["receiver"] if message["sender"] == user_id else message["sender"]
        entry = conversations.get(counterpart)
        if entry is None:
            entry = conversations[counterpart] = {"lastMessage": message, "unreadCount": 0}
        if message["receiver"] == user_id and not message.get("readByReceiver"):
            entry["unreadCount"] += 1

    users = {
        user["_id"]: user
        for user in user_collection.find({"_id": {"$in": list(conversations)}}, USER_SUMMARY_PROJECTION)
    }
    result = []
    for counterpart, entry in conversations.items():
        profile = users.get(counterpart, {})
        result.append({
            "userId": str(counterpart),
            "name": profile.get("name", "Unknown"),
            "profile_image": profile.get("profile_image"),
            "lastMessage": serialize_message(entry["lastMessage"]),
            "unreadCount": entry["unreadCount"],
        })
    return result


@router.post("/message", status_code=201)
async def send_message(body: MessageCreate, user: dict = Depends(require_any)):
    receiver = _find_user(body.receiverId, "receiver ID")
    if receiver["_id"] == user["_id"]:
        raise HTTPException(status_code=400, detail="You cannot message yourself")
    assert_can_message(user, receiver)

    message, delivered = await send_direct_message(user, receiver, body.content.strip())
    return {"message": "Message sent successfully", "data": message, "status": "delivered" if delivered else "stored"}


@router.post("/get-message")
async def get_messages(body: ConversationRequest, user: dict = Depends(require_any)):
    other = _find_user(body.senderId, "sender ID")
    messages = messages_collection.find(_conversation_query(user["_id"], other["_id"])).sort("timestamp", 1)
    names = {str(user["_id"]): user.get("name"), str(other["_id"]): other.get("name")}
    return {"message": "Messages retrieved successfully", "data": list_serialize_messages(messages, names, str(user["_id"]))}


@router.get("/all-message")
async def get_all_messages(user: dict = Depends(require_any)):
    return {"message": "Conversations retrieved successfully", "data": conversation_list(user["_id"])}


@router.post("/mark-as-read")
async def mark_as_read(body: MarkAsRead, user: dict = Depends(require_any)):
    if body.messageId:
        message = messages_collection.find_one({"_id": to_object_id(body.messageId, "message ID"), "receiver": user["_id"]})
        if not message:
            raise HTTPException(status_code=404, detail="Message not found")
        query = {"_id": message["_id"]}
        sender_id = message["sender"]
    elif body.senderId:
        sender_id = to_object_id(body.senderId, "sender ID")
        query = {"sender": sender_id, "receiver": user["_id"], "readByReceiver": False}
    else:
        raise HTTPException(status_code=400, detail="senderId or messageId is required")

    updated = messages_collection.update_many(query, {"$set": {"readByReceiver": True}}).modified_count
    await ws_manager.emit(
        str(sender_id),
        "messageReadAck",
        {"readerId": str(user["_id"]), "messageId": body.messageId, "count": updated},
    )
    logger.info(f"User {user['_id']} marked {updated} messages from {sender_id} as read")
    return {"message": "Messages marked as read", "updated": updated}


@router.post("/admin/get-message")
async def admin_get_messages(body: AdminConversationRequest, admin: dict = Depends(require_admin)):
    first = _find_user(body.userId1, "user ID")
    second = _find_user(body.userId2, "user ID")
    messages = messages_collection.find(_conversation_query(first["_id"], second["_id"])).sort("timestamp", 1)
    names = _names([first["_id"], second["_id"]])
    return {"message": "Messages retrieved successfully", "data": list_serialize_messages(messages, names)}


@router.get("/admin/all-message/{user_id}")
async def admin_get_all_messages(user_id: str, admin: dict = Depends(require_admin)):
    user = _find_user(user_id, "user ID")
    return {"message": "Conversations retrieved successfully", "data": conversation_list(user["_id"])}
