from typing import Optional, Tuple
from fastapi import HTTPException
from globalconnect.config import logger, messages_collection, user_collection
from globalconnect.core.accounts import blocked_between, mutual_follow
from globalconnect.core.dates import utcnow
from globalconnect.core.notifier import push_to_user
from globalconnect.schemas.message_schema import serialize_message
from globalconnect.websockets.manager import ws_manager


def assert_can_message(sender: dict, receiver: dict):
    if blocked_between(sender, receiver):
        raise HTTPException(status_code=403, detail="You cannot message this user")
    if not mutual_follow(sender, receiver):
        raise HTTPException(status_code=403, detail="You can only message users who follow you back")


async def send_direct_message(
    sender: dict,
    receiver: dict,
    content: str,
    message_type: str = "text",
    post_id=None,
    image: Optional[str] = None,
    push: bool = True,
) -> Tuple[dict, bool]:
    """Store a message and deliver it to the receiver if they are connected.

    Returns the serialized message and whether it reached a live socket.
    Offline receivers get a push notification instead.
    """
    message = {
        "sender": sender["_id"],
        "receiver": receiver["_id"],
        "messageType": message_type,
        "content": content,
        "image": image,
        "post": post_id,
        "timestamp": utcnow(),
        "readByReceiver": False,
    }
    message["_id"] = messages_collection.insert_one(message).inserted_id
    payload = serialize_message(message)
    payload["senderName"] = sender.get("name")

    delivered = await ws_manager.emit(str(receiver["_id"]), "receiveMessage", payload)
    logger.info(f"Message {payload['_id']} from {sender['_id']} to {receiver['_id']} ({'delivered' if delivered else 'stored'})")

    if push and not delivered:
        receiver_settings = user_collection.find_one(
            {"_id": receiver["_id"]}, {"expoPushToken": 1, "notifications_enabled": 1, "notification_preferences": 1}
        )
        body = content if message_type == "text" else f"{sender.get('name', 'Someone')} shared a post with you"
        await push_to_user(
            receiver_settings,
            f"New message from {sender.get('name', 'someone')}",
            body[:140],
            {"senderId": str(sender["_id"]), "messageId": payload["_id"]},
            "message",
        )
    return payload, delivered
