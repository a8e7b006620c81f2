from typing import Dict, Optional


def serialize_message(message: dict, names: Optional[Dict[str, str]] = None, viewer_id: str = None) -> dict:
    """Serialize a direct message.

    ``names`` maps user ids to display names. The viewer's own name is shown
    as ``You``.
    """
    sender = str(message["sender"])
    receiver = str(message["receiver"])
    data = {
        "_id": str(message["_id"]),
        "sender": sender,
        "receiver": receiver,
        "messageType": message.get("messageType", "text"),
        "content": message.get("content", ""),
        "image": message.get("image"),
        "post": str(message["post"]) if message.get("post") else None,
        "timestamp": message["timestamp"].isoformat(),
        "readByReceiver": message.get("readByReceiver", False),
    }
    if names is not None:
        data["senderName"] = "You" if sender == viewer_id else names.get(sender, "Unknown")
        data["receiverName"] = "You" if receiver == viewer_id else names.get(receiver, "Unknown")
    return data


def list_serialize_messages(messages, names: Optional[Dict[str, str]] = None, viewer_id: str = None) -> list:
    return [serialize_message(message, names, viewer_id) for message in messages]
