import requests
from typing import Any, Dict, List, Optional
from globalconnect.config import settings, logger

EXPO_TOKEN_PREFIX = "ExponentPushToken"

TARGET_SCREENS = {
    "message": "chat",
    "comment": "PostDetails",
    "follow": "UserProfile",
    "like": "PostDetails",
    "share": "chat",
    "admin": "home",
}


def is_expo_token(token: Optional[str]) -> bool:
    return bool(token) and token.startswith(EXPO_TOKEN_PREFIX)


def get_target_screen(notification_type: str) -> str:
    return TARGET_SCREENS.get(notification_type, "home")


def _build_message(token: str, title: str, body: str, data: Dict[str, Any], notification_type: str) -> dict:
    screen = data.get("screen") or get_target_screen(notification_type)
    return {
        "to": token,
        "title": title,
        "body": body,
        "data": {**data, "screen": screen},
        "sound": "default",
        "icon": settings.LOGO_URL,
    }


def send_expo_push_notification(
    token: str, title: str, body: str, data: Dict[str, Any] = None, notification_type: str = "default"
) -> Optional[dict]:
    if not is_expo_token(token):
        logger.warning(f"Invalid push token: {token}")
        return None
    message = _build_message(token, title, body, data or {}, notification_type)
    try:
        response = requests.post(settings.EXPO_PUSH_URL, json=message, timeout=10)
        response.raise_for_status()
        logger.info(f"Push notification sent to {token}")
        return response.json()
    except requests.RequestException as e:
        logger.error(f"Error sending push notification: {str(e)}")
        return None


def send_batch_push_notifications(
    tokens: List[str], title: str, body: str, data: Dict[str, Any] = None, notification_type: str = "default"
) -> Optional[dict]:
    messages = [
        _build_message(token, title, body, data or {}, notification_type)
        for token in tokens
        if is_expo_token(token)
    ]
    if not messages:
        return None
    try:
        response = requests.post(settings.EXPO_PUSH_URL, json=messages, timeout=15)
        response.raise_for_status()
        logger.info(f"Batch push notifications sent to {len(messages)} devices")
        return response.json()
    except requests.RequestException as e:
        logger.error(f"Error sending batch push notifications: {str(e)}")
        return None
