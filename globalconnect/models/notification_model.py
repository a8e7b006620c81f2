from typing import Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field


class NotificationRead(BaseModel):
    notificationId: Optional[str] = None
    all: bool = False


class NotificationSend(BaseModel):
    userId: str
    message: str = Field(min_length=1)
    title: Optional[str] = None
    type: str = "admin"
    metadata: Dict[str, Any] = Field(default_factory=dict)


class GlobalNotificationSend(BaseModel):
    message: str = Field(min_length=1)
    title: Optional[str] = None
    type: str = "admin"


class NotificationSchedule(GlobalNotificationSend):
    scheduleTime: datetime
    userId: Optional[str] = None
