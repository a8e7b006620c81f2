from typing import Optional
from pydantic import BaseModel, Field


class MessageCreate(BaseModel):
    receiverId: str
    content: str = Field(min_length=1, max_length=5000)


class ConversationRequest(BaseModel):
    senderId: str


class MarkAsRead(BaseModel):
    senderId: Optional[str] = None
    messageId: Optional[str] = None


class AdminConversationRequest(BaseModel):
    userId1: str
    userId2: str
