from typing import Optional, List, Literal
from datetime import datetime
from pydantic import BaseModel, Field

POST_STATUSES = ("Active", "Suspended", "Blocked", "Under Review", "Deleted")
POST_VISIBILITY = ("public", "private", "friends")


class PostEdit(BaseModel):
    text_content: Optional[str] = Field(default=None, max_length=500)
    tags: Optional[List[str]] = None
    location: Optional[str] = None
    visibility: Optional[Literal["public", "private", "friends"]] = None


class PostShare(BaseModel):
    postId: str
    recipientId: str


class PostStatusUpdate(BaseModel):
    status: str
    reason: Optional[str] = None
    suspended_from: Optional[datetime] = None
    suspended_until: Optional[datetime] = None


class PostModerationAction(BaseModel):
    postId: str
    action: Literal["suspend", "unsuspend", "block", "unblock", "delete", "permanentDelete", "resetReports"]
    reason: Optional[str] = None
    suspended_from: Optional[datetime] = None
    suspended_until: Optional[datetime] = None
    category_id: Optional[str] = None
