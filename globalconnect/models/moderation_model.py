from typing import Optional, List, Literal
from datetime import datetime
from pydantic import BaseModel, Field


class BlockedPostRecord(BaseModel):
    postID: str
    blockedReason: str
    blockedType: Literal["date", "permanent"]
    blocked_from: Optional[datetime] = None
    blocked_until: Optional[datetime] = None


class UserStatusAction(BaseModel):
    userId: str
    action: Literal["suspend", "ban", "review", "warn"]
    reason: str = Field(min_length=1)
    suspendedFrom: Optional[datetime] = None
    suspendedTill: Optional[datetime] = None
    reportCategoryId: Optional[str] = None


class UserStatusRemoval(BaseModel):
    userId: str
    note: Optional[str] = None


class ReportCountReset(BaseModel):
    userId: str


class BulkEmail(BaseModel):
    subject: str = Field(min_length=1)
    message: str = Field(min_length=1)
    userIds: Optional[List[str]] = None
