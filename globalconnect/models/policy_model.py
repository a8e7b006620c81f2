from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


class PolicyUpsert(BaseModel):
    content: str = Field(min_length=1)
    effectiveDate: Optional[datetime] = None
