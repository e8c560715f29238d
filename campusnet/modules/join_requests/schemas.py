from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum


class JoinRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class JoinDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class JoinRequestResolve(BaseModel):
    decision: JoinDecision


class JoinRequestResponse(BaseModel):
    id: str
    group_id: str
    user_id: str
    status: JoinRequestStatus
    created_at: datetime
    updated_at: Optional[datetime] = None
    username: Optional[str] = None
    avatar_url: Optional[str] = None

    class Config:
        from_attributes = True
