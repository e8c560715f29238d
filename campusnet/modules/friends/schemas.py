from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum
from campusnet.modules.profiles.schemas import ProfileSummary


class FriendRequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class FriendRequestCreate(BaseModel):
    receiver_id: str


class FriendRequestRespond(BaseModel):
    accept: bool


class FriendRequestResponse(BaseModel):
    id: str
    sender_id: str
    receiver_id: str
    status: FriendRequestStatus
    created_at: datetime
    updated_at: Optional[datetime] = None
    sender: Optional[ProfileSummary] = None
    receiver: Optional[ProfileSummary] = None


class FriendResponse(BaseModel):
    friendship_id: str
    since: datetime
    profile: ProfileSummary
