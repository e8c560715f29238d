from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class GroupSettings(BaseModel):
    allow_member_invites: bool = False
    allow_message_deletion: bool = True
    allow_member_visibility: bool = True


class GroupSettingsUpdate(BaseModel):
    allow_member_invites: Optional[bool] = None
    allow_message_deletion: Optional[bool] = None
    allow_member_visibility: Optional[bool] = None


class GroupCreate(BaseModel):
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None


class GroupUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    settings: Optional[GroupSettingsUpdate] = None


class GroupResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    created_by: str
    max_members: int = 120
    settings: GroupSettings = Field(default_factory=GroupSettings)
    secondary_admins: List[str] = []
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GroupMemberResponse(BaseModel):
    id: str
    group_id: str
    user_id: str
    role: str
    created_at: datetime
    username: Optional[str] = None
    avatar_url: Optional[str] = None

    class Config:
        from_attributes = True


class MembershipStatus(BaseModel):
    is_member: bool
    role: Optional[str] = None


class MemberCountResponse(BaseModel):
    group_id: str
    count: int
    max_members: int


class GroupMembersAdd(BaseModel):
    user_ids: List[str]


class SecondaryAdminAssign(BaseModel):
    user_ids: List[str]


class AdminTransfer(BaseModel):
    user_id: str
