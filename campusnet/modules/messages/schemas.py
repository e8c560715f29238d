from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from campusnet.modules.profiles.schemas import ProfileSummary


class MessageCreate(BaseModel):
    content: Optional[str] = None
    image_url: Optional[str] = None


class GroupMessageResponse(BaseModel):
    id: str
    group_id: str
    sender_id: str
    content: Optional[str] = ""
    image_url: Optional[str] = None
    created_at: datetime


class RoomMessageResponse(BaseModel):
    id: str
    chat_room_id: str
    sender_id: str
    content: Optional[str] = ""
    image_url: Optional[str] = None
    created_at: datetime


class DirectRoomCreate(BaseModel):
    user_id: str


class ChatRoomResponse(BaseModel):
    id: str
    created_at: datetime
    participants: List[ProfileSummary] = []


class ImageUploadResponse(BaseModel):
    url: str
