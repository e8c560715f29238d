from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from campusnet.modules.profiles.schemas import ProfileSummary


class PostCreate(BaseModel):
    content: Optional[str] = None
    image_url: Optional[str] = None


class PostResponse(BaseModel):
    id: str
    user_id: str
    content: Optional[str] = ""
    image_url: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    author: Optional[ProfileSummary] = None
    like_count: int = 0
    comment_count: int = 0
    liked_by_me: bool = False

    class Config:
        from_attributes = True


class CommentCreate(BaseModel):
    content: str


class CommentResponse(BaseModel):
    id: str
    post_id: str
    user_id: str
    content: str
    created_at: datetime
    author: Optional[ProfileSummary] = None


class LikeResponse(BaseModel):
    post_id: str
    liked: bool
    like_count: int
