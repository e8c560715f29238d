from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from datetime import datetime
from enum import Enum


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    GROUP_MEMBER = "group_member"
    GROUP_UPDATE = "group_update"
    FRIEND_REQUEST = "friend_request"


class JoinRequestMetadata(BaseModel):
    kind: Literal["join_request"] = "join_request"
    group_id: str
    request_id: str
    user_id: str


class JoinDecisionMetadata(BaseModel):
    kind: Literal["join_decision"] = "join_decision"
    group_id: str
    request_id: str
    user_id: str
    action: Literal["join_request_approved", "join_request_rejected", "join_approved"]


class GroupUpdateMetadata(BaseModel):
    kind: Literal["group_update"] = "group_update"
    group_id: str
    action: Literal["group_renamed", "member_added", "member_removed", "secondary_admin_assigned", "admin_transferred"]


class FriendRequestMetadata(BaseModel):
    kind: Literal["friend_request"] = "friend_request"
    request_id: str
    user_id: str
    action: Literal["friend_request_received", "friend_request_accepted"]


NotificationMetadata = Annotated[
    Union[JoinRequestMetadata, JoinDecisionMetadata, GroupUpdateMetadata, FriendRequestMetadata],
    Field(discriminator="kind"),
]

_metadata_adapter = TypeAdapter(NotificationMetadata)


def parse_metadata(raw: Optional[Dict[str, Any]]) -> Optional[NotificationMetadata]:
    """Validate a stored metadata block; None when absent or not a known variant."""
    if not raw:
        return None
    try:
        return _metadata_adapter.validate_python(raw)
    except ValidationError:
        return None


class NotificationCreate(BaseModel):
    user_id: str
    title: str
    content: str
    type: NotificationType = NotificationType.INFO
    metadata: Optional[NotificationMetadata] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "title": self.title,
            "content": self.content,
            "type": self.type.value,
            "read": False,
            "metadata": self.metadata.model_dump() if self.metadata else None,
        }


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    title: str
    content: str
    type: str
    read: bool = False
    created_at: datetime
    metadata: Optional[NotificationMetadata] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "NotificationResponse":
        data = dict(row)
        data["metadata"] = parse_metadata(row.get("metadata"))
        return cls(**data)


class InboxResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class FanOutResult(BaseModel):
    created: List[NotificationResponse] = []
    failed: int = 0
