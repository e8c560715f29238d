from supabase import Client
from campusnet.core.authorization import get_group_role, require_group_member
from campusnet.core.exceptions import (
    CampusNetError, NotFound, StoreUnavailable, Unauthorized, ValidationError
)
from campusnet.core.realtime import RealtimeHub, get_hub, group_topic, room_topic
from campusnet.modules.friends.service import FriendService
from campusnet.modules.groups.service import GroupService
from campusnet.modules.messages.schemas import (
    MessageCreate, GroupMessageResponse, RoomMessageResponse, ChatRoomResponse
)
from campusnet.modules.profiles.schemas import ProfileSummary
from campusnet.modules.profiles.service import fetch_profile_map
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


def _message_payload(message: MessageCreate) -> dict:
    content = (message.content or "").strip()
    if not content and not message.image_url:
        raise ValidationError("Message must have text or an image")
    return {"content": content, "image_url": message.image_url}


class MessageService:
    """Group and direct chat. Every confirmed insert is published to the realtime hub."""

    def __init__(self, supabase: Client, hub: Optional[RealtimeHub] = None):
        self.supabase = supabase
        self.hub = hub or get_hub()
        self.groups = GroupService(supabase)

    # Group chat

    def send_group_message(self, group_id: str, sender_id: str, message: MessageCreate) -> GroupMessageResponse:
        payload = _message_payload(message)
        try:
            self.groups.get_group(group_id)
            # Membership can change while a message is being composed
            require_group_member(self.supabase, group_id, sender_id)

            result = self.supabase.table("group_messages").insert({
                "group_id": group_id,
                "sender_id": sender_id,
                **payload
            }).execute()
            if not result.data:
                raise StoreUnavailable("Failed to send message")

            row = result.data[0]
            self.hub.publish(group_topic(group_id), row)
            return GroupMessageResponse(**row)
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error sending message to group {group_id}: {e}")
            raise StoreUnavailable(str(e))

    def list_group_messages(self, group_id: str, user_id: str, limit: Optional[int] = None) -> List[GroupMessageResponse]:
        """Messages oldest first; members only"""
        try:
            self.groups.get_group(group_id)
            require_group_member(self.supabase, group_id, user_id)

            query = self.supabase.table("group_messages")\
                .select("*")\
                .eq("group_id", group_id)\
                .order("created_at")
            if limit:
                query = query.limit(limit)
            result = query.execute()
            return [GroupMessageResponse(**m) for m in result.data or []]
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error listing messages of group {group_id}: {e}")
            raise StoreUnavailable(str(e))

    def delete_group_message(self, message_id: str, user_id: str) -> None:
        """Senders may delete their own messages; admins others' when the group allows deletion"""
        try:
            result = self.supabase.table("group_messages")\
                .select("*")\
                .eq("id", message_id)\
                .maybe_single()\
                .execute()
            if not result or not result.data:
                raise NotFound("Message not found")
            message = result.data

            if message["sender_id"] != user_id:
                group = self.groups.get_group(message["group_id"])
                role = get_group_role(self.supabase, message["group_id"], user_id)
                if not role.can_moderate or not group.settings.allow_message_deletion:
                    raise Unauthorized("You cannot delete this message")

            self.supabase.table("group_messages")\
                .delete()\
                .eq("id", message_id)\
                .execute()
            logger.info(f"Group message {message_id} deleted by {user_id}")
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error deleting group message {message_id}: {e}")
            raise StoreUnavailable(str(e))

    # Direct chat

    def get_or_create_room(self, user_id: str, other_user_id: str) -> ChatRoomResponse:
        """The direct room shared by two friends, created on first use"""
        if user_id == other_user_id:
            raise ValidationError("You cannot start a chat with yourself")
        try:
            if not FriendService(self.supabase).are_friends(user_id, other_user_id):
                raise Unauthorized("You can only chat with friends")

            mine = self.supabase.table("chat_participants")\
                .select("chat_room_id")\
                .eq("user_id", user_id)\
                .execute()
            room_ids = [p["chat_room_id"] for p in mine.data or []]
            if room_ids:
                shared = self.supabase.table("chat_participants")\
                    .select("chat_room_id")\
                    .eq("user_id", other_user_id)\
                    .in_("chat_room_id", room_ids)\
                    .limit(1)\
                    .execute()
                if shared.data:
                    return self.get_room(shared.data[0]["chat_room_id"], user_id)

            room = self.supabase.table("chat_rooms").insert({}).execute()
            if not room.data:
                raise StoreUnavailable("Failed to create chat room")
            room_id = room.data[0]["id"]
            self.supabase.table("chat_participants").insert([
                {"chat_room_id": room_id, "user_id": user_id},
                {"chat_room_id": room_id, "user_id": other_user_id}
            ]).execute()
            logger.info(f"Chat room {room_id} created for {user_id} and {other_user_id}")
            return self.get_room(room_id, user_id)
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error opening chat between {user_id} and {other_user_id}: {e}")
            raise StoreUnavailable(str(e))

    def get_room(self, room_id: str, user_id: str) -> ChatRoomResponse:
        try:
            room = self.supabase.table("chat_rooms")\
                .select("*")\
                .eq("id", room_id)\
                .maybe_single()\
                .execute()
            if not room or not room.data:
                raise NotFound("Chat room not found")
            participant_ids = self._participant_ids(room_id)
            if user_id not in participant_ids:
                raise Unauthorized("You are not a participant of this chat")
            profiles = fetch_profile_map(self.supabase, participant_ids)
            return ChatRoomResponse(
                id=room.data["id"],
                created_at=room.data["created_at"],
                participants=[ProfileSummary(**profiles[uid]) for uid in participant_ids if uid in profiles]
            )
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error fetching chat room {room_id}: {e}")
            raise StoreUnavailable(str(e))

    def list_rooms(self, user_id: str) -> List[ChatRoomResponse]:
        try:
            mine = self.supabase.table("chat_participants")\
                .select("chat_room_id")\
                .eq("user_id", user_id)\
                .execute()
            room_ids = [p["chat_room_id"] for p in mine.data or []]
            if not room_ids:
                return []
            rooms = self.supabase.table("chat_rooms")\
                .select("*")\
                .in_("id", room_ids)\
                .order("created_at", desc=True)\
                .execute()
            participants = self.supabase.table("chat_participants")\
                .select("chat_room_id, user_id")\
                .in_("chat_room_id", room_ids)\
                .execute()
            by_room = {}
            for p in participants.data or []:
                by_room.setdefault(p["chat_room_id"], []).append(p["user_id"])
            profiles = fetch_profile_map(self.supabase, [p["user_id"] for p in participants.data or []])

            return [
                ChatRoomResponse(
                    id=room["id"],
                    created_at=room["created_at"],
                    participants=[
                        ProfileSummary(**profiles[uid]) for uid in by_room.get(room["id"], []) if uid in profiles
                    ]
                )
                for room in rooms.data or []
            ]
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error listing chat rooms of {user_id}: {e}")
            raise StoreUnavailable(str(e))

    def list_room_messages(self, room_id: str, user_id: str, limit: Optional[int] = None) -> List[RoomMessageResponse]:
        try:
            self.require_participant(room_id, user_id)
            query = self.supabase.table("messages")\
                .select("*")\
                .eq("chat_room_id", room_id)\
                .order("created_at")
            if limit:
                query = query.limit(limit)
            result = query.execute()
            return [RoomMessageResponse(**m) for m in result.data or []]
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error listing messages of room {room_id}: {e}")
            raise StoreUnavailable(str(e))

    def send_room_message(self, room_id: str, sender_id: str, message: MessageCreate) -> RoomMessageResponse:
        payload = _message_payload(message)
        try:
            self.require_participant(room_id, sender_id)
            result = self.supabase.table("messages").insert({
                "chat_room_id": room_id,
                "sender_id": sender_id,
                **payload
            }).execute()
            if not result.data:
                raise StoreUnavailable("Failed to send message")

            row = result.data[0]
            self.hub.publish(room_topic(room_id), row)
            return RoomMessageResponse(**row)
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error sending message to room {room_id}: {e}")
            raise StoreUnavailable(str(e))

    def require_participant(self, room_id: str, user_id: str) -> None:
        participant_ids = self._participant_ids(room_id)
        if not participant_ids:
            raise NotFound("Chat room not found")
        if user_id not in participant_ids:
            raise Unauthorized("You are not a participant of this chat")

    def _participant_ids(self, room_id: str) -> List[str]:
        result = self.supabase.table("chat_participants")\
            .select("user_id")\
            .eq("chat_room_id", room_id)\
            .execute()
        return [p["user_id"] for p in result.data or []]
