from supabase import Client
from campusnet.core.exceptions import (
    CampusNetError, Conflict, DuplicateRequest, NotFound, StoreUnavailable, Unauthorized, ValidationError
)
from campusnet.modules.friends.schemas import FriendRequestResponse, FriendRequestStatus, FriendResponse
from campusnet.modules.notifications.schemas import FriendRequestMetadata, NotificationType
from campusnet.modules.notifications.service import NotificationService
from campusnet.modules.profiles.schemas import ProfileSummary
from campusnet.modules.profiles.service import fetch_profile_map
from datetime import datetime, timezone
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


def _orientations(x: str, y: str):
    """Both column orders of the unordered pair {x, y}"""
    return ((x, y), (y, x))


class FriendService:
    def __init__(self, supabase: Client, notifications: Optional[NotificationService] = None):
        self.supabase = supabase
        self.notifications = notifications or NotificationService(supabase)

    def are_friends(self, user_id: str, other_id: str) -> bool:
        for first, second in _orientations(user_id, other_id):
            result = self.supabase.table("friends")\
                .select("id")\
                .eq("user_id1", first)\
                .eq("user_id2", second)\
                .limit(1)\
                .execute()
            if result.data:
                return True
        return False

    def _has_pending(self, sender_id: str, receiver_id: str) -> bool:
        for first, second in _orientations(sender_id, receiver_id):
            result = self.supabase.table("friend_requests")\
                .select("id")\
                .eq("sender_id", first)\
                .eq("receiver_id", second)\
                .eq("status", FriendRequestStatus.PENDING.value)\
                .limit(1)\
                .execute()
            if result.data:
                return True
        return False

    def send_request(self, sender_id: str, receiver_id: str) -> FriendRequestResponse:
        if sender_id == receiver_id:
            raise ValidationError("You cannot send a friend request to yourself")
        try:
            profiles = fetch_profile_map(self.supabase, [sender_id, receiver_id])
            if receiver_id not in profiles:
                raise NotFound("User not found")
            if self.are_friends(sender_id, receiver_id):
                raise Conflict("You are already friends")

            if self._has_pending(sender_id, receiver_id):
                raise DuplicateRequest("A friend request between you is already pending")

            result = self.supabase.table("friend_requests").insert({
                "sender_id": sender_id,
                "receiver_id": receiver_id,
                "status": FriendRequestStatus.PENDING.value
            }).execute()
            if not result.data:
                raise StoreUnavailable("Failed to send friend request")
            request = FriendRequestResponse(**result.data[0])

            sender_name = profiles.get(sender_id, {}).get("username") or "Someone"
            self.notifications.fan_out(
                [receiver_id],
                title="New Friend Request",
                content=f"{sender_name} sent you a friend request",
                type=NotificationType.FRIEND_REQUEST,
                metadata=FriendRequestMetadata(
                    request_id=request.id, user_id=sender_id, action="friend_request_received"
                )
            )
            return request
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error sending friend request {sender_id} -> {receiver_id}: {e}")
            raise StoreUnavailable(str(e))

    def list_received(self, user_id: str) -> List[FriendRequestResponse]:
        return self._list_pending("receiver_id", user_id)

    def list_sent(self, user_id: str) -> List[FriendRequestResponse]:
        return self._list_pending("sender_id", user_id)

    def _list_pending(self, column: str, user_id: str) -> List[FriendRequestResponse]:
        try:
            result = self.supabase.table("friend_requests")\
                .select("*")\
                .eq(column, user_id)\
                .eq("status", FriendRequestStatus.PENDING.value)\
                .order("created_at", desc=True)\
                .execute()
            rows = result.data or []
            profiles = fetch_profile_map(
                self.supabase, [r["sender_id"] for r in rows] + [r["receiver_id"] for r in rows]
            )
            requests = []
            for row in rows:
                sender = profiles.get(row["sender_id"])
                receiver = profiles.get(row["receiver_id"])
                requests.append(FriendRequestResponse(
                    **row,
                    sender=ProfileSummary(**sender) if sender else None,
                    receiver=ProfileSummary(**receiver) if receiver else None
                ))
            return requests
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error listing friend requests ({column}={user_id}): {e}")
            raise StoreUnavailable(str(e))

    def respond(self, request_id: str, user_id: str, accept: bool) -> FriendRequestResponse:
        """Accept or reject a pending request addressed to user_id"""
        try:
            result = self.supabase.table("friend_requests")\
                .select("*")\
                .eq("id", request_id)\
                .maybe_single()\
                .execute()
            if not result or not result.data:
                raise NotFound("Friend request not found")
            request = FriendRequestResponse(**result.data)
            if request.receiver_id != user_id:
                raise Unauthorized("Only the receiver can respond to a friend request")
            if request.status is not FriendRequestStatus.PENDING:
                raise NotFound("Friend request already handled")

            status = FriendRequestStatus.ACCEPTED if accept else FriendRequestStatus.REJECTED
            updated = self.supabase.table("friend_requests")\
                .update({"status": status.value, "updated_at": datetime.now(timezone.utc).isoformat()})\
                .eq("id", request_id)\
                .eq("status", FriendRequestStatus.PENDING.value)\
                .execute()
            if not updated.data:
                raise NotFound("Friend request already handled")

            if accept:
                try:
                    if not self.are_friends(request.sender_id, request.receiver_id):
                        self.supabase.table("friends").insert({
                            "user_id1": request.sender_id,
                            "user_id2": request.receiver_id
                        }).execute()
                except Exception as e:
                    logger.error(f"Friendship insert for request {request_id} failed: {e}")
                    self._revert_to_pending(request_id)
                    raise StoreUnavailable(str(e))
                receiver_name = fetch_profile_map(self.supabase, [user_id]).get(user_id, {}).get("username") or "Someone"
                self.notifications.fan_out(
                    [request.sender_id],
                    title="Friend Request Accepted",
                    content=f"{receiver_name} accepted your friend request",
                    type=NotificationType.FRIEND_REQUEST,
                    metadata=FriendRequestMetadata(
                        request_id=request.id, user_id=user_id, action="friend_request_accepted"
                    )
                )
            logger.info(f"Friend request {request_id} {status.value} by {user_id}")
            return FriendRequestResponse(**updated.data[0])
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error responding to friend request {request_id}: {e}")
            raise StoreUnavailable(str(e))

    def _revert_to_pending(self, request_id: str) -> None:
        try:
            self.supabase.table("friend_requests")\
                .update({"status": FriendRequestStatus.PENDING.value, "updated_at": datetime.now(timezone.utc).isoformat()})\
                .eq("id", request_id)\
                .eq("status", FriendRequestStatus.ACCEPTED.value)\
                .execute()
            logger.warning(f"Friend request {request_id} reverted to pending after failed friendship insert")
        except Exception as e:
            logger.critical(f"Friend request {request_id} is accepted without a friendship; revert failed: {e}")

    def list_friends(self, user_id: str) -> List[FriendResponse]:
        try:
            result = self.supabase.table("friends")\
                .select("*")\
                .or_(f"user_id1.eq.{user_id},user_id2.eq.{user_id}")\
                .order("created_at", desc=True)\
                .execute()
            rows = result.data or []
            other_ids = [r["user_id2"] if r["user_id1"] == user_id else r["user_id1"] for r in rows]
            profiles = fetch_profile_map(self.supabase, other_ids)

            friends = []
            for row, other_id in zip(rows, other_ids):
                profile = profiles.get(other_id)
                if not profile:
                    continue
                friends.append(FriendResponse(
                    friendship_id=row["id"],
                    since=row["created_at"],
                    profile=ProfileSummary(**profile)
                ))
            return friends
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error listing friends of {user_id}: {e}")
            raise StoreUnavailable(str(e))

    def remove_friend(self, user_id: str, friend_id: str) -> None:
        try:
            removed = []
            for first, second in _orientations(user_id, friend_id):
                result = self.supabase.table("friends")\
                    .delete()\
                    .eq("user_id1", first)\
                    .eq("user_id2", second)\
                    .execute()
                removed.extend(result.data or [])
            if not removed:
                raise NotFound("Friendship not found")
            logger.info(f"Friendship {user_id} <-> {friend_id} removed")
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error removing friendship {user_id} <-> {friend_id}: {e}")
            raise StoreUnavailable(str(e))
