from supabase import Client
from campusnet.core.authorization import (
    MODERATOR_ROLES, get_group_role, get_primary_admin_id, require_group_moderator
)
from campusnet.core.exceptions import (
    AlreadyMember, CampusNetError, Conflict, DuplicateRequest, LimitExceeded, NotFound,
    StoreUnavailable, is_unique_violation
)
from campusnet.modules.groups.schemas import GroupResponse
from campusnet.modules.groups.service import GroupService
from campusnet.modules.join_requests.schemas import (
    JoinDecision, JoinRequestResponse, JoinRequestStatus
)
from campusnet.modules.notifications.schemas import (
    JoinDecisionMetadata, JoinRequestMetadata, NotificationType
)
from campusnet.modules.notifications.service import NotificationService
from campusnet.modules.profiles.service import fetch_profile_map
from datetime import datetime, timezone
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


class JoinRequestService:
    """
    Join request lifecycle for one group/user pair:

        non-member --submit--> pending --approve--> member
                                       --reject---> non-member (may request again)

    A rejected request does not block a new one; only an existing membership
    or a pending request does. Status transitions are conditional updates on
    ``status = 'pending'`` so two admins resolving at once cannot both win.
    """

    def __init__(
        self,
        supabase: Client,
        notifications: Optional[NotificationService] = None,
        groups: Optional[GroupService] = None
    ):
        self.supabase = supabase
        self.notifications = notifications or NotificationService(supabase)
        self.groups = groups or GroupService(supabase, self.notifications)

    def submit_join_request(self, group_id: str, user_id: str) -> JoinRequestResponse:
        try:
            group = self.groups.get_group(group_id)
            if get_group_role(self.supabase, group_id, user_id).is_member:
                raise AlreadyMember()
            if self._find_pending(group_id, user_id):
                raise DuplicateRequest("You already have a pending request for this group")

            try:
                result = self.supabase.table("group_join_requests").insert({
                    "group_id": group_id,
                    "user_id": user_id,
                    "status": JoinRequestStatus.PENDING.value
                }).execute()
            except Exception as e:
                if is_unique_violation(e):
                    raise DuplicateRequest("You already have a pending request for this group")
                raise

            if not result.data:
                raise StoreUnavailable("Failed to create join request")
            request = JoinRequestResponse(**result.data[0])
            logger.info(f"Join request {request.id}: {user_id} -> group {group_id}")

            self._notify_moderators(group, request)
            return request
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error submitting join request for {user_id} to {group_id}: {e}")
            raise StoreUnavailable(str(e))

    def resolve_join_request(self, request_id: str, resolver_id: str, decision: JoinDecision) -> JoinRequestResponse:
        try:
            request = self.get_request(request_id)
            require_group_moderator(self.supabase, request.group_id, resolver_id)
            if request.status is not JoinRequestStatus.PENDING:
                raise NotFound("Join request not found or already resolved")
            group = self.groups.get_group(request.group_id)

            if decision is JoinDecision.APPROVE:
                return self._approve(request, group, resolver_id)
            return self._reject(request, group, resolver_id)
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error resolving join request {request_id}: {e}")
            raise StoreUnavailable(str(e))

    def list_pending_requests(self, group_id: str, acting_user_id: str) -> List[JoinRequestResponse]:
        """Pending requests for a group, newest first, with requester username and avatar"""
        try:
            require_group_moderator(self.supabase, group_id, acting_user_id)
            result = self.supabase.table("group_join_requests")\
                .select("*")\
                .eq("group_id", group_id)\
                .eq("status", JoinRequestStatus.PENDING.value)\
                .order("created_at", desc=True)\
                .execute()
            rows = result.data or []
            profiles = fetch_profile_map(self.supabase, [r["user_id"] for r in rows])

            requests = []
            for row in rows:
                profile = profiles.get(row["user_id"], {})
                requests.append(JoinRequestResponse(
                    **row,
                    username=profile.get("username"),
                    avatar_url=profile.get("avatar_url")
                ))
            return requests
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error listing join requests of {group_id}: {e}")
            raise StoreUnavailable(str(e))

    def get_my_request(self, group_id: str, user_id: str) -> Optional[JoinRequestResponse]:
        """The user's most recent request for the group, if any"""
        try:
            result = self.supabase.table("group_join_requests")\
                .select("*")\
                .eq("group_id", group_id)\
                .eq("user_id", user_id)\
                .order("created_at", desc=True)\
                .limit(1)\
                .execute()
            if not result.data:
                return None
            return JoinRequestResponse(**result.data[0])
        except Exception as e:
            logger.error(f"Error fetching join request of {user_id} for {group_id}: {e}")
            raise StoreUnavailable(str(e))

    def get_request(self, request_id: str) -> JoinRequestResponse:
        try:
            result = self.supabase.table("group_join_requests")\
                .select("*")\
                .eq("id", request_id)\
                .maybe_single()\
                .execute()
            if not result or not result.data:
                raise NotFound("Join request not found")
            return JoinRequestResponse(**result.data)
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error fetching join request {request_id}: {e}")
            raise StoreUnavailable(str(e))

    def _find_pending(self, group_id: str, user_id: str) -> Optional[dict]:
        result = self.supabase.table("group_join_requests")\
            .select("id")\
            .eq("group_id", group_id)\
            .eq("user_id", user_id)\
            .eq("status", JoinRequestStatus.PENDING.value)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def _transition(self, request: JoinRequestResponse, status: JoinRequestStatus) -> JoinRequestResponse:
        """pending -> status, only if the row is still pending"""
        result = self.supabase.table("group_join_requests")\
            .update({"status": status.value, "updated_at": datetime.now(timezone.utc).isoformat()})\
            .eq("id", request.id)\
            .eq("status", JoinRequestStatus.PENDING.value)\
            .execute()
        if not result.data:
            raise NotFound("Join request not found or already resolved")
        return JoinRequestResponse(**result.data[0])

    def _revert_to_pending(self, request: JoinRequestResponse) -> None:
        try:
            self.supabase.table("group_join_requests")\
                .update({"status": JoinRequestStatus.PENDING.value, "updated_at": datetime.now(timezone.utc).isoformat()})\
                .eq("id", request.id)\
                .eq("status", JoinRequestStatus.APPROVED.value)\
                .execute()
            logger.warning(f"Join request {request.id} reverted to pending after failed membership insert")
        except Exception as e:
            logger.critical(
                f"Join request {request.id} is approved without a membership for {request.user_id} "
                f"in {request.group_id}; revert failed: {e}"
            )

    def _approve(self, request: JoinRequestResponse, group: GroupResponse, resolver_id: str) -> JoinRequestResponse:
        already_member = get_group_role(self.supabase, request.group_id, request.user_id).is_member
        if not already_member and self.groups.count_members(group.id) >= group.max_members:
            raise LimitExceeded(f"{group.name} already has {group.max_members} members")

        approved = self._transition(request, JoinRequestStatus.APPROVED)
        if already_member:
            logger.warning(
                f"Join request {request.id} approved by {resolver_id} but {request.user_id} "
                f"is already a member of {request.group_id}; membership insert skipped"
            )
            raise Conflict("User is already a member; the request was marked approved")

        try:
            self.supabase.table("group_members").insert({
                "group_id": request.group_id,
                "user_id": request.user_id,
                "role": "member"
            }).execute()
        except Exception as e:
            if is_unique_violation(e):
                logger.warning(
                    f"Join request {request.id}: {request.user_id} joined {request.group_id} "
                    f"concurrently; membership insert skipped"
                )
                raise Conflict("User is already a member; the request was marked approved")
            logger.error(f"Membership insert for join request {request.id} failed: {e}")
            self._revert_to_pending(request)
            raise StoreUnavailable(str(e))

        logger.info(f"Join request {request.id} approved by {resolver_id}")
        username = self._username(request.user_id)
        self.notifications.fan_out(
            [request.user_id],
            title="Join Request Approved",
            content=f"Your request to join {group.name} has been approved",
            type=NotificationType.GROUP_MEMBER,
            metadata=JoinDecisionMetadata(
                group_id=group.id, request_id=request.id, user_id=request.user_id,
                action="join_request_approved"
            )
        )
        admin_id = self._primary_admin(group.id)
        if admin_id:
            self.notifications.fan_out(
                [admin_id],
                title="New Group Member",
                content=f"{username} has joined {group.name}",
                type=NotificationType.GROUP_MEMBER,
                metadata=JoinDecisionMetadata(
                    group_id=group.id, request_id=request.id, user_id=request.user_id,
                    action="join_approved"
                )
            )
        return approved

    def _reject(self, request: JoinRequestResponse, group: GroupResponse, resolver_id: str) -> JoinRequestResponse:
        rejected = self._transition(request, JoinRequestStatus.REJECTED)
        logger.info(f"Join request {request.id} rejected by {resolver_id}")
        self.notifications.fan_out(
            [request.user_id],
            title="Join Request Rejected",
            content=f"Your request to join {group.name} has been rejected",
            type=NotificationType.GROUP_MEMBER,
            metadata=JoinDecisionMetadata(
                group_id=group.id, request_id=request.id, user_id=request.user_id,
                action="join_request_rejected"
            )
        )
        return rejected

    def _notify_moderators(self, group: GroupResponse, request: JoinRequestResponse) -> None:
        """Best effort: the request stands even if admins cannot be notified"""
        try:
            admins = self.supabase.table("group_members")\
                .select("user_id")\
                .eq("group_id", group.id)\
                .in_("role", [role.value for role in MODERATOR_ROLES])\
                .execute()
            recipients = [a["user_id"] for a in admins.data or []]
            username = self._username(request.user_id)
        except Exception as e:
            logger.warning(f"Could not notify admins of {group.id} about join request {request.id}: {e}")
            return
        self.notifications.fan_out(
            recipients,
            title="New Join Request",
            content=f"{username} has requested to join {group.name}",
            type=NotificationType.GROUP_MEMBER,
            metadata=JoinRequestMetadata(group_id=group.id, request_id=request.id, user_id=request.user_id)
        )

    def _username(self, user_id: str) -> str:
        try:
            profile = fetch_profile_map(self.supabase, [user_id]).get(user_id)
        except Exception as e:
            logger.warning(f"Profile lookup for {user_id} failed: {e}")
            profile = None
        return (profile or {}).get("username") or "A user"

    def _primary_admin(self, group_id: str) -> Optional[str]:
        try:
            return get_primary_admin_id(self.supabase, group_id)
        except CampusNetError as e:
            logger.warning(f"Could not resolve admin of {group_id} for audit notification: {e.detail}")
            return None
