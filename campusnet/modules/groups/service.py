from supabase import Client
from campusnet.config import settings
from campusnet.core.authorization import (
    GroupRole, get_group_role, require_group_member, require_group_moderator, require_primary_admin
)
from campusnet.core.exceptions import (
    CampusNetError, Conflict, LimitExceeded, NotFound, StoreUnavailable, Unauthorized, ValidationError,
    is_unique_violation
)
from campusnet.modules.groups.schemas import (
    GroupCreate, GroupUpdate, GroupResponse, GroupSettings, GroupMemberResponse,
    MembershipStatus, MemberCountResponse
)
from campusnet.modules.notifications.schemas import GroupUpdateMetadata, NotificationType
from campusnet.modules.notifications.service import NotificationService
from campusnet.modules.profiles.service import fetch_profile_map
from datetime import datetime, timezone
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


def to_group(row: dict) -> GroupResponse:
    data = dict(row)
    data["settings"] = row.get("settings") or {}
    data["secondary_admins"] = row.get("secondary_admins") or []
    data["description"] = row.get("description") or ""
    return GroupResponse(**data)


class GroupService:
    def __init__(self, supabase: Client, notifications: Optional[NotificationService] = None):
        self.supabase = supabase
        self.notifications = notifications or NotificationService(supabase)

    def create_group(self, group_data: GroupCreate, user_id: str) -> GroupResponse:
        """Create a group and make the creator its admin"""
        name = (group_data.name or "").strip()
        if not name:
            raise ValidationError("Group name is required")
        try:
            result = self.supabase.table("groups").insert({
                "name": name,
                "description": (group_data.description or "").strip(),
                "image_url": group_data.image_url,
                "created_by": user_id,
                "max_members": settings.group_max_members,
                "settings": GroupSettings().model_dump(),
                "secondary_admins": []
            }).execute()

            if not result.data:
                raise StoreUnavailable("Failed to create group")
            group = result.data[0]

            # Add creator as admin
            try:
                self.supabase.table("group_members").insert({
                    "group_id": group["id"],
                    "user_id": user_id,
                    "role": GroupRole.ADMIN.value
                }).execute()
            except Exception as e:
                logger.error(f"Admin membership insert for new group {group['id']} failed: {e}")
                self._discard_group(group["id"])
                raise StoreUnavailable(str(e))

            logger.info(f"Group {group['id']} created by {user_id}")
            return to_group(group)
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error creating group: {e}")
            raise StoreUnavailable(str(e))

    def _discard_group(self, group_id: str) -> None:
        try:
            self.supabase.table("groups")\
                .delete()\
                .eq("id", group_id)\
                .execute()
            logger.warning(f"Group {group_id} discarded after failed admin membership insert")
        except Exception as e:
            logger.critical(f"Group {group_id} exists without an admin; cleanup failed: {e}")

    def get_group(self, group_id: str) -> GroupResponse:
        try:
            result = self.supabase.table("groups")\
                .select("*")\
                .eq("id", group_id)\
                .maybe_single()\
                .execute()

            if not result or not result.data:
                raise NotFound("Group not found")

            return to_group(result.data)
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error fetching group {group_id}: {e}")
            raise StoreUnavailable(str(e))

    def list_groups(
        self,
        user_id: Optional[str] = None,
        member_only: bool = False,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0
    ) -> List[GroupResponse]:
        """List groups newest first; member_only restricts to the user's groups"""
        try:
            query = self.supabase.table("groups").select("*")
            if member_only and user_id:
                members_result = self.supabase.table("group_members")\
                    .select("group_id")\
                    .eq("user_id", user_id)\
                    .execute()
                group_ids = [m["group_id"] for m in members_result.data or []]
                if not group_ids:
                    return []
                query = query.in_("id", group_ids)
            if search and search.strip():
                query = query.ilike("name", f"%{search.strip()}%")
            result = query.order("created_at", desc=True)\
                .range(offset, offset + limit - 1)\
                .execute()
            return [to_group(group) for group in result.data or []]
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error listing groups: {e}")
            raise StoreUnavailable(str(e))

    def update_group(self, group_id: str, acting_user_id: str, group_data: GroupUpdate) -> GroupResponse:
        """Rename / edit a group (admin or secondary admin). A rename notifies every member."""
        try:
            require_group_moderator(self.supabase, group_id, acting_user_id)
            group = self.get_group(group_id)

            update_data = {}
            new_name = None
            if group_data.name is not None:
                new_name = group_data.name.strip()
                if not new_name:
                    raise ValidationError("Group name cannot be blank")
                update_data["name"] = new_name
            if group_data.description is not None:
                update_data["description"] = group_data.description.strip()
            if group_data.image_url is not None:
                update_data["image_url"] = group_data.image_url
            if group_data.settings is not None:
                merged = group.settings.model_dump()
                merged.update(group_data.settings.model_dump(exclude_none=True))
                update_data["settings"] = merged
            if not update_data:
                return group
            update_data["updated_at"] = datetime.now(timezone.utc).isoformat()

            result = self.supabase.table("groups")\
                .update(update_data)\
                .eq("id", group_id)\
                .execute()

            if not result.data:
                raise NotFound("Group not found")
            updated = to_group(result.data[0])

            if new_name and new_name != group.name:
                self._notify_rename(group_id, new_name)
            return updated
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error updating group {group_id}: {e}")
            raise StoreUnavailable(str(e))

    def _notify_rename(self, group_id: str, new_name: str) -> None:
        """Best effort: the rename stands even if members cannot be notified"""
        try:
            recipients = self._member_ids(group_id)
        except Exception as e:
            logger.warning(f"Could not notify members of {group_id} about rename: {e}")
            return
        self.notifications.fan_out(
            recipients,
            title="Group Renamed",
            content=f'Group has been renamed to "{new_name}"',
            type=NotificationType.GROUP_UPDATE,
            metadata=GroupUpdateMetadata(group_id=group_id, action="group_renamed")
        )

    def delete_group(self, group_id: str, acting_admin_id: str) -> None:
        """Delete messages, join requests and memberships, then the group itself (admin only)"""
        try:
            self.get_group(group_id)
            require_primary_admin(self.supabase, group_id, acting_admin_id)

            self.supabase.table("group_messages")\
                .delete()\
                .eq("group_id", group_id)\
                .execute()

            self.supabase.table("group_join_requests")\
                .delete()\
                .eq("group_id", group_id)\
                .execute()

            self.supabase.table("group_members")\
                .delete()\
                .eq("group_id", group_id)\
                .execute()

            self.supabase.table("groups")\
                .delete()\
                .eq("id", group_id)\
                .execute()

            logger.info(f"Group {group_id} deleted by {acting_admin_id}")
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error deleting group {group_id}: {e}")
            raise StoreUnavailable(str(e))

    def check_membership(self, group_id: str, user_id: str) -> MembershipStatus:
        role = get_group_role(self.supabase, group_id, user_id)
        if not role.is_member:
            return MembershipStatus(is_member=False)
        return MembershipStatus(is_member=True, role=role.value)

    def member_count(self, group_id: str) -> MemberCountResponse:
        try:
            group = self.get_group(group_id)
            return MemberCountResponse(
                group_id=group_id,
                count=self.count_members(group_id),
                max_members=group.max_members
            )
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error counting members of {group_id}: {e}")
            raise StoreUnavailable(str(e))

    def list_members(self, group_id: str, acting_user_id: str) -> List[GroupMemberResponse]:
        """Members with profile info; hidden from plain members when member visibility is off"""
        try:
            group = self.get_group(group_id)
            role = require_group_member(self.supabase, group_id, acting_user_id)
            if not group.settings.allow_member_visibility and not role.can_moderate:
                raise Unauthorized("Member list is only visible to group admins")

            result = self.supabase.table("group_members")\
                .select("*")\
                .eq("group_id", group_id)\
                .order("created_at")\
                .execute()
            rows = result.data or []
            profiles = fetch_profile_map(self.supabase, [m["user_id"] for m in rows])

            members = []
            for member in rows:
                profile = profiles.get(member["user_id"], {})
                members.append(GroupMemberResponse(
                    **member,
                    username=profile.get("username"),
                    avatar_url=profile.get("avatar_url")
                ))
            return members
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error listing members of {group_id}: {e}")
            raise StoreUnavailable(str(e))

    def add_members(self, group_id: str, acting_user_id: str, user_ids: List[str]) -> List[GroupMemberResponse]:
        """Add users directly. Admins always may; members only when the group allows member invites."""
        try:
            group = self.get_group(group_id)
            role = require_group_member(self.supabase, group_id, acting_user_id)
            if not role.can_moderate and not group.settings.allow_member_invites:
                raise Unauthorized("Members cannot invite to this group")

            existing = self.supabase.table("group_members")\
                .select("user_id")\
                .eq("group_id", group_id)\
                .execute()
            existing_ids = {m["user_id"] for m in existing.data or []}
            to_add = [uid for uid in dict.fromkeys(user_ids) if uid not in existing_ids]
            if not to_add:
                return []
            if len(existing_ids) + len(to_add) > group.max_members:
                raise LimitExceeded(f"Group cannot exceed {group.max_members} members")

            added = []
            for user_id in to_add:
                try:
                    result = self.supabase.table("group_members").insert({
                        "group_id": group_id,
                        "user_id": user_id,
                        "role": GroupRole.MEMBER.value
                    }).execute()
                except Exception as e:
                    if is_unique_violation(e):
                        logger.info(f"{user_id} joined {group_id} concurrently; skipping")
                        continue
                    raise
                if result.data:
                    added.append(GroupMemberResponse(**result.data[0]))

            self.notifications.fan_out(
                [m.user_id for m in added],
                title="Added to Group",
                content=f"You have been added to {group.name}",
                type=NotificationType.GROUP_MEMBER,
                metadata=GroupUpdateMetadata(group_id=group_id, action="member_added")
            )
            return added
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error adding members to {group_id}: {e}")
            raise StoreUnavailable(str(e))

    def assign_secondary_admins(self, group_id: str, acting_admin_id: str, user_ids: List[str]) -> GroupResponse:
        """Replace the group's secondary admin set. All checks run before any role changes."""
        try:
            group = self.get_group(group_id)
            require_primary_admin(self.supabase, group_id, acting_admin_id)

            targets = list(dict.fromkeys(user_ids))
            if len(targets) > settings.secondary_admin_limit:
                raise LimitExceeded(
                    f"A group can have at most {settings.secondary_admin_limit} secondary admins"
                )
            if acting_admin_id in targets:
                raise ValidationError("The group admin cannot be a secondary admin")

            if targets:
                members_result = self.supabase.table("group_members")\
                    .select("user_id, role")\
                    .eq("group_id", group_id)\
                    .in_("user_id", targets)\
                    .execute()
                found = {m["user_id"] for m in members_result.data or []}
                missing = [uid for uid in targets if uid not in found]
                if missing:
                    raise NotFound(f"Not a member of this group: {', '.join(missing)}")

            current = self.supabase.table("group_members")\
                .select("user_id")\
                .eq("group_id", group_id)\
                .eq("role", GroupRole.SECONDARY_ADMIN.value)\
                .execute()
            demote = [m["user_id"] for m in current.data or [] if m["user_id"] not in targets]

            if demote:
                self.supabase.table("group_members")\
                    .update({"role": GroupRole.MEMBER.value})\
                    .eq("group_id", group_id)\
                    .in_("user_id", demote)\
                    .execute()
            if targets:
                self.supabase.table("group_members")\
                    .update({"role": GroupRole.SECONDARY_ADMIN.value})\
                    .eq("group_id", group_id)\
                    .in_("user_id", targets)\
                    .execute()

            result = self.supabase.table("groups")\
                .update({"secondary_admins": targets})\
                .eq("id", group_id)\
                .execute()
            if not result.data:
                raise NotFound("Group not found")

            promoted = [uid for uid in targets if uid not in group.secondary_admins]
            self.notifications.fan_out(
                promoted,
                title="Secondary Admin",
                content=f"You are now a secondary admin of {group.name}",
                type=NotificationType.GROUP_UPDATE,
                metadata=GroupUpdateMetadata(group_id=group_id, action="secondary_admin_assigned")
            )
            logger.info(f"Secondary admins of {group_id} set to {targets} by {acting_admin_id}")
            return to_group(result.data[0])
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error assigning secondary admins in {group_id}: {e}")
            raise StoreUnavailable(str(e))

    def transfer_admin(self, group_id: str, acting_admin_id: str, new_admin_id: str) -> GroupResponse:
        """Hand the admin role to another member; the previous admin stays as a member"""
        try:
            group = self.get_group(group_id)
            require_primary_admin(self.supabase, group_id, acting_admin_id)
            if new_admin_id == acting_admin_id:
                raise ValidationError("You are already the group admin")
            if not get_group_role(self.supabase, group_id, new_admin_id).is_member:
                raise NotFound("The new admin must be a member of this group")

            self.supabase.table("group_members")\
                .update({"role": GroupRole.ADMIN.value})\
                .eq("group_id", group_id)\
                .eq("user_id", new_admin_id)\
                .execute()
            self.supabase.table("group_members")\
                .update({"role": GroupRole.MEMBER.value})\
                .eq("group_id", group_id)\
                .eq("user_id", acting_admin_id)\
                .execute()

            secondary_admins = [uid for uid in group.secondary_admins if uid != new_admin_id]
            result = self.supabase.table("groups")\
                .update({"secondary_admins": secondary_admins})\
                .eq("id", group_id)\
                .execute()
            if not result.data:
                raise NotFound("Group not found")

            self.notifications.fan_out(
                [new_admin_id],
                title="Group Admin",
                content=f"You are now the admin of {group.name}",
                type=NotificationType.GROUP_UPDATE,
                metadata=GroupUpdateMetadata(group_id=group_id, action="admin_transferred")
            )
            logger.info(f"Admin of {group_id} transferred from {acting_admin_id} to {new_admin_id}")
            return to_group(result.data[0])
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error transferring admin of {group_id}: {e}")
            raise StoreUnavailable(str(e))

    def remove_member(self, group_id: str, acting_user_id: str, target_user_id: str) -> None:
        """Remove a member, or leave when acting on yourself"""
        try:
            group = self.get_group(group_id)
            acting_role = None
            if acting_user_id != target_user_id:
                acting_role = require_group_moderator(self.supabase, group_id, acting_user_id)

            target_role = get_group_role(self.supabase, group_id, target_user_id)
            if not target_role.is_member:
                raise NotFound("User is not a member of this group")

            if acting_role is None:
                if target_role is GroupRole.ADMIN:
                    raise ValidationError("Transfer the admin role before leaving the group")
            else:
                if target_role is GroupRole.ADMIN:
                    raise Unauthorized("The group admin cannot be removed")
                if target_role is GroupRole.SECONDARY_ADMIN and acting_role is not GroupRole.ADMIN:
                    raise Unauthorized("Only the group admin can remove a secondary admin")

            result = self.supabase.table("group_members")\
                .delete()\
                .eq("group_id", group_id)\
                .eq("user_id", target_user_id)\
                .execute()
            if not result.data:
                raise Conflict("Membership was already removed")

            if target_user_id in group.secondary_admins:
                self.supabase.table("groups")\
                    .update({"secondary_admins": [uid for uid in group.secondary_admins if uid != target_user_id]})\
                    .eq("id", group_id)\
                    .execute()

            if acting_user_id != target_user_id:
                self.notifications.fan_out(
                    [target_user_id],
                    title="Removed from Group",
                    content=f"You have been removed from {group.name}",
                    type=NotificationType.GROUP_MEMBER,
                    metadata=GroupUpdateMetadata(group_id=group_id, action="member_removed")
                )
            logger.info(f"{target_user_id} removed from {group_id} by {acting_user_id}")
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error removing {target_user_id} from {group_id}: {e}")
            raise StoreUnavailable(str(e))

    def _member_ids(self, group_id: str) -> List[str]:
        result = self.supabase.table("group_members")\
            .select("user_id")\
            .eq("group_id", group_id)\
            .execute()
        return [m["user_id"] for m in result.data or []]

    def count_members(self, group_id: str) -> int:
        result = self.supabase.table("group_members")\
            .select("id", count="exact")\
            .eq("group_id", group_id)\
            .execute()
        return result.count or 0
