"""
Group role resolution.

Every check that depends on a user's standing in a group goes through
get_group_role, which reads the membership row fresh on each call.
"""

from enum import Enum
from typing import Iterable
import logging

from supabase import Client

from campusnet.core.exceptions import StoreUnavailable, Unauthorized

logger = logging.getLogger(__name__)


class GroupRole(str, Enum):
    ADMIN = "admin"
    SECONDARY_ADMIN = "secondary_admin"
    MEMBER = "member"
    NON_MEMBER = "non_member"

    @property
    def is_member(self) -> bool:
        return self is not GroupRole.NON_MEMBER

    @property
    def can_moderate(self) -> bool:
        return self in (GroupRole.ADMIN, GroupRole.SECONDARY_ADMIN)


MEMBERSHIP_ROLES = (GroupRole.ADMIN, GroupRole.SECONDARY_ADMIN, GroupRole.MEMBER)
MODERATOR_ROLES = (GroupRole.ADMIN, GroupRole.SECONDARY_ADMIN)


def get_group_role(supabase: Client, group_id: str, user_id: str) -> GroupRole:
    """Return the user's role in the group, NON_MEMBER when no membership row exists."""
    try:
        result = supabase.table("group_members")\
            .select("role")\
            .eq("group_id", group_id)\
            .eq("user_id", user_id)\
            .limit(1)\
            .execute()
    except Exception as e:
        logger.error(f"Error resolving role of {user_id} in group {group_id}: {e}")
        raise StoreUnavailable(str(e))

    if not result.data:
        return GroupRole.NON_MEMBER
    role = result.data[0].get("role")
    try:
        return GroupRole(role)
    except ValueError:
        logger.warning(f"Unknown role {role!r} for {user_id} in group {group_id}; treating as member")
        return GroupRole.MEMBER


def require_group_role(
    supabase: Client,
    group_id: str,
    user_id: str,
    allowed: Iterable[GroupRole],
    detail: str,
) -> GroupRole:
    role = get_group_role(supabase, group_id, user_id)
    if role not in tuple(allowed):
        raise Unauthorized(detail)
    return role


def require_group_member(supabase: Client, group_id: str, user_id: str) -> GroupRole:
    return require_group_role(
        supabase, group_id, user_id, MEMBERSHIP_ROLES,
        "You must be a member of this group"
    )


def require_group_moderator(supabase: Client, group_id: str, user_id: str) -> GroupRole:
    return require_group_role(
        supabase, group_id, user_id, MODERATOR_ROLES,
        "You must be a group admin or secondary admin to perform this action"
    )


def require_primary_admin(supabase: Client, group_id: str, user_id: str) -> GroupRole:
    return require_group_role(
        supabase, group_id, user_id, (GroupRole.ADMIN,),
        "Only the group admin can perform this action"
    )


def get_primary_admin_id(supabase: Client, group_id: str):
    """User id holding the admin role, or None if the group has none."""
    try:
        result = supabase.table("group_members")\
            .select("user_id")\
            .eq("group_id", group_id)\
            .eq("role", GroupRole.ADMIN.value)\
            .limit(1)\
            .execute()
    except Exception as e:
        logger.error(f"Error fetching admin of group {group_id}: {e}")
        raise StoreUnavailable(str(e))
    return result.data[0]["user_id"] if result.data else None
