from fastapi import APIRouter, Depends, File, UploadFile
from campusnet.config import settings
from campusnet.database.supabase_client import get_supabase
from campusnet.modules.groups.schemas import (
    GroupCreate, GroupUpdate, GroupResponse, GroupMemberResponse, GroupMembersAdd,
    MembershipStatus, MemberCountResponse, SecondaryAdminAssign, AdminTransfer
)
from campusnet.modules.groups.service import GroupService
from campusnet.modules.media.storage import MediaStorage
from campusnet.modules.notifications.service import NotificationService
from campusnet.core.authorization import require_group_moderator
from campusnet.core.dependencies import get_current_user_id, get_notification_service
from supabase import Client
from typing import List, Optional

router = APIRouter(prefix="/groups", tags=["groups"])


def get_group_service(
    supabase: Client = Depends(get_supabase),
    notifications: NotificationService = Depends(get_notification_service)
) -> GroupService:
    return GroupService(supabase, notifications)


@router.post("", response_model=GroupResponse, status_code=201)
async def create_group(
    group_data: GroupCreate,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Create a group; the creator becomes its admin"""
    return service.create_group(group_data, user_id)


@router.get("", response_model=List[GroupResponse])
async def list_groups(
    mine: bool = False,
    search: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Browse groups. Use mine=true to restrict to groups you belong to."""
    return service.list_groups(user_id=user_id, member_only=mine, search=search, limit=limit, offset=offset)


@router.get("/{group_id}", response_model=GroupResponse)
async def get_group(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    return service.get_group(group_id)


@router.put("/{group_id}", response_model=GroupResponse)
async def update_group(
    group_id: str,
    group_data: GroupUpdate,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Update name, description, image or settings (admin or secondary admin)"""
    return service.update_group(group_id, user_id, group_data)


@router.post("/{group_id}/image", response_model=GroupResponse)
async def upload_group_image(
    group_id: str,
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
    supabase: Client = Depends(get_supabase)
):
    require_group_moderator(supabase, group_id, user_id)
    url = await MediaStorage(supabase).upload_image(settings.group_image_bucket, file, prefix=group_id)
    return service.update_group(group_id, user_id, GroupUpdate(image_url=url))


@router.delete("/{group_id}", status_code=204)
async def delete_group(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Delete the group with its messages, members and join requests (primary admin only)"""
    service.delete_group(group_id, user_id)
    return None


@router.get("/{group_id}/membership", response_model=MembershipStatus)
async def check_membership(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    return service.check_membership(group_id, user_id)


@router.get("/{group_id}/member-count", response_model=MemberCountResponse)
async def member_count(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    return service.member_count(group_id)


@router.get("/{group_id}/members", response_model=List[GroupMemberResponse])
async def list_members(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    return service.list_members(group_id, user_id)


@router.post("/{group_id}/members", response_model=List[GroupMemberResponse], status_code=201)
async def add_members(
    group_id: str,
    members: GroupMembersAdd,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Add users directly (admins, or any member when the group allows invites)"""
    return service.add_members(group_id, user_id, members.user_ids)


@router.delete("/{group_id}/members/{member_id}", status_code=204)
async def remove_member(
    group_id: str,
    member_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Remove a member, or leave the group when member_id is yourself"""
    service.remove_member(group_id, user_id, member_id)
    return None


@router.put("/{group_id}/secondary-admins", response_model=GroupResponse)
async def assign_secondary_admins(
    group_id: str,
    assignment: SecondaryAdminAssign,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Replace the secondary admin set (primary admin only)"""
    return service.assign_secondary_admins(group_id, user_id, assignment.user_ids)


@router.post("/{group_id}/transfer-admin", response_model=GroupResponse)
async def transfer_admin(
    group_id: str,
    transfer: AdminTransfer,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    return service.transfer_admin(group_id, user_id, transfer.user_id)
