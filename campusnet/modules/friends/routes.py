from fastapi import APIRouter, Depends
from campusnet.database.supabase_client import get_supabase
from campusnet.modules.friends.schemas import (
    FriendRequestCreate, FriendRequestRespond, FriendRequestResponse, FriendResponse
)
from campusnet.modules.friends.service import FriendService
from campusnet.modules.notifications.service import NotificationService
from campusnet.core.dependencies import get_current_user_id, get_notification_service
from supabase import Client
from typing import List

router = APIRouter(prefix="/friends", tags=["friends"])


def get_friend_service(
    supabase: Client = Depends(get_supabase),
    notifications: NotificationService = Depends(get_notification_service)
) -> FriendService:
    return FriendService(supabase, notifications)


@router.get("", response_model=List[FriendResponse])
async def list_friends(
    user_id: str = Depends(get_current_user_id),
    service: FriendService = Depends(get_friend_service)
):
    return service.list_friends(user_id)


@router.delete("/{friend_id}", status_code=204)
async def remove_friend(
    friend_id: str,
    user_id: str = Depends(get_current_user_id),
    service: FriendService = Depends(get_friend_service)
):
    service.remove_friend(user_id, friend_id)
    return None


@router.post("/requests", response_model=FriendRequestResponse, status_code=201)
async def send_request(
    request_data: FriendRequestCreate,
    user_id: str = Depends(get_current_user_id),
    service: FriendService = Depends(get_friend_service)
):
    return service.send_request(user_id, request_data.receiver_id)


@router.get("/requests/received", response_model=List[FriendRequestResponse])
async def list_received(
    user_id: str = Depends(get_current_user_id),
    service: FriendService = Depends(get_friend_service)
):
    """Pending requests sent to you"""
    return service.list_received(user_id)


@router.get("/requests/sent", response_model=List[FriendRequestResponse])
async def list_sent(
    user_id: str = Depends(get_current_user_id),
    service: FriendService = Depends(get_friend_service)
):
    return service.list_sent(user_id)


@router.post("/requests/{request_id}/respond", response_model=FriendRequestResponse)
async def respond(
    request_id: str,
    response: FriendRequestRespond,
    user_id: str = Depends(get_current_user_id),
    service: FriendService = Depends(get_friend_service)
):
    """Accept or reject a friend request addressed to you"""
    return service.respond(request_id, user_id, response.accept)
