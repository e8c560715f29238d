from fastapi import APIRouter, Depends
from campusnet.database.supabase_client import get_supabase
from campusnet.modules.join_requests.schemas import JoinRequestResolve, JoinRequestResponse
from campusnet.modules.join_requests.service import JoinRequestService
from campusnet.modules.notifications.service import NotificationService
from campusnet.core.dependencies import get_current_user_id, get_notification_service
from supabase import Client
from typing import List, Optional

router = APIRouter(tags=["join-requests"])


def get_join_request_service(
    supabase: Client = Depends(get_supabase),
    notifications: NotificationService = Depends(get_notification_service)
) -> JoinRequestService:
    return JoinRequestService(supabase, notifications)


@router.post("/groups/{group_id}/join-requests", response_model=JoinRequestResponse, status_code=201)
async def submit_join_request(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    service: JoinRequestService = Depends(get_join_request_service)
):
    """Ask to join a group; its admins are notified"""
    return service.submit_join_request(group_id, user_id)


@router.get("/groups/{group_id}/join-requests", response_model=List[JoinRequestResponse])
async def list_pending_requests(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    service: JoinRequestService = Depends(get_join_request_service)
):
    """Pending requests, newest first (admin or secondary admin)"""
    return service.list_pending_requests(group_id, user_id)


@router.get("/groups/{group_id}/join-requests/me", response_model=Optional[JoinRequestResponse])
async def get_my_request(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    service: JoinRequestService = Depends(get_join_request_service)
):
    return service.get_my_request(group_id, user_id)


@router.post("/join-requests/{request_id}/resolve", response_model=JoinRequestResponse)
async def resolve_join_request(
    request_id: str,
    resolution: JoinRequestResolve,
    user_id: str = Depends(get_current_user_id),
    service: JoinRequestService = Depends(get_join_request_service)
):
    """Approve or reject a pending request"""
    return service.resolve_join_request(request_id, user_id, resolution.decision)
