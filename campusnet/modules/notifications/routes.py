from fastapi import APIRouter, Depends
from campusnet.modules.notifications.schemas import (
    InboxResponse, NotificationResponse, UnreadCountResponse
)
from campusnet.modules.notifications.service import NotificationService
from campusnet.core.dependencies import get_current_user_id, get_notification_service
from typing import Optional

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=InboxResponse)
async def fetch_inbox(
    limit: Optional[int] = None,
    user_id: str = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service)
):
    """Your notifications, newest first, with the unread count"""
    return service.fetch_inbox(user_id, limit=limit)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    user_id: str = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service)
):
    return UnreadCountResponse(unread_count=service.unread_count(user_id))


@router.post("/read-all")
async def mark_all_read(
    user_id: str = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service)
):
    return {"updated": service.mark_all_read(user_id)}


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service)
):
    return service.mark_read(notification_id, user_id)


@router.delete("", status_code=200)
async def clear_all(
    user_id: str = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service)
):
    return {"deleted": service.clear_all(user_id)}


@router.delete("/{notification_id}", status_code=204)
async def clear(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    service: NotificationService = Depends(get_notification_service)
):
    service.clear(notification_id, user_id)
    return None
