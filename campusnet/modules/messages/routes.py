from fastapi import APIRouter, Depends, File, Query, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from campusnet.config import settings
from campusnet.database.supabase_client import get_supabase
from campusnet.modules.media.storage import MediaStorage
from campusnet.modules.messages.schemas import (
    MessageCreate, GroupMessageResponse, RoomMessageResponse, DirectRoomCreate,
    ChatRoomResponse, ImageUploadResponse
)
from campusnet.modules.groups.service import GroupService
from campusnet.modules.messages.service import MessageService
from campusnet.core.authorization import get_group_role, require_group_member
from campusnet.core.dependencies import get_current_user_id, authenticate_token
from campusnet.core.exceptions import NotFound, Unauthorized
from campusnet.core.realtime import SeenIds, Subscription, get_hub, group_topic, room_topic
from supabase import Client
from typing import Callable, List, Optional
import asyncio
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["messages"])

# WebSocket close codes
WS_UNAUTHENTICATED = 4001
WS_FORBIDDEN = 4003
WS_NOT_FOUND = 4004


def get_message_service(supabase: Client = Depends(get_supabase)) -> MessageService:
    return MessageService(supabase, hub=get_hub())


# Group chat

@router.get("/groups/{group_id}/messages", response_model=List[GroupMessageResponse])
async def list_group_messages(
    group_id: str,
    limit: Optional[int] = None,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service)
):
    """Group chat history, oldest first (members only)"""
    return service.list_group_messages(group_id, user_id, limit=limit)


@router.post("/groups/{group_id}/messages", response_model=GroupMessageResponse, status_code=201)
async def send_group_message(
    group_id: str,
    message: MessageCreate,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service)
):
    return service.send_group_message(group_id, user_id, message)


@router.delete("/groups/{group_id}/messages/{message_id}", status_code=204)
async def delete_group_message(
    group_id: str,
    message_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service)
):
    service.delete_group_message(message_id, user_id)
    return None


@router.post("/groups/{group_id}/messages/images", response_model=ImageUploadResponse, status_code=201)
async def upload_group_chat_image(
    group_id: str,
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    supabase: Client = Depends(get_supabase)
):
    """Upload an image to attach to a group message"""
    require_group_member(supabase, group_id, user_id)
    url = await MediaStorage(supabase).upload_image(settings.chat_image_bucket, file, prefix=f"groups/{group_id}")
    return ImageUploadResponse(url=url)


# Direct chat

@router.get("/chats", response_model=List[ChatRoomResponse])
async def list_rooms(
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service)
):
    return service.list_rooms(user_id)


@router.post("/chats", response_model=ChatRoomResponse)
async def open_room(
    room_data: DirectRoomCreate,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service)
):
    """Open (or create) the direct chat with a friend"""
    return service.get_or_create_room(user_id, room_data.user_id)


@router.get("/chats/{room_id}", response_model=ChatRoomResponse)
async def get_room(
    room_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service)
):
    return service.get_room(room_id, user_id)


@router.get("/chats/{room_id}/messages", response_model=List[RoomMessageResponse])
async def list_room_messages(
    room_id: str,
    limit: Optional[int] = None,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service)
):
    return service.list_room_messages(room_id, user_id, limit=limit)


@router.post("/chats/{room_id}/messages", response_model=RoomMessageResponse, status_code=201)
async def send_room_message(
    room_id: str,
    message: MessageCreate,
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service)
):
    return service.send_room_message(room_id, user_id, message)


@router.post("/chats/{room_id}/images", response_model=ImageUploadResponse, status_code=201)
async def upload_room_image(
    room_id: str,
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
    supabase: Client = Depends(get_supabase)
):
    service.require_participant(room_id, user_id)
    url = await MediaStorage(supabase).upload_image(settings.chat_image_bucket, file, prefix=f"rooms/{room_id}")
    return ImageUploadResponse(url=url)


# Realtime

async def _drain(websocket: WebSocket) -> None:
    """Read until the client goes away; inbound frames are ignored"""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


async def _close_for(websocket: WebSocket, error: Exception) -> None:
    code = WS_NOT_FOUND if isinstance(error, NotFound) else WS_FORBIDDEN
    await websocket.close(code=code)


async def _stream(
    websocket: WebSocket,
    subscription: Subscription,
    backlog: List[dict],
    authorize: Optional[Callable[[], None]] = None
) -> None:
    """Send the backlog, then live events; authorize runs before each live event"""
    seen = SeenIds()
    for row in backlog:
        seen.add(row["id"])
        await websocket.send_json(jsonable_encoder(row))

    receiver = asyncio.create_task(_drain(websocket))
    try:
        while not receiver.done():
            try:
                event = await subscription.get(timeout=1.0)
            except asyncio.TimeoutError:
                continue
            if not seen.add(event.get("id")):
                continue
            if authorize is not None:
                try:
                    authorize()
                except (NotFound, Unauthorized) as e:
                    logger.info(f"Closing {subscription.topic} subscriber: {e.detail}")
                    await _close_for(websocket, e)
                    return
            await websocket.send_json(jsonable_encoder(event))
    except WebSocketDisconnect:
        pass
    finally:
        receiver.cancel()


async def _serve(
    websocket: WebSocket,
    token: Optional[str],
    supabase: Client,
    topic: str,
    load_backlog: Callable[[str], list],
    authorize: Optional[Callable[[str], None]] = None
) -> None:
    """
    Authenticate, authorize through the backlog loader, then stream.

    The subscription is opened before the backlog is read so that rows
    inserted in between are not lost; SeenIds drops the overlap.
    """
    user = authenticate_token(token, supabase)
    if not user:
        await websocket.close(code=WS_UNAUTHENTICATED)
        return

    hub = get_hub()
    with hub.subscription(topic) as subscription:
        try:
            backlog = [m.model_dump(mode="json") for m in load_backlog(user["id"])]
        except (NotFound, Unauthorized) as e:
            await _close_for(websocket, e)
            return

        await websocket.accept()
        logger.info(f"Realtime subscriber {user['id']} joined {topic}")
        recheck = (lambda: authorize(user["id"])) if authorize is not None else None
        await _stream(websocket, subscription, backlog, recheck)
        logger.info(f"Realtime subscriber {user['id']} left {topic}")


def _group_access(supabase: Client, group_id: str) -> Callable[[str], None]:
    """Membership check for live group events; NotFound once the group is deleted"""
    def check(user_id: str) -> None:
        if get_group_role(supabase, group_id, user_id).is_member:
            return
        GroupService(supabase).get_group(group_id)
        raise Unauthorized("You are no longer a member of this group")
    return check


@router.websocket("/ws/groups/{group_id}")
async def group_messages_socket(
    websocket: WebSocket,
    group_id: str,
    token: Optional[str] = Query(None),
    supabase: Client = Depends(get_supabase)
):
    service = MessageService(supabase, hub=get_hub())
    await _serve(
        websocket, token, supabase, group_topic(group_id),
        lambda user_id: service.list_group_messages(group_id, user_id),
        authorize=_group_access(supabase, group_id)
    )


@router.websocket("/ws/rooms/{room_id}")
async def room_messages_socket(
    websocket: WebSocket,
    room_id: str,
    token: Optional[str] = Query(None),
    supabase: Client = Depends(get_supabase)
):
    service = MessageService(supabase, hub=get_hub())
    await _serve(
        websocket, token, supabase, room_topic(room_id),
        lambda user_id: service.list_room_messages(room_id, user_id)
    )
