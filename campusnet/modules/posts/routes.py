from fastapi import APIRouter, Depends, File, UploadFile
from campusnet.config import settings
from campusnet.database.supabase_client import get_supabase
from campusnet.modules.media.storage import MediaStorage
from campusnet.modules.messages.schemas import ImageUploadResponse
from campusnet.modules.posts.schemas import (
    PostCreate, PostResponse, CommentCreate, CommentResponse, LikeResponse
)
from campusnet.modules.posts.service import PostService
from campusnet.core.dependencies import get_current_user_id
from supabase import Client
from typing import List

router = APIRouter(prefix="/posts", tags=["posts"])


def get_post_service(supabase: Client = Depends(get_supabase)) -> PostService:
    return PostService(supabase)


@router.get("", response_model=List[PostResponse])
async def list_feed(
    limit: int = 20,
    offset: int = 0,
    user_id: str = Depends(get_current_user_id),
    service: PostService = Depends(get_post_service)
):
    return service.list_feed(user_id, limit=limit, offset=offset)


@router.post("", response_model=PostResponse, status_code=201)
async def create_post(
    post_data: PostCreate,
    user_id: str = Depends(get_current_user_id),
    service: PostService = Depends(get_post_service)
):
    return service.create_post(user_id, post_data)


@router.post("/images", response_model=ImageUploadResponse, status_code=201)
async def upload_post_image(
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    supabase: Client = Depends(get_supabase)
):
    """Upload an image to attach to a post"""
    url = await MediaStorage(supabase).upload_image(settings.post_image_bucket, file, prefix=user_id)
    return ImageUploadResponse(url=url)


@router.get("/{post_id}", response_model=PostResponse)
async def get_post(
    post_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PostService = Depends(get_post_service)
):
    return service.get_post(post_id, user_id)


@router.delete("/{post_id}", status_code=204)
async def delete_post(
    post_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PostService = Depends(get_post_service)
):
    """Delete your own post"""
    service.delete_post(post_id, user_id)
    return None


@router.post("/{post_id}/like", response_model=LikeResponse)
async def like_post(
    post_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PostService = Depends(get_post_service)
):
    return service.like(post_id, user_id)


@router.delete("/{post_id}/like", response_model=LikeResponse)
async def unlike_post(
    post_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PostService = Depends(get_post_service)
):
    return service.unlike(post_id, user_id)


@router.get("/{post_id}/comments", response_model=List[CommentResponse])
async def list_comments(
    post_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PostService = Depends(get_post_service)
):
    return service.list_comments(post_id)


@router.post("/{post_id}/comments", response_model=CommentResponse, status_code=201)
async def add_comment(
    post_id: str,
    comment: CommentCreate,
    user_id: str = Depends(get_current_user_id),
    service: PostService = Depends(get_post_service)
):
    return service.add_comment(post_id, user_id, comment)
