from fastapi import APIRouter, Depends, File, UploadFile
from campusnet.config import settings
from campusnet.database.supabase_client import get_supabase
from campusnet.modules.media.storage import MediaStorage
from campusnet.modules.profiles.schemas import ProfileUpdate, ProfileResponse, ProfileSummary
from campusnet.modules.profiles.service import ProfileService
from campusnet.core.dependencies import get_current_user_id
from supabase import Client
from typing import List

router = APIRouter(prefix="/profiles", tags=["profiles"])


def get_profile_service(supabase: Client = Depends(get_supabase)) -> ProfileService:
    return ProfileService(supabase)


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    user_id: str = Depends(get_current_user_id),
    service: ProfileService = Depends(get_profile_service)
):
    return service.get_profile(user_id)


@router.put("/me", response_model=ProfileResponse)
async def update_my_profile(
    profile_data: ProfileUpdate,
    user_id: str = Depends(get_current_user_id),
    service: ProfileService = Depends(get_profile_service)
):
    return service.update_profile(user_id, profile_data)


@router.post("/me/avatar", response_model=ProfileResponse)
async def upload_avatar(
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    service: ProfileService = Depends(get_profile_service),
    supabase: Client = Depends(get_supabase)
):
    """Upload a new avatar image and set it on your profile"""
    url = await MediaStorage(supabase).upload_image(settings.avatar_bucket, file, prefix=user_id)
    return service.set_avatar(user_id, url)


@router.get("/search", response_model=List[ProfileSummary])
async def search_profiles(
    q: str,
    limit: int = 20,
    user_id: str = Depends(get_current_user_id),
    service: ProfileService = Depends(get_profile_service)
):
    """Search by username or university"""
    return service.search_profiles(q, user_id, limit=limit)


@router.get("/suggestions", response_model=List[ProfileSummary])
async def suggest_people(
    limit: int = 10,
    user_id: str = Depends(get_current_user_id),
    service: ProfileService = Depends(get_profile_service)
):
    """People you may know"""
    return service.suggest_people(user_id, limit=limit)


@router.get("/{profile_id}", response_model=ProfileResponse)
async def get_profile(
    profile_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ProfileService = Depends(get_profile_service)
):
    return service.get_profile(profile_id)
