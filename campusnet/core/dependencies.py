"""
Core dependencies: current identity and shared service wiring
"""

from fastapi import Depends, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from campusnet.database.supabase_client import get_supabase, get_service_supabase
from campusnet.modules.auth.service import AuthService
from campusnet.modules.notifications.service import NotificationService
from supabase import Client
from typing import Any, Dict, Optional
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_auth_service(
    supabase: Client = Depends(get_supabase),
    service_client: Client = Depends(get_service_supabase)
) -> AuthService:
    return AuthService(supabase, profile_writer=service_client)


def get_notification_service(
    supabase: Client = Depends(get_supabase),
    service_client: Client = Depends(get_service_supabase)
) -> NotificationService:
    return NotificationService(supabase, writer=service_client)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> Dict[str, Any]:
    """Current user info from the bearer token"""
    return auth_service.get_current_user(credentials.credentials)


def get_current_user_id(current_user: Dict[str, Any] = Depends(get_current_user)) -> str:
    return current_user["id"]


def authenticate_token(token: Optional[str], supabase: Client) -> Optional[Dict[str, Any]]:
    """Resolve a token passed outside the Authorization header (WebSocket query string). None if invalid."""
    if not token:
        return None
    try:
        return AuthService(supabase).get_current_user(token)
    except HTTPException as e:
        logger.info(f"Rejected realtime connection: {e.detail}")
        return None
