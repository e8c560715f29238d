from supabase import Client
from campusnet.core.exceptions import CampusNetError, NotFound, StoreUnavailable
from campusnet.modules.profiles.schemas import ProfileUpdate, ProfileResponse, ProfileSummary
from datetime import datetime, timezone
from typing import Dict, Iterable, List
import logging
import re

logger = logging.getLogger(__name__)

# Characters with meaning inside a PostgREST or=() filter
_FILTER_META = re.compile(r"[,()*%\\]")


def fetch_profile_map(supabase: Client, user_ids: Iterable[str]) -> Dict[str, dict]:
    """id -> profile row for the given users, in a single query"""
    ids = list(dict.fromkeys(uid for uid in user_ids if uid))
    if not ids:
        return {}
    result = supabase.table("profiles")\
        .select("id, username, avatar_url, university")\
        .in_("id", ids)\
        .execute()
    return {p["id"]: p for p in result.data or []}


class ProfileService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_profile(self, user_id: str) -> ProfileResponse:
        try:
            result = self.supabase.table("profiles")\
                .select("*")\
                .eq("id", user_id)\
                .maybe_single()\
                .execute()

            if not result or not result.data:
                raise NotFound("User not found")

            return ProfileResponse(**result.data)
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error fetching profile {user_id}: {e}")
            raise StoreUnavailable(str(e))

    def search_profiles(self, term: str, current_user_id: str, limit: int = 20) -> List[ProfileSummary]:
        """Case-insensitive match on username or university, excluding the caller"""
        cleaned = _FILTER_META.sub(" ", term or "").strip()
        if not cleaned:
            return []
        try:
            result = self.supabase.table("profiles")\
                .select("id, username, avatar_url, university")\
                .or_(f"username.ilike.%{cleaned}%,university.ilike.%{cleaned}%")\
                .neq("id", current_user_id)\
                .limit(limit)\
                .execute()
            return [ProfileSummary(**p) for p in result.data or []]
        except Exception as e:
            logger.error(f"Error searching profiles for {cleaned!r}: {e}")
            raise StoreUnavailable(str(e))

    def update_profile(self, user_id: str, profile_data: ProfileUpdate) -> ProfileResponse:
        try:
            update_data = profile_data.model_dump(exclude_none=True)
            update_data["updated_at"] = datetime.now(timezone.utc).isoformat()

            result = self.supabase.table("profiles")\
                .update(update_data)\
                .eq("id", user_id)\
                .execute()

            if not result.data:
                raise NotFound("User not found")

            return ProfileResponse(**result.data[0])
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error updating profile {user_id}: {e}")
            raise StoreUnavailable(str(e))

    def set_avatar(self, user_id: str, avatar_url: str) -> ProfileResponse:
        try:
            result = self.supabase.table("profiles")\
                .update({"avatar_url": avatar_url, "updated_at": datetime.now(timezone.utc).isoformat()})\
                .eq("id", user_id)\
                .execute()

            if not result.data:
                raise NotFound("User not found")

            return ProfileResponse(**result.data[0])
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error setting avatar for {user_id}: {e}")
            raise StoreUnavailable(str(e))

    def suggest_people(self, user_id: str, limit: int = 10) -> List[ProfileSummary]:
        """People you may know: same university first; never self, friends, or anyone with a pending request"""
        try:
            me = self.get_profile(user_id)

            friends_result = self.supabase.table("friends")\
                .select("user_id1, user_id2")\
                .or_(f"user_id1.eq.{user_id},user_id2.eq.{user_id}")\
                .execute()
            requests_result = self.supabase.table("friend_requests")\
                .select("sender_id, receiver_id")\
                .or_(f"sender_id.eq.{user_id},receiver_id.eq.{user_id}")\
                .eq("status", "pending")\
                .execute()

            excluded = {user_id}
            for f in friends_result.data or []:
                excluded.update((f["user_id1"], f["user_id2"]))
            for r in requests_result.data or []:
                excluded.update((r["sender_id"], r["receiver_id"]))

            candidates = self.supabase.table("profiles")\
                .select("id, username, avatar_url, university")\
                .neq("id", user_id)\
                .order("created_at", desc=True)\
                .limit(limit * 5)\
                .execute()

            people = [p for p in candidates.data or [] if p["id"] not in excluded]
            # Stable sort keeps recency order inside each bucket
            people.sort(key=lambda p: p.get("university") != me.university)
            return [ProfileSummary(**p) for p in people[:limit]]
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error suggesting people for {user_id}: {e}")
            raise StoreUnavailable(str(e))
