from supabase import Client
from campusnet.core.exceptions import (
    CampusNetError, NotFound, StoreUnavailable, Unauthorized, ValidationError, is_unique_violation
)
from campusnet.modules.posts.schemas import (
    PostCreate, PostResponse, CommentCreate, CommentResponse, LikeResponse
)
from campusnet.modules.profiles.schemas import ProfileSummary
from campusnet.modules.profiles.service import fetch_profile_map
from collections import Counter
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


class PostService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def create_post(self, user_id: str, post_data: PostCreate) -> PostResponse:
        content = (post_data.content or "").strip()
        if not content and not post_data.image_url:
            raise ValidationError("Post must have text or an image")
        try:
            result = self.supabase.table("posts").insert({
                "user_id": user_id,
                "content": content,
                "image_url": post_data.image_url
            }).execute()

            if not result.data:
                raise StoreUnavailable("Failed to create post")

            logger.info(f"Post {result.data[0]['id']} created by {user_id}")
            return self._decorate(result.data, user_id)[0]
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error creating post for {user_id}: {e}")
            raise StoreUnavailable(str(e))

    def list_feed(self, viewer_id: Optional[str] = None, limit: int = 20, offset: int = 0) -> List[PostResponse]:
        """Newest posts first, with author, like and comment counts"""
        try:
            result = self.supabase.table("posts")\
                .select("*")\
                .order("created_at", desc=True)\
                .range(offset, offset + limit - 1)\
                .execute()
            return self._decorate(result.data or [], viewer_id)
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error listing feed: {e}")
            raise StoreUnavailable(str(e))

    def get_post(self, post_id: str, viewer_id: Optional[str] = None) -> PostResponse:
        try:
            result = self.supabase.table("posts")\
                .select("*")\
                .eq("id", post_id)\
                .maybe_single()\
                .execute()
            if not result or not result.data:
                raise NotFound("Post not found")
            return self._decorate([result.data], viewer_id)[0]
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error fetching post {post_id}: {e}")
            raise StoreUnavailable(str(e))

    def delete_post(self, post_id: str, user_id: str) -> None:
        """Owner only; likes and comments go with the post"""
        try:
            post = self.get_post(post_id)
            if post.user_id != user_id:
                raise Unauthorized("You can only delete your own posts")

            self.supabase.table("likes").delete().eq("post_id", post_id).execute()
            self.supabase.table("comments").delete().eq("post_id", post_id).execute()
            self.supabase.table("posts")\
                .delete()\
                .eq("id", post_id)\
                .eq("user_id", user_id)\
                .execute()
            logger.info(f"Post {post_id} deleted by {user_id}")
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error deleting post {post_id}: {e}")
            raise StoreUnavailable(str(e))

    def like(self, post_id: str, user_id: str) -> LikeResponse:
        """Idempotent: liking twice leaves one like"""
        try:
            self.get_post(post_id)
            existing = self.supabase.table("likes")\
                .select("id")\
                .eq("post_id", post_id)\
                .eq("user_id", user_id)\
                .limit(1)\
                .execute()
            if not existing.data:
                try:
                    self.supabase.table("likes").insert({
                        "post_id": post_id,
                        "user_id": user_id
                    }).execute()
                except Exception as e:
                    if not is_unique_violation(e):
                        raise
            return LikeResponse(post_id=post_id, liked=True, like_count=self._like_count(post_id))
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error liking post {post_id}: {e}")
            raise StoreUnavailable(str(e))

    def unlike(self, post_id: str, user_id: str) -> LikeResponse:
        try:
            self.supabase.table("likes")\
                .delete()\
                .eq("post_id", post_id)\
                .eq("user_id", user_id)\
                .execute()
            return LikeResponse(post_id=post_id, liked=False, like_count=self._like_count(post_id))
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error unliking post {post_id}: {e}")
            raise StoreUnavailable(str(e))

    def add_comment(self, post_id: str, user_id: str, comment: CommentCreate) -> CommentResponse:
        content = (comment.content or "").strip()
        if not content:
            raise ValidationError("Comment cannot be empty")
        try:
            self.get_post(post_id)
            result = self.supabase.table("comments").insert({
                "post_id": post_id,
                "user_id": user_id,
                "content": content
            }).execute()
            if not result.data:
                raise StoreUnavailable("Failed to add comment")
            author = fetch_profile_map(self.supabase, [user_id]).get(user_id)
            return CommentResponse(
                **result.data[0],
                author=ProfileSummary(**author) if author else None
            )
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error commenting on post {post_id}: {e}")
            raise StoreUnavailable(str(e))

    def list_comments(self, post_id: str) -> List[CommentResponse]:
        """Comments oldest first"""
        try:
            self.get_post(post_id)
            result = self.supabase.table("comments")\
                .select("*")\
                .eq("post_id", post_id)\
                .order("created_at")\
                .execute()
            rows = result.data or []
            profiles = fetch_profile_map(self.supabase, [c["user_id"] for c in rows])
            return [
                CommentResponse(
                    **c,
                    author=ProfileSummary(**profiles[c["user_id"]]) if c["user_id"] in profiles else None
                )
                for c in rows
            ]
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error listing comments of post {post_id}: {e}")
            raise StoreUnavailable(str(e))

    def _like_count(self, post_id: str) -> int:
        result = self.supabase.table("likes")\
            .select("id", count="exact")\
            .eq("post_id", post_id)\
            .execute()
        return result.count or 0

    def _decorate(self, rows: List[dict], viewer_id: Optional[str]) -> List[PostResponse]:
        if not rows:
            return []
        post_ids = [p["id"] for p in rows]
        likes = self.supabase.table("likes")\
            .select("post_id, user_id")\
            .in_("post_id", post_ids)\
            .execute()
        comments = self.supabase.table("comments")\
            .select("post_id")\
            .in_("post_id", post_ids)\
            .execute()
        like_counts = Counter(l["post_id"] for l in likes.data or [])
        comment_counts = Counter(c["post_id"] for c in comments.data or [])
        liked = {l["post_id"] for l in likes.data or [] if l["user_id"] == viewer_id}
        profiles = fetch_profile_map(self.supabase, [p["user_id"] for p in rows])

        posts = []
        for row in rows:
            author = profiles.get(row["user_id"])
            posts.append(PostResponse(
                **row,
                author=ProfileSummary(**author) if author else None,
                like_count=like_counts[row["id"]],
                comment_count=comment_counts[row["id"]],
                liked_by_me=row["id"] in liked
            ))
        return posts
