from supabase import Client
from campusnet.core.exceptions import CampusNetError, NotFound, StoreUnavailable
from campusnet.modules.notifications.schemas import (
    NotificationCreate, NotificationResponse, NotificationType, NotificationMetadata,
    InboxResponse, FanOutResult
)
from typing import Iterable, List, Optional
import logging

logger = logging.getLogger(__name__)


class NotificationService:
    """Per-user inbox plus the best-effort fan-out used by every write path.

    ``writer`` is the client used for inserts; it is the service-role client in
    production because notifications are written into other users' inboxes.
    """

    def __init__(self, supabase: Client, writer: Optional[Client] = None):
        self.supabase = supabase
        self.writer = writer or supabase

    def fetch_inbox(self, user_id: str, limit: Optional[int] = None) -> InboxResponse:
        """Notifications for user, newest first, with the unread count of the whole inbox"""
        try:
            query = self.supabase.table("notifications")\
                .select("*")\
                .eq("user_id", user_id)\
                .order("created_at", desc=True)
            if limit:
                query = query.limit(limit)
            result = query.execute()
            notifications = [NotificationResponse.from_row(row) for row in result.data or []]
            return InboxResponse(
                notifications=notifications,
                unread_count=self.unread_count(user_id)
            )
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error fetching inbox for {user_id}: {e}")
            raise StoreUnavailable(str(e))

    def unread_count(self, user_id: str) -> int:
        try:
            result = self.supabase.table("notifications")\
                .select("id", count="exact")\
                .eq("user_id", user_id)\
                .eq("read", False)\
                .execute()
            return result.count or 0
        except Exception as e:
            logger.error(f"Error counting unread notifications for {user_id}: {e}")
            raise StoreUnavailable(str(e))

    def _get_own(self, notification_id: str, user_id: str) -> dict:
        result = self.supabase.table("notifications")\
            .select("*")\
            .eq("id", notification_id)\
            .eq("user_id", user_id)\
            .maybe_single()\
            .execute()
        if not result or not result.data:
            raise NotFound("Notification not found")
        return result.data

    def mark_read(self, notification_id: str, user_id: str) -> NotificationResponse:
        """Mark one notification read; a no-op when it already is"""
        try:
            row = self._get_own(notification_id, user_id)
            if row.get("read"):
                return NotificationResponse.from_row(row)

            result = self.supabase.table("notifications")\
                .update({"read": True})\
                .eq("id", notification_id)\
                .eq("user_id", user_id)\
                .execute()

            if not result.data:
                raise NotFound("Notification not found")
            return NotificationResponse.from_row(result.data[0])
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error marking notification {notification_id} read: {e}")
            raise StoreUnavailable(str(e))

    def mark_all_read(self, user_id: str) -> int:
        try:
            result = self.supabase.table("notifications")\
                .update({"read": True})\
                .eq("user_id", user_id)\
                .eq("read", False)\
                .execute()
            return len(result.data or [])
        except Exception as e:
            logger.error(f"Error marking all notifications read for {user_id}: {e}")
            raise StoreUnavailable(str(e))

    def clear(self, notification_id: str, user_id: str) -> None:
        try:
            result = self.supabase.table("notifications")\
                .delete()\
                .eq("id", notification_id)\
                .eq("user_id", user_id)\
                .execute()
            if not result.data:
                raise NotFound("Notification not found")
        except CampusNetError:
            raise
        except Exception as e:
            logger.error(f"Error clearing notification {notification_id}: {e}")
            raise StoreUnavailable(str(e))

    def clear_all(self, user_id: str) -> int:
        try:
            result = self.supabase.table("notifications")\
                .delete()\
                .eq("user_id", user_id)\
                .execute()
            return len(result.data or [])
        except Exception as e:
            logger.error(f"Error clearing notifications for {user_id}: {e}")
            raise StoreUnavailable(str(e))

    def notify(self, notification: NotificationCreate) -> Optional[NotificationResponse]:
        """Insert one notification. Failures are logged and reported as None, never raised."""
        try:
            result = self.writer.table("notifications").insert(notification.to_row()).execute()
            if not result.data:
                logger.warning(f"Notification insert for {notification.user_id} returned no row")
                return None
            return NotificationResponse.from_row(result.data[0])
        except Exception as e:
            logger.warning(f"Failed to notify {notification.user_id} ({notification.title}): {e}")
            return None

    def fan_out(
        self,
        recipients: Iterable[str],
        title: str,
        content: str,
        type: NotificationType,
        metadata: Optional[NotificationMetadata] = None
    ) -> FanOutResult:
        """One notification per distinct recipient; partial failure is logged, not raised."""
        created: List[NotificationResponse] = []
        failed = 0
        seen = set()
        for user_id in recipients:
            if user_id in seen:
                continue
            seen.add(user_id)
            notification = self.notify(NotificationCreate(
                user_id=user_id,
                title=title,
                content=content,
                type=type,
                metadata=metadata
            ))
            if notification is None:
                failed += 1
            else:
                created.append(notification)
        if failed:
            logger.warning(f"Fan-out '{title}': {failed} of {len(seen)} notifications failed")
        return FanOutResult(created=created, failed=failed)
