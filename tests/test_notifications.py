import pytest

from campusnet.core.exceptions import NotFound, StoreUnavailable
from campusnet.modules.notifications.schemas import (
    GroupUpdateMetadata, JoinRequestMetadata, NotificationCreate, NotificationType
)
from campusnet.modules.notifications.service import NotificationService


@pytest.fixture
def service(db):
    return NotificationService(db)


def seed_notification(db, user_id, read=False, metadata=None, title="Hello"):
    return db.seed("notifications", {
        "user_id": user_id,
        "title": title,
        "content": "...",
        "type": "info",
        "read": read,
        "metadata": metadata,
    })[0]["id"]


def test_inbox_newest_first_with_unread_count(db, service):
    seed_notification(db, "u1", title="first")
    seed_notification(db, "u1", title="second", read=True)
    seed_notification(db, "u1", title="third")
    seed_notification(db, "u2", title="someone else's")

    inbox = service.fetch_inbox("u1")

    assert [n.title for n in inbox.notifications] == ["third", "second", "first"]
    assert inbox.unread_count == 2
    assert service.unread_count("u1") == 2


def test_limited_inbox_reports_unread_count_of_whole_inbox(db, service):
    for title in ("first", "second", "third"):
        seed_notification(db, "u1", title=title)

    inbox = service.fetch_inbox("u1", limit=1)

    assert [n.title for n in inbox.notifications] == ["third"]
    assert inbox.unread_count == 3 == service.unread_count("u1")


def test_clearing_only_unread_drives_count_to_zero(db, service):
    unread = seed_notification(db, "u1")
    assert service.unread_count("u1") == 1

    service.clear(unread, "u1")

    assert service.unread_count("u1") == 0
    assert service.fetch_inbox("u1").notifications == []


def test_clearing_read_notification_leaves_count(db, service):
    seed_notification(db, "u1")
    read = seed_notification(db, "u1", read=True)

    service.clear(read, "u1")

    assert service.unread_count("u1") == 1


def test_mark_read_is_idempotent(db, service):
    notification_id = seed_notification(db, "u1")

    first = service.mark_read(notification_id, "u1")
    second = service.mark_read(notification_id, "u1")

    assert first.read and second.read
    assert service.unread_count("u1") == 0
    updates = [call for call in db.calls if call == ("notifications", "update")]
    assert len(updates) == 1


def test_mutations_are_scoped_to_recipient(db, service):
    notification_id = seed_notification(db, "u1")

    with pytest.raises(NotFound):
        service.mark_read(notification_id, "intruder")
    with pytest.raises(NotFound):
        service.clear(notification_id, "intruder")
    assert service.unread_count("u1") == 1


def test_mark_all_read_and_clear_all(db, service):
    for _ in range(3):
        seed_notification(db, "u1")
    seed_notification(db, "u2")

    assert service.mark_all_read("u1") == 3
    assert service.unread_count("u1") == 0
    assert service.unread_count("u2") == 1

    assert service.clear_all("u1") == 3
    assert db.rows("notifications", user_id="u2")


def test_metadata_round_trips_as_tagged_union(db, service):
    service.notify(NotificationCreate(
        user_id="u1",
        title="New Join Request",
        content="bob has requested to join Chess Club",
        type=NotificationType.GROUP_MEMBER,
        metadata=JoinRequestMetadata(group_id="g1", request_id="r1", user_id="bob")
    ))

    [notification] = service.fetch_inbox("u1").notifications

    assert isinstance(notification.metadata, JoinRequestMetadata)
    assert notification.metadata.request_id == "r1"


def test_malformed_metadata_does_not_break_inbox(db, service):
    seed_notification(db, "u1", metadata={"kind": "mystery", "x": 1})
    seed_notification(db, "u1", metadata={"kind": "group_update", "group_id": "g1"})

    inbox = service.fetch_inbox("u1")

    assert [n.metadata for n in inbox.notifications] == [None, None]


def test_fan_out_deduplicates_and_counts_failures(db, service):
    db.fail_next("notifications", "insert")

    result = service.fan_out(
        ["a", "b", "a", "c"],
        title="Group Renamed",
        content="...",
        type=NotificationType.GROUP_UPDATE,
        metadata=GroupUpdateMetadata(group_id="g1", action="group_renamed")
    )

    assert result.failed == 1
    assert sorted(n.user_id for n in result.created) == ["b", "c"]
    assert len(db.rows("notifications")) == 2


def test_fan_out_uses_writer_client(db):
    from tests.fake_supabase import FakeSupabase

    writer = FakeSupabase()
    service = NotificationService(db, writer=writer)

    service.fan_out(["a"], title="t", content="c", type=NotificationType.INFO)

    assert db.rows("notifications") == []
    assert len(writer.rows("notifications")) == 1


def test_read_failure_is_store_unavailable(db, service):
    db.fail_next("notifications", "select")
    with pytest.raises(StoreUnavailable):
        service.fetch_inbox("u1")
