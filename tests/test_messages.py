import pytest

from campusnet.core.exceptions import NotFound, Unauthorized, ValidationError
from campusnet.core.realtime import group_topic, room_topic
from campusnet.modules.friends.service import FriendService
from campusnet.modules.groups.schemas import GroupSettingsUpdate, GroupUpdate
from campusnet.modules.groups.service import GroupService
from campusnet.modules.messages.schemas import MessageCreate
from campusnet.modules.messages.service import MessageService


@pytest.fixture
def service(db, hub):
    return MessageService(db, hub=hub)


@pytest.fixture
def group(make_user, make_group, add_member):
    admin = make_user("alice")
    member = make_user("bob")
    group_id = make_group(admin)
    add_member(group_id, member)
    return group_id, admin, member


@pytest.fixture
def friends(db, make_user):
    alice, bob = make_user("alice"), make_user("bob")
    friend_service = FriendService(db)
    request = friend_service.send_request(alice, bob)
    friend_service.respond(request.id, bob, accept=True)
    return alice, bob


def test_group_messages_oldest_first(service, group):
    group_id, admin, member = group
    service.send_group_message(group_id, admin, MessageCreate(content="first"))
    service.send_group_message(group_id, member, MessageCreate(content="second"))

    messages = service.list_group_messages(group_id, member)

    assert [m.content for m in messages] == ["first", "second"]


def test_empty_message_is_rejected(service, group):
    group_id, admin, _ = group
    with pytest.raises(ValidationError):
        service.send_group_message(group_id, admin, MessageCreate(content="   "))


def test_image_only_message(service, group):
    group_id, admin, _ = group
    message = service.send_group_message(group_id, admin, MessageCreate(image_url="https://img/x.png"))
    assert message.image_url == "https://img/x.png"
    assert message.content == ""


def test_membership_rechecked_at_send_time(db, service, group):
    group_id, admin, member = group
    service.send_group_message(group_id, member, MessageCreate(content="hi"))
    GroupService(db).remove_member(group_id, admin, member)

    with pytest.raises(Unauthorized):
        service.send_group_message(group_id, member, MessageCreate(content="still here?"))
    with pytest.raises(Unauthorized):
        service.list_group_messages(group_id, member)


def test_messages_of_deleted_group_are_not_found(db, service, group):
    group_id, admin, _ = group
    service.send_group_message(group_id, admin, MessageCreate(content="bye"))
    GroupService(db).delete_group(group_id, admin)

    with pytest.raises(NotFound):
        service.list_group_messages(group_id, admin)


def test_sender_deletes_own_message(db, service, group):
    group_id, _, member = group
    message = service.send_group_message(group_id, member, MessageCreate(content="oops"))

    service.delete_group_message(message.id, member)

    assert db.rows("group_messages") == []


def test_admin_deletion_follows_group_setting(db, service, group):
    group_id, admin, member = group
    first = service.send_group_message(group_id, member, MessageCreate(content="one"))
    second = service.send_group_message(group_id, member, MessageCreate(content="two"))

    service.delete_group_message(first.id, admin)
    GroupService(db).update_group(
        group_id, admin, GroupUpdate(settings=GroupSettingsUpdate(allow_message_deletion=False))
    )

    with pytest.raises(Unauthorized):
        service.delete_group_message(second.id, admin)
    assert [m["content"] for m in db.rows("group_messages")] == ["two"]


def test_member_cannot_delete_others_message(service, group):
    group_id, admin, member = group
    message = service.send_group_message(group_id, admin, MessageCreate(content="mine"))
    with pytest.raises(Unauthorized):
        service.delete_group_message(message.id, member)


@pytest.mark.asyncio
async def test_send_publishes_to_group_topic(service, hub, group):
    group_id, admin, _ = group
    with hub.subscription(group_topic(group_id)) as subscription:
        message = service.send_group_message(group_id, admin, MessageCreate(content="live"))
        event = await subscription.get(timeout=1)
    assert event["id"] == message.id
    assert hub.subscriber_count(group_topic(group_id)) == 0


def test_direct_room_requires_friendship(service, make_user):
    alice, carol = make_user("alice"), make_user("carol")
    with pytest.raises(Unauthorized):
        service.get_or_create_room(alice, carol)


def test_direct_room_ignores_filter_syntax_in_user_id(db, service, friends, make_user):
    alice, _ = friends
    with pytest.raises(Unauthorized):
        service.get_or_create_room(alice, "x),user_id1.neq.x,and(user_id1.eq.x")
    assert db.rows("chat_rooms") == []


def test_direct_room_is_reused(db, service, friends):
    alice, bob = friends

    room = service.get_or_create_room(alice, bob)
    again = service.get_or_create_room(bob, alice)

    assert room.id == again.id
    assert len(db.rows("chat_rooms")) == 1
    assert {p.username for p in room.participants} == {"alice", "bob"}
    assert [r.id for r in service.list_rooms(bob)] == [room.id]


@pytest.mark.asyncio
async def test_room_messages_are_participant_only(service, hub, friends, make_user):
    alice, bob = friends
    outsider = make_user("mallory")
    room = service.get_or_create_room(alice, bob)

    with hub.subscription(room_topic(room.id)) as subscription:
        sent = service.send_room_message(room.id, alice, MessageCreate(content="hey"))
        event = await subscription.get(timeout=1)

    assert event["id"] == sent.id
    assert [m.content for m in service.list_room_messages(room.id, bob)] == ["hey"]
    with pytest.raises(Unauthorized):
        service.list_room_messages(room.id, outsider)
    with pytest.raises(Unauthorized):
        service.send_room_message(room.id, outsider, MessageCreate(content="let me in"))
    with pytest.raises(NotFound):
        service.list_room_messages("missing", alice)
