import pytest

from campusnet.core.exceptions import (
    Conflict, DuplicateRequest, NotFound, StoreUnavailable, Unauthorized, ValidationError
)
from campusnet.modules.friends.schemas import FriendRequestStatus
from campusnet.modules.friends.service import FriendService


@pytest.fixture
def service(db):
    return FriendService(db)


@pytest.fixture
def pair(make_user):
    return make_user("alice"), make_user("bob")


def test_send_request_notifies_receiver(db, service, pair):
    alice, bob = pair

    request = service.send_request(alice, bob)

    assert request.status is FriendRequestStatus.PENDING
    [notification] = db.rows("notifications", user_id=bob)
    assert notification["content"] == "alice sent you a friend request"
    assert notification["metadata"]["action"] == "friend_request_received"


def test_no_self_requests(service, pair):
    alice, _ = pair
    with pytest.raises(ValidationError):
        service.send_request(alice, alice)


def test_unknown_receiver(service, pair):
    alice, _ = pair
    with pytest.raises(NotFound):
        service.send_request(alice, "ghost")


def test_one_pending_request_per_pair(service, pair):
    alice, bob = pair
    service.send_request(alice, bob)

    with pytest.raises(DuplicateRequest):
        service.send_request(alice, bob)
    with pytest.raises(DuplicateRequest):
        service.send_request(bob, alice)


def test_accept_creates_single_edge(db, service, pair):
    alice, bob = pair
    request = service.send_request(alice, bob)

    accepted = service.respond(request.id, bob, accept=True)

    assert accepted.status is FriendRequestStatus.ACCEPTED
    assert len(db.rows("friends")) == 1
    assert service.are_friends(alice, bob) and service.are_friends(bob, alice)
    assert [f.profile.username for f in service.list_friends(alice)] == ["bob"]
    assert [f.profile.username for f in service.list_friends(bob)] == ["alice"]
    accepted_note = db.rows("notifications", user_id=alice)
    assert accepted_note[0]["metadata"]["action"] == "friend_request_accepted"

    with pytest.raises(Conflict):
        service.send_request(bob, alice)


def test_only_receiver_responds(service, pair):
    alice, bob = pair
    request = service.send_request(alice, bob)
    with pytest.raises(Unauthorized):
        service.respond(request.id, alice, accept=True)


def test_responding_twice_is_not_found(db, service, pair):
    alice, bob = pair
    request = service.send_request(alice, bob)
    service.respond(request.id, bob, accept=False)

    with pytest.raises(NotFound):
        service.respond(request.id, bob, accept=True)
    assert db.rows("friends") == []


def test_rejected_pair_can_request_again(service, pair):
    alice, bob = pair
    request = service.send_request(alice, bob)
    service.respond(request.id, bob, accept=False)

    again = service.send_request(bob, alice)

    assert again.status is FriendRequestStatus.PENDING


def test_received_and_sent_lists(service, pair, make_user):
    alice, bob = pair
    carol = make_user("carol")
    service.send_request(alice, bob)
    service.send_request(carol, bob)

    received = service.list_received(bob)
    assert [r.sender.username for r in received] == ["carol", "alice"]
    assert [r.receiver.username for r in service.list_sent(alice)] == ["bob"]


def test_remove_friend(db, service, pair):
    alice, bob = pair
    request = service.send_request(alice, bob)
    service.respond(request.id, bob, accept=True)

    service.remove_friend(bob, alice)

    assert not service.are_friends(alice, bob)
    with pytest.raises(NotFound):
        service.remove_friend(bob, alice)


def test_accept_reverts_when_friendship_insert_fails(db, service, pair):
    alice, bob = pair
    request = service.send_request(alice, bob)
    db.fail_next("friends", "insert")

    with pytest.raises(StoreUnavailable):
        service.respond(request.id, bob, accept=True)

    assert db.rows("friend_requests", id=request.id)[0]["status"] == "pending"
    assert db.rows("friends") == []
    assert service.respond(request.id, bob, accept=True).status is FriendRequestStatus.ACCEPTED


FILTER_INJECTION = "x),user_id1.neq.x,and(user_id1.eq.x"


def test_remove_friend_only_touches_own_friendship(db, service, pair, make_user):
    alice, bob = pair
    carol, dave = make_user("carol"), make_user("dave")
    db.seed("friends", {"user_id1": alice, "user_id2": bob}, {"user_id1": carol, "user_id2": dave})

    with pytest.raises(NotFound):
        service.remove_friend(alice, FILTER_INJECTION)

    assert len(db.rows("friends")) == 2
    assert service.are_friends(carol, dave)


def test_filter_syntax_in_ids_never_matches(db, service, pair, make_user):
    alice, bob = pair
    carol, dave = make_user("carol"), make_user("dave")
    db.seed("friends", {"user_id1": carol, "user_id2": dave})

    assert service.are_friends(alice, FILTER_INJECTION) is False
    assert service.are_friends(alice, bob) is False
