import pytest

from campusnet.core.exceptions import NotFound
from campusnet.modules.friends.service import FriendService
from campusnet.modules.profiles.schemas import ProfileUpdate
from campusnet.modules.profiles.service import ProfileService


@pytest.fixture
def service(db):
    return ProfileService(db)


def test_get_and_update_profile(service, make_user):
    alice = make_user("alice")

    updated = service.update_profile(alice, ProfileUpdate(bio="Chess and coffee"))

    assert updated.bio == "Chess and coffee"
    assert service.get_profile(alice).username == "alice"
    with pytest.raises(NotFound):
        service.get_profile("ghost")


def test_search_matches_username_or_university(service, make_user):
    me = make_user("alice", university="McGill")
    make_user("bobby", university="Concordia")
    make_user("carol", university="McGill")

    assert {p.username for p in service.search_profiles("BOB", me)} == {"bobby"}
    assert {p.username for p in service.search_profiles("mcgill", me)} == {"carol"}


def test_search_ignores_filter_syntax(service, make_user):
    me = make_user("alice")
    assert service.search_profiles("(),*", me) == []


def test_suggestions_exclude_friends_and_pending_and_prefer_university(db, service, make_user):
    me = make_user("alice", university="McGill")
    friend = make_user("bob", university="McGill")
    pending = make_user("carol", university="McGill")
    make_user("dave", university="Concordia")
    make_user("erin", university="McGill")

    friends = FriendService(db)
    request = friends.send_request(me, friend)
    friends.respond(request.id, friend, accept=True)
    friends.send_request(pending, me)

    suggestions = [p.username for p in service.suggest_people(me)]

    assert suggestions == ["erin", "dave"]


def test_set_avatar(service, make_user):
    alice = make_user("alice")
    assert service.set_avatar(alice, "https://storage.test/avatars/a.png").avatar_url.endswith("a.png")
