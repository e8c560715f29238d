import pytest

from campusnet.core.exceptions import NotFound, Unauthorized, ValidationError
from campusnet.modules.posts.schemas import CommentCreate, PostCreate
from campusnet.modules.posts.service import PostService


@pytest.fixture
def service(db):
    return PostService(db)


@pytest.fixture
def users(make_user):
    return make_user("alice"), make_user("bob")


def test_empty_post_is_rejected(service, users):
    alice, _ = users
    with pytest.raises(ValidationError):
        service.create_post(alice, PostCreate(content="  "))


def test_feed_newest_first_with_counts(service, users):
    alice, bob = users
    first = service.create_post(alice, PostCreate(content="hello campus"))
    service.create_post(bob, PostCreate(image_url="https://img/sunset.png"))
    service.like(first.id, bob)
    service.add_comment(first.id, bob, CommentCreate(content="welcome!"))

    feed = service.list_feed(viewer_id=bob)

    assert [p.author.username for p in feed] == ["bob", "alice"]
    assert feed[1].like_count == 1
    assert feed[1].comment_count == 1
    assert feed[1].liked_by_me is True
    assert feed[0].like_count == 0


def test_like_is_idempotent(db, service, users):
    alice, bob = users
    post = service.create_post(alice, PostCreate(content="x"))

    service.like(post.id, bob)
    result = service.like(post.id, bob)

    assert result.like_count == 1
    assert len(db.rows("likes")) == 1

    assert service.unlike(post.id, bob).like_count == 0


def test_only_owner_deletes_post(db, service, users):
    alice, bob = users
    post = service.create_post(alice, PostCreate(content="x"))
    service.like(post.id, bob)
    service.add_comment(post.id, bob, CommentCreate(content="nice"))

    with pytest.raises(Unauthorized):
        service.delete_post(post.id, bob)

    service.delete_post(post.id, alice)
    assert db.rows("posts") == []
    assert db.rows("likes") == []
    assert db.rows("comments") == []
    with pytest.raises(NotFound):
        service.get_post(post.id)


def test_comments_oldest_first(service, users):
    alice, bob = users
    post = service.create_post(alice, PostCreate(content="x"))
    service.add_comment(post.id, bob, CommentCreate(content="first"))
    service.add_comment(post.id, alice, CommentCreate(content="second"))

    comments = service.list_comments(post.id)

    assert [(c.author.username, c.content) for c in comments] == [("bob", "first"), ("alice", "second")]
    with pytest.raises(ValidationError):
        service.add_comment(post.id, bob, CommentCreate(content=" "))
