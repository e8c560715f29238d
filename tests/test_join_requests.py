import pytest

from campusnet.core.exceptions import (
    AlreadyMember, Conflict, DuplicateRequest, LimitExceeded, NotFound, StoreUnavailable, Unauthorized
)
from campusnet.modules.groups.service import GroupService
from campusnet.modules.join_requests.schemas import JoinDecision, JoinRequestStatus
from campusnet.modules.join_requests.service import JoinRequestService


@pytest.fixture
def service(db):
    return JoinRequestService(db)


@pytest.fixture
def setup(make_user, make_group):
    admin = make_user("alice")
    student = make_user("bob")
    group_id = make_group(admin, name="CS101 Study Group")
    return admin, student, group_id


def test_submit_creates_pending_request_and_notifies_admins(db, service, setup, make_user, add_member):
    admin, student, group_id = setup
    co_admin = make_user("carol")
    add_member(group_id, co_admin, role="secondary_admin")

    request = service.submit_join_request(group_id, student)

    assert request.status is JoinRequestStatus.PENDING
    notified = {n["user_id"]: n for n in db.rows("notifications")}
    assert set(notified) == {admin, co_admin}
    metadata = notified[admin]["metadata"]
    assert metadata["kind"] == "join_request"
    assert metadata["request_id"] == request.id
    assert metadata["user_id"] == student
    assert notified[admin]["type"] == "group_member"


def test_second_submit_is_duplicate(db, service, setup):
    _, student, group_id = setup
    service.submit_join_request(group_id, student)

    with pytest.raises(DuplicateRequest):
        service.submit_join_request(group_id, student)

    pending = db.rows("group_join_requests", group_id=group_id, user_id=student, status="pending")
    assert len(pending) == 1


def test_submit_by_member_is_already_member(service, setup):
    admin, _, group_id = setup
    with pytest.raises(AlreadyMember):
        service.submit_join_request(group_id, admin)


def test_submit_to_unknown_group(service, make_user):
    user = make_user("dave")
    with pytest.raises(NotFound):
        service.submit_join_request("missing", user)


def test_submit_survives_notification_failure(db, service, setup):
    _, student, group_id = setup
    db.fail_next("notifications", "insert")

    request = service.submit_join_request(group_id, student)

    assert db.rows("group_join_requests", id=request.id)[0]["status"] == "pending"
    assert db.rows("notifications") == []


def test_approve_creates_membership_and_notifies(db, service, setup):
    admin, student, group_id = setup
    request = service.submit_join_request(group_id, student)

    resolved = service.resolve_join_request(request.id, admin, JoinDecision.APPROVE)

    assert resolved.status is JoinRequestStatus.APPROVED
    memberships = db.rows("group_members", group_id=group_id, user_id=student)
    assert len(memberships) == 1
    assert memberships[0]["role"] == "member"

    to_student = db.rows("notifications", user_id=student)
    assert len(to_student) == 1
    assert to_student[0]["metadata"]["action"] == "join_request_approved"

    audit = [n for n in db.rows("notifications", user_id=admin) if n["metadata"]["kind"] == "join_decision"]
    assert len(audit) == 1
    assert audit[0]["metadata"]["action"] == "join_approved"
    assert audit[0]["content"] == "bob has joined CS101 Study Group"


def test_cs101_approval_scenario(db, service, setup):
    admin, student, group_id = setup
    request = service.submit_join_request(group_id, student)
    assert [n["user_id"] for n in db.rows("notifications")] == [admin]

    service.resolve_join_request(request.id, admin, JoinDecision.APPROVE)

    status = GroupService(db).check_membership(group_id, student)
    assert status.is_member is True
    assert status.role == "member"
    assert db.rows("group_join_requests", id=request.id)[0]["status"] == "approved"


def test_cs101_rejection_scenario(db, service, setup):
    admin, student, group_id = setup
    request = service.submit_join_request(group_id, student)

    resolved = service.resolve_join_request(request.id, admin, JoinDecision.REJECT)

    assert resolved.status is JoinRequestStatus.REJECTED
    assert db.rows("group_members", group_id=group_id, user_id=student) == []
    to_student = db.rows("notifications", user_id=student)
    assert [n["metadata"]["action"] for n in to_student] == ["join_request_rejected"]
    assert GroupService(db).check_membership(group_id, student).is_member is False


def test_rejected_user_may_request_again(service, setup):
    admin, student, group_id = setup
    first = service.submit_join_request(group_id, student)
    service.resolve_join_request(first.id, admin, JoinDecision.REJECT)

    second = service.submit_join_request(group_id, student)

    assert second.id != first.id
    assert service.get_my_request(group_id, student).id == second.id


def test_resolving_twice_is_not_found(db, service, setup):
    admin, student, group_id = setup
    request = service.submit_join_request(group_id, student)
    service.resolve_join_request(request.id, admin, JoinDecision.APPROVE)

    with pytest.raises(NotFound):
        service.resolve_join_request(request.id, admin, JoinDecision.APPROVE)
    with pytest.raises(NotFound):
        service.resolve_join_request(request.id, admin, JoinDecision.REJECT)

    assert len(db.rows("group_members", group_id=group_id, user_id=student)) == 1


def test_concurrent_resolution_loses_conditional_update(db, service, setup):
    admin, student, group_id = setup
    request = service.submit_join_request(group_id, student)
    stale = service.get_request(request.id)
    # Another admin resolves in between
    db.tables["group_join_requests"][0]["status"] = "rejected"

    with pytest.raises(NotFound):
        service._transition(stale, JoinRequestStatus.APPROVED)
    assert db.rows("group_join_requests", id=request.id)[0]["status"] == "rejected"


def test_plain_member_cannot_resolve(service, setup, make_user, add_member):
    _, student, group_id = setup
    member = make_user("erin")
    add_member(group_id, member)
    request = service.submit_join_request(group_id, student)

    with pytest.raises(Unauthorized):
        service.resolve_join_request(request.id, member, JoinDecision.APPROVE)


def test_non_moderator_is_unauthorized_even_for_resolved_request(service, setup, make_user, add_member):
    admin, student, group_id = setup
    member = make_user("erin")
    add_member(group_id, member)
    request = service.submit_join_request(group_id, student)
    service.resolve_join_request(request.id, admin, JoinDecision.REJECT)

    with pytest.raises(Unauthorized):
        service.resolve_join_request(request.id, member, JoinDecision.APPROVE)


def test_secondary_admin_can_resolve(db, service, setup, make_user, add_member):
    _, student, group_id = setup
    helper = make_user("frank")
    add_member(group_id, helper, role="secondary_admin")
    request = service.submit_join_request(group_id, student)

    service.resolve_join_request(request.id, helper, JoinDecision.APPROVE)

    assert len(db.rows("group_members", group_id=group_id, user_id=student)) == 1


def test_approve_when_already_member_is_conflict(db, service, setup, add_member):
    admin, student, group_id = setup
    request = service.submit_join_request(group_id, student)
    add_member(group_id, student)

    with pytest.raises(Conflict):
        service.resolve_join_request(request.id, admin, JoinDecision.APPROVE)

    assert db.rows("group_join_requests", id=request.id)[0]["status"] == "approved"
    assert len(db.rows("group_members", group_id=group_id, user_id=student)) == 1
    assert db.rows("notifications", user_id=student) == []


def test_approve_reverts_when_membership_insert_fails(db, service, setup):
    admin, student, group_id = setup
    request = service.submit_join_request(group_id, student)
    db.fail_next("group_members", "insert")

    with pytest.raises(StoreUnavailable):
        service.resolve_join_request(request.id, admin, JoinDecision.APPROVE)

    assert db.rows("group_join_requests", id=request.id)[0]["status"] == "pending"
    assert db.rows("group_members", group_id=group_id, user_id=student) == []


def test_approve_into_full_group(db, service, make_user, make_group, add_member):
    admin = make_user("alice")
    student = make_user("bob")
    group_id = make_group(admin, max_members=2)
    add_member(group_id, make_user("carol"))
    request = service.submit_join_request(group_id, student)

    with pytest.raises(LimitExceeded):
        service.resolve_join_request(request.id, admin, JoinDecision.APPROVE)
    assert db.rows("group_join_requests", id=request.id)[0]["status"] == "pending"


def test_list_pending_requests_newest_first(service, setup, make_user):
    admin, student, group_id = setup
    other = make_user("gina")
    service.submit_join_request(group_id, student)
    service.submit_join_request(group_id, other)

    pending = service.list_pending_requests(group_id, admin)

    assert [r.username for r in pending] == ["gina", "bob"]


def test_list_pending_requests_requires_moderator(service, setup):
    _, student, group_id = setup
    with pytest.raises(Unauthorized):
        service.list_pending_requests(group_id, student)
