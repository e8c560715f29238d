import pytest
from fastapi import HTTPException

from campusnet.modules.auth.schemas import LoginRequest, RegisterRequest
from campusnet.modules.auth.service import AuthService


@pytest.fixture
def service(db):
    return AuthService(db)


def test_register_creates_profile(db, service):
    response = service.register(RegisterRequest(
        email="alice@mcgill.ca", password="secret1", username="alice", university="McGill"
    ))

    [profile] = db.rows("profiles", id=response.user_id)
    assert profile["username"] == "alice"
    assert profile["university"] == "McGill"


def test_register_rejects_taken_username(db, service, make_user):
    make_user("alice")
    with pytest.raises(HTTPException) as exc:
        service.register(RegisterRequest(
            email="other@mcgill.ca", password="secret1", username="alice", university="McGill"
        ))
    assert exc.value.status_code == 400


def test_login_and_resolve_token(db, service):
    registered = service.register(RegisterRequest(
        email="alice@mcgill.ca", password="secret1", username="alice", university="McGill"
    ))

    token = service.login(LoginRequest(email="alice@mcgill.ca", password="secret1"))

    assert service.get_current_user(token.access_token)["id"] == registered.user_id
    with pytest.raises(HTTPException) as exc:
        service.login(LoginRequest(email="alice@mcgill.ca", password="wrong"))
    assert exc.value.status_code == 401


def test_current_user_is_cached_until_logout(db, service, make_user):
    make_user("alice")

    service.get_current_user("alice")
    service.get_current_user("alice")
    assert db.auth.get_user_calls == 1

    service.logout("alice")
    service.get_current_user("alice")
    assert db.auth.get_user_calls == 2


def test_invalid_token(service):
    with pytest.raises(HTTPException) as exc:
        service.get_current_user("garbage")
    assert exc.value.status_code == 401
