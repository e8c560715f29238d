import pytest
from fastapi.testclient import TestClient

from campusnet.core.realtime import RealtimeHub
from campusnet.database.supabase_client import get_service_supabase, get_supabase
from campusnet.main import app
from campusnet.modules.auth.service import clear_auth_cache
from campusnet.modules.groups.schemas import GroupCreate
from campusnet.modules.groups.service import GroupService
from tests.fake_supabase import FakeSupabase


@pytest.fixture(autouse=True)
def reset_auth_cache():
    clear_auth_cache()
    yield
    clear_auth_cache()


@pytest.fixture
def db():
    return FakeSupabase()


@pytest.fixture
def hub():
    return RealtimeHub(queue_size=10)


@pytest.fixture
def make_user(db):
    """Seed a profile (and a bearer token equal to the username)"""
    def _make(username, university="McGill"):
        profile = db.seed("profiles", {
            "username": username,
            "full_name": username.title(),
            "university": university,
        })[0]
        db.auth.add_token(username, profile["id"])
        return profile["id"]
    return _make


@pytest.fixture
def make_group(db):
    def _make(admin_id, name="Chess Club", **fields):
        group = GroupService(db).create_group(GroupCreate(name=name, description="Weekly games"), admin_id)
        if fields:
            db.tables["groups"][-1].update(fields)
        return group.id
    return _make


@pytest.fixture
def add_member(db):
    def _add(group_id, user_id, role="member"):
        db.seed("group_members", {"group_id": group_id, "user_id": user_id, "role": role})
    return _add


@pytest.fixture
def client(db):
    app.dependency_overrides[get_supabase] = lambda: db
    app.dependency_overrides[get_service_supabase] = lambda: db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


