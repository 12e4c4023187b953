import pytest

from erp_backend.auth.permissions import (
    Capability,
    RequestContext,
    UserRole,
    capabilities_for,
    resolve_role,
)
from erp_backend.config import Settings
from erp_backend.errors import ConfigError, Forbidden, NotFound
from erp_backend.models.user import User


def test_super_admin_has_every_capability():
    assert capabilities_for(UserRole.SUPER_ADMIN) == frozenset(Capability)


def test_only_super_admin_reviews_and_reports():
    for role in (UserRole.ADMIN, UserRole.USER):
        caps = capabilities_for(role)
        assert Capability.REVIEW_TASKS not in caps
        assert Capability.VIEW_REPORTS not in caps


def test_resolve_role(db, make_user):
    admin = make_user(UserRole.ADMIN)
    assert resolve_role(db, admin.id) == UserRole.ADMIN


def test_resolve_role_without_role_row(db):
    user = User(email="norole@example.com")
    db.add(user)
    db.commit()
    with pytest.raises(NotFound):
        resolve_role(db, user.id)


def test_resolve_role_with_dangling_role_id(db):
    user = User(email="dangling@example.com", role_id=999)
    db.add(user)
    db.commit()
    with pytest.raises(NotFound, match="Role not found"):
        resolve_role(db, user.id)


def test_resolve_role_for_missing_user(db):
    with pytest.raises(NotFound):
        resolve_role(db, 12345)


def test_context_require(db, make_user):
    ctx = RequestContext.for_user(db, make_user(UserRole.USER, full_name="Sam"))
    assert ctx.display_name == "Sam"
    assert ctx.can(Capability.UPDATE_TASK_STATUS)
    with pytest.raises(Forbidden, match="Missing permission: assign_tasks"):
        ctx.require(Capability.ASSIGN_TASKS)


def test_settings_require_lists_every_missing_key():
    settings = Settings(resend_api_key="x")
    with pytest.raises(ConfigError, match="RESEND_FROM_EMAIL, APP_URL"):
        settings.require("resend_api_key", "resend_from_email", "app_url")


# -------------------------
# Auth routes
# -------------------------

def test_register_login_me(client):
    resp = client.post(
        "/auth/register",
        json={
            "email": "new@example.com",
            "full_name": "New Person",
            "password": "s3cret-pass",
            "confirm_password": "s3cret-pass",
        },
    )
    assert resp.status_code == 201

    login = client.post("/auth/login", json={"email": "new@example.com", "password": "s3cret-pass"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["email"] == "new@example.com"
    assert me["role"] == "user"
    assert "review_tasks" not in me["capabilities"]


def test_register_rejects_mismatched_passwords(client):
    resp = client.post(
        "/auth/register",
        json={"email": "x@example.com", "password": "a", "confirm_password": "b"},
    )
    assert resp.status_code == 400


def test_login_with_wrong_password(client):
    client.post(
        "/auth/register",
        json={"email": "y@example.com", "password": "right", "confirm_password": "right"},
    )
    resp = client.post("/auth/login", json={"email": "y@example.com", "password": "wrong"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid credentials"}


def test_deleted_user_token_is_not_found(client, db, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)
    user.deleted_at = user.created_at
    db.commit()

    assert client.get("/auth/me", headers=headers).status_code == 404
