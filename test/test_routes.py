"""
HTTP route tests

The app is built with create_app(); start-up is not run, so the services it
would create are replaced on app.state and the tenant session dependency is
overridden with a mock.
"""

import time
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from utils.mocks import FakeRouter, make_group_row, make_result

from main import create_app
from saas.dependencies import get_tenant_db
from saas.exceptions import (
    AuthorizationError,
    DuplicateResourceError,
    GroupNotFoundError,
    InvalidCredentialsError,
    ProtectedResourceError,
)
from saas.models.permission import Permission
from saas.models.user import User
from saas.services.permission_store import GroupRecord
from saas.services.tenant_service import TenantSetupResult


@pytest.fixture
def app(settings, token_service, mock_db):
    app = create_app(settings)
    app.state.token_service = token_service
    app.state.router = FakeRouter(db=mock_db, existing={"acme"})

    authorization = MagicMock()
    authorization.require_permissions = AsyncMock()
    authorization.user_has_any_permission = AsyncMock(return_value=True)
    app.state.authorization_service = authorization

    app.state.tenant_service = MagicMock()

    async def tenant_db():
        yield mock_db

    app.dependency_overrides[get_tenant_db] = tenant_db
    return app


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://acme.localhost") as client:
        yield client


@pytest.fixture
def auth_headers(token_service):
    return {"Authorization": f"Bearer {token_service.issue_access_token(1, 'acme')}"}


# ── Health ────────────────────────────────────────────────────────────────────


class TestHealth:
    async def test_health(self, client, settings):
        response = await client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["app"] == settings.app_name

    async def test_database_health(self, client, app):
        conn = AsyncMock()
        engine = MagicMock()
        engine.connect.return_value.__aenter__.return_value = conn
        app.state.engine = engine
        response = await client.get("/api/health/db")
        assert response.status_code == 200
        conn.execute.assert_awaited_once()

    async def test_database_unreachable(self, client, app):
        engine = MagicMock()
        engine.connect.return_value.__aenter__.side_effect = OSError("connection refused")
        app.state.engine = engine
        response = await client.get("/api/health/db")
        assert response.status_code == 503
        assert response.json()["error"]["error_code"] == "DATABASE_CONNECTION_FAILED"


# ── Authentication ────────────────────────────────────────────────────────────


class TestAuthRoutes:
    async def test_login_sets_tokens_and_cookies(self, client, token_service):
        with patch("saas.routes.auth.UserService") as user_service:
            user_service.return_value.authenticate = AsyncMock(return_value=SimpleNamespace(id=5))
            response = await client.post("/api/auth/login", json={"login": "alice", "password": "s3cret"})
        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["expires_in"] == 900
        claims = token_service.validate_access(body["access_token"])
        assert (claims.user_id, claims.tenant_id) == (5, "acme")
        assert token_service.validate_refresh(body["refresh_token"]).user_id == 5
        set_cookie = ",".join(response.headers.get_list("set-cookie"))
        assert f"access_token={body['access_token']}" in set_cookie
        assert "HttpOnly" in set_cookie

    async def test_login_bad_credentials(self, client):
        with patch("saas.routes.auth.UserService") as user_service:
            user_service.return_value.authenticate = AsyncMock(side_effect=InvalidCredentialsError())
            response = await client.post("/api/auth/login", json={"login": "alice", "password": "nope"})
        assert response.status_code == 401
        assert response.json()["error"]["error_code"] == "AUTH_INVALID_CREDENTIALS"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    async def test_refresh_from_body(self, client, token_service):
        pair = token_service.issue_tokens(5, "acme")
        response = await client.post("/api/auth/refresh", json={"refresh_token": pair.refresh_token})
        assert response.status_code == 200
        assert token_service.validate_access(response.json()["access_token"]).user_id == 5

    async def test_refresh_from_cookie(self, client, token_service):
        pair = token_service.issue_tokens(5, "acme")
        client.cookies.set("refresh_token", pair.refresh_token)
        response = await client.post("/api/auth/refresh")
        assert response.status_code == 200

    async def test_refresh_with_access_token_rejected(self, client, token_service):
        pair = token_service.issue_tokens(5, "acme")
        response = await client.post("/api/auth/refresh", json={"refresh_token": pair.access_token})
        assert response.status_code == 401
        assert response.json()["error"]["error_code"] == "TOKEN_INVALID_REFRESH"

    async def test_refresh_without_token(self, client):
        response = await client.post("/api/auth/refresh")
        assert response.status_code == 401

    async def test_verify(self, client, auth_headers):
        response = await client.get("/api/auth/verify", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["user_id"] == 1
        assert response.json()["tenant_id"] == "acme"

    async def test_verify_from_cookie(self, client, token_service):
        client.cookies.set("access_token", token_service.issue_access_token(1, "acme"))
        response = await client.get("/api/auth/verify")
        assert response.status_code == 200

    async def test_verify_expired(self, client):
        now = int(time.time())
        claims = {
            "user_id": 1,
            "tenant_id": "acme",
            "iss": "saas-access",
            "iat": now - 960,
            "nbf": now - 960,
            "exp": now - 60,
        }
        headers = {"Authorization": f"Bearer {jwt.encode(claims, 'test-access-secret', algorithm='HS256')}"}
        response = await client.get("/api/auth/verify", headers=headers)
        assert response.status_code == 401
        assert response.json()["error"]["error_code"] == "TOKEN_EXPIRED"

    async def test_token_for_other_tenant_rejected(self, client, token_service):
        headers = {"Authorization": f"Bearer {token_service.issue_access_token(1, 'globex')}"}
        response = await client.get("/api/auth/verify", headers=headers)
        assert response.status_code == 401
        assert response.json()["error"]["error_code"] == "AUTH_FAILED"

    async def test_logout_clears_cookies(self, client):
        response = await client.post("/api/auth/logout")
        assert response.status_code == 200
        set_cookie = ",".join(response.headers.get_list("set-cookie"))
        assert "access_token=" in set_cookie
        assert "refresh_token=" in set_cookie

    async def test_register(self, client, app):
        user = User(
            id=7, username="alice", email="alice@example.com", password="x", first_name="", last_name="", status="active"
        )
        with patch("saas.routes.auth.UserService") as user_service:
            user_service.return_value.create_user = AsyncMock(return_value=user)
            response = await client.post(
                "/api/auth/register",
                json={"username": "alice", "email": "alice@example.com", "password": "s3cret-pass"},
            )
        assert response.status_code == 201
        assert response.json()["id"] == 7
        assert "password" not in response.json()
        user_service.return_value.create_user.assert_awaited_once_with(
            username="alice", email="alice@example.com", password="s3cret-pass", first_name="", last_name=""
        )
        app.state.authorization_service.require_permissions.assert_not_awaited()

    async def test_register_duplicate(self, client):
        with patch("saas.routes.auth.UserService") as user_service:
            user_service.return_value.create_user = AsyncMock(
                side_effect=DuplicateResourceError("User", "username", "alice")
            )
            response = await client.post(
                "/api/auth/register",
                json={"username": "alice", "email": "alice@example.com", "password": "s3cret-pass"},
            )
        assert response.status_code == 409

    @pytest.mark.parametrize(
        "payload",
        [
            {"username": "alice", "email": "alice@example.com", "password": "short"},
            {"username": "alice", "email": "not-an-email", "password": "s3cret-pass"},
            {"username": "al", "email": "alice@example.com", "password": "s3cret-pass"},
        ],
    )
    async def test_register_validation(self, client, payload):
        response = await client.post("/api/auth/register", json=payload)
        assert response.status_code == 422
        assert response.json()["error"]["error_code"] == "VALIDATION_FAILED"

    async def test_change_password(self, client, auth_headers):
        with patch("saas.routes.auth.UserService") as user_service:
            user_service.return_value.change_password = AsyncMock()
            response = await client.post(
                "/api/auth/change-password",
                json={"current_password": "old-pass", "new_password": "new-pass1"},
                headers=auth_headers,
            )
        assert response.status_code == 200
        user_service.return_value.change_password.assert_awaited_once_with(1, "old-pass", "new-pass1")

    async def test_change_password_wrong_current(self, client, auth_headers):
        with patch("saas.routes.auth.UserService") as user_service:
            user_service.return_value.change_password = AsyncMock(
                side_effect=InvalidCredentialsError("Current password is incorrect")
            )
            response = await client.post(
                "/api/auth/change-password",
                json={"current_password": "nope", "new_password": "new-pass1"},
                headers=auth_headers,
            )
        assert response.status_code == 401
        assert response.json()["error"]["error_code"] == "AUTH_INVALID_CREDENTIALS"

    async def test_change_password_requires_token(self, client):
        response = await client.post(
            "/api/auth/change-password", json={"current_password": "old-pass", "new_password": "new-pass1"}
        )
        assert response.status_code == 401
        assert response.json()["error"]["error_code"] == "AUTH_FAILED"


# ── Tenants ───────────────────────────────────────────────────────────────────


class TestTenantRoutes:
    async def test_setup_defaults_to_request_tenant(self, client, app):
        app.state.tenant_service.setup_tenant = AsyncMock(
            return_value=TenantSetupResult("acme", ["groups_permissions", "users"], ["user_view"])
        )
        response = await client.post("/api/tenant/setup")
        assert response.status_code == 200
        assert response.json()["tenant"] == "acme"
        app.state.tenant_service.setup_tenant.assert_awaited_once_with("acme", None)

    async def test_setup_with_capabilities(self, client, app):
        app.state.tenant_service.setup_tenant = AsyncMock(return_value=TenantSetupResult("acme", ["users"], []))
        response = await client.post("/api/tenant/setup", json={"capabilities": ["users"]})
        assert response.status_code == 200
        app.state.tenant_service.setup_tenant.assert_awaited_once_with("acme", ["users"])

    async def test_setup_cannot_name_another_tenant(self, client, app):
        app.state.tenant_service.setup_tenant = AsyncMock()
        response = await client.post("/api/tenant/setup", json={"tenant": "globex", "capabilities": ["users"]})
        assert response.status_code == 422
        assert response.json()["error"]["error_code"] == "VALIDATION_FAILED"
        app.state.tenant_service.setup_tenant.assert_not_awaited()

    async def test_info(self, client):
        response = await client.get("/api/tenant/info")
        assert response.json() == {
            "tenant": "acme",
            "provisioned": True,
            "capabilities": ["groups_permissions", "users"],
        }


# ── Groups ────────────────────────────────────────────────────────────────────


class TestGroupRoutes:
    async def test_requires_token(self, client):
        response = await client.get("/api/groups")
        assert response.status_code == 401
        assert response.json()["error"]["error_code"] == "AUTH_FAILED"

    async def test_requires_permission(self, client, app, auth_headers):
        app.state.authorization_service.require_permissions.side_effect = AuthorizationError(
            "Missing required permission: group_view", required_permission="group_view"
        )
        response = await client.get("/api/groups", headers=auth_headers)
        assert response.status_code == 403
        assert response.json()["error"]["details"] == {"required_permission": "group_view"}

    async def test_list(self, client, app, mock_db, auth_headers):
        mock_db.execute.return_value = make_result(rows=[make_group_row(1, "admin", [1, 2])])
        response = await client.get("/api/groups", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()[0]["permission_ids"] == [1, 2]
        app.state.authorization_service.require_permissions.assert_awaited_once_with("acme", 1, ("group_view",))

    async def test_create(self, client, auth_headers):
        with patch("saas.routes.groups.PermissionStore") as store_cls:
            store_cls.return_value.create_group = AsyncMock(return_value=GroupRecord(id=3, name="editors"))
            response = await client.post("/api/groups", json={"name": "editors"}, headers=auth_headers)
        assert response.status_code == 201
        assert response.json()["id"] == 3

    async def test_delete_admin_forbidden(self, client, auth_headers):
        with patch("saas.routes.groups.PermissionStore") as store_cls:
            store_cls.return_value.delete_group = AsyncMock(
                side_effect=ProtectedResourceError("Cannot delete protected group 'admin'")
            )
            response = await client.delete("/api/groups/1", headers=auth_headers)
        assert response.status_code == 403
        assert response.json()["error"]["error_code"] == "RESOURCE_PROTECTED"

    async def test_set_permissions(self, client, auth_headers):
        with patch("saas.routes.groups.PermissionStore") as store_cls:
            store_cls.return_value.set_group_permissions = AsyncMock(
                return_value=GroupRecord(id=2, name="editors", permission_ids=[3, 4])
            )
            response = await client.put(
                "/api/groups/2/permissions", json={"permission_ids": [3, 4]}, headers=auth_headers
            )
        assert response.status_code == 200
        store_cls.return_value.set_group_permissions.assert_awaited_once_with(2, [3, 4])

    async def test_grant_and_revoke(self, client, auth_headers):
        with patch("saas.routes.groups.PermissionStore") as store_cls:
            store_cls.return_value.add_permission_to_group = AsyncMock()
            store_cls.return_value.remove_permission_from_group = AsyncMock()
            granted = await client.post("/api/groups/2/permissions", json={"permission_id": 3}, headers=auth_headers)
            revoked = await client.delete("/api/groups/2/permissions/3", headers=auth_headers)
        assert granted.status_code == 201
        assert revoked.status_code == 200
        store_cls.return_value.remove_permission_from_group.assert_awaited_once_with(2, 3)

    async def test_validation_error_envelope(self, client, auth_headers):
        response = await client.post("/api/groups", json={"name": ""}, headers=auth_headers)
        assert response.status_code == 422
        assert response.json()["error"]["error_code"] == "VALIDATION_FAILED"


# ── Permissions ───────────────────────────────────────────────────────────────


class TestPermissionRoutes:
    async def test_list(self, client, mock_db, auth_headers):
        mock_db.execute.return_value = make_result(scalars=[Permission(id=1, name="user_view")])
        response = await client.get("/api/permissions", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()[0]["name"] == "user_view"

    async def test_delete_system_permission_forbidden(self, client, mock_db, auth_headers):
        mock_db.get.return_value = Permission(id=1, name="user_view")
        response = await client.delete("/api/permissions/1", headers=auth_headers)
        assert response.status_code == 403
        assert response.json()["error"]["details"] == {"permission": "user_view"}

    async def test_get_missing(self, client, mock_db, auth_headers):
        mock_db.get.return_value = None
        response = await client.get("/api/permissions/99", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error"]["error_code"] == "RESOURCE_NOT_FOUND"


# ── Users ─────────────────────────────────────────────────────────────────────


class TestUserRoutes:
    async def test_get_accepts_any_listed_permission(self, client, app, mock_db, auth_headers):
        mock_db.get.return_value = User(
            id=5, username="bob", email="bob@example.com", password="x", first_name="", last_name="", status="active"
        )
        response = await client.get("/api/users/5", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["username"] == "bob"
        app.state.authorization_service.user_has_any_permission.assert_awaited_once_with(
            "acme", 1, ("user_view", "user_update")
        )

    async def test_get_without_any_permission(self, client, app, auth_headers):
        app.state.authorization_service.user_has_any_permission.return_value = False
        response = await client.get("/api/users/5", headers=auth_headers)
        assert response.status_code == 403
        assert response.json()["error"]["details"] == {"required_permission": "user_view"}

    async def test_get_missing(self, client, mock_db, auth_headers):
        mock_db.get.return_value = None
        response = await client.get("/api/users/99", headers=auth_headers)
        assert response.status_code == 404

    async def test_list_groups(self, client, app, auth_headers):
        with patch("saas.routes.users.UserService") as user_service:
            user_service.return_value.get_user = AsyncMock()
            user_service.return_value.get_user_group_ids = AsyncMock(return_value=[1, 4])
            response = await client.get("/api/users/5/groups", headers=auth_headers)
        assert response.json() == {"user_id": 5, "group_ids": [1, 4]}
        app.state.authorization_service.require_permissions.assert_awaited_once_with("acme", 1, ("user_view",))

    async def test_set_groups(self, client, app, auth_headers):
        with patch("saas.routes.users.UserService") as user_service:
            user_service.return_value.set_user_groups = AsyncMock(return_value=[2, 3])
            response = await client.put("/api/users/5/groups", json={"group_ids": [3, 2]}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"user_id": 5, "group_ids": [2, 3]}
        user_service.return_value.set_user_groups.assert_awaited_once_with(5, [3, 2])
        app.state.authorization_service.require_permissions.assert_awaited_once_with("acme", 1, ("user_update",))

    async def test_set_groups_requires_user_update(self, client, app, auth_headers):
        app.state.authorization_service.require_permissions.side_effect = AuthorizationError(
            "Missing required permission: user_update", required_permission="user_update"
        )
        response = await client.put("/api/users/5/groups", json={"group_ids": []}, headers=auth_headers)
        assert response.status_code == 403
        assert response.json()["error"]["details"] == {"required_permission": "user_update"}

    async def test_set_groups_unknown_group(self, client, auth_headers):
        with patch("saas.routes.users.UserService") as user_service:
            user_service.return_value.set_user_groups = AsyncMock(side_effect=GroupNotFoundError(9))
            response = await client.put("/api/users/5/groups", json={"group_ids": [9]}, headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error"]["error_code"] == "RESOURCE_NOT_FOUND"
