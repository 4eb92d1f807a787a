# tests/test_api_auth.py
# 认证 API 测试

import pytest

from app.core.config import settings


class TestAuthAPI:
    """登录、注册、会话"""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert "X-Request-ID" in response.headers

    @pytest.mark.asyncio
    async def test_detailed_health_without_redis(self, client):
        response = await client.get("/health/detailed", headers={"X-Request-ID": "req-1"})

        body = response.json()
        assert body["status"] == "degraded"
        assert body["services"]["database"] == "connected"
        assert body["services"]["workflow_statuses"] == "ok"
        assert body["services"]["redis"] == "disconnected"
        assert response.headers["X-Request-ID"] == "req-1"

    @pytest.mark.asyncio
    async def test_protected_route_requires_cookie(self, client):
        response = await client.get("/api/settings/pricing")

        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"

    @pytest.mark.asyncio
    async def test_signup_logs_in_as_super_admin(self, client):
        response = await client.post(
            "/api/auth/signup",
            json={"email": "owner@example.com", "password": "secret1", "name": "Owner"},
        )

        assert response.status_code == 201
        assert response.json()["user"]["role_key"] == "super_admin"
        assert settings.SESSION_COOKIE_NAME in response.cookies

        me = await client.get("/api/auth/me")
        assert me.status_code == 200
        assert me.json()["email"] == "owner@example.com"

    @pytest.mark.asyncio
    async def test_login(self, client):
        await client.post(
            "/api/auth/signup",
            json={"email": "owner@example.com", "password": "secret1", "name": "Owner"},
        )
        client.cookies.clear()

        bad = await client.post("/api/auth/login", json={"username": "owner@example.com", "password": "nope"})
        good = await client.post("/api/auth/login", json={"username": "owner@example.com", "password": "secret1"})

        assert bad.status_code == 401
        assert good.status_code == 200
        assert good.json()["user"]["name"] == "Owner"

    @pytest.mark.asyncio
    async def test_duplicate_signup(self, client):
        payload = {"email": "owner@example.com", "password": "secret1", "name": "Owner"}
        await client.post("/api/auth/signup", json=payload)

        response = await client.post("/api/auth/signup", json=payload)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_short_password_is_400_with_field_errors(self, client):
        response = await client.post(
            "/api/auth/signup",
            json={"email": "owner@example.com", "password": "123", "name": "Owner"},
        )

        body = response.json()
        assert response.status_code == 400
        assert body["errors"][0]["loc"][-1] == "password"
        assert "password" in body["detail"]

    @pytest.mark.asyncio
    async def test_session_cookie_from_fixture(self, admin_client):
        response = await admin_client.get("/api/auth/me")

        assert response.json()["role_key"] == "super_admin"


class TestCmsUsersAPI:
    """后台账号管理"""

    @pytest.mark.asyncio
    async def test_crud(self, admin_client):
        created = await admin_client.post(
            "/api/cms-users", json={"email": "ops@example.com", "password": "secret1", "name": "Ops"},
        )
        user_id = created.json()["user"]["id"]
        duplicate = await admin_client.post(
            "/api/cms-users", json={"email": "ops@example.com", "password": "secret1", "name": "Ops 2"},
        )
        updated = await admin_client.put(f"/api/cms-users/{user_id}", json={"name": "Operations"})
        listed = await admin_client.get("/api/cms-users")

        assert created.status_code == 201
        assert "password_hash" not in created.json()["user"]
        assert duplicate.status_code == 409
        assert updated.json()["user"]["name"] == "Operations"
        assert [u["email"] for u in listed.json()["users"]] == ["ops@example.com"]

    @pytest.mark.asyncio
    async def test_short_password_is_400(self, admin_client):
        response = await admin_client.post(
            "/api/cms-users", json={"email": "ops@example.com", "password": "123", "name": "Ops"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_delete(self, admin_client, super_admin):
        first = await admin_client.post(
            "/api/cms-users", json={"email": "a@example.com", "password": "secret1", "name": "A"},
        )
        second = await admin_client.post(
            "/api/cms-users", json={"email": "b@example.com", "password": "secret1", "name": "B"},
        )
        own_id, other_id = first.json()["user"]["id"], second.json()["user"]["id"]
        assert own_id == super_admin.user_id

        own = await admin_client.delete(f"/api/cms-users/{own_id}")
        other = await admin_client.delete(f"/api/cms-users/{other_id}")
        missing = await admin_client.get(f"/api/cms-users/{other_id}")

        assert own.status_code == 400
        assert own.json()["detail"] == "You cannot delete your own account"
        assert other.json() == {"success": True}
        assert missing.status_code == 404
