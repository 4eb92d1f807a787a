# tests/test_cms_user_service.py
# 后台账号管理服务测试

import pytest
from sqlalchemy import select

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.security import verify_password
from app.models.rbac import CmsUserRole
from app.models.user import CmsUser
from app.services.cms_user_service import cms_user_service
from app.services.rbac import rbac_service


class TestCmsUsers:
    """账号增删改查"""

    @pytest.mark.asyncio
    async def test_create_and_list_hides_password(self, db_session):
        await cms_user_service.create_user(db_session, "first@example.com", "secret1", "First")
        second = await cms_user_service.create_user(db_session, "second@example.com", "secret2", "Second")
        role = await rbac_service.ensure_role(db_session, "buyer", "Buyer")
        await rbac_service.assign_role(db_session, second["id"], role)
        await db_session.commit()

        users = await cms_user_service.list_users(db_session)

        assert {u["email"] for u in users} == {"first@example.com", "second@example.com"}
        assert all("password_hash" not in u for u in users)
        by_email = {u["email"]: u for u in users}
        assert by_email["second@example.com"]["role_key"] == "buyer"
        assert by_email["first@example.com"]["role_key"] is None

    @pytest.mark.asyncio
    async def test_duplicate_email_is_conflict(self, db_session):
        await cms_user_service.create_user(db_session, "ops@example.com", "secret1", "Ops")

        with pytest.raises(ConflictError):
            await cms_user_service.create_user(db_session, "ops@example.com", "secret2", "Other")

    @pytest.mark.asyncio
    async def test_update_fields_and_password(self, db_session):
        created = await cms_user_service.create_user(db_session, "ops@example.com", "secret1", "Ops")

        updated = await cms_user_service.update_user(
            db_session, created["id"], {"name": "Operations", "is_active": False, "password": "newpass"},
        )

        user = await db_session.get(CmsUser, created["id"])
        assert updated["name"] == "Operations"
        assert updated["is_active"] is False
        assert verify_password("newpass", user.password_hash)

    @pytest.mark.asyncio
    async def test_update_keeps_password_when_empty(self, db_session):
        created = await cms_user_service.create_user(db_session, "ops@example.com", "secret1", "Ops")

        await cms_user_service.update_user(db_session, created["id"], {"password": ""})

        user = await db_session.get(CmsUser, created["id"])
        assert verify_password("secret1", user.password_hash)

    @pytest.mark.asyncio
    async def test_update_to_taken_email_is_conflict(self, db_session):
        await cms_user_service.create_user(db_session, "a@example.com", "secret1", "A")
        b = await cms_user_service.create_user(db_session, "b@example.com", "secret1", "B")

        with pytest.raises(ConflictError):
            await cms_user_service.update_user(db_session, b["id"], {"email": "a@example.com"})

    @pytest.mark.asyncio
    async def test_delete_removes_role(self, db_session):
        created = await cms_user_service.create_user(db_session, "ops@example.com", "secret1", "Ops")
        role = await rbac_service.ensure_role(db_session, "buyer", "Buyer")
        await rbac_service.assign_role(db_session, created["id"], role)
        await db_session.commit()

        await cms_user_service.delete_user(db_session, created["id"], current_user_id=999)

        assert await db_session.get(CmsUser, created["id"]) is None
        assert await db_session.scalar(select(CmsUserRole).where(CmsUserRole.user_id == created["id"])) is None

    @pytest.mark.asyncio
    async def test_cannot_delete_self_or_missing(self, db_session):
        created = await cms_user_service.create_user(db_session, "ops@example.com", "secret1", "Ops")

        with pytest.raises(ValidationError):
            await cms_user_service.delete_user(db_session, created["id"], current_user_id=created["id"])
        with pytest.raises(NotFoundError):
            await cms_user_service.delete_user(db_session, 999, current_user_id=1)
