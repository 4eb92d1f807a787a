# app/services/cms_user_service.py
# 后台账号管理服务
#
# 功能说明：
# 1. list_users / get_user - 账号列表（新的在前）和详情，附带角色，不返回密码哈希
# 2. create_user - 创建账号，邮箱唯一
# 3. update_user - 修改邮箱、名称、启用状态，传入密码时重置密码
# 4. delete_user - 删除账号及其角色和个人权限覆盖，不能删除自己
#
# 使用方法：
#   from app.services.cms_user_service import cms_user_service
#
#   user = await cms_user_service.create_user(session, "ops@example.com", "secret1", "Ops")

from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.core.security import hash_password
from app.models.rbac import CmsRole, CmsUserPermissionOverride, CmsUserRole
from app.models.user import CmsUser

logger = get_logger(__name__)


class CmsUserService:
    """后台账号管理"""

    async def _roles(self, session: AsyncSession, user_ids: list[int]) -> dict[int, CmsRole]:
        if not user_ids:
            return {}
        result = await session.execute(
            select(CmsUserRole.user_id, CmsRole)
            .join(CmsRole, CmsRole.id == CmsUserRole.role_id)
            .where(CmsUserRole.user_id.in_(user_ids))
        )
        return {user_id: role for user_id, role in result.all()}

    @staticmethod
    def _serialize(user: CmsUser, role: Optional[CmsRole]) -> dict[str, Any]:
        return {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "is_active": user.is_active,
            "last_login_at": user.last_login_at,
            "created_at": user.created_at,
            "role_key": role.key if role else None,
            "role_name": role.name if role else None,
        }

    async def _get(self, session: AsyncSession, user_id: int) -> CmsUser:
        user = await session.get(CmsUser, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def _ensure_email_free(
        self, session: AsyncSession, email: str, exclude_id: Optional[int] = None
    ) -> None:
        stmt = select(CmsUser.id).where(CmsUser.email == email)
        if exclude_id is not None:
            stmt = stmt.where(CmsUser.id != exclude_id)
        if await session.scalar(stmt.limit(1)) is not None:
            raise ConflictError("Email already in use")

    async def list_users(self, session: AsyncSession) -> list[dict]:
        result = await session.execute(
            select(CmsUser).order_by(CmsUser.created_at.desc(), CmsUser.id.desc())
        )
        users = result.scalars().all()
        roles = await self._roles(session, [u.id for u in users])
        return [self._serialize(u, roles.get(u.id)) for u in users]

    async def get_user(self, session: AsyncSession, user_id: int) -> dict:
        user = await self._get(session, user_id)
        roles = await self._roles(session, [user.id])
        return self._serialize(user, roles.get(user.id))

    async def create_user(
        self,
        session: AsyncSession,
        email: str,
        password: str,
        name: str,
        is_active: bool = True,
    ) -> dict:
        """
        创建后台账号，新账号没有角色，需要另行分配

        Raises:
            ConflictError: 邮箱已被占用
        """
        await self._ensure_email_free(session, email)

        user = CmsUser(
            email=email,
            password_hash=hash_password(password),
            name=name,
            is_active=is_active,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)

        logger.info(f"[CmsUserService] 创建账号: {email} (id={user.id})")
        return self._serialize(user, None)

    async def update_user(self, session: AsyncSession, user_id: int, fields: dict[str, Any]) -> dict:
        """
        修改后台账号

        Raises:
            NotFoundError: 账号不存在
            ConflictError: 新邮箱已被其他账号占用
        """
        user = await self._get(session, user_id)

        email = fields.get("email")
        if email and email != user.email:
            await self._ensure_email_free(session, email, exclude_id=user_id)
            user.email = email
        if fields.get("name"):
            user.name = fields["name"]
        if fields.get("is_active") is not None:
            user.is_active = fields["is_active"]
        if fields.get("password"):
            user.password_hash = hash_password(fields["password"])

        await session.commit()
        await session.refresh(user)

        logger.info(f"[CmsUserService] 修改账号 {user_id}: {sorted(k for k in fields if k != 'password')}")
        return await self.get_user(session, user_id)

    async def delete_user(self, session: AsyncSession, user_id: int, current_user_id: int) -> None:
        """
        删除后台账号

        Raises:
            ValidationError: 删除自己
            NotFoundError: 账号不存在
        """
        if user_id == current_user_id:
            raise ValidationError("You cannot delete your own account")

        user = await self._get(session, user_id)

        try:
            await session.execute(delete(CmsUserRole).where(CmsUserRole.user_id == user_id))
            await session.execute(
                delete(CmsUserPermissionOverride).where(CmsUserPermissionOverride.user_id == user_id)
            )
            await session.delete(user)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(f"[CmsUserService] 删除账号 {user_id} ({user.email})")


cms_user_service = CmsUserService()
