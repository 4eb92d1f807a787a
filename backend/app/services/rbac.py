# app/services/rbac.py
# 角色权限服务
#
# 功能说明：
# 1. get_role_and_permissions - 计算用户的角色和有效权限（写入会话 JWT）
# 2. get_allowed_transitions - 某个角色在商品当前状态下允许切换到的状态
# 3. ensure_role - 按 key 查找角色，不存在时创建（注册首个管理员时使用）
#
# 权限计算：
#   有效权限 = 角色权限 ∪ 覆盖授予（allowed=1）− 覆盖收回（allowed=0）
#   没有角色或角色已停用时视为无权限（role_key = "none"）
#
# 使用方法：
#   from app.services.rbac import rbac_service
#
#   role = await rbac_service.get_role_and_permissions(session, user.id)
#   transitions = await rbac_service.get_allowed_transitions(session, "operator", item.workflow_status_id)

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.core.security import SUPER_ADMIN_ROLE
from app.models.order import OrderItemStatus
from app.models.rbac import (
    CmsPermission,
    CmsRole,
    CmsRoleItemTransition,
    CmsRolePermission,
    CmsUserPermissionOverride,
    CmsUserRole,
)

logger = get_logger(__name__)

# 商品工作流相关的权限点
PERM_ITEM_STATUS_CHANGE = "action.orders.item.status.change"
PERM_ITEM_CANCEL = "action.orders.item.cancel"
PERM_ITEM_REFUND = "action.orders.item.refund"
PERM_ITEM_MASTER_LIST = "page.orders.item_master_list"

# 商品总表中各角色只看自己负责的工作流状态，不在表中的角色看全部
ROLE_VISIBLE_STATUSES: dict[str, tuple[str, ...]] = {
    "buyer": ("processing", "ordered"),
    "china_warehouse": ("shipped_to_wh", "received_to_wh"),
    "lebanon_warehouse": ("shipped_to_leb", "received_to_leb"),
}


@dataclass
class RolePermissions:
    role_key: str = "none"
    role_name: str = "No Role"
    permissions: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class AllowedTransition:
    to_status_id: int
    to_status_key: str
    to_status_label: str
    is_terminal: bool
    requires_tracking: bool


class RbacService:
    """角色权限服务"""

    async def get_role_and_permissions(self, session: AsyncSession, user_id: int) -> RolePermissions:
        user_role = (
            await session.execute(select(CmsUserRole).where(CmsUserRole.user_id == user_id))
        ).scalar_one_or_none()
        if user_role is None:
            return RolePermissions()

        role = await session.get(CmsRole, user_role.role_id)
        if role is None or not role.is_active:
            return RolePermissions()

        result = await session.execute(
            select(CmsPermission.key)
            .join(CmsRolePermission, CmsRolePermission.permission_id == CmsPermission.id)
            .where(CmsRolePermission.role_id == role.id)
        )
        permissions = set(result.scalars().all())

        overrides = await session.execute(
            select(CmsPermission.key, CmsUserPermissionOverride.allowed)
            .join(CmsUserPermissionOverride, CmsUserPermissionOverride.permission_id == CmsPermission.id)
            .where(CmsUserPermissionOverride.user_id == user_id)
        )
        for key, allowed in overrides.all():
            if allowed == 1:
                permissions.add(key)
            else:
                permissions.discard(key)

        return RolePermissions(role_key=role.key, role_name=role.name, permissions=sorted(permissions))

    async def get_allowed_transitions(
        self,
        session: AsyncSession,
        role_key: str,
        from_status_id: Optional[int],
    ) -> list[AllowedTransition]:
        """
        角色在当前状态下允许切换到的状态

        super_admin 可以切换到任意启用的状态（当前状态除外），且不强制物流单号；
        其他角色读取 cms_role_item_transition_permissions，from_status_id 为空的规则适用于任意状态
        """
        if role_key == SUPER_ADMIN_ROLE:
            result = await session.execute(
                select(OrderItemStatus)
                .where(OrderItemStatus.is_active.is_(True))
                .order_by(OrderItemStatus.status_order.asc())
            )
            return [
                AllowedTransition(s.id, s.status_key, s.status_label, bool(s.is_terminal), False)
                for s in result.scalars().all()
                if s.id != from_status_id
            ]

        role = (
            await session.execute(
                select(CmsRole).where(CmsRole.key == role_key, CmsRole.is_active.is_(True))
            )
        ).scalar_one_or_none()
        if role is None:
            return []

        result = await session.execute(
            select(CmsRoleItemTransition, OrderItemStatus)
            .join(OrderItemStatus, OrderItemStatus.id == CmsRoleItemTransition.to_status_id)
            .where(
                CmsRoleItemTransition.role_id == role.id,
                CmsRoleItemTransition.enabled.is_(True),
                or_(
                    CmsRoleItemTransition.from_status_id.is_(None),
                    CmsRoleItemTransition.from_status_id == from_status_id,
                ),
                OrderItemStatus.is_active.is_(True),
            )
            .order_by(OrderItemStatus.status_order.asc())
        )

        # 同一目标状态既有通配规则又有精确规则时，任一规则要求物流单号即要求
        allowed: dict[int, AllowedTransition] = {}
        for rule, status in result.all():
            if status.id == from_status_id:
                continue
            previous = allowed.get(status.id)
            requires = bool(rule.requires_tracking_number) or (previous.requires_tracking if previous else False)
            allowed[status.id] = AllowedTransition(
                status.id, status.status_key, status.status_label, bool(status.is_terminal), requires,
            )
        return list(allowed.values())

    async def ensure_role(self, session: AsyncSession, key: str, name: str) -> CmsRole:
        """按 key 查找角色，不存在时创建（flush，不提交）"""
        role = (await session.execute(select(CmsRole).where(CmsRole.key == key))).scalar_one_or_none()
        if role is None:
            role = CmsRole(key=key, name=name, is_active=True)
            session.add(role)
            await session.flush()
            logger.info(f"[RBAC] 已创建角色: {key}")
        return role

    async def assign_role(self, session: AsyncSession, user_id: int, role: CmsRole) -> None:
        """设置用户角色（flush，不提交）"""
        user_role = (
            await session.execute(select(CmsUserRole).where(CmsUserRole.user_id == user_id))
        ).scalar_one_or_none()
        if user_role is None:
            session.add(CmsUserRole(user_id=user_id, role_id=role.id))
        else:
            user_role.role_id = role.id
        await session.flush()


rbac_service = RbacService()
