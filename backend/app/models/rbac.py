# app/models/rbac.py
# 角色权限模型
#
# 功能说明：
# 1. CmsRole / CmsPermission - 角色与权限点
# 2. CmsRolePermission - 角色拥有的权限
# 3. CmsUserRole - 用户所属角色（一个用户一个角色）
# 4. CmsUserPermissionOverride - 单个用户的权限覆盖（allowed=1 授予，0 收回）
# 5. CmsRoleItemTransition - 角色允许的订单商品状态流转
#
# 权限计算：
#   有效权限 = 角色权限 ∪ 覆盖授予 − 覆盖收回
#   super_admin 角色拥有全部权限和全部流转

from typing import Optional

from sqlalchemy import String, Integer, Boolean, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class CmsRole(Base):
    __tablename__ = "cms_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, comment="如 super_admin, operator")
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CmsPermission(Base):
    __tablename__ = "cms_permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(
        String(128),
        unique=True,
        nullable=False,
        comment="权限点，如 action.orders.item.refund",
    )
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class CmsRolePermission(Base):
    __tablename__ = "cms_role_permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    permission_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (UniqueConstraint("role_id", "permission_id"),)


class CmsUserRole(Base):
    __tablename__ = "cms_user_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    role_id: Mapped[int] = mapped_column(Integer, nullable=False)


class CmsUserPermissionOverride(Base):
    __tablename__ = "cms_user_permission_overrides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    permission_id: Mapped[int] = mapped_column(Integer, nullable=False)
    allowed: Mapped[int] = mapped_column(Integer, nullable=False, default=1, comment="1 授予，0 收回")

    __table_args__ = (UniqueConstraint("user_id", "permission_id"),)


class CmsRoleItemTransition(Base):
    """角色允许把商品推进到哪些工作流状态"""

    __tablename__ = "cms_role_item_transition_permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    from_status_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="NULL 表示从任意状态",
    )
    to_status_id: Mapped[int] = mapped_column(Integer, nullable=False)
    requires_tracking_number: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="切换时必须填写物流单号",
    )
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
