# app/models/user.py
# 后台管理员账号模型
#
# 功能说明：
# 1. 定义 ag_users 表（CMS 后台账号，与 App 端顾客 users 表分离）
# 2. 存储登录凭证和账号状态
#
# 表结构：
# ┌─────────────────────────────────────────────────┐
# │                  ag_users 表                     │
# ├─────────────────────────────────────────────────┤
# │ id            │ INTEGER   │ 主键                 │
# │ email         │ VARCHAR   │ 邮箱（唯一，用于登录）│
# │ password_hash │ VARCHAR   │ bcrypt 哈希值        │
# │ name          │ VARCHAR   │ 显示名称             │
# │ is_active     │ BOOLEAN   │ 是否启用             │
# │ last_login_at │ TIMESTAMP │ 最近登录时间         │
# │ created_at    │ TIMESTAMP │ 创建时间             │
# └─────────────────────────────────────────────────┘
#
# 角色与权限见 app/models/rbac.py

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Boolean, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class CmsUser(Base):
    """
    后台管理员

    使用示例：
        user = CmsUser(
            email="admin@example.com",
            password_hash=hash_password("123456"),
            name="Admin",
        )
        session.add(user)
        await session.commit()
    """

    __tablename__ = "ag_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # ==================== 认证信息 ====================
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
        comment="登录邮箱",
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="密码哈希值",
    )

    # ==================== 用户信息 ====================
    name: Mapped[str] = mapped_column(String(100), nullable=False, comment="显示名称")

    # ==================== 状态 ====================
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="禁用后无法登录，已有会话也会失效",
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
        comment="创建时间",
    )

    def __repr__(self) -> str:
        return f"<CmsUser(id={self.id}, email={self.email})>"
