# app/models/notification.py
# 通知模型
#
# 功能说明：
# 1. Notification - 通知记录（notifications 表）
#    r_user_id 为 NULL 表示广播通知
# 2. UserNotification - 广播通知的接收人展开（users_notifications 表）
#    创建广播时为每个活跃顾客写入一行，is_seen 记录已读
#
# 通知类型（notification_type）：general / order / promo

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, Integer, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Notification(Base):
    """通知记录"""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    r_user_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        index=True,
        comment="接收人 users.id，NULL 表示广播",
    )
    notification_type: Mapped[str] = mapped_column(String(32), nullable=False, default="general")
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)

    # 关联对象 ID（如订单 ID），App 点击通知时跳转用
    row_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    action_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    is_seen: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="ag_users.id")
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Notification {self.id} {self.notification_type}>"


class UserNotification(Base):
    """广播通知的接收人"""

    __tablename__ = "users_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    r_user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    notification_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    is_seen: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
