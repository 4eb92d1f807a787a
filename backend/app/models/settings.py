# app/models/settings.py
# 系统设置模型
#
# 存储可在后台修改的运行时配置，key-value 形式
# 目前使用的 key：
#   pricing.markup_percent   加价百分比
#   pricing.exchange_rate    人民币 → 美元汇率

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class SystemSetting(Base):
    """
    系统设置表

    value 统一以字符串存储，由读取方负责类型转换
    """
    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    # 设置分类（如 pricing）
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self):
        return f"<SystemSetting {self.key}={self.value}>"
