# app/models/customer.py
# App 端顾客与优惠券模型
#
# 功能说明：
# 1. Customer - App 端顾客（users 表），订单和通知都引用它
# 2. Coupon - 优惠券（coupon_code 表），订单详情展示用
#
# 这两张表由 App 后端维护，CMS 只读取（通知广播时按 is_active 筛选顾客）

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Boolean, Numeric, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Customer(Base):
    """App 端顾客"""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    country_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    main_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # 推送 token（FCM），为空时不推送
    mobile_token: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


class Coupon(Base):
    __tablename__ = "coupon_code"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    discount: Mapped[Optional[float]] = mapped_column(Numeric(12, 2), nullable=True)
    type: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    percentage: Mapped[Optional[float]] = mapped_column(Numeric(5, 2), nullable=True)
