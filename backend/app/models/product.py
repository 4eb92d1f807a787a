# app/models/product.py
# 商品模型
#
# 功能说明：
# 1. Product - 商品表（供应商原始价格多为人民币）
#
# 使用方法：
#   from app.models.product import Product
#
# 价格说明：
#   origin_price / product_price / sale_price 存储的是原始币种价格，
#   展示给 App 的美元价格由 app.services.pricing.compute_app_price 计算

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Numeric, DateTime, Index, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Product(Base):
    """商品表"""

    __tablename__ = "product"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # ==================== 基本信息 ====================
    product_code: Mapped[str] = mapped_column(String(64), nullable=False, comment="商品编码，如 CN-123456")
    product_name: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(500), nullable=True, comment="英文展示名")
    main_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    category_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # ==================== 价格 ====================
    origin_price: Mapped[Optional[float]] = mapped_column(Numeric(12, 2), nullable=True, comment="供应商原价")
    product_price: Mapped[Optional[float]] = mapped_column(Numeric(12, 2), nullable=True, comment="售价（原始币种）")
    sale_price: Mapped[Optional[float]] = mapped_column(Numeric(12, 2), nullable=True, comment="促销价（原始币种）")
    currency_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="币种 ID，6 = USD")

    # ==================== 库存与状态 ====================
    out_of_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    product_status: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    product_qty_left: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    r_flash_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="所属闪购活动")

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_product_category_id", "category_id"),
        Index("ix_product_product_code", "product_code"),
    )

    @property
    def raw_price(self) -> float:
        """换算前的价格：优先售价，其次原价"""
        return float(self.product_price or 0) or float(self.origin_price or 0)

    def __repr__(self) -> str:
        return f"<Product {self.id} {self.product_code}>"
