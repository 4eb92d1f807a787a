# app/models/category.py
# 品类管理模型
#
# 功能说明：
# 1. Category - 品类表，通过 parent 自引用组成森林
# 2. ExcludedCategory - 排除品类标记（店铺前台不展示）
#
# 使用方法：
#   from app.models.category import Category, ExcludedCategory
#
# 约定：
#   parent 为 NULL 或 0 都表示根品类（历史数据两种写法并存）
#   level / has_children / product_count 是冗余字段，由写操作维护

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String, Text, Integer, Boolean, Numeric, DateTime, Index, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Category(Base):
    """
    品类表

    数据库不约束 parent 不成环，遍历树时必须自行防环。

    字段分组：
    - 基本信息: category_name, category_name_en, category_name_zh, slug, main_image
    - 层级关系: parent, level, has_children, order_number
    - 展示: display, show_in_navbar, product_count
    - 运费/税率覆盖: tax_air, tax_sea, tax_min_qty_air, tax_min_qty_sea,
      cbm_rate, shipping_surcharge_percent, air_shipping_rate
    """

    __tablename__ = "category"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # ==================== 基本信息 ====================
    category_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="品类名称（原始语言）",
    )
    category_name_en: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="英文名",
    )
    category_name_zh: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="中文名",
    )
    slug: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    main_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # ==================== 层级关系 ====================
    parent: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="父品类 ID，NULL 或 0 表示根品类",
    )
    level: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        default=0,
        comment="层级深度，根品类为 0",
    )
    has_children: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True, default=False)
    order_number: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        default=0,
        comment="同级排序号，升序",
    )

    # ==================== 展示 ====================
    display: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    show_in_navbar: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    product_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ==================== 运费/税率覆盖 ====================
    tax_air: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)
    tax_sea: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)
    tax_min_qty_air: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    tax_min_qty_sea: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cbm_rate: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)
    shipping_surcharge_percent: Mapped[Optional[float]] = mapped_column(Numeric(5, 2), nullable=True)
    air_shipping_rate: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)

    # ==================== 时间戳 ====================
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        onupdate=func.now(),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_category_parent", "parent"),
        Index("ix_category_order_number", "order_number"),
    )

    @property
    def display_name(self) -> str:
        return self.category_name_en or self.category_name

    def __repr__(self) -> str:
        return f"<Category {self.id} {self.category_name}>"


class ExcludedCategory(Base):
    """
    排除品类

    出现在本表中的品类及其所有后代都视为"已排除"，闭包由
    app.services.category_tree 在内存中计算
    """

    __tablename__ = "excluded_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ExcludedCategory {self.category_id}>"
