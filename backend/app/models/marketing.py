# app/models/marketing.py
# 营销内容模型
#
# 功能说明：
# 1. Slider - 首页轮播图
# 2. Grid / GridElement - 移动端首页网格及其中的元素
# 3. FlashSale / FlashSaleProduct - 闪购活动及参与商品
#
# 这些内容都会被 App 后端缓存到首页接口中，
# 修改后需要调用 backend_client.clear_home_cache()

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Boolean, DateTime, JSON, Numeric, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Slider(Base):
    __tablename__ = "sliders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    r_store_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    text: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    btn_text: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    btn_url: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    main_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    order_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=func.now(), nullable=True)


class Grid(Base):
    """首页网格，移动端使用 type='Mobile' 的那一个"""

    __tablename__ = "grids"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    r_store_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_main: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="Mobile")
    category_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    brand_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )


class GridElement(Base):
    """
    网格元素

    position / width / height 历史上以字符串存储，这里保持一致
    """

    __tablename__ = "grid_elements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    r_grid_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    position_x: Mapped[str] = mapped_column(String(10), nullable=False, default="0")
    position_y: Mapped[str] = mapped_column(String(10), nullable=False, default="0")
    width: Mapped[str] = mapped_column(String(10), nullable=False, default="1")
    height: Mapped[str] = mapped_column(String(10), nullable=False, default="1")
    main_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    actions: Mapped[Optional[list]] = mapped_column(JSON, nullable=True, comment="点击动作列表")
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=func.now(), nullable=True)


class FlashSale(Base):
    __tablename__ = "flash_sales"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    r_store_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    slug: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    color_1: Mapped[str] = mapped_column(String(20), nullable=False, default="#e24040")
    color_2: Mapped[str] = mapped_column(String(20), nullable=False, default="#3c5d9f")
    color_3: Mapped[str] = mapped_column(String(20), nullable=False, default="#208d4f")
    slider_type: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    start_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, comment="未设置时默认一年后")
    display: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    discount: Mapped[float] = mapped_column(Numeric(5, 2), nullable=False, default=0, comment="折扣百分比")
    order_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="首页展示顺序")
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="ag_users.id")
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=func.now(), nullable=True)


class FlashSaleProduct(Base):
    __tablename__ = "flash_sales_products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    r_flash_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    r_product_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (UniqueConstraint("r_flash_id", "r_product_id"),)
