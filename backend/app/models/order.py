# app/models/order.py
# 订单相关模型
#
# 功能说明：
# 1. Order - 订单（orders 表）
# 2. OrderItem - 订单商品行（order_products 表）
# 3. OrderItemStatus - 商品工作流状态字典（cms_order_item_statuses 表）
# 4. OrderItemStatusHistory - 商品状态变更审计（order_product_status_history 表）
# 5. OrderTracking - 订单状态轨迹，只追加（order_tracking 表）
# 6. PaymentTransaction - 支付流水（只读，订单详情展示用）
#
# 状态说明：
#   工作流状态（status_key）是唯一的权威表示，见 app/services/order_status.py
#   orders.status / order_products.status 是旧版整数状态码，仅为兼容 App 端保留，
#   由服务层在写入工作流状态时同步维护
#
# 工作流顺序：
#   processing(1) → ordered(2) → shipped_to_wh(3) → received_to_wh(4)
#   → shipped_to_leb(5) → received_to_leb(6) → delivered_to_customer(7)
#   终态：cancelled(90) / refunded(91)

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String, Text, Integer, Boolean, Numeric, DateTime, Index, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Order(Base):
    """
    订单

    字段分组：
    - 关联: r_user_id, coupon_code
    - 状态: status(旧版), workflow_status_id, shipping_status, is_paid
    - 金额: subtotal, shipping_amount, tax_amount, discount_amount, total
    - 退款: refund_type, refund_amount, refund_notes, refunded_at
    - 收货地址快照: address_*, building_name, floor_number, city, state, country
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # ==================== 关联 ====================
    r_user_id: Mapped[int] = mapped_column(Integer, nullable=False, comment="下单顾客 users.id")
    coupon_code: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="coupon_code.id")

    # ==================== 状态 ====================
    status: Mapped[int] = mapped_column(Integer, nullable=False, default=9, comment="旧版整数状态码")
    workflow_status_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="cms_order_item_statuses.id，由商品状态聚合得出",
    )
    shipping_status: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shipping_method: Mapped[Optional[str]] = mapped_column(String(10), nullable=True, comment="air / sea / both")
    payment_type: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payment_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ==================== 金额 ====================
    subtotal: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    shipping_amount: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    tax_amount: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    discount_amount: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    total: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)

    # ==================== 退款 ====================
    refund_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    refund_amount: Mapped[Optional[float]] = mapped_column(Numeric(12, 2), nullable=True)
    refund_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # ==================== 收货地址快照 ====================
    address_first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    address_last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    building_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    floor_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    address_country_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    address_phone_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    invoice_generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_orders_r_user_id", "r_user_id"),
    )

    def __repr__(self) -> str:
        return f"<Order {self.id} status={self.status}>"


class OrderItem(Base):
    """订单商品行，属于且仅属于一个订单"""

    __tablename__ = "order_products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    r_order_id: Mapped[int] = mapped_column(Integer, nullable=False)
    r_product_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # ==================== 商品快照 ====================
    product_name: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    product_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    variation_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    main_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    product_price: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0, comment="单价（美元）")

    # ==================== 状态 ====================
    status: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="旧版整数状态码")
    workflow_status_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    workflow_status_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    workflow_status_updated_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="ag_users.id")

    # ==================== 物流 ====================
    shipping_method: Mapped[Optional[str]] = mapped_column(String(10), nullable=True, comment="air / sea")
    shipping: Mapped[Optional[float]] = mapped_column(Numeric(12, 2), nullable=True, comment="该商品运费")
    tracking_number: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_order_products_r_order_id", "r_order_id"),
    )

    def __repr__(self) -> str:
        return f"<OrderItem {self.id} order={self.r_order_id}>"


class OrderItemStatus(Base):
    """
    商品工作流状态字典

    status_order 小于 90 为普通步骤，大于等于 90 约定为终态（同时 is_terminal=True）
    """

    __tablename__ = "cms_order_item_statuses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    status_label: Mapped[str] = mapped_column(String(100), nullable=False)
    status_order: Mapped[int] = mapped_column(Integer, nullable=False)
    is_terminal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<OrderItemStatus {self.status_key} order={self.status_order}>"


class OrderItemStatusHistory(Base):
    """商品状态变更审计记录"""

    __tablename__ = "order_product_status_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_product_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    order_id: Mapped[int] = mapped_column(Integer, nullable=False)
    from_status_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    to_status_id: Mapped[int] = mapped_column(Integer, nullable=False)
    changed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="ag_users.id")
    tracking_number: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )


class OrderTracking(Base):
    """
    订单状态轨迹（只追加）

    r_status_id 在旧版流程中记录整数状态码，在工作流流程中记录 status_order；
    展示时 90/91 按工作流终态显示，其余按旧版状态码显示
    """

    __tablename__ = "order_tracking"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    r_order_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    r_status_id: Mapped[int] = mapped_column(Integer, nullable=False)
    track_date: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )


class PaymentTransaction(Base):
    """支付流水（由支付网关回调写入，这里只读）"""

    __tablename__ = "payment_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    amount: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )
