# app/models/invoice.py
# 发票模型
#
# 功能说明：
# 1. 每个订单最多一张商品发票（product）和一张运费发票（shipping）
# 2. 发票号全局递增：INV-00000001
# 3. items / billing_address 为生成时的 JSON 快照，之后订单变化不影响发票

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, Integer, Numeric, DateTime, JSON, Index, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Invoice(Base):
    """订单发票"""

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, comment="product / shipping")

    # ==================== 金额 ====================
    subtotal: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    shipping_amount: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    tax_amount: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    discount_amount: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    total: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="USD")

    # ==================== 快照 ====================
    items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    billing_address: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="generated", comment="generated / sent / void")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_invoices_order_id_type", "order_id", "type"),
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} {self.type}>"
