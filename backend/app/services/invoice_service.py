# app/services/invoice_service.py
# 发票服务
#
# 功能说明：
# 1. list_invoices - 订单的全部发票（新的在前），附带查看地址
# 2. generate_invoice - 生成商品发票或运费发票
# 3. get_invoice / update_invoice - 发票详情；修改备注、状态（generated / sent / void）、金额
#
# 生成规则：
#   product  : 明细为订单商品，金额 = 商品小计 − 折扣
#   shipping : 明细为运费（和税），金额 = 运费 + 税
#   同一订单同一类型只能有一张，重复生成返回 409
#   发票号 = 上一张发票号 + 1，格式 INV-00000001
#
# 使用方法：
#   from app.services.invoice_service import invoice_service
#
#   invoice = await invoice_service.generate_invoice(session, order_id=12, invoice_type="product")

import re
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import row_to_dict
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.models.invoice import Invoice
from app.models.order import Order, OrderItem, PaymentTransaction

logger = get_logger(__name__)

INVOICE_TYPES = ("product", "shipping")
INVOICE_STATUSES = ("generated", "sent", "void")
INVOICE_AMOUNT_FIELDS = ("subtotal", "shipping_amount", "tax_amount", "discount_amount")

# 发票上的支付方式名称
INVOICE_PAYMENT_METHODS: dict[int, str] = {
    0: "Cash on Delivery",
    1: "Credit Card",
    2: "WhishMoney",
    3: "Wallet",
}

_INVOICE_NUMBER_RE = re.compile(r"INV-(\d+)")


def next_invoice_number(last: Optional[str]) -> str:
    """INV-00000041 → INV-00000042；没有上一张或格式不符时从 1 开始"""
    number = 1
    if last:
        match = _INVOICE_NUMBER_RE.search(last)
        if match:
            number = int(match.group(1)) + 1
    return f"INV-{number:08d}"


def billing_address(order: Order) -> dict[str, str]:
    return {
        "first_name": order.address_first_name or "",
        "last_name": order.address_last_name or "",
        "address": order.address or "",
        "building_name": order.building_name or "",
        "floor_number": order.floor_number or "",
        "city": order.city or "",
        "state": order.state or "",
        "country": order.country or "",
        "country_code": order.address_country_code or "",
        "phone_number": order.address_phone_number or "",
    }


def invoice_view_url(invoice_id: int) -> str:
    return f"{settings.BACKEND_URL.rstrip('/')}/v3_0_0-invoice/view?id={invoice_id}"


def serialize_invoice(invoice: Invoice) -> dict[str, Any]:
    data = row_to_dict(invoice)
    data["items"] = invoice.items or []
    data["view_url"] = invoice_view_url(invoice.id)
    return data


class InvoiceService:
    """发票服务"""

    async def list_invoices(self, session: AsyncSession, order_id: int) -> list[dict]:
        result = await session.execute(
            select(Invoice)
            .where(Invoice.order_id == order_id)
            .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        )
        return [serialize_invoice(inv) for inv in result.scalars().all()]

    async def _build_lines(
        self,
        session: AsyncSession,
        order: Order,
        invoice_type: str,
    ) -> tuple[list[dict], dict[str, float]]:
        """发票明细和金额"""
        if invoice_type == "product":
            result = await session.execute(
                select(OrderItem).where(OrderItem.r_order_id == order.id).order_by(OrderItem.id.asc())
            )
            items = [
                {
                    "product_name": op.product_name,
                    "product_code": op.product_code,
                    "variation_name": op.variation_name or None,
                    "main_image": op.main_image or None,
                    "quantity": op.quantity,
                    "unit_price": float(op.product_price or 0),
                    "total": round(float(op.product_price or 0) * op.quantity, 2),
                }
                for op in result.scalars().all()
            ]
            subtotal = float(order.subtotal or 0)
            discount = float(order.discount_amount or 0)
            return items, {
                "subtotal": subtotal,
                "shipping_amount": 0.0,
                "tax_amount": 0.0,
                "discount_amount": discount,
                "total": round(subtotal - discount, 2),
            }

        shipping = float(order.shipping_amount or 0)
        tax = float(order.tax_amount or 0)
        items = [{
            "product_name": f"Shipping ({(order.shipping_method or 'standard').upper()})",
            "product_code": "SHIPPING",
            "quantity": 1,
            "unit_price": shipping,
            "total": shipping,
        }]
        if tax > 0:
            items.append({
                "product_name": "Tax",
                "product_code": "TAX",
                "quantity": 1,
                "unit_price": tax,
                "total": tax,
            })
        return items, {
            "subtotal": 0.0,
            "shipping_amount": shipping,
            "tax_amount": tax,
            "discount_amount": 0.0,
            "total": round(shipping + tax, 2),
        }

    async def generate_invoice(
        self,
        session: AsyncSession,
        order_id: int,
        invoice_type: str,
        notes: Optional[str] = None,
    ) -> dict:
        """
        生成发票

        Raises:
            ValidationError: 类型不是 product / shipping
            NotFoundError: 订单不存在
            ConflictError: 该类型发票已存在
        """
        if invoice_type not in INVOICE_TYPES:
            raise ValidationError("Type must be 'product' or 'shipping'")

        order = await session.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found")

        existing = (
            await session.execute(
                select(Invoice).where(Invoice.order_id == order_id, Invoice.type == invoice_type).limit(1)
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise ConflictError(
                f"A {invoice_type} invoice already exists for this order (INV #{existing.invoice_number})"
            )

        last_number = await session.scalar(
            select(Invoice.invoice_number).order_by(Invoice.id.desc()).limit(1)
        )
        items, amounts = await self._build_lines(session, order, invoice_type)

        payment_reference = await session.scalar(
            select(PaymentTransaction.external_id)
            .where(PaymentTransaction.order_id == order_id, PaymentTransaction.status == "success")
            .order_by(PaymentTransaction.created_at.desc(), PaymentTransaction.id.desc())
            .limit(1)
        )

        invoice = Invoice(
            order_id=order_id,
            user_id=order.r_user_id,
            invoice_number=next_invoice_number(last_number),
            type=invoice_type,
            currency="USD",
            items=items,
            billing_address=billing_address(order),
            payment_method=INVOICE_PAYMENT_METHODS.get(order.payment_type, f"Type {order.payment_type}"),
            payment_reference=payment_reference or order.payment_id or None,
            status="generated",
            notes=notes or None,
            **amounts,
        )

        try:
            session.add(invoice)
            order.invoice_generated_at = datetime.utcnow()
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        await session.refresh(invoice)
        logger.info(f"[InvoiceService] 订单 {order_id} 已生成 {invoice_type} 发票 {invoice.invoice_number}")
        return serialize_invoice(invoice)

    async def _get_invoice(self, session: AsyncSession, invoice_id: int) -> Invoice:
        invoice = await session.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice not found")
        return invoice

    async def get_invoice(self, session: AsyncSession, invoice_id: int) -> dict:
        return serialize_invoice(await self._get_invoice(session, invoice_id))

    async def update_invoice(self, session: AsyncSession, invoice_id: int, fields: dict[str, Any]) -> dict:
        """
        修改发票备注、状态、金额

        金额字段有变化且没有显式传 total 时，
        total = 商品小计 + 运费 + 税 − 折扣（未传的字段取发票当前值）

        Raises:
            NotFoundError: 发票不存在
            ValidationError: 状态不是 generated / sent / void
        """
        invoice = await self._get_invoice(session, invoice_id)

        if "notes" in fields:
            invoice.notes = fields["notes"] or None
        if fields.get("status") is not None:
            if fields["status"] not in INVOICE_STATUSES:
                raise ValidationError("Status must be one of: generated, sent, void")
            invoice.status = fields["status"]

        amounts_changed = False
        for field in INVOICE_AMOUNT_FIELDS:
            if fields.get(field) is not None:
                setattr(invoice, field, round(float(fields[field]), 2))
                amounts_changed = True

        if fields.get("total") is not None:
            invoice.total = round(float(fields["total"]), 2)
        elif amounts_changed:
            invoice.total = round(
                float(invoice.subtotal or 0)
                + float(invoice.shipping_amount or 0)
                + float(invoice.tax_amount or 0)
                - float(invoice.discount_amount or 0),
                2,
            )
        invoice.updated_at = datetime.utcnow()

        await session.commit()
        await session.refresh(invoice)
        logger.info(f"[InvoiceService] 发票 {invoice.invoice_number} 已修改: {sorted(fields)}")
        return serialize_invoice(invoice)


invoice_service = InvoiceService()
