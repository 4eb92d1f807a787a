# app/api/orders.py
# 订单管理 API
#
# 功能说明：
# 1. 订单列表（筛选、排序、页码分页、全局统计）
# 2. 订单详情（多表并行读取）、备注 / 付款状态修改
# 3. 订单状态变更（旧版状态码或工作流 key）
# 4. 退款
# 5. 发票列表 / 生成
# 6. 商品行修改（工作流、物流单号、运输方式、运费、数量）
#
# API 列表：
# ┌──────────────────────────────────────────────────────────────┐
# │  方法  │  路径                          │  说明               │
# ├────────┼───────────────────────────────┼────────────────────┤
# │  GET   │  /api/orders                  │  订单列表           │
# │  GET   │  /api/orders/{id}             │  订单详情           │
# │  PUT   │  /api/orders/{id}             │  修改备注 / 付款    │
# │  PUT   │  /api/orders/{id}/status      │  状态变更           │
# │  POST  │  /api/orders/{id}/refund      │  退款               │
# │  GET   │  /api/orders/{id}/invoices    │  发票列表           │
# │  POST  │  /api/orders/{id}/invoices    │  生成发票           │
# │  PUT   │  /api/orders/{id}/items       │  修改商品行         │
# └──────────────────────────────────────────────────────────────┘
#
# 说明：
#   退款和生成发票建议携带 X-Idempotency-Key 头，重复提交会直接返回第一次的结果

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db, row_to_dict
from app.core.logging import get_logger
from app.core.security import SessionUser, get_current_session
from app.models.order import OrderItemStatus
from app.schemas.invoice import InvoiceCreate
from app.schemas.order import (
    OrderItemUpdate,
    OrderStatusResponse,
    OrderStatusUpdate,
    OrderUpdate,
    RefundRequest,
    RefundResponse,
)
from app.services.invoice_service import invoice_service
from app.services.order_service import order_service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/orders", tags=["订单管理"])


@router.get("")
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(25, ge=1, le=100),
    search: str = Query("", description="订单号，或收货人姓名 / payment_id"),
    order_status: Optional[int] = Query(None, alias="status", description="旧版状态码"),
    is_paid: Optional[bool] = Query(None),
    shipping_status: Optional[int] = Query(None),
    shipping_method: Optional[str] = Query(None, pattern="^(air|sea)$"),
    payment_type: Optional[int] = Query(None),
    customer_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None, description="包含当天"),
    sort_by: str = Query("created_at", pattern="^(created_at|total|status|id)$"),
    sort_dir: str = Query("desc", pattern="^(asc|desc)$"),
    fully_paid_first: bool = Query(False, description="已付款、发货进度靠后的排在前面"),
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    """
    订单列表

    返回 orders（附商品数、状态名称、顾客姓名）、pagination、stats
    """
    return await order_service.list_orders(
        session,
        page=page,
        limit=limit,
        search=search.strip(),
        status=order_status,
        is_paid=is_paid,
        shipping_status=shipping_status,
        shipping_method=shipping_method,
        payment_type=payment_type,
        customer_id=customer_id,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_dir=sort_dir,
        fully_paid_first=fully_paid_first,
    )


@router.get("/{order_id}")
async def get_order(
    order_id: int,
    _: SessionUser = Depends(get_current_session),
):
    """
    订单详情

    返回 order、products、tracking、transactions、customer、coupon，
    各部分并行读取
    """
    return await order_service.get_order_detail(order_id)


@router.put("/{order_id}")
async def update_order(
    order_id: int,
    data: OrderUpdate,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    """修改订单备注 / 付款状态"""
    order = await order_service.update_order(session, order_id, data.model_dump(exclude_unset=True))
    logger.info(f"[OrdersAPI] {user.email} 修改订单 {order_id}")
    return {"success": True, "order": row_to_dict(order)}


@router.put("/{order_id}/status", response_model=OrderStatusResponse)
async def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    """
    订单状态变更

    请求示例：
        {"status": 1}               旧版状态码，按流转表校验
        {"status_key": "ordered"}   工作流状态，整单非终态商品一起切换
    """
    if data.status_key is not None:
        order, target = await order_service.update_order_workflow_status(
            session, order_id, data.status_key, changed_by=user.user_id
        )
        logger.info(f"[OrdersAPI] {user.email} 订单 {order_id} → {target.status_key}")
        return OrderStatusResponse(status=order.status, workflow_status_key=target.status_key)

    order = await order_service.update_order_status(session, order_id, data.status)
    logger.info(f"[OrdersAPI] {user.email} 订单 {order_id} → status={data.status}")

    workflow_key = None
    if order.workflow_status_id:
        current = await session.get(OrderItemStatus, order.workflow_status_id)
        workflow_key = current.status_key if current else None
    return OrderStatusResponse(status=order.status, workflow_status_key=workflow_key)


@router.post("/{order_id}/refund", response_model=RefundResponse)
async def refund_order(
    order_id: int,
    data: RefundRequest,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    """
    退款

    refund_type：
        full           商品 + 运费 + 税 - 优惠
        products_only  商品小计
        shipping_only  运费
    """
    result = await order_service.refund_order(
        session,
        order_id,
        data.refund_type,
        refund_amount=data.refund_amount,
        refund_notes=data.refund_notes,
    )
    logger.info(f"[OrdersAPI] {user.email} 订单 {order_id} 退款 {result['refund_amount']:.2f}")
    return RefundResponse(**result)


@router.get("/{order_id}/invoices")
async def list_invoices(
    order_id: int,
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    invoices = await invoice_service.list_invoices(session, order_id)
    return {"invoices": invoices}


@router.post("/{order_id}/invoices", status_code=status.HTTP_201_CREATED)
async def create_invoice(
    order_id: int,
    data: InvoiceCreate,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    """生成商品发票或运费发票，同一订单每种类型只能生成一张"""
    invoice = await invoice_service.generate_invoice(session, order_id, data.type, notes=data.notes)
    logger.info(f"[OrdersAPI] {user.email} 订单 {order_id} 生成发票 {invoice['invoice_number']}")
    return {"success": True, "invoice": invoice}


@router.put("/{order_id}/items")
async def update_order_item(
    order_id: int,
    data: OrderItemUpdate,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    """修改订单中的单个商品行，只提交需要修改的字段"""
    fields = data.model_dump(exclude_unset=True)
    item_id = fields.pop("item_id")
    return await order_service.update_item(session, order_id, item_id, fields, changed_by=user.user_id)
