# app/services/order_service.py
# 订单服务
#
# 功能说明：
# 1. 订单状态变更：旧版整数状态码 / 工作流 status_key 两种入口
# 2. 退款：按退款类型计算金额（可手动指定），写轨迹，事后通知顾客
# 3. 商品行：字段修改（物流单号、运输方式、运费、数量）及订单金额联动
# 4. 商品工作流：单个切换（角色流转权限 + 物流单号要求）、批量切换（最多 200 个）
# 5. 订单详情：订单、商品、轨迹、支付流水、顾客、优惠券并发读取
# 6. 列表：订单列表（页码分页 + 全局统计）、商品总表（按角色可见范围，游标分页 + 状态汇总）
#
# 事务约定：
#   每个写操作的所有数据库修改在同一个事务内提交，失败整体回滚；
#   推送和通知记录在提交之后执行，失败只记录日志，不影响已提交的结果
#
# 使用方法：
#   from app.services.order_service import order_service
#
#   order = await order_service.update_order_status(session, order_id=12, new_status=3)
#   result = await order_service.change_item_workflow(session, item_id, "ordered", user)

import asyncio
import math
from collections import defaultdict
from datetime import date, datetime, time
from typing import Any, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import async_session_maker, row_to_dict
from app.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from app.core.logging import get_logger
from app.core.security import SessionUser
from app.models.customer import Coupon, Customer
from app.models.order import (
    Order,
    OrderItem,
    OrderItemStatus,
    OrderItemStatusHistory,
    OrderTracking,
    PaymentTransaction,
)
from app.services.notification_service import NotificationService, notification_service
from app.services.order_aggregator import derive_for_order, recompute_order_status
from app.services.order_status import (
    CANCELLED_KEY,
    PAYMENT_TYPE_LABELS,
    REFUNDED_KEY,
    SHIPPING_STATUS_LABELS,
    LegacyStatus,
    get_status_by_key,
    is_known_status,
    legacy_to_workflow_key,
    load_statuses,
    status_label,
    validate_transition,
    workflow_key_to_legacy,
)
from app.services.pagination import paginate
from app.services.rbac import (
    PERM_ITEM_CANCEL,
    PERM_ITEM_REFUND,
    ROLE_VISIBLE_STATUSES,
    RbacService,
    rbac_service,
)

logger = get_logger(__name__)

REFUND_TYPES = ("full", "products_only", "shipping_only")
SHIPPING_METHODS = ("air", "sea")
MAX_BULK_ITEMS = 200

DEFAULT_ORDER_PAGE_SIZE = 25
MAX_ORDER_PAGE_SIZE = 100
ORDER_SORT_COLUMNS = {
    "created_at": Order.created_at,
    "total": Order.total,
    "status": Order.status,
    "id": Order.id,
}
# 没有工作流状态的商品在状态汇总中排在最后
UNSET_STATUS_ORDER = 999


def customer_name(order: Order) -> str:
    return f"{order.address_first_name or ''} {order.address_last_name or ''}".strip()


def compute_refund_amount(
    refund_type: str,
    subtotal: float = 0,
    shipping_amount: float = 0,
    tax_amount: float = 0,
    discount_amount: float = 0,
) -> float:
    """
    按退款类型计算退款金额

    full          = 商品小计 + 运费 + 税 − 折扣
    products_only = 商品小计 − 折扣
    shipping_only = 运费 + 税
    """
    subtotal = float(subtotal or 0)
    shipping_amount = float(shipping_amount or 0)
    tax_amount = float(tax_amount or 0)
    discount_amount = float(discount_amount or 0)

    if refund_type == "full":
        amount = subtotal + shipping_amount + tax_amount - discount_amount
    elif refund_type == "products_only":
        amount = subtotal - discount_amount
    elif refund_type == "shipping_only":
        amount = shipping_amount + tax_amount
    else:
        raise ValidationError("Invalid refund type")
    return round(amount, 2)


def order_shipping_method(methods: list[Optional[str]]) -> str:
    """商品运输方式 → 订单运输方式：同时有空运和海运为 both，否则取唯一的那种，默认 air"""
    present = {m for m in methods if m}
    if "air" in present and "sea" in present:
        return "both"
    if "sea" in present:
        return "sea"
    return "air"


def tracking_label(r_status_id: int, terminal_by_order: dict[int, OrderItemStatus]) -> str:
    """轨迹行的展示名称：工作流终态（90/91）按工作流显示，其余按旧版状态码"""
    status = terminal_by_order.get(r_status_id)
    if status is not None:
        return status.status_label
    return status_label(r_status_id)


class OrderService:
    """
    订单服务

    Args:
        notifier: 通知服务（测试时可替换）
        session_factory: 订单详情并发读取时为每个查询单独开会话
        rbac: 角色权限服务
    """

    def __init__(
        self,
        notifier: Optional[NotificationService] = None,
        session_factory: Optional[async_sessionmaker] = None,
        rbac: Optional[RbacService] = None,
    ):
        self.notifier = notifier or notification_service
        self.session_factory = session_factory or async_session_maker
        self.rbac = rbac or rbac_service

    # ==================== 列表 ====================

    async def list_orders(
        self,
        session: AsyncSession,
        page: int = 1,
        limit: int = DEFAULT_ORDER_PAGE_SIZE,
        search: str = "",
        status: Optional[int] = None,
        is_paid: Optional[bool] = None,
        shipping_status: Optional[int] = None,
        shipping_method: Optional[str] = None,
        payment_type: Optional[int] = None,
        customer_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        sort_by: str = "created_at",
        sort_dir: str = "desc",
        fully_paid_first: bool = False,
    ) -> dict:
        """
        订单列表（页码分页）

        search 为纯数字时按订单号精确匹配，否则模糊匹配收货人姓名 / payment_id；
        fully_paid_first 时已付款、发货进度靠后的订单排在前面；
        stats 为不受筛选影响的全局统计
        """
        limit = max(1, min(limit, MAX_ORDER_PAGE_SIZE))
        page = max(1, page)

        conditions = []
        if search:
            if search.isdigit():
                conditions.append(Order.id == int(search))
            else:
                conditions.append(
                    or_(
                        Order.address_first_name.contains(search),
                        Order.address_last_name.contains(search),
                        Order.payment_id.contains(search),
                    )
                )
        if status is not None:
            conditions.append(Order.status == status)
        if is_paid is not None:
            conditions.append(Order.is_paid.is_(is_paid))
        if shipping_status is not None:
            conditions.append(Order.shipping_status == shipping_status)
        if shipping_method is not None:
            conditions.append(Order.shipping_method == shipping_method)
        if payment_type is not None:
            conditions.append(Order.payment_type == payment_type)
        if customer_id is not None:
            conditions.append(Order.r_user_id == customer_id)
        if date_from is not None:
            conditions.append(Order.created_at >= datetime.combine(date_from, time.min))
        if date_to is not None:
            conditions.append(Order.created_at <= datetime.combine(date_to, time.max))

        column = ORDER_SORT_COLUMNS.get(sort_by, Order.created_at)
        ordering = [column.asc() if sort_dir == "asc" else column.desc(), Order.id.desc()]
        if fully_paid_first:
            ordering = [Order.is_paid.desc(), Order.shipping_status.desc(), *ordering]

        total_count = await session.scalar(select(func.count(Order.id)).where(*conditions)) or 0
        orders = (
            await session.execute(
                select(Order).where(*conditions).order_by(*ordering).offset((page - 1) * limit).limit(limit)
            )
        ).scalars().all()

        item_counts: dict[int, int] = {}
        if orders:
            item_counts = dict(
                (
                    await session.execute(
                        select(OrderItem.r_order_id, func.count(OrderItem.id))
                        .where(OrderItem.r_order_id.in_([o.id for o in orders]))
                        .group_by(OrderItem.r_order_id)
                    )
                ).all()
            )

        rows = []
        for order in orders:
            row = row_to_dict(order)
            row.update(
                item_count=item_counts.get(order.id, 0),
                status_label=status_label(order.status),
                shipping_status_label=SHIPPING_STATUS_LABELS.get(order.shipping_status, "Unknown"),
                payment_type_label=PAYMENT_TYPE_LABELS.get(order.payment_type, f"Type {order.payment_type}"),
                customer_name=customer_name(order),
            )
            rows.append(row)

        return {
            "orders": rows,
            "pagination": {
                "page": page,
                "limit": limit,
                "totalCount": total_count,
                "totalPages": math.ceil(total_count / limit),
            },
            "stats": await self._order_stats(session),
        }

    async def _order_stats(self, session: AsyncSession) -> dict:
        today = datetime.combine(datetime.utcnow().date(), time.min)
        pending = (LegacyStatus.PENDING, LegacyStatus.CONFIRMED, LegacyStatus.PROCESSING)
        ready = (LegacyStatus.CONFIRMED, LegacyStatus.PROCESSING)

        total_orders = await session.scalar(select(func.count(Order.id)))
        pending_review = await session.scalar(
            select(func.count(Order.id)).where(
                Order.shipping_status == 0, Order.is_paid.is_(True), Order.status.in_(pending)
            )
        )
        ready_to_ship = await session.scalar(
            select(func.count(Order.id)).where(
                Order.shipping_status == 2, Order.is_paid.is_(True), Order.status.in_(ready)
            )
        )
        today_revenue = await session.scalar(
            select(func.coalesce(func.sum(Order.total), 0)).where(
                Order.is_paid.is_(True), Order.created_at >= today
            )
        )
        return {
            "totalOrders": total_orders or 0,
            "pendingReview": pending_review or 0,
            "readyToShip": ready_to_ship or 0,
            "todayRevenue": float(today_revenue or 0),
        }

    async def list_items(
        self,
        session: AsyncSession,
        user: SessionUser,
        cursor: Optional[int] = None,
        page_size: Optional[int] = None,
        search: str = "",
        workflow_status: Optional[str] = None,
        tracking: Optional[str] = None,
        order_id: Optional[int] = None,
    ) -> dict:
        """
        商品总表（按商品 id 倒序游标分页）

        可见范围：
            buyer / china_warehouse / lebanon_warehouse 只看各自负责的工作流状态，
            其它角色看全部；workflow_status 超出可见范围时忽略该筛选

        search 为纯数字时匹配商品行 id / 订单号 / 商品 id，否则模糊匹配商品名 / 物流单号；
        tracking: has 有物流单号 / missing 没有
        """
        statuses = await load_statuses(session)
        by_key = {s.status_key: s for s in statuses.values() if s.is_active}

        visible_ids: Optional[list[int]] = None
        visible_keys = ROLE_VISIBLE_STATUSES.get(user.role_key)
        if visible_keys is not None:
            visible_ids = [by_key[key].id for key in visible_keys if key in by_key]

        conditions = []
        if visible_ids is not None:
            conditions.append(OrderItem.workflow_status_id.in_(visible_ids))
        if search:
            if search.isdigit():
                number = int(search)
                conditions.append(
                    or_(OrderItem.id == number, OrderItem.r_order_id == number, OrderItem.r_product_id == number)
                )
            else:
                conditions.append(
                    or_(OrderItem.product_name.contains(search), OrderItem.tracking_number.contains(search))
                )
        if workflow_status:
            target = by_key.get(workflow_status)
            if target is not None and (visible_ids is None or target.id in visible_ids):
                conditions.append(OrderItem.workflow_status_id == target.id)
        if tracking == "has":
            conditions.append(OrderItem.tracking_number.is_not(None))
        elif tracking == "missing":
            conditions.append(OrderItem.tracking_number.is_(None))
        if order_id is not None:
            conditions.append(OrderItem.r_order_id == order_id)

        page = await paginate(session, select(OrderItem).where(*conditions), OrderItem.id, cursor, page_size)

        orders: dict[int, Order] = {}
        order_ids = {item.r_order_id for item in page.items}
        if order_ids:
            orders = {
                o.id: o
                for o in (await session.execute(select(Order).where(Order.id.in_(order_ids)))).scalars().all()
            }

        items = []
        for item in page.items:
            status = statuses.get(item.workflow_status_id) if item.workflow_status_id else None
            order = orders.get(item.r_order_id)
            items.append({
                "id": item.id,
                "order_id": item.r_order_id,
                "product_id": item.r_product_id,
                "product_name": item.product_name,
                "image_url": item.main_image,
                "variation_name": item.variation_name,
                "quantity": item.quantity,
                "tracking_number": item.tracking_number,
                "shipping_method": item.shipping_method,
                "product_price": float(item.product_price or 0),
                "workflow_status_key": status.status_key if status else None,
                "workflow_status_label": status.status_label if status else None,
                "workflow_status_order": status.status_order if status else None,
                "is_terminal": bool(status.is_terminal) if status else False,
                "order_status": order.status if order else None,
                "order_created_at": order.created_at if order else None,
                "customer_name": customer_name(order) if order else None,
            })

        summary_stmt = select(OrderItem.workflow_status_id, func.count(OrderItem.id)).group_by(
            OrderItem.workflow_status_id
        )
        if visible_ids is not None:
            summary_stmt = summary_stmt.where(OrderItem.workflow_status_id.in_(visible_ids))
        summary = []
        for status_id, count in (await session.execute(summary_stmt)).all():
            status = statuses.get(status_id) if status_id else None
            summary.append({
                "status_key": status.status_key if status else "unset",
                "status_label": status.status_label if status else "Unset",
                "status_order": status.status_order if status else UNSET_STATUS_ORDER,
                "is_terminal": bool(status.is_terminal) if status else False,
                "count": count,
            })
        summary.sort(key=lambda s: s["status_order"])

        return {
            "items": items,
            "roleKey": user.role_key,
            "nextCursor": page.next_cursor,
            "hasMore": page.has_more,
            "totalCount": page.total,
            "statusSummary": summary,
        }

    # ==================== 订单状态 ====================

    async def _get_order(self, session: AsyncSession, order_id: int) -> Order:
        order = await session.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    async def update_order_status(
        self,
        session: AsyncSession,
        order_id: int,
        new_status: int,
    ) -> Order:
        """
        旧版状态码变更

        同一事务内：
        1. 修改订单旧版状态码，追加一条轨迹
        2. 旧版状态码同步到未取消、且工作流不在终态（cancelled/refunded）的商品
        3. 这些商品中工作流进度落后于该状态码对应步骤的，前移到该步骤；已经更靠后的保持不变
        4. 订单 workflow_status_id 由商品状态重新推导（不另写聚合轨迹）
        提交后通知顾客。

        Raises:
            ValidationError: 未知状态码
            NotFoundError: 订单不存在
            TransitionError: 流转表不允许
        """
        if not is_known_status(new_status):
            raise ValidationError("Invalid status code")

        order = await self._get_order(session, order_id)
        validate_transition(order.status, new_status)

        workflow = await get_status_by_key(session, legacy_to_workflow_key(new_status))
        statuses = await load_statuses(session)
        terminal_ids = sorted(s.id for s in statuses.values() if s.is_terminal)
        now = datetime.utcnow()

        try:
            order.status = new_status
            order.updated_at = now

            item_conditions = [
                OrderItem.r_order_id == order_id,
                or_(OrderItem.status.is_(None), OrderItem.status != LegacyStatus.CANCELLED),
            ]
            if terminal_ids:
                item_conditions.append(
                    or_(OrderItem.workflow_status_id.is_(None), OrderItem.workflow_status_id.not_in(terminal_ids))
                )
            eligible = (await session.execute(select(OrderItem.id).where(*item_conditions))).scalars().all()

            if eligible:
                await session.execute(
                    update(OrderItem)
                    .where(OrderItem.id.in_(eligible))
                    .values(status=new_status)
                    .execution_options(synchronize_session=False)
                )

            if eligible and workflow is not None:
                behind_ids = sorted(
                    s.id for s in statuses.values()
                    if not s.is_terminal and s.status_order < workflow.status_order
                )
                behind = OrderItem.workflow_status_id.is_(None)
                if behind_ids:
                    behind = or_(behind, OrderItem.workflow_status_id.in_(behind_ids))
                await session.execute(
                    update(OrderItem)
                    .where(OrderItem.id.in_(eligible), behind)
                    .values(workflow_status_id=workflow.id, workflow_status_updated_at=now)
                    .execution_options(synchronize_session=False)
                )

            derived = await derive_for_order(session, order_id)
            if derived is not None and derived.workflow_status_id is not None:
                order.workflow_status_id = derived.workflow_status_id

            session.add(OrderTracking(r_order_id=order_id, r_status_id=new_status))
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        label = status_label(new_status)
        logger.info(f"[OrderService] 订单 {order_id} 状态 → {new_status} ({label})")

        await self.notifier.notify_customer(
            session,
            order.r_user_id,
            f"Order #{order_id} {label}",
            f"Your order has been {label.lower()}.",
            row_id=order_id,
            extra={"status": new_status},
        )
        return order

    async def update_order_workflow_status(
        self,
        session: AsyncSession,
        order_id: int,
        status_key: str,
        changed_by: Optional[int] = None,
    ) -> tuple[Order, OrderItemStatus]:
        """
        工作流状态变更（整单）

        所有非终态商品切换到目标状态，订单 workflow_status_id 同步，
        轨迹记录目标状态的 status_order。终态（cancelled/refunded）同时写入旧版状态码。

        Raises:
            ValidationError: status_key 不存在或已停用
            NotFoundError: 订单不存在
        """
        target = await get_status_by_key(session, status_key)
        if target is None:
            raise ValidationError(f"Unknown workflow status: {status_key}")

        order = await self._get_order(session, order_id)
        legacy = workflow_key_to_legacy(target.status_key)
        now = datetime.utcnow()

        terminal_ids = list(
            (
                await session.execute(
                    select(OrderItemStatus.id).where(OrderItemStatus.is_terminal.is_(True))
                )
            ).scalars().all()
        )

        try:
            item_conditions = [OrderItem.r_order_id == order_id]
            if terminal_ids:
                item_conditions.append(
                    or_(
                        OrderItem.workflow_status_id.is_(None),
                        OrderItem.workflow_status_id.not_in(terminal_ids),
                    )
                )
            item_values: dict[str, Any] = {
                "workflow_status_id": target.id,
                "workflow_status_updated_at": now,
                "workflow_status_updated_by": changed_by,
            }
            if legacy is not None:
                item_values["status"] = legacy

            await session.execute(
                update(OrderItem)
                .where(*item_conditions)
                .values(**item_values)
                .execution_options(synchronize_session=False)
            )

            order.workflow_status_id = target.id
            order.updated_at = now
            if legacy is not None:
                order.status = legacy
            session.add(OrderTracking(r_order_id=order_id, r_status_id=target.status_order))
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(f"[OrderService] 订单 {order_id} 工作流状态 → {target.status_key}")

        await self.notifier.notify_customer(
            session,
            order.r_user_id,
            f"Order #{order_id} {target.status_label}",
            f"Your order has been {target.status_label.lower()}.",
            row_id=order_id,
            extra={"status_key": target.status_key},
        )
        return order, target

    # ==================== 退款 ====================

    async def refund_order(
        self,
        session: AsyncSession,
        order_id: int,
        refund_type: str,
        refund_amount: Optional[float] = None,
        refund_notes: Optional[str] = None,
    ) -> dict:
        """
        退款

        Args:
            refund_type: full / products_only / shipping_only
            refund_amount: 手动指定金额，为空时按类型计算

        Raises:
            NotFoundError: 订单不存在
            ValidationError: 已退款，或退款类型无效
        """
        order = await self._get_order(session, order_id)

        if order.status == LegacyStatus.REFUNDED:
            raise ValidationError("Order is already refunded")
        if refund_type not in REFUND_TYPES:
            raise ValidationError("Invalid refund type")

        if refund_amount is None:
            refund_amount = compute_refund_amount(
                refund_type,
                order.subtotal,
                order.shipping_amount,
                order.tax_amount,
                order.discount_amount,
            )

        refunded = await get_status_by_key(session, REFUNDED_KEY, active_only=False)
        now = datetime.utcnow()

        try:
            order.status = LegacyStatus.REFUNDED
            if refunded is not None:
                order.workflow_status_id = refunded.id
            order.refund_type = refund_type
            order.refund_amount = refund_amount
            order.refund_notes = refund_notes or None
            order.refunded_at = now
            order.updated_at = now
            session.add(OrderTracking(r_order_id=order_id, r_status_id=LegacyStatus.REFUNDED))
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(f"[OrderService] 订单 {order_id} 已退款: {refund_type} ${float(refund_amount):.2f}")

        message = f"Refund of ${float(refund_amount):.2f} has been processed for Order #{order_id}."
        await self.notifier.notify_customer(
            session,
            order.r_user_id,
            "💰 Refund Processed",
            message,
            row_id=order_id,
            extra={"refund_amount": float(refund_amount), "refund_type": refund_type},
        )

        return {"success": True, "refund_type": refund_type, "refund_amount": float(refund_amount)}

    # ==================== 订单详情 / 修改 ====================

    async def _read(self, query):
        """在独立会话中执行一个只读查询（AsyncSession 不支持同一会话并发）"""
        async with self.session_factory() as session:
            return await query(session)

    async def get_order_detail(self, order_id: int) -> dict:
        """
        订单详情

        先读订单本身（不存在时 404），其余六个查询并发执行

        Raises:
            NotFoundError: 订单不存在
        """
        order = await self._read(lambda s: s.get(Order, order_id))
        if order is None:
            raise NotFoundError("Order not found")

        async def items_query(s: AsyncSession):
            result = await s.execute(
                select(OrderItem).where(OrderItem.r_order_id == order_id).order_by(OrderItem.id.asc())
            )
            return list(result.scalars().all())

        async def tracking_query(s: AsyncSession):
            result = await s.execute(
                select(OrderTracking)
                .where(OrderTracking.r_order_id == order_id)
                .order_by(OrderTracking.track_date.asc(), OrderTracking.id.asc())
            )
            return list(result.scalars().all())

        async def transactions_query(s: AsyncSession):
            result = await s.execute(
                select(PaymentTransaction)
                .where(PaymentTransaction.order_id == order_id)
                .order_by(PaymentTransaction.created_at.desc(), PaymentTransaction.id.desc())
            )
            return list(result.scalars().all())

        async def coupon_query(s: AsyncSession):
            if not order.coupon_code:
                return None
            return await s.get(Coupon, order.coupon_code)

        items, tracking, transactions, customer, coupon, statuses = await asyncio.gather(
            self._read(items_query),
            self._read(tracking_query),
            self._read(transactions_query),
            self._read(lambda s: s.get(Customer, order.r_user_id)),
            self._read(coupon_query),
            self._read(load_statuses),
        )

        terminal_by_order = {s.status_order: s for s in statuses.values() if s.is_terminal}

        def workflow_fields(status_id: Optional[int]) -> dict:
            status = statuses.get(status_id) if status_id is not None else None
            return {
                "workflow_status_key": status.status_key if status else None,
                "workflow_status_label": status.status_label if status else None,
            }

        products = []
        for item in items:
            row = row_to_dict(item)
            legacy = item.status if item.status is not None else LegacyStatus.PENDING
            row.update(
                status=legacy,
                status_label=status_label(legacy),
                shipping=float(item.shipping or 0),
                **workflow_fields(item.workflow_status_id),
            )
            products.append(row)

        order_row = row_to_dict(order)
        order_row.update(
            status_label=status_label(order.status),
            shipping_status_label=SHIPPING_STATUS_LABELS.get(order.shipping_status, "Unknown"),
            payment_type_label=PAYMENT_TYPE_LABELS.get(order.payment_type, f"Type {order.payment_type}"),
            customer_name=customer_name(order),
            **workflow_fields(order.workflow_status_id),
        )

        return {
            "order": order_row,
            "products": products,
            "tracking": [
                {**row_to_dict(t), "status_label": tracking_label(t.r_status_id, terminal_by_order)}
                for t in tracking
            ],
            "transactions": [row_to_dict(t) for t in transactions],
            "customer": {
                "id": customer.id,
                "first_name": customer.first_name,
                "last_name": customer.last_name,
                "email": customer.email,
                "country_code": customer.country_code,
                "phone_number": customer.phone_number,
                "main_image": customer.main_image,
            } if customer else None,
            "coupon": row_to_dict(coupon) if coupon else None,
        }

    async def update_order(self, session: AsyncSession, order_id: int, fields: dict[str, Any]) -> Order:
        """修改备注 / 是否已付款"""
        order = await self._get_order(session, order_id)

        if "notes" in fields:
            order.notes = fields["notes"]
        if "is_paid" in fields and fields["is_paid"] is not None:
            order.is_paid = bool(fields["is_paid"])
        order.updated_at = datetime.utcnow()

        await session.commit()
        return order

    # ==================== 商品行修改 ====================

    async def update_item(
        self,
        session: AsyncSession,
        order_id: int,
        item_id: int,
        fields: dict[str, Any],
        changed_by: Optional[int] = None,
    ) -> dict:
        """
        修改订单商品行

        联动：
        - workflow_status_key 变化 → 重新聚合订单状态
        - shipping / quantity 变化 → 订单运费 = 各商品运费之和，总额重算
        - shipping_method 变化 → 订单运输方式按未取消商品取 air / sea / both

        Raises:
            NotFoundError: 商品不存在或不属于该订单
            ValidationError: 字段值无效，或没有可修改的字段
        """
        item = (
            await session.execute(
                select(OrderItem).where(OrderItem.id == item_id, OrderItem.r_order_id == order_id)
            )
        ).scalar_one_or_none()
        if item is None:
            raise NotFoundError("Order item not found or does not belong to this order")

        updated_fields: list[str] = []
        target: Optional[OrderItemStatus] = None

        if fields.get("workflow_status_key") is not None:
            target = await get_status_by_key(session, fields["workflow_status_key"])
            if target is None:
                raise ValidationError(f"Invalid workflow status key: {fields['workflow_status_key']}")
            updated_fields.append("workflow_status")

        if "tracking_number" in fields:
            updated_fields.append("tracking_number")

        if fields.get("shipping_method") is not None:
            if fields["shipping_method"] not in SHIPPING_METHODS:
                raise ValidationError('Invalid shipping method. Must be "air" or "sea"')
            updated_fields.append("shipping_method")

        if fields.get("shipping") is not None:
            if float(fields["shipping"]) < 0:
                raise ValidationError("Invalid shipping cost")
            updated_fields.append("shipping")

        if fields.get("quantity") is not None:
            if int(fields["quantity"]) < 1:
                raise ValidationError("Quantity must be at least 1")
            updated_fields.append("quantity")

        if not updated_fields:
            raise ValidationError(
                "No fields to update. Send at least one of: "
                "workflow_status_key, tracking_number, shipping_method, shipping, quantity"
            )

        order = await self._get_order(session, order_id)
        order_status_updated = False
        now = datetime.utcnow()

        try:
            if target is not None and target.id != item.workflow_status_id:
                session.add(
                    OrderItemStatusHistory(
                        order_product_id=item.id,
                        order_id=order_id,
                        from_status_id=item.workflow_status_id,
                        to_status_id=target.id,
                        changed_by=changed_by,
                        tracking_number=fields.get("tracking_number") or item.tracking_number,
                    )
                )
                item.workflow_status_id = target.id
                item.workflow_status_updated_at = now
                item.workflow_status_updated_by = changed_by
                legacy = workflow_key_to_legacy(target.status_key)
                if legacy is not None:
                    item.status = legacy

            if "tracking_number" in fields:
                item.tracking_number = fields["tracking_number"] or None
            if "shipping_method" in updated_fields:
                item.shipping_method = fields["shipping_method"]
            if "shipping" in updated_fields:
                item.shipping = float(fields["shipping"])
            if "quantity" in updated_fields:
                item.quantity = int(fields["quantity"])

            await session.flush()

            if "workflow_status" in updated_fields:
                _, order_status_updated = await recompute_order_status(session, order_id)

            if "shipping" in updated_fields or "quantity" in updated_fields:
                shipping_rows = await session.execute(
                    select(OrderItem.shipping).where(OrderItem.r_order_id == order_id)
                )
                total_shipping = round(sum(float(s or 0) for s in shipping_rows.scalars().all()), 2)
                order.shipping_amount = total_shipping
                order.total = round(
                    float(order.subtotal or 0)
                    + total_shipping
                    + float(order.tax_amount or 0)
                    - float(order.discount_amount or 0),
                    2,
                )

            if "shipping_method" in updated_fields:
                cancelled = await get_status_by_key(session, CANCELLED_KEY, active_only=False)
                stmt = select(OrderItem.shipping_method).where(OrderItem.r_order_id == order_id)
                if cancelled is not None:
                    stmt = stmt.where(
                        or_(OrderItem.workflow_status_id.is_(None), OrderItem.workflow_status_id != cancelled.id)
                    )
                methods = (await session.execute(stmt)).scalars().all()
                order.shipping_method = order_shipping_method(list(methods))

            order.updated_at = now
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        statuses = await load_statuses(session)
        current = statuses.get(item.workflow_status_id) if item.workflow_status_id else None
        logger.info(f"[OrderService] 订单 {order_id} 商品 {item_id} 已修改: {updated_fields}")

        return {
            "success": True,
            "item": {
                "id": item.id,
                "workflow_status_id": item.workflow_status_id,
                "workflow_status_label": current.status_label if current else "Unknown",
                "tracking_number": item.tracking_number,
                "shipping_method": item.shipping_method,
                "shipping": float(item.shipping) if item.shipping is not None else None,
                "quantity": item.quantity,
            },
            "updated_fields": updated_fields,
            "order_status_updated": order_status_updated,
            "order_shipping_amount": float(order.shipping_amount or 0),
            "order_shipping_method": order.shipping_method,
            "order_total": float(order.total or 0),
        }

    # ==================== 商品工作流 ====================

    def _check_terminal_permission(self, user: SessionUser, to_status_key: str) -> None:
        if to_status_key == CANCELLED_KEY and not user.has_permission(PERM_ITEM_CANCEL):
            raise PermissionDeniedError("You do not have permission to cancel items")
        if to_status_key == REFUNDED_KEY and not user.has_permission(PERM_ITEM_REFUND):
            raise PermissionDeniedError("You do not have permission to refund items")

    async def get_item_workflow(self, session: AsyncSession, item_id: int, user: SessionUser) -> dict:
        """
        商品当前状态下当前角色允许的流转

        Raises:
            NotFoundError: 商品不存在
            ValidationError: 商品没有工作流状态
        """
        item = await session.get(OrderItem, item_id)
        if item is None:
            raise NotFoundError("Item not found")
        if not item.workflow_status_id:
            raise ValidationError("Item has no workflow status assigned")

        transitions = await self.rbac.get_allowed_transitions(session, user.role_key, item.workflow_status_id)
        current = await session.get(OrderItemStatus, item.workflow_status_id)

        return {
            "item_id": item.id,
            "order_id": item.r_order_id,
            "product_name": item.product_name,
            "tracking_number": item.tracking_number,
            "current_status": {
                "id": current.id,
                "key": current.status_key,
                "label": current.status_label,
                "is_terminal": bool(current.is_terminal),
            } if current else None,
            "allowed_transitions": [
                {
                    "to_status_id": t.to_status_id,
                    "to_status_key": t.to_status_key,
                    "to_status_label": t.to_status_label,
                    "is_terminal": t.is_terminal,
                    "requires_tracking": t.requires_tracking,
                }
                for t in transitions
            ],
        }

    async def change_item_workflow(
        self,
        session: AsyncSession,
        item_id: int,
        to_status_key: str,
        user: SessionUser,
        tracking_number: Optional[str] = None,
        note: Optional[str] = None,
    ) -> dict:
        """
        切换单个商品的工作流状态

        同一事务内：修改商品（终态同步旧版状态码）、写审计记录、重新聚合订单状态

        Raises:
            PermissionDeniedError: 无取消/退款权限，或角色不允许该流转
            NotFoundError: 商品不存在
            ValidationError: 商品没有工作流状态，或缺少必需的物流单号
        """
        if not to_status_key:
            raise ValidationError("to_status_key is required")
        self._check_terminal_permission(user, to_status_key)

        item = await session.get(OrderItem, item_id)
        if item is None:
            raise NotFoundError("Item not found")
        if not item.workflow_status_id:
            raise ValidationError("Item has no workflow status assigned")

        transitions = await self.rbac.get_allowed_transitions(session, user.role_key, item.workflow_status_id)
        transition = next((t for t in transitions if t.to_status_key == to_status_key), None)
        if transition is None:
            raise PermissionDeniedError(
                f"Transition to '{to_status_key}' is not allowed for your role from the current status"
            )

        if transition.requires_tracking and not tracking_number and not item.tracking_number:
            raise ValidationError("Tracking number is required for this transition")

        from_status_id = item.workflow_status_id
        try:
            item.workflow_status_id = transition.to_status_id
            item.workflow_status_updated_at = datetime.utcnow()
            item.workflow_status_updated_by = user.user_id
            if tracking_number is not None:
                item.tracking_number = tracking_number or None
            legacy = workflow_key_to_legacy(to_status_key)
            if legacy is not None:
                item.status = legacy

            session.add(
                OrderItemStatusHistory(
                    order_product_id=item.id,
                    order_id=item.r_order_id,
                    from_status_id=from_status_id,
                    to_status_id=transition.to_status_id,
                    changed_by=user.user_id,
                    tracking_number=item.tracking_number,
                    notes=note or None,
                )
            )
            await session.flush()

            derived, changed = await recompute_order_status(session, item.r_order_id)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(
            f"[OrderService] 商品 {item_id} 工作流 {from_status_id} → {to_status_key} "
            f"(by user {user.user_id})"
        )

        return {
            "success": True,
            "item": {
                "id": item.id,
                "order_id": item.r_order_id,
                "workflow_status_key": transition.to_status_key,
                "workflow_status_label": transition.to_status_label,
                "is_terminal": transition.is_terminal,
                "tracking_number": item.tracking_number,
            },
            "order_status_changed": changed,
            "order_new_status": derived.status_key if changed and derived else None,
        }

    async def bulk_change_workflow(
        self,
        session: AsyncSession,
        item_ids: list[int],
        to_status_key: str,
        user: SessionUser,
        note: Optional[str] = None,
    ) -> dict:
        """
        批量切换商品工作流状态

        按商品当前状态分组校验角色流转权限，不允许的商品计入 skipped；
        全部跳过时整体失败。所有修改在一个事务内提交，每个涉及的订单只聚合一次。

        Raises:
            ValidationError: 参数无效、目标状态不存在，或全部商品都被跳过
            PermissionDeniedError: 无取消/退款权限
            NotFoundError: 一个商品都没找到
        """
        if not item_ids:
            raise ValidationError("item_ids must be a non-empty array")
        if len(item_ids) > MAX_BULK_ITEMS:
            raise ValidationError(f"Maximum {MAX_BULK_ITEMS} items per bulk operation")
        if not to_status_key:
            raise ValidationError("to_status_key is required")

        self._check_terminal_permission(user, to_status_key)

        target = await get_status_by_key(session, to_status_key)
        if target is None:
            raise ValidationError(f"Unknown status: {to_status_key}")

        unique_ids = list(dict.fromkeys(item_ids))
        items = list(
            (await session.execute(select(OrderItem).where(OrderItem.id.in_(unique_ids)))).scalars().all()
        )
        if not items:
            raise NotFoundError("No items found")

        skipped: list[dict] = []
        found_ids = {item.id for item in items}
        for missing in unique_ids:
            if missing not in found_ids:
                skipped.append({"item_id": missing, "reason": "Item not found"})

        by_status: dict[Optional[int], list[OrderItem]] = defaultdict(list)
        for item in items:
            by_status[item.workflow_status_id].append(item)

        eligible: list[OrderItem] = []
        for from_status_id, group in by_status.items():
            if from_status_id is None:
                skipped.extend({"item_id": i.id, "reason": "Item has no workflow status assigned"} for i in group)
                continue
            transitions = await self.rbac.get_allowed_transitions(session, user.role_key, from_status_id)
            if any(t.to_status_key == to_status_key for t in transitions):
                eligible.extend(group)
            else:
                skipped.extend(
                    {"item_id": i.id, "reason": "Transition not allowed from current status"} for i in group
                )

        if not eligible:
            raise ValidationError(
                "No items could be transitioned",
                extra={"skipped": skipped, "skipped_count": len(skipped)},
            )

        legacy = workflow_key_to_legacy(target.status_key)
        now = datetime.utcnow()
        order_changes: list[dict] = []

        try:
            for item in eligible:
                session.add(
                    OrderItemStatusHistory(
                        order_product_id=item.id,
                        order_id=item.r_order_id,
                        from_status_id=item.workflow_status_id,
                        to_status_id=target.id,
                        changed_by=user.user_id,
                        tracking_number=item.tracking_number,
                        notes=note or "Bulk status change",
                    )
                )
                item.workflow_status_id = target.id
                item.workflow_status_updated_at = now
                item.workflow_status_updated_by = user.user_id
                if legacy is not None:
                    item.status = legacy
            await session.flush()

            for order_id in sorted({item.r_order_id for item in eligible}):
                derived, changed = await recompute_order_status(session, order_id)
                if changed and derived is not None:
                    order_changes.append({"order_id": order_id, "new_status": derived.status_key})

            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(
            f"[OrderService] 批量切换 → {to_status_key}: 成功 {len(eligible)}, 跳过 {len(skipped)} "
            f"(by user {user.user_id})"
        )

        return {
            "success": True,
            "updated_count": len(eligible),
            "skipped": skipped,
            "skipped_count": len(skipped),
            "target_status": {"key": target.status_key, "label": target.status_label},
            "order_status_changes": order_changes,
        }


order_service = OrderService()
