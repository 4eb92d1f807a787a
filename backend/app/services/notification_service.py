# app/services/notification_service.py
# 通知服务
#
# 功能说明：
# 1. notify_customer - 订单状态变更、退款后给顾客发推送并写通知记录（尽力而为）
# 2. list_notifications - 通知列表（筛选、分页、触达统计）
# 3. create_notification - 后台手动创建通知，广播时展开到每个活跃顾客，可选推送
# 4. get_notification / delete_notification - 详情（接收人、已读统计、关联订单 / 商品 / 品类）、删除
#
# 使用方法：
#   from app.services.notification_service import notification_service
#
#   # 必须在主事务提交之后调用
#   await notification_service.notify_customer(
#       session, order.r_user_id, "Order #12 Shipping", "Your order has been shipping.", row_id=12,
#   )

import json
import math
from typing import Any, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import row_to_dict
from app.core.exceptions import NotFoundError, ValidationError
from app.core.logging import get_logger
from app.models.category import Category
from app.models.customer import Customer
from app.models.notification import Notification, UserNotification
from app.models.order import Order
from app.models.product import Product
from app.services.backend_client import BackendClient, backend_client
from app.services.order_status import status_label

logger = get_logger(__name__)

# 通知列表允许的排序字段
_SORT_COLUMNS = {
    "created_at": Notification.created_at,
    "subject": Notification.subject,
    "id": Notification.id,
}

# 广播详情中最多列出的接收人数
MAX_LISTED_RECIPIENTS = 50


class NotificationService:
    """通知服务"""

    def __init__(self, backend: Optional[BackendClient] = None):
        self.backend = backend or backend_client

    # ==================== 订单通知 ====================

    async def notify_customer(
        self,
        session: AsyncSession,
        user_id: int,
        subject: str,
        message: str,
        row_id: Optional[int] = None,
        notification_type: str = "order",
        extra: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        给顾客发推送并写入通知记录

        尽力而为：推送失败或写库失败只记录日志，不向调用方抛出。
        调用前主事务必须已经提交，这里的失败不会影响主操作的结果。
        """
        try:
            customer = await session.get(Customer, user_id)

            if customer is not None and customer.mobile_token:
                data = {"type": notification_type, "notification_type": notification_type}
                if row_id is not None:
                    data["order_id"] = str(row_id)
                    data["target_id"] = str(row_id)
                await self.backend.send_push(customer.mobile_token, subject, message, data)

            session.add(
                Notification(
                    r_user_id=user_id,
                    notification_type=notification_type,
                    subject=subject,
                    body=json.dumps({"message": message, "order_id": row_id, **(extra or {})}),
                    row_id=row_id,
                )
            )
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.warning(f"[NotificationService] 通知记录写入失败（已忽略）: user={user_id}, 错误: {e}")

    # ==================== 通知列表 ====================

    async def list_notifications(
        self,
        session: AsyncSession,
        page: int = 1,
        limit: int = 20,
        search: str = "",
        notification_type: str = "",
        target: str = "",
        sort: str = "created_at",
        order: str = "desc",
    ) -> dict:
        """
        通知列表

        Args:
            target: "all" 只看广播，"single" 只看单人通知，空表示全部
            sort: created_at / subject / id，其他值按 created_at

        Returns:
            dict: notifications, pagination, stats
        """
        page = max(1, page)
        limit = min(100, max(1, limit))

        conditions = []
        search = search.strip()
        if search:
            search_conditions = [
                Notification.subject.contains(search),
                Notification.body.contains(search),
            ]
            if search.isdigit():
                search_conditions.append(Notification.id == int(search))
                search_conditions.append(Notification.r_user_id == int(search))
            conditions.append(or_(*search_conditions))
        if notification_type:
            conditions.append(Notification.notification_type == notification_type)
        if target == "all":
            conditions.append(Notification.r_user_id.is_(None))
        elif target == "single":
            conditions.append(Notification.r_user_id.is_not(None))

        sort_column = _SORT_COLUMNS.get(sort, Notification.created_at)
        order_by = sort_column.asc() if order == "asc" else sort_column.desc()

        rows = (
            await session.execute(
                select(Notification)
                .where(*conditions)
                .order_by(order_by, Notification.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
        ).scalars().all()
        total = await session.scalar(select(func.count(Notification.id)).where(*conditions)) or 0

        # 单人通知的接收人
        user_ids = {n.r_user_id for n in rows if n.r_user_id is not None}
        users: dict[int, Customer] = {}
        if user_ids:
            result = await session.execute(select(Customer).where(Customer.id.in_(sorted(user_ids))))
            users = {u.id: u for u in result.scalars().all()}

        # 广播通知的触达数和已读数
        broadcast_ids = [n.id for n in rows if n.r_user_id is None]
        reach: dict[int, int] = {}
        seen: dict[int, int] = {}
        if broadcast_ids:
            reach_rows = await session.execute(
                select(UserNotification.notification_id, func.count(UserNotification.id))
                .where(UserNotification.notification_id.in_(broadcast_ids))
                .group_by(UserNotification.notification_id)
            )
            reach = {nid: cnt for nid, cnt in reach_rows.all()}
            seen_rows = await session.execute(
                select(UserNotification.notification_id, func.count(UserNotification.id))
                .where(
                    UserNotification.notification_id.in_(broadcast_ids),
                    UserNotification.is_seen == 1,
                )
                .group_by(UserNotification.notification_id)
            )
            seen = {nid: cnt for nid, cnt in seen_rows.all()}

        notifications = []
        for n in rows:
            target_user = users.get(n.r_user_id) if n.r_user_id is not None else None
            notifications.append({
                "id": n.id,
                "r_user_id": n.r_user_id,
                "notification_type": n.notification_type,
                "subject": n.subject,
                "body": n.body,
                "row_id": n.row_id,
                "action_url": n.action_url,
                "image_url": n.image_url,
                "is_seen": n.is_seen,
                "created_at": n.created_at,
                "target_user": {
                    "id": target_user.id,
                    "first_name": target_user.first_name,
                    "last_name": target_user.last_name,
                    "email": target_user.email,
                    "main_image": target_user.main_image,
                } if target_user else None,
                "reach_count": reach.get(n.id, 0) if n.r_user_id is None else 1,
                "seen_count": seen.get(n.id, 0) if n.r_user_id is None else n.is_seen,
            })

        stats = {
            "total": await session.scalar(select(func.count(Notification.id))) or 0,
            "broadcast": await session.scalar(
                select(func.count(Notification.id)).where(Notification.r_user_id.is_(None))
            ) or 0,
            "order": await session.scalar(
                select(func.count(Notification.id)).where(Notification.notification_type == "order")
            ) or 0,
            "promo": await session.scalar(
                select(func.count(Notification.id)).where(Notification.notification_type == "promo")
            ) or 0,
        }

        return {
            "notifications": notifications,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit),
            },
            "stats": stats,
        }

    # ==================== 详情 / 删除 ====================

    async def _get_notification(self, session: AsyncSession, notification_id: int) -> Notification:
        notification = await session.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        return notification

    async def get_notification(self, session: AsyncSession, notification_id: int) -> dict:
        """
        通知详情

        单人通知返回 target_user；广播返回 recipient_stats（总数 / 已读 / 未读）
        和最近 50 个接收人；row_id 指向的订单 / 商品 / 品类放在 related_entity

        Raises:
            NotFoundError: 通知不存在
        """
        notification = await self._get_notification(session, notification_id)

        target_user = None
        recipient_stats = None
        recipients: list[dict] = []

        if notification.r_user_id is not None:
            customer = await session.get(Customer, notification.r_user_id)
            if customer is not None:
                target_user = {
                    "id": customer.id,
                    "first_name": customer.first_name,
                    "last_name": customer.last_name,
                    "email": customer.email,
                    "phone_number": customer.phone_number,
                    "country_code": customer.country_code,
                    "main_image": customer.main_image,
                    "is_active": customer.is_active,
                    "created_at": customer.created_at,
                }
        else:
            counts = dict(
                (
                    await session.execute(
                        select(UserNotification.is_seen, func.count(UserNotification.id))
                        .where(UserNotification.notification_id == notification_id)
                        .group_by(UserNotification.is_seen)
                    )
                ).all()
            )
            total = sum(counts.values())
            seen = counts.get(1, 0)
            recipient_stats = {"total": total, "seen": seen, "unseen": total - seen}

            rows = (
                await session.execute(
                    select(UserNotification)
                    .where(UserNotification.notification_id == notification_id)
                    .order_by(UserNotification.id.desc())
                    .limit(MAX_LISTED_RECIPIENTS)
                )
            ).scalars().all()
            customers: dict[int, Customer] = {}
            if rows:
                result = await session.execute(
                    select(Customer).where(Customer.id.in_({r.r_user_id for r in rows}))
                )
                customers = {c.id: c for c in result.scalars().all()}
            for row in rows:
                customer = customers.get(row.r_user_id)
                recipients.append({
                    "id": row.r_user_id,
                    "first_name": customer.first_name if customer else None,
                    "last_name": customer.last_name if customer else None,
                    "email": customer.email if customer else None,
                    "main_image": customer.main_image if customer else None,
                    "is_seen": row.is_seen,
                })

        return {
            "notification": row_to_dict(notification),
            "target_user": target_user,
            "recipient_stats": recipient_stats,
            "recipients": recipients,
            "related_entity": await self._related_entity(session, notification),
        }

    async def _related_entity(self, session: AsyncSession, notification: Notification) -> Optional[dict]:
        """按通知类型解析 row_id：order / shipping → 订单，product → 商品，category → 品类"""
        row_id = notification.row_id
        if not row_id:
            return None

        if notification.notification_type in ("order", "shipping"):
            order = await session.get(Order, row_id)
            if order is None:
                return None
            return {
                "type": "order",
                "data": {
                    "id": order.id,
                    "r_user_id": order.r_user_id,
                    "total": float(order.total or 0),
                    "status": order.status,
                    "status_label": status_label(order.status),
                    "payment_type": order.payment_type,
                    "is_paid": order.is_paid,
                    "created_at": order.created_at,
                    "address_first_name": order.address_first_name,
                    "address_last_name": order.address_last_name,
                    "country": order.country,
                    "city": order.city,
                },
            }

        if notification.notification_type == "product":
            product = await session.get(Product, row_id)
            if product is None:
                return None
            return {
                "type": "product",
                "data": {
                    "id": product.id,
                    "product_name": product.product_name,
                    "product_code": product.product_code,
                    "product_price": float(product.product_price or 0),
                    "main_image": product.main_image,
                },
            }

        if notification.notification_type == "category":
            category = await session.get(Category, row_id)
            if category is None:
                return None
            return {
                "type": "category",
                "data": {
                    "id": category.id,
                    "category_name": category.category_name,
                    "main_image": category.main_image,
                    "product_count": category.product_count,
                    "level": category.level,
                },
            }

        return None

    async def delete_notification(self, session: AsyncSession, notification_id: int) -> None:
        """删除通知及其全部 users_notifications 记录"""
        notification = await self._get_notification(session, notification_id)

        try:
            await session.execute(
                delete(UserNotification).where(UserNotification.notification_id == notification_id)
            )
            await session.delete(notification)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(f"[NotificationService] 删除通知 {notification_id}")

    # ==================== 手动创建 ====================

    async def create_notification(
        self,
        session: AsyncSession,
        subject: str,
        body: str,
        notification_type: str = "general",
        r_user_id: Optional[int] = None,
        row_id: Optional[int] = None,
        action_url: Optional[str] = None,
        image_url: Optional[str] = None,
        send_push: bool = False,
        created_by: Optional[int] = None,
    ) -> tuple[Notification, int]:
        """
        创建通知

        r_user_id 为空时为广播：为每个活跃顾客写入 users_notifications，
        推送走主题 "global"；否则推送到该顾客的设备。

        Returns:
            (通知记录, 触达人数)

        Raises:
            ValidationError: subject 或 body 为空
        """
        if not subject or not body:
            raise ValidationError("Subject and body are required")

        notification = Notification(
            subject=subject,
            body=body,
            notification_type=notification_type or "general",
            r_user_id=r_user_id,
            row_id=row_id,
            action_url=action_url,
            image_url=image_url,
            created_by=created_by,
            is_seen=0,
        )
        session.add(notification)
        await session.flush()

        reach = 1
        if r_user_id is None:
            result = await session.execute(select(Customer.id).where(Customer.is_active.is_(True)))
            active_ids = result.scalars().all()
            session.add_all(
                UserNotification(r_user_id=uid, notification_id=notification.id, is_seen=0)
                for uid in active_ids
            )
            reach = len(active_ids)

        await session.commit()
        await session.refresh(notification)
        logger.info(
            f"[NotificationService] 创建通知 {notification.id} "
            f"({'广播' if r_user_id is None else f'user={r_user_id}'}, 触达 {reach})"
        )

        if send_push:
            await self._push(session, notification)

        return notification, reach

    async def _push(self, session: AsyncSession, notification: Notification) -> None:
        data = {
            "notification_type": notification.notification_type,
            "target_id": str(notification.row_id) if notification.row_id else "",
            "action_url": notification.action_url or "",
            "image_url": notification.image_url or "",
        }

        if notification.r_user_id is None:
            await self.backend.send_push_to_topic(notification.subject, notification.body, data)
            return

        customer = await session.get(Customer, notification.r_user_id)
        if customer is not None and customer.mobile_token:
            await self.backend.send_push(customer.mobile_token, notification.subject, notification.body, data)


notification_service = NotificationService()
