# app/services/order_aggregator.py
# 订单状态聚合
#
# 功能说明：
# 根据订单下所有商品的工作流状态，推导订单级状态：
# 1. 所有商品都处于终态：全部 refunded → 订单 refunded；否则 → 订单 cancelled
# 2. 否则取非终态商品中 status_order 最小（进度最慢）的状态；
#    status_order 相同时取 item id 最小的商品
# 3. 没有工作流状态的商品不参与排序，但有这样的商品时不算"全部终态"：
#    其余商品全是终态时不做任何修改（[cancelled, 未分配] 不会把订单改成 cancelled）
# 4. 一个可计算的商品都没有时不做任何修改
#
# 持久化规则：
#   订单已经处于推导出的状态时不追加轨迹，重复调用不会产生重复的轨迹行
#
# 使用方法：
#   from app.services.order_aggregator import recompute_order_status
#
#   derived, changed = await recompute_order_status(session, order_id)
#   await session.commit()

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.models.order import Order, OrderItem, OrderTracking
from app.services.order_status import (
    CANCELLED_KEY,
    REFUNDED_KEY,
    load_statuses,
    workflow_key_to_legacy,
)

logger = get_logger(__name__)

# 字典表中缺少 cancelled 状态时使用的轨迹状态值
_FALLBACK_CANCELLED_ORDER = 90


class StatusLike(Protocol):
    id: int
    status_key: str
    status_label: str
    status_order: int
    is_terminal: bool


@dataclass(frozen=True)
class DerivedOrderStatus:
    """推导结果"""

    workflow_status_id: Optional[int]
    status_key: str
    status_label: str
    # 终态时同步写入 orders.status 的旧版状态码
    legacy_status: Optional[int]
    # 写入 order_tracking.r_status_id 的值（工作流 status_order）
    tracking_status_id: int


def _result_for(status: StatusLike) -> DerivedOrderStatus:
    return DerivedOrderStatus(
        workflow_status_id=status.id,
        status_key=status.status_key,
        status_label=status.status_label,
        legacy_status=workflow_key_to_legacy(status.status_key),
        tracking_status_id=status.status_order,
    )


def derive_order_status(
    items: Iterable[tuple[int, Optional[int]]],
    statuses: Mapping[int, StatusLike],
) -> Optional[DerivedOrderStatus]:
    """
    推导订单状态（纯函数）

    Args:
        items: (item_id, workflow_status_id) 列表
        statuses: 全部工作流状态，按 id 索引

    Returns:
        DerivedOrderStatus，没有可计算的商品时返回 None
    """
    items = list(items)
    resolved = sorted(
        (
            (item_id, statuses[status_id])
            for item_id, status_id in items
            if status_id is not None and status_id in statuses
        ),
        key=lambda pair: pair[0],
    )
    if not resolved:
        return None

    non_terminal = [(item_id, s) for item_id, s in resolved if not s.is_terminal]

    if not non_terminal:
        if len(resolved) < len(items):
            return None
        if all(s.status_key == REFUNDED_KEY for _, s in resolved):
            return _result_for(resolved[0][1])

        cancelled = next(
            (s for s in statuses.values() if s.status_key == CANCELLED_KEY),
            None,
        )
        if cancelled is not None:
            return _result_for(cancelled)
        return DerivedOrderStatus(
            workflow_status_id=None,
            status_key=CANCELLED_KEY,
            status_label="Cancelled",
            legacy_status=workflow_key_to_legacy(CANCELLED_KEY),
            tracking_status_id=_FALLBACK_CANCELLED_ORDER,
        )

    _, lowest = min(non_terminal, key=lambda pair: (pair[1].status_order, pair[0]))
    return _result_for(lowest)


def apply_derived_status(order: Order, derived: DerivedOrderStatus) -> Optional[OrderTracking]:
    """
    把推导结果写入订单对象

    Returns:
        OrderTracking: 需要追加的轨迹行；订单已处于该状态时返回 None
    """
    unchanged = (
        order.workflow_status_id == derived.workflow_status_id
        and (derived.legacy_status is None or order.status == derived.legacy_status)
    )
    if unchanged:
        return None

    order.workflow_status_id = derived.workflow_status_id
    if derived.legacy_status is not None:
        order.status = derived.legacy_status
    return OrderTracking(r_order_id=order.id, r_status_id=derived.tracking_status_id)


async def derive_for_order(session: AsyncSession, order_id: int) -> Optional[DerivedOrderStatus]:
    """按数据库中商品的当前状态推导订单状态，不写入"""
    result = await session.execute(
        select(OrderItem.id, OrderItem.workflow_status_id).where(OrderItem.r_order_id == order_id)
    )
    items = [(row.id, row.workflow_status_id) for row in result.all()]
    return derive_order_status(items, await load_statuses(session))


async def recompute_order_status(
    session: AsyncSession,
    order_id: int,
) -> tuple[Optional[DerivedOrderStatus], bool]:
    """
    重新计算并写入订单状态（不提交，由调用方的事务统一提交）

    Returns:
        (推导结果, 是否发生变化)
    """
    order = await session.get(Order, order_id)
    if order is None:
        return None, False

    derived = await derive_for_order(session, order_id)
    if derived is None:
        return None, False

    tracking = apply_derived_status(order, derived)
    if tracking is None:
        logger.debug(f"[OrderAggregator] 订单 {order_id} 状态未变化: {derived.status_key}")
        return derived, False

    session.add(tracking)
    logger.info(f"[OrderAggregator] 订单 {order_id} 聚合状态 → {derived.status_key}")
    return derived, True
