# app/services/order_status.py
# 订单状态定义与流转校验
#
# 功能说明：
# 1. 旧版整数状态码（1-10）及其合法流转表
# 2. 商品工作流状态（7 步 + 2 个终态）的标准定义
# 3. 旧版状态码 → 工作流 status_key 的一次性映射
# 4. 工作流状态字典表的读取与初始化
#
# 状态模型：
#   工作流状态是权威表示；旧版状态码只在兼容接口和 App 端读取时使用。
#   legacy_to_workflow_key() 是两者之间唯一的换算入口，
#   业务代码不应再按数值区间（>=90、8-10 等）分支判断。
#
# 使用方法：
#   from app.services.order_status import validate_transition, legacy_to_workflow_key
#
#   validate_transition(order.status, new_status)   # 不合法时抛 TransitionError
#   key = legacy_to_workflow_key(3)                 # "shipped_to_leb"

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import TransitionError, ValidationError
from app.core.logging import get_logger
from app.models.order import OrderItemStatus

logger = get_logger(__name__)


# ==================== 旧版整数状态码 ====================

class LegacyStatus(IntEnum):
    CONFIRMED = 1
    PROCESSING = 2
    SHIPPING = 3
    DELIVERED = 4
    CANCELLED = 5
    REFUNDED = 6
    FAILED = 7
    ON_HOLD = 8
    PENDING = 9
    PROCESSED = 10


ORDER_STATUS_LABELS: dict[int, str] = {
    LegacyStatus.PENDING: "Pending",
    LegacyStatus.CONFIRMED: "Confirmed",
    LegacyStatus.PROCESSING: "Processing",
    LegacyStatus.PROCESSED: "Processed",
    LegacyStatus.SHIPPING: "Shipping",
    LegacyStatus.DELIVERED: "Delivered",
    LegacyStatus.CANCELLED: "Cancelled",
    LegacyStatus.REFUNDED: "Refunded",
    LegacyStatus.FAILED: "Failed",
    LegacyStatus.ON_HOLD: "On Hold",
}

# 当前状态 → 允许的下一个状态
VALID_STATUS_TRANSITIONS: dict[int, tuple[int, ...]] = {
    LegacyStatus.PENDING: (1, 2, 5, 8),
    LegacyStatus.CONFIRMED: (2, 10, 3, 5, 8),
    LegacyStatus.PROCESSING: (10, 3, 5, 8),
    LegacyStatus.PROCESSED: (3, 5, 8),
    LegacyStatus.SHIPPING: (4, 5),
    LegacyStatus.DELIVERED: (6,),
    LegacyStatus.CANCELLED: (9,),       # 恢复为待处理
    LegacyStatus.REFUNDED: (),
    LegacyStatus.FAILED: (9,),          # 重试
    LegacyStatus.ON_HOLD: (1, 2, 5, 9),
}

SHIPPING_STATUS_LABELS: dict[int, str] = {
    0: "Pending Review",
    1: "Ready to Pay",
    2: "Paid",
}

PAYMENT_TYPE_LABELS: dict[int, str] = {
    1: "Cash on Delivery",
    2: "Credit/Debit Card",
    3: "PayPal",
    4: "Stripe",
    5: "Online Payment",
    6: "Whish Money",
}


def status_label(code: Optional[int]) -> str:
    """旧版状态码的展示名称，未知状态返回 #<code>"""
    if code is None:
        return "Unknown"
    return ORDER_STATUS_LABELS.get(code, f"#{code}")


def is_known_status(code: int) -> bool:
    return code in ORDER_STATUS_LABELS


def allowed_next_statuses(current: int) -> tuple[int, ...]:
    return VALID_STATUS_TRANSITIONS.get(current, ())


def validate_transition(current: int, new: int) -> None:
    """
    校验旧版状态流转

    Raises:
        ValidationError: new 不是已知的状态码
        TransitionError: 流转表中不允许 current → new
    """
    if not is_known_status(new):
        raise ValidationError("Invalid status code")
    if new not in allowed_next_statuses(current):
        raise TransitionError(status_label(current), status_label(new))


# ==================== 工作流状态 ====================

CANCELLED_KEY = "cancelled"
REFUNDED_KEY = "refunded"


@dataclass(frozen=True)
class WorkflowStatusDef:
    key: str
    label: str
    order: int
    is_terminal: bool = False


WORKFLOW_STATUSES: tuple[WorkflowStatusDef, ...] = (
    WorkflowStatusDef("processing", "Processing", 1),
    WorkflowStatusDef("ordered", "Ordered", 2),
    WorkflowStatusDef("shipped_to_wh", "Shipped to WH", 3),
    WorkflowStatusDef("received_to_wh", "Received to WH", 4),
    WorkflowStatusDef("shipped_to_leb", "Shipped to LEB", 5),
    WorkflowStatusDef("received_to_leb", "Received to LEB", 6),
    WorkflowStatusDef("delivered_to_customer", "Delivered to Customer", 7),
    WorkflowStatusDef(CANCELLED_KEY, "Cancelled", 90, is_terminal=True),
    WorkflowStatusDef(REFUNDED_KEY, "Refunded", 91, is_terminal=True),
)

# 旧版状态码 → 工作流 status_key
_LEGACY_TO_WORKFLOW: dict[int, str] = {
    LegacyStatus.PENDING: "processing",
    LegacyStatus.CONFIRMED: "processing",
    LegacyStatus.PROCESSING: "processing",
    LegacyStatus.ON_HOLD: "processing",
    LegacyStatus.FAILED: "processing",
    LegacyStatus.PROCESSED: "ordered",
    LegacyStatus.SHIPPING: "shipped_to_leb",
    LegacyStatus.DELIVERED: "delivered_to_customer",
    LegacyStatus.CANCELLED: CANCELLED_KEY,
    LegacyStatus.REFUNDED: REFUNDED_KEY,
}

# 写入工作流终态时同步的旧版状态码
_WORKFLOW_TO_LEGACY: dict[str, int] = {
    CANCELLED_KEY: LegacyStatus.CANCELLED,
    REFUNDED_KEY: LegacyStatus.REFUNDED,
}


def legacy_to_workflow_key(code: int) -> str:
    """
    旧版状态码 → 工作流 status_key

    Raises:
        ValidationError: 未知状态码
    """
    try:
        return _LEGACY_TO_WORKFLOW[code]
    except KeyError:
        raise ValidationError("Invalid status code") from None


def workflow_key_to_legacy(status_key: str) -> Optional[int]:
    """终态对应的旧版状态码；非终态返回 None（旧版字段保持不变）"""
    return _WORKFLOW_TO_LEGACY.get(status_key)


# ==================== 状态字典表 ====================

async def load_statuses(session: AsyncSession) -> dict[int, OrderItemStatus]:
    """读取全部工作流状态，按 id 索引"""
    result = await session.execute(select(OrderItemStatus))
    return {s.id: s for s in result.scalars().all()}


async def get_status_by_key(
    session: AsyncSession,
    status_key: str,
    active_only: bool = True,
) -> Optional[OrderItemStatus]:
    stmt = select(OrderItemStatus).where(OrderItemStatus.status_key == status_key)
    if active_only:
        stmt = stmt.where(OrderItemStatus.is_active.is_(True))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def ensure_workflow_statuses(session: AsyncSession) -> int:
    """
    初始化工作流状态字典（已存在的 key 不覆盖）

    Returns:
        int: 新插入的条数
    """
    result = await session.execute(select(OrderItemStatus.status_key))
    existing = set(result.scalars().all())

    created = 0
    for definition in WORKFLOW_STATUSES:
        if definition.key in existing:
            continue
        session.add(
            OrderItemStatus(
                status_key=definition.key,
                status_label=definition.label,
                status_order=definition.order,
                is_terminal=definition.is_terminal,
                is_active=True,
            )
        )
        created += 1

    if created:
        await session.commit()
        logger.info(f"[OrderStatus] 已初始化 {created} 个工作流状态")
    return created
