# app/api/order_items.py
# 订单商品工作流 API
#
# 功能说明：
# 1. 商品总表（按角色可见范围筛选，游标分页，附状态汇总）
# 2. 查询商品当前状态下当前角色允许的流转
# 3. 切换单个商品的工作流状态
# 4. 批量切换（最多 200 个）
#
# 权限：
#   page.orders.item_master_list       查看商品总表
#   action.orders.item.status.change   修改商品状态（必需）
#   action.orders.item.cancel          目标为 cancelled 时额外需要
#   action.orders.item.refund          目标为 refunded 时额外需要
#
# 路由：
#   GET  /api/orders/items
#   GET  /api/orders/items/{item_id}/workflow
#   PUT  /api/orders/items/{item_id}/workflow
#   PUT  /api/orders/items/bulk-workflow

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.logging import get_logger
from app.core.security import SessionUser, get_current_session, require_permission
from app.schemas.order import BulkWorkflowChange, ItemWorkflowChange
from app.services.order_service import order_service
from app.services.pagination import MAX_PAGE_SIZE
from app.services.rbac import PERM_ITEM_MASTER_LIST, PERM_ITEM_STATUS_CHANGE

logger = get_logger(__name__)

router = APIRouter(prefix="/api/orders/items", tags=["订单商品工作流"])


@router.get("")
async def list_order_items(
    cursor: Optional[int] = Query(None, description="上一页返回的 nextCursor"),
    limit: Optional[int] = Query(None, ge=1, le=MAX_PAGE_SIZE),
    search: str = Query("", description="商品行 / 订单 / 商品 id，或商品名 / 物流单号"),
    workflow_status: Optional[str] = Query(None, description="工作流 status_key"),
    tracking_number: Optional[str] = Query(None, pattern="^(has|missing)$"),
    order_id: Optional[int] = Query(None),
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(require_permission(PERM_ITEM_MASTER_LIST)),
):
    """商品总表，采购 / 中国仓 / 黎巴嫩仓角色只看到各自负责的状态"""
    return await order_service.list_items(
        session,
        user,
        cursor=cursor,
        page_size=limit,
        search=search.strip(),
        workflow_status=workflow_status,
        tracking=tracking_number,
        order_id=order_id,
    )


@router.put("/bulk-workflow")
async def bulk_change_workflow(
    data: BulkWorkflowChange,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(require_permission(PERM_ITEM_STATUS_CHANGE)),
):
    """
    批量切换商品工作流状态

    不允许流转的商品会出现在 skipped 中，全部跳过时返回 400
    """
    result = await order_service.bulk_change_workflow(
        session, data.item_ids, data.to_status_key, user, note=data.note
    )
    logger.info(
        f"[OrderItemsAPI] {user.email} 批量切换 → {data.to_status_key}: "
        f"更新 {result['updated_count']}，跳过 {result['skipped_count']}"
    )
    return result


@router.get("/{item_id}/workflow")
async def get_item_workflow(
    item_id: int,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    return await order_service.get_item_workflow(session, item_id, user)


@router.put("/{item_id}/workflow")
async def change_item_workflow(
    item_id: int,
    data: ItemWorkflowChange,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(require_permission(PERM_ITEM_STATUS_CHANGE)),
):
    """切换单个商品状态，完成后重新聚合订单状态"""
    result = await order_service.change_item_workflow(
        session,
        item_id,
        data.to_status_key,
        user,
        tracking_number=data.tracking_number,
        note=data.note,
    )
    logger.info(f"[OrderItemsAPI] {user.email} 商品 {item_id} → {data.to_status_key}")
    return result
