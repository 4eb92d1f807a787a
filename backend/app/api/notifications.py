# app/api/notifications.py
# 通知管理 API
#
# 功能说明：
# 1. 通知列表（搜索、类型、广播 / 单人筛选，分页，触达统计）
# 2. 创建通知：广播给所有活跃顾客或发给单个顾客，可选手机推送
# 3. 通知详情（接收人、已读统计、关联实体）和删除
#
# 路由：
#   GET    /api/notifications
#   POST   /api/notifications
#   GET    /api/notifications/{notification_id}
#   DELETE /api/notifications/{notification_id}

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db, row_to_dict
from app.core.logging import get_logger
from app.core.security import SessionUser, get_current_session
from app.schemas.notification import NotificationCreate
from app.services.notification_service import notification_service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["通知管理"])


@router.get("")
async def list_notifications(
    page: int = Query(1, ge=1, description="页码"),
    limit: int = Query(20, ge=1, le=100, description="每页数量"),
    search: str = Query("", description="标题 / 正文，纯数字时也匹配通知 ID 和顾客 ID"),
    notification_type: str = Query("", alias="type"),
    target: str = Query("", pattern="^(all|single)?$", description="all 广播 / single 单人"),
    sort: str = Query("created_at"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    return await notification_service.list_notifications(
        session,
        page=page,
        limit=limit,
        search=search,
        notification_type=notification_type,
        target=target,
        sort=sort,
        order=order,
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_notification(
    data: NotificationCreate,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    """
    创建通知

    r_user_id 为空时广播，返回的 reach 为写入的顾客数
    """
    notification, reach = await notification_service.create_notification(
        session,
        subject=data.subject,
        body=data.body,
        notification_type=data.notification_type,
        r_user_id=data.r_user_id,
        row_id=data.row_id,
        action_url=data.action_url,
        image_url=data.image_url,
        send_push=data.send_push,
        created_by=user.user_id,
    )
    return {"success": True, "notification": row_to_dict(notification), "reach": reach}


@router.get("/{notification_id}")
async def get_notification(
    notification_id: int,
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    return await notification_service.get_notification(session, notification_id)


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    """删除通知，广播的逐人记录一并删除"""
    await notification_service.delete_notification(session, notification_id)
    logger.info(f"[NotificationsAPI] {user.email} 删除通知 {notification_id}")
    return {"success": True}
