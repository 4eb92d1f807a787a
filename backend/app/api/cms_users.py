# app/api/cms_users.py
# 后台账号管理 API
#
# 功能说明：
# 1. 后台账号列表和详情（不返回密码哈希）
# 2. 创建、修改账号，邮箱重复返回 409
# 3. 删除账号，不能删除当前登录的账号
#
# 路由：
#   GET    /api/cms-users
#   POST   /api/cms-users
#   GET    /api/cms-users/{user_id}
#   PUT    /api/cms-users/{user_id}
#   DELETE /api/cms-users/{user_id}

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.logging import get_logger
from app.core.security import SessionUser, get_current_session
from app.schemas.user import CmsUserCreate, CmsUserUpdate
from app.services.cms_user_service import cms_user_service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/cms-users", tags=["后台账号"])


@router.get("")
async def list_cms_users(
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    return {"users": await cms_user_service.list_users(session)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_cms_user(
    data: CmsUserCreate,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    created = await cms_user_service.create_user(
        session, email=data.email, password=data.password, name=data.name, is_active=data.is_active,
    )
    logger.info(f"[CmsUsersAPI] {user.email} 创建账号 {created['email']}")
    return {"user": created}


@router.get("/{user_id}")
async def get_cms_user(
    user_id: int,
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    return {"user": await cms_user_service.get_user(session, user_id)}


@router.put("/{user_id}")
async def update_cms_user(
    user_id: int,
    data: CmsUserUpdate,
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    updated = await cms_user_service.update_user(session, user_id, data.model_dump(exclude_unset=True))
    return {"user": updated}


@router.delete("/{user_id}")
async def delete_cms_user(
    user_id: int,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    await cms_user_service.delete_user(session, user_id, current_user_id=user.user_id)
    logger.info(f"[CmsUsersAPI] {user.email} 删除账号 {user_id}")
    return {"success": True}
