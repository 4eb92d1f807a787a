# app/api/settings.py
# 系统设置 API
#
# 提供定价配置的读取与修改：
# - markup_percent  加价百分比
# - exchange_rate   人民币 → 美元汇率
#
# 修改后商品列表、闪购列表立即按新参数计算美元价格

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.logging import get_logger
from app.core.security import SessionUser, get_current_session
from app.schemas.settings import PricingSettings, PricingSettingsUpdate
from app.services.pricing import pricing_service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/settings", tags=["系统设置"])


@router.get("/pricing", response_model=PricingSettings)
async def get_pricing(
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    config = await pricing_service.get_config(session)
    return PricingSettings(markup_percent=config.markup_percent, exchange_rate=config.exchange_rate)


@router.patch("/pricing", response_model=PricingSettings)
async def update_pricing(
    data: PricingSettingsUpdate,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    """更新定价配置，未提交的项保持不变"""
    config = await pricing_service.update_config(
        session,
        markup_percent=data.markup_percent,
        exchange_rate=data.exchange_rate,
    )
    logger.info(f"[SettingsAPI] {user.email} 修改定价配置")
    return PricingSettings(markup_percent=config.markup_percent, exchange_rate=config.exchange_rate)
