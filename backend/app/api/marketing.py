# app/api/marketing.py
# 首页运营内容 API
#
# 功能说明：
# 1. 轮播（sliders）和移动端网格
# 2. 网格元素增删改
# 3. 闪购活动增删改查及活动商品
#
# 路由：
#   GET    /api/banners                       轮播 + 网格（含元素）
#   POST   /api/banners                       新建轮播
#   PUT    /api/banners/{id}                  修改轮播
#   DELETE /api/banners/{id}                  删除轮播
#   GET    /api/grid-elements                 网格元素列表
#   POST   /api/grid-elements                 新建网格元素
#   PUT    /api/grid-elements/{id}            修改网格元素
#   DELETE /api/grid-elements/{id}            删除网格元素
#   GET    /api/flash-sales                   闪购活动列表（含商品数）
#   POST   /api/flash-sales                   新建闪购活动
#   GET    /api/flash-sales/{id}              闪购详情（含商品）
#   PUT    /api/flash-sales/{id}              修改闪购活动
#   DELETE /api/flash-sales/{id}              删除闪购活动
#   GET    /api/flash-sales/{id}/products     闪购商品（美元价格）
#   POST   /api/flash-sales/{id}/products     加入闪购
#   DELETE /api/flash-sales/{id}/products     移出闪购
#
# 说明：
#   所有写操作成功后都会通知 App 后端清除首页缓存（失败只记日志）

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db, row_to_dict
from app.core.logging import get_logger
from app.core.security import SessionUser, get_current_session
from app.schemas.marketing import (
    FlashSaleCreate,
    FlashSaleProductsRequest,
    FlashSaleUpdate,
    GridElementCreate,
    GridElementUpdate,
    SliderCreate,
    SliderUpdate,
)
from app.services.marketing_service import marketing_service

logger = get_logger(__name__)


router = APIRouter(prefix="/api", tags=["首页运营"])


# ==================== 轮播 ====================

@router.get("/banners")
async def list_banners(
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    return await marketing_service.list_banners(session)


@router.post("/banners", status_code=status.HTTP_201_CREATED)
async def create_banner(
    data: SliderCreate,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    slider = await marketing_service.create_slider(session, data.model_dump(exclude_unset=True))
    logger.info(f"[MarketingAPI] {user.email} 新建轮播 {slider.id}")
    return {"success": True, "slider": row_to_dict(slider)}


@router.put("/banners/{slider_id}")
async def update_banner(
    slider_id: int,
    data: SliderUpdate,
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    slider = await marketing_service.update_slider(session, slider_id, data.model_dump(exclude_unset=True))
    return {"success": True, "slider": row_to_dict(slider)}


@router.delete("/banners/{slider_id}")
async def delete_banner(
    slider_id: int,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    await marketing_service.delete_slider(session, slider_id)
    logger.info(f"[MarketingAPI] {user.email} 删除轮播 {slider_id}")
    return {"success": True}


# ==================== 网格元素 ====================

@router.get("/grid-elements")
async def list_grid_elements(
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    return {"elements": await marketing_service.list_grid_elements(session)}


@router.post("/grid-elements", status_code=status.HTTP_201_CREATED)
async def create_grid_element(
    data: GridElementCreate,
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    """新建网格元素，自动排在最下方"""
    element = await marketing_service.create_grid_element(session, data.model_dump(exclude_unset=True))
    return {"success": True, "element": element}


@router.put("/grid-elements/{element_id}")
async def update_grid_element(
    element_id: int,
    data: GridElementUpdate,
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    element = await marketing_service.update_grid_element(
        session, element_id, data.model_dump(exclude_unset=True)
    )
    return {"success": True, "element": element}


@router.delete("/grid-elements/{element_id}")
async def delete_grid_element(
    element_id: int,
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    await marketing_service.delete_grid_element(session, element_id)
    return {"success": True}


# ==================== 闪购活动 ====================

@router.get("/flash-sales")
async def list_flash_sales(
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    return await marketing_service.list_flash_sales(session)


@router.post("/flash-sales", status_code=status.HTTP_201_CREATED)
async def create_flash_sale(
    data: FlashSaleCreate,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    """新建闪购活动，排在最后；可同时传入 product_ids"""
    sale = await marketing_service.create_flash_sale(
        session, {**data.model_dump(exclude_unset=True), "created_by": user.user_id}
    )
    logger.info(f"[MarketingAPI] {user.email} 新建闪购 {sale.id}")
    return {"success": True, "sale": row_to_dict(sale)}


@router.get("/flash-sales/{flash_id}")
async def get_flash_sale(
    flash_id: int,
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    return await marketing_service.get_flash_sale(session, flash_id)


@router.put("/flash-sales/{flash_id}")
async def update_flash_sale(
    flash_id: int,
    data: FlashSaleUpdate,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    sale = await marketing_service.update_flash_sale(session, flash_id, data.model_dump(exclude_unset=True))
    logger.info(f"[MarketingAPI] {user.email} 修改闪购 {flash_id}")
    return {"success": True, "sale": row_to_dict(sale)}


@router.delete("/flash-sales/{flash_id}")
async def delete_flash_sale(
    flash_id: int,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    """删除闪购活动及其商品关联"""
    await marketing_service.delete_flash_sale(session, flash_id)
    logger.info(f"[MarketingAPI] {user.email} 删除闪购 {flash_id}")
    return {"success": True}


# ==================== 闪购商品 ====================

@router.get("/flash-sales/{flash_id}/products")
async def list_flash_sale_products(
    flash_id: int,
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    return await marketing_service.list_flash_sale_products(session, flash_id)


@router.post("/flash-sales/{flash_id}/products")
async def add_flash_sale_products(
    flash_id: int,
    data: FlashSaleProductsRequest,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    """加入闪购，已在活动中的商品计入 skipped"""
    result = await marketing_service.add_flash_sale_products(session, flash_id, data.product_ids)
    logger.info(f"[MarketingAPI] {user.email} 闪购 {flash_id} 加入 {result['added']} 个商品")
    return result


@router.delete("/flash-sales/{flash_id}/products")
async def remove_flash_sale_products(
    flash_id: int,
    data: FlashSaleProductsRequest = Body(...),
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    result = await marketing_service.remove_flash_sale_products(session, flash_id, data.product_ids)
    logger.info(f"[MarketingAPI] {user.email} 闪购 {flash_id} 移出 {result['removed']} 个商品")
    return result
