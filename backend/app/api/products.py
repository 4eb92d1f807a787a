# app/api/products.py
# 商品目录 API
#
# 功能说明：
# 1. 商品列表（按 id 倒序游标分页）
# 2. 搜索：商品编码（CN- 前缀或 5 位以上数字）走前缀匹配，其余按名称模糊匹配
# 3. 筛选：品类子树、库存、排除品类
# 4. 每行附带 App 展示用的美元价格
#
# 路由：
#   GET /api/products

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import SessionUser, get_current_session
from app.schemas.product import ProductListResponse
from app.services.pagination import MAX_PAGE_SIZE
from app.services.product_service import product_service


router = APIRouter(prefix="/api/products", tags=["商品目录"])


@router.get("", response_model=ProductListResponse)
async def list_products(
    cursor: Optional[int] = Query(None, description="上一页返回的 next_cursor"),
    page_size: Optional[int] = Query(None, alias="pageSize", ge=1, le=MAX_PAGE_SIZE),
    search: str = Query("", description="商品编码或名称"),
    category_id: Optional[int] = Query(None, alias="categoryId", description="品类（含后代）"),
    stock: Optional[str] = Query(None, pattern="^(in_stock|out_of_stock)$"),
    excluded: Optional[str] = Query(None, pattern="^(excluded|not_excluded)$"),
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    """商品列表，第一页附带 total 和定价参数"""
    return await product_service.list_products(
        session,
        cursor=cursor,
        page_size=page_size,
        search=search,
        category_id=category_id,
        stock=stock,
        excluded=excluded,
    )
