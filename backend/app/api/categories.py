# app/api/categories.py
# 品类管理 API
#
# 功能说明：
# 1. 品类树：全量树（缓存）、根品类、按需加载子品类
# 2. 平铺列表（游标分页 + 筛选）、详情、字段修改
# 3. 品类子树下的商品
# 4. 排除标记、拖拽排序 / 移动
#
# 路由：
#   GET    /api/categories/tree              ?mode=all 全量 / ?parent=<id> 子品类 / 默认根品类
#   GET    /api/categories                   平铺列表（游标分页）
#   POST   /api/categories/reorder           排序 / 移动
#   GET    /api/categories/{id}              详情
#   PATCH  /api/categories/{id}              修改
#   GET    /api/categories/{id}/products     子树商品（游标分页）
#   PUT    /api/categories/{id}/exclusion    标记排除
#   DELETE /api/categories/{id}/exclusion    取消排除

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import NotFoundError
from app.core.logging import get_logger
from app.core.security import SessionUser, get_current_session
from app.models.category import Category
from app.schemas.category import (
    CategoryDetailResponse,
    CategoryExclusionRequest,
    CategoryExclusionResponse,
    CategoryListItem,
    CategoryListResponse,
    CategoryReorderRequest,
    CategoryResponse,
    CategoryTreeNode,
    CategoryTreeResponse,
    CategoryUpdate,
)
from app.schemas.product import ProductListResponse
from app.services.category_tree import category_tree_service, normalize_parent
from app.services.pagination import MAX_PAGE_SIZE
from app.services.product_service import product_service

logger = get_logger(__name__)


router = APIRouter(prefix="/api/categories", tags=["品类管理"])


@router.get("/tree", response_model=CategoryTreeResponse)
async def get_category_tree(
    mode: Optional[str] = Query(None, description="all 返回全量树"),
    parent: Optional[int] = Query(None, description="只返回该品类的直接子品类"),
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    """
    品类树

    - mode=all：全部品类（缓存 5 分钟，并发请求合并为一次查询）
    - parent=<id>：直接子品类
    - 都不传：根品类
    """
    if mode == "all":
        return await category_tree_service.get_full_tree(session)

    if parent is not None:
        nodes = await category_tree_service.get_children(session, parent)
    else:
        nodes = await category_tree_service.get_roots(session)
    return CategoryTreeResponse(categories=[CategoryTreeNode(**n) for n in nodes], total=len(nodes))


@router.get("", response_model=CategoryListResponse)
async def list_categories(
    cursor: Optional[int] = Query(None, description="上一页返回的 next_cursor"),
    page_size: Optional[int] = Query(None, alias="pageSize", ge=1, le=MAX_PAGE_SIZE),
    search: str = Query("", description="按名称 / slug 搜索"),
    level: Optional[int] = Query(None, ge=0),
    display: Optional[str] = Query(None, pattern="^(visible|hidden)$"),
    excluded: Optional[str] = Query(None, pattern="^(excluded|not_excluded)$"),
    parent_id: Optional[int] = Query(None, alias="parentId"),
    has_image: Optional[str] = Query(None, alias="hasImage", pattern="^(yes|no)$"),
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    """品类平铺列表（按 id 倒序游标分页）"""
    page, parent_names, excluded_ids = await category_tree_service.list_categories(
        session,
        cursor=cursor,
        page_size=page_size,
        search=search.strip(),
        level=level,
        display=display,
        excluded=excluded,
        parent_id=parent_id,
        has_image=has_image,
    )

    categories = []
    for c in page.items:
        item = CategoryListItem.model_validate(c)
        item.parent_name = parent_names.get(normalize_parent(c.parent))
        item.is_excluded = c.id in excluded_ids
        categories.append(item)

    return CategoryListResponse(
        categories=categories,
        next_cursor=page.next_cursor,
        has_more=page.has_more,
        total=page.total,
    )


@router.post("/reorder")
async def reorder_categories(
    data: CategoryReorderRequest,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    """拖拽排序 / 移动到新父品类"""
    await category_tree_service.reorder(session, data.category_id, data.new_parent_id, data.new_order)
    logger.info(f"[CategoriesAPI] {user.email} 移动品类 {data.category_id} → parent={data.new_parent_id}")
    return {"success": True}


@router.get("/{category_id}", response_model=CategoryDetailResponse)
async def get_category(
    category_id: int,
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    """品类详情：面包屑、子品类、排除状态、商品数"""
    detail = await category_tree_service.get_detail(session, category_id)
    return CategoryDetailResponse(
        category=CategoryResponse.model_validate(detail["category"]),
        breadcrumb=detail["breadcrumb"],
        children=[CategoryResponse.model_validate(c) for c in detail["children"]],
        is_excluded=detail["is_excluded"],
        excluded_directly=detail["excluded_directly"],
        excluded_reason=detail["excluded_reason"],
        real_product_count=detail["real_product_count"],
        total_products_in_tree=detail["total_products_in_tree"],
    )


@router.patch("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: int,
    data: CategoryUpdate,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    """修改品类字段，只更新提交的字段"""
    category = await category_tree_service.update_category(
        session, category_id, data.model_dump(exclude_unset=True)
    )
    logger.info(f"[CategoriesAPI] {user.email} 修改品类 {category_id}")
    return CategoryResponse.model_validate(category)


@router.get("/{category_id}/products", response_model=ProductListResponse)
async def list_category_products(
    category_id: int,
    cursor: Optional[int] = Query(None),
    page_size: Optional[int] = Query(None, alias="pageSize", ge=1, le=MAX_PAGE_SIZE),
    search: str = Query(""),
    session: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(get_current_session),
):
    """品类及其全部后代下的商品"""
    if await session.get(Category, category_id) is None:
        raise NotFoundError("Category not found")
    return await product_service.list_category_products(
        session, category_id, cursor=cursor, page_size=page_size, search=search.strip()
    )


@router.put("/{category_id}/exclusion", response_model=CategoryExclusionResponse)
async def exclude_category(
    category_id: int,
    data: CategoryExclusionRequest,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    """标记排除（后代品类一并视为排除）"""
    row = await category_tree_service.set_exclusion(session, category_id, data.reason)
    logger.info(f"[CategoriesAPI] {user.email} 排除品类 {category_id}")
    return CategoryExclusionResponse(category_id=category_id, is_excluded=True, reason=row.reason)


@router.delete("/{category_id}/exclusion", response_model=CategoryExclusionResponse)
async def include_category(
    category_id: int,
    session: AsyncSession = Depends(get_db),
    user: SessionUser = Depends(get_current_session),
):
    """取消排除（祖先品类仍被排除时，is_excluded 依旧为 True）"""
    await category_tree_service.remove_exclusion(session, category_id)
    logger.info(f"[CategoriesAPI] {user.email} 取消排除品类 {category_id}")
    excluded = await category_tree_service.get_excluded_ids(session)
    return CategoryExclusionResponse(category_id=category_id, is_excluded=category_id in excluded)
