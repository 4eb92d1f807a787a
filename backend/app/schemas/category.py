# app/schemas/category.py
# 品类数据验证模式
#
# 功能说明：
# 1. 定义品类 API 请求和响应的数据格式
# 2. 树节点 / 平铺列表 / 详情三种返回形态
# 3. 拖拽排序、排除标记请求
#
# 命名规范：
# - XxxUpdate: 更新数据时使用（所有字段可选）
# - XxxResponse: 返回数据时使用

from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field


# ==================== 树 ====================

class CategoryTreeNode(BaseModel):
    """树节点（全量树、根品类、子品类共用）"""
    id: int = Field(..., description="品类 ID")
    category_name: str = Field(..., description="品类名称（原文）")
    category_name_en: Optional[str] = Field(None, description="英文名")
    parent: Optional[int] = Field(None, description="父品类 ID，根品类为空")
    level: Optional[int] = Field(None, description="层级，根品类为 0")
    has_children: Optional[bool] = Field(None, description="是否有子品类")
    main_image: Optional[str] = Field(None, description="品类图片")
    product_count: int = Field(default=0, description="商品数")
    display: bool = Field(default=True, description="是否在 App 显示")
    order_number: Optional[int] = Field(None, description="同级排序")
    is_excluded: bool = Field(default=False, description="自身或任一祖先被排除")


class CategoryTreeResponse(BaseModel):
    categories: List[CategoryTreeNode]
    total: int


# ==================== 平铺列表 / 详情 ====================

class CategoryResponse(BaseModel):
    """品类完整字段"""
    id: int
    category_name: str
    category_name_en: Optional[str] = None
    category_name_zh: Optional[str] = None
    slug: Optional[str] = None
    main_image: Optional[str] = None
    parent: Optional[int] = None
    level: Optional[int] = None
    has_children: Optional[bool] = None
    order_number: Optional[int] = None
    display: bool = True
    show_in_navbar: bool = False
    product_count: int = 0
    tax_air: Optional[float] = None
    tax_sea: Optional[float] = None
    tax_min_qty_air: Optional[int] = None
    tax_min_qty_sea: Optional[int] = None
    cbm_rate: Optional[float] = None
    shipping_surcharge_percent: Optional[float] = None
    air_shipping_rate: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CategoryListItem(CategoryResponse):
    parent_name: Optional[str] = Field(None, description="父品类名称")
    is_excluded: bool = Field(default=False, description="自身或任一祖先被排除")


class CategoryListResponse(BaseModel):
    """品类平铺列表（游标分页）"""
    categories: List[CategoryListItem]
    next_cursor: Optional[int] = Field(None, description="下一页游标，没有更多时为空")
    has_more: bool
    total: Optional[int] = Field(None, description="总数，仅第一页返回")


class BreadcrumbItem(BaseModel):
    id: int
    name: str


class CategoryDetailResponse(BaseModel):
    """品类详情"""
    category: CategoryResponse
    breadcrumb: List[BreadcrumbItem] = Field(default_factory=list, description="从根到直接父品类")
    children: List[CategoryResponse] = Field(default_factory=list)
    is_excluded: bool = Field(..., description="自身或任一祖先被排除")
    excluded_directly: bool = Field(..., description="自身被直接排除")
    excluded_reason: Optional[str] = None
    real_product_count: int = Field(..., description="直接挂在该品类下的商品数")
    total_products_in_tree: int = Field(..., description="整棵子树的商品数")


# ==================== 写入 ====================

class CategoryUpdate(BaseModel):
    """
    更新品类请求模式

    用于 PATCH /api/categories/{id}，只提交需要修改的字段
    """
    category_name: Optional[str] = Field(None, min_length=1, max_length=255)
    category_name_en: Optional[str] = Field(None, max_length=255)
    category_name_zh: Optional[str] = Field(None, max_length=255)
    main_image: Optional[str] = Field(None, max_length=500)
    display: Optional[bool] = None
    show_in_navbar: Optional[bool] = None
    order_number: Optional[int] = Field(None, ge=0)
    parent: Optional[int] = Field(None, ge=0, description="新父品类 ID，0 表示移到根")
    tax_air: Optional[float] = Field(None, ge=0)
    tax_sea: Optional[float] = Field(None, ge=0)
    tax_min_qty_air: Optional[int] = Field(None, ge=0)
    tax_min_qty_sea: Optional[int] = Field(None, ge=0)
    cbm_rate: Optional[float] = Field(None, ge=0)
    shipping_surcharge_percent: Optional[float] = Field(None, ge=0)
    air_shipping_rate: Optional[float] = Field(None, ge=0)


class CategoryReorderRequest(BaseModel):
    """拖拽排序 / 移动"""
    category_id: int = Field(..., alias="categoryId", description="被移动的品类")
    new_parent_id: Optional[int] = Field(None, alias="newParentId", description="新父品类，0 或空表示根")
    new_order: Optional[int] = Field(0, alias="newOrder", ge=0, description="在新位置的 order_number")

    class Config:
        populate_by_name = True


class CategoryExclusionRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000, description="排除原因")


class CategoryExclusionResponse(BaseModel):
    category_id: int
    is_excluded: bool
    reason: Optional[str] = None
