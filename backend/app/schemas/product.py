# app/schemas/product.py
# 商品数据验证模式
#
# 功能说明：
# 1. 商品列表行（原始价格 + 美元价格）
# 2. 游标分页响应，第一页附带定价参数

from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field


class PricingInfo(BaseModel):
    markup_percent: float = Field(..., description="加价百分比")
    exchange_rate: float = Field(..., description="人民币 → 美元汇率")


class ProductListItem(BaseModel):
    id: int
    product_code: str
    product_name: Optional[str] = None
    display_name: Optional[str] = None
    main_image: Optional[str] = None
    origin_price: Optional[float] = None
    product_price: Optional[float] = None
    sale_price: Optional[float] = None
    currency_id: Optional[int] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    out_of_stock: int = 0
    product_status: int = 1
    product_qty_left: int = 0
    r_flash_id: Optional[int] = None
    created_at: Optional[datetime] = None
    usd_price: Optional[float] = Field(None, description="App 展示价格（美元）")
    usd_sale_price: Optional[float] = Field(None, description="App 展示促销价（美元）")


class ProductListResponse(BaseModel):
    """商品列表（游标分页）"""
    products: List[ProductListItem]
    next_cursor: Optional[int] = None
    has_more: bool
    total: Optional[int] = Field(None, description="总数，仅第一页返回")
    pricing: Optional[PricingInfo] = Field(None, description="定价参数，仅第一页返回")
