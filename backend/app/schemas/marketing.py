# app/schemas/marketing.py
# 首页运营内容数据验证模式
#
# 功能说明：
# 1. 轮播（sliders）新建 / 修改
# 2. 网格元素新建 / 修改
# 3. 闪购活动新建 / 修改，闪购商品批量加入 / 移除

from datetime import datetime
from typing import Any, Optional, List

from pydantic import BaseModel, Field


# ==================== 轮播 ====================

class SliderCreate(BaseModel):
    text: Optional[str] = Field(None, max_length=500, description="标题文字")
    btn_text: Optional[str] = Field(None, max_length=100, description="按钮文字")
    btn_url: Optional[str] = Field(None, max_length=500, description="按钮跳转地址")
    main_image: Optional[str] = Field(None, max_length=500)
    r_store_id: Optional[int] = Field(None, description="店铺，默认 1")


class SliderUpdate(SliderCreate):
    order_number: Optional[int] = Field(None, ge=0)


# ==================== 网格元素 ====================

class GridElementCreate(BaseModel):
    width: Optional[str] = Field(None, max_length=10, description="占几列，默认 1")
    height: Optional[str] = Field(None, max_length=10, description="占几行，默认 1")
    main_image: Optional[str] = Field(None, max_length=500)
    actions: Optional[List[Any]] = Field(None, description="点击动作列表")


class GridElementUpdate(GridElementCreate):
    position_x: Optional[str] = Field(None, max_length=10)
    position_y: Optional[str] = Field(None, max_length=10)


# ==================== 闪购 ====================

class FlashSaleProductsRequest(BaseModel):
    product_ids: List[int] = Field(..., min_length=1, description="商品 ID 列表")


class FlashSaleCreate(BaseModel):
    title: Optional[str] = Field(None, max_length=255, description="标题，slug 由此生成")
    color_1: Optional[str] = Field(None, max_length=20)
    color_2: Optional[str] = Field(None, max_length=20)
    color_3: Optional[str] = Field(None, max_length=20)
    slider_type: Optional[int] = Field(None, ge=0)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = Field(None, description="不传时默认一年后结束")
    display: Optional[bool] = None
    discount: Optional[float] = Field(None, ge=0, le=100, description="折扣百分比")
    r_store_id: Optional[int] = Field(None, description="店铺，默认 1")
    product_ids: Optional[List[int]] = Field(None, description="创建时直接加入的商品")


class FlashSaleUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    color_1: Optional[str] = Field(None, max_length=20)
    color_2: Optional[str] = Field(None, max_length=20)
    color_3: Optional[str] = Field(None, max_length=20)
    slider_type: Optional[int] = Field(None, ge=0)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = Field(None, description="显式传 null 时重置为一年后")
    display: Optional[bool] = None
    discount: Optional[float] = Field(None, ge=0, le=100)
    r_store_id: Optional[int] = None
    order_number: Optional[int] = Field(None, ge=0)
