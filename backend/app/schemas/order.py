# app/schemas/order.py
# 订单数据验证模式
#
# 功能说明：
# 1. 订单状态变更（旧版状态码或工作流 key 二选一）
# 2. 退款、订单修改、商品行修改
# 3. 商品工作流单个 / 批量切换

from typing import Literal, Optional, List

from pydantic import BaseModel, Field, model_validator


# ==================== 订单 ====================

class OrderStatusUpdate(BaseModel):
    """
    订单状态变更

    用于 PUT /api/orders/{id}/status：
      {"status": 3}                  旧版整数状态码
      {"status_key": "ordered"}      工作流状态
    """
    status: Optional[int] = Field(None, description="旧版状态码 1-10")
    status_key: Optional[str] = Field(None, min_length=1, description="工作流 status_key")

    @model_validator(mode="after")
    def exactly_one(self):
        if (self.status is None) == (self.status_key is None):
            raise ValueError("Provide either status or status_key")
        return self


class OrderStatusResponse(BaseModel):
    success: bool = True
    status: int = Field(..., description="订单旧版状态码")
    workflow_status_key: Optional[str] = None


class OrderUpdate(BaseModel):
    """修改订单备注 / 付款状态"""
    notes: Optional[str] = Field(None, description="后台备注")
    is_paid: Optional[bool] = Field(None, description="是否已付款")


class RefundRequest(BaseModel):
    refund_type: str = Field(..., description="full / products_only / shipping_only")
    refund_amount: Optional[float] = Field(None, ge=0, description="手动指定退款金额，为空时按类型计算")
    refund_notes: Optional[str] = Field(None, description="退款备注")


class RefundResponse(BaseModel):
    success: bool = True
    refund_type: str
    refund_amount: float


# ==================== 商品行 ====================

class OrderItemUpdate(BaseModel):
    """
    修改订单商品行

    用于 PUT /api/orders/{id}/items，只提交需要修改的字段
    """
    item_id: int = Field(..., description="order_products.id")
    workflow_status_key: Optional[str] = Field(None, description="工作流 status_key")
    tracking_number: Optional[str] = Field(None, max_length=255, description="物流单号，空字符串表示清除")
    shipping_method: Optional[Literal["air", "sea"]] = None
    shipping: Optional[float] = Field(None, ge=0, description="该商品运费（美元）")
    quantity: Optional[int] = Field(None, ge=1)


# ==================== 商品工作流 ====================

class ItemWorkflowChange(BaseModel):
    to_status_key: str = Field(..., min_length=1, description="目标状态，如 ordered、cancelled")
    tracking_number: Optional[str] = Field(None, max_length=255, description="需要物流单号的流转必须提供")
    note: Optional[str] = Field(None, description="审计备注")


class BulkWorkflowChange(BaseModel):
    item_ids: List[int] = Field(..., min_length=1, max_length=200, description="最多 200 个商品")
    to_status_key: str = Field(..., min_length=1)
    note: Optional[str] = None
