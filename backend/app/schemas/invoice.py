# app/schemas/invoice.py
# 发票数据验证模式

from typing import Literal, Optional

from pydantic import BaseModel, Field


class InvoiceCreate(BaseModel):
    """
    生成发票请求模式

    用于 POST /api/orders/{id}/invoices
    """
    type: Literal["product", "shipping"] = Field(..., description="product 商品发票 / shipping 运费发票")
    notes: Optional[str] = Field(None, description="发票备注")


class InvoiceUpdate(BaseModel):
    """
    修改发票请求模式

    用于 PUT /api/invoices/{id}，只提交需要修改的字段；
    金额有变化且未传 total 时由服务端重算 total
    """
    notes: Optional[str] = Field(None, description="发票备注，传空字符串清空")
    status: Optional[Literal["generated", "sent", "void"]] = Field(None, description="发票状态")
    subtotal: Optional[float] = Field(None, ge=0)
    shipping_amount: Optional[float] = Field(None, ge=0)
    tax_amount: Optional[float] = Field(None, ge=0)
    discount_amount: Optional[float] = Field(None, ge=0)
    total: Optional[float] = Field(None, ge=0, description="显式指定总额，不再重算")
