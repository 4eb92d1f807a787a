# app/schemas/settings.py
# 系统设置数据验证模式

from typing import Optional

from pydantic import BaseModel, Field


class PricingSettings(BaseModel):
    markup_percent: float = Field(..., description="加价百分比")
    exchange_rate: float = Field(..., description="人民币 → 美元汇率")


class PricingSettingsUpdate(BaseModel):
    """只提交需要修改的项"""
    markup_percent: Optional[float] = Field(None, ge=0, description="加价百分比，不能为负")
    exchange_rate: Optional[float] = Field(None, gt=0, description="汇率，必须大于 0")
