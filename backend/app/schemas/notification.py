# app/schemas/notification.py
# 通知数据验证模式

from typing import Optional

from pydantic import BaseModel, Field


class NotificationCreate(BaseModel):
    """
    创建通知请求模式

    r_user_id 为空时广播给所有活跃顾客
    """
    subject: str = Field(..., min_length=1, max_length=255, description="标题")
    body: str = Field(..., min_length=1, description="正文")
    notification_type: str = Field(default="general", max_length=50, description="general / order / promo")
    r_user_id: Optional[int] = Field(None, description="接收顾客，空表示广播")
    row_id: Optional[int] = Field(None, description="关联的业务 ID（订单号等）")
    action_url: Optional[str] = Field(None, max_length=500)
    image_url: Optional[str] = Field(None, max_length=500)
    send_push: bool = Field(default=False, description="同时发送手机推送")
