# app/core/exceptions.py
# 业务异常定义
#
# 功能说明：
# 1. 定义服务层抛出的业务异常，每种异常对应一个 HTTP 状态码
# 2. 在 app/main.py 中注册统一的异常处理器，渲染为 {"detail": "..."}
#
# 异常分类：
#   ValidationError      400  请求字段缺失或格式错误
#   TransitionError      400  状态流转不合法（消息中包含两端状态）
#   PermissionDeniedError 403 当前角色无权执行
#   NotFoundError        404  引用的实体不存在
#   ConflictError        409  重复操作（如同类型发票已存在）
#
# 使用方法：
#   from app.core.exceptions import NotFoundError
#   raise NotFoundError("Order not found")

from typing import Any, Optional


class AppError(Exception):
    """业务异常基类"""

    status_code: int = 400

    def __init__(self, message: str, extra: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        # 附加到响应体中的字段，例如批量操作被跳过的条目
        self.extra = extra or {}

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, **self.extra}


class ValidationError(AppError):
    status_code = 400


class TransitionError(AppError):
    """状态流转不合法"""

    status_code = 400

    def __init__(self, from_label: str, to_label: str):
        super().__init__(f"Cannot transition from {from_label} to {to_label}")
        self.from_label = from_label
        self.to_label = to_label


class PermissionDeniedError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409
