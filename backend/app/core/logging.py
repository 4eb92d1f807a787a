# app/core/logging.py
# 日志配置模块
#
# 功能说明：
# 1. 统一管理应用日志输出：彩色控制台（开发）或 JSON（生产）
# 2. 请求 ID：每个请求分配一个 ID（或沿用前端 / 网关传入的 X-Request-ID），
#    同一请求内的所有日志都带上该 ID，响应头原样返回
# 3. 请求日志中间件：方法、路径、状态码、耗时
#
# 使用方法：
#   from app.core.logging import get_logger
#   logger = get_logger(__name__)
#   logger.info("[CategoryTree] 全量树已重建")
#
# 约定：
#   业务模块的日志以 "[组件名]" 开头，便于在日志平台按组件过滤

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings

REQUEST_ID_HEADER = "X-Request-ID"

# 当前请求的 ID，请求之外（启动、脚本）为 "-"
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

# 不写访问日志的路径（负载均衡健康检查每几秒一次）
QUIET_PATHS = ("/health", "/health/detailed")


class Colors:
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    GRAY = "\033[90m"


LEVEL_COLORS = {
    "DEBUG": Colors.BLUE,
    "INFO": Colors.GREEN,
    "WARNING": Colors.YELLOW,
    "ERROR": Colors.RED,
    "CRITICAL": Colors.MAGENTA,
}


# ==================== Filter / Formatter ====================

class RequestIdFilter(logging.Filter):
    """把当前请求 ID 写到每条日志记录上（record.request_id）"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


class ColoredFormatter(logging.Formatter):
    """
    彩色日志格式化器（开发环境）

    输出格式：
    2026-10-17 12:00:00 | INFO     | 3f2a9c1e | app.services.order_service:update_order_status - [OrderService] ...
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        color = LEVEL_COLORS.get(record.levelname, Colors.RESET)
        request_id = getattr(record, "request_id", "-")

        line = (
            f"{Colors.CYAN}{timestamp}{Colors.RESET} | "
            f"{color}{record.levelname:8}{Colors.RESET} | "
            f"{Colors.GRAY}{request_id[:8]:8} | {record.name}:{record.funcName}{Colors.RESET} - "
            f"{record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JSONFormatter(logging.Formatter):
    """
    JSON 日志格式化器（生产环境）

    每行一个 JSON 对象。通过 extra={"extra_data": {...}} 传入的上下文放在 "extra" 字段
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "request_id": getattr(record, "request_id", "-"),
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if hasattr(record, "extra_data"):
            payload["extra"] = record.extra_data
        return json.dumps(payload, ensure_ascii=False, default=str)


# ==================== 初始化 ====================

def setup_logging() -> None:
    """
    初始化日志系统

    应用启动时调用一次（app/main.py 模块加载时），重复调用会替换原有 handler
    """
    root = logging.getLogger()
    root.setLevel(settings.LOG_LEVEL)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(settings.LOG_LEVEL)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(JSONFormatter() if settings.LOG_FORMAT == "json" else ColoredFormatter())
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.DEBUG else logging.WARNING)
    # 旧后端调用的结果由 BackendClient 自己记录
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    获取 logger 实例，传入 __name__

    使用示例：
        logger = get_logger(__name__)
        logger.warning(f"[BackendClient] 请求超时: {path}")
    """
    return logging.getLogger(name)


# ==================== 请求日志中间件 ====================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    请求 ID + 访问日志

    INFO | a1b2c3d4 | PUT /api/orders/12/status -> 200 (45ms)

    2xx/3xx 用 INFO，4xx 用 WARNING，5xx 用 ERROR；健康检查只在 DEBUG 级别记录
    """

    def __init__(self, app, logger: Optional[logging.Logger] = None):
        super().__init__(app)
        self.logger = logger or get_logger("app.request")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        start = time.perf_counter()
        target = request.url.path + (f"?{request.url.query}" if request.url.query else "")

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = (time.perf_counter() - start) * 1000
            self.logger.error(f"{request.method} {target} -> 500 ({elapsed:.0f}ms) - {e}")
            request_id_var.reset(token)
            raise

        elapsed = (time.perf_counter() - start) * 1000
        response.headers[REQUEST_ID_HEADER] = request_id
        message = f"{request.method} {target} -> {response.status_code} ({elapsed:.0f}ms)"

        if request.url.path in QUIET_PATHS:
            self.logger.debug(message)
        elif response.status_code >= 500:
            self.logger.error(message)
        elif response.status_code >= 400:
            self.logger.warning(message)
        else:
            self.logger.info(message)

        request_id_var.reset(token)
        return response
