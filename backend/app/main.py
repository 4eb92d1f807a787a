# app/main.py
# FastAPI 应用入口
#
# 功能说明：
# 1. 创建 FastAPI 应用实例
# 2. 配置中间件（CORS、请求日志、幂等去重）
# 3. 注册异常处理和路由
# 4. 管理应用生命周期（启动/关闭）
#
# 启动命令：
#   uvicorn app.main:app --reload --host 0.0.0.0 --port 8000
#
# API 文档：
#   - Swagger UI: http://localhost:8000/docs
#   - ReDoc: http://localhost:8000/redoc

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.database import async_session_maker, close_db, init_db
from app.core.exceptions import AppError
from app.core.idempotency import IdempotencyMiddleware
from app.core.logging import RequestLoggingMiddleware, get_logger, setup_logging
from app.core.redis import redis_client
from app.services.order_status import ensure_workflow_statuses

# 导入路由模块
from app.api import health
from app.api import auth
from app.api import cms_users
from app.api import categories
from app.api import products
from app.api import order_items
from app.api import orders
from app.api import invoices
from app.api import marketing
from app.api import notifications
from app.api import settings as settings_router


# 初始化日志系统（在应用启动前）
setup_logging()

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理

    - 启动时：建表（可选）、连接 Redis、初始化工作流状态字典
    - 关闭时：断开 Redis、关闭数据库连接池
    """
    # ==================== 启动阶段 ====================
    logger.info(f"正在启动 {settings.APP_NAME}...")

    if settings.DB_CREATE_TABLES:
        await init_db()
        logger.info("数据库表初始化完成")

    # Redis 连接失败不阻止启动，幂等去重会被跳过
    try:
        await redis_client.connect()
        logger.info("Redis 连接成功")
    except Exception as e:
        logger.error(f"Redis 连接失败: {e}")

    async with async_session_maker() as session:
        await ensure_workflow_statuses(session)

    logger.info(f"{settings.APP_NAME} 启动完成")

    yield

    # ==================== 关闭阶段 ====================
    logger.info("正在关闭...")

    try:
        await redis_client.disconnect()
        logger.info("Redis 连接已断开")
    except Exception as e:
        logger.warning(f"Redis 断开连接时出错: {e}")

    await close_db()
    logger.info("清理完成，应用已关闭")


# ==================== 创建 FastAPI 应用 ====================

app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Chihelo CMS - 电商后台管理 API

    ## 功能模块

    - **品类**: 品类树、排除标记、排序
    - **订单**: 状态流转、商品工作流、退款、发票
    - **商品 / 运营**: 商品目录、轮播、网格、闪购
    - **通知**: 站内通知与推送

    ## 认证说明

    先调用 `/api/auth/login`，会话保存在 httponly Cookie 中，浏览器后续请求自动携带
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ==================== 中间件配置 ====================

# CORS（会话 Cookie 需要 allow_credentials，因此必须列出具体域名）
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 携带 X-Idempotency-Key 的写请求去重
app.add_middleware(IdempotencyMiddleware)

# 请求日志：方法、路径、耗时、状态码
app.add_middleware(RequestLoggingMiddleware)


# ==================== 全局异常处理 ====================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """业务异常：校验失败、不存在、冲突、状态流转不允许、无权限"""
    if exc.status_code >= 500:
        logger.error(f"[{request.method} {request.url.path}] {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    请求参数校验失败

    返回 400，detail 为可读的 "字段: 原因"，errors 为原始错误列表
    """
    errors = exc.errors()
    messages = []
    for error in errors:
        field = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
        messages.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": "; ".join(messages) or "Invalid request",
            "errors": [
                {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
                for e in errors
            ],
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """未捕获的异常：记录堆栈，不向前端暴露细节"""
    logger.exception(f"未处理的异常 [{request.method} {request.url.path}]: {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ==================== 注册路由 ====================

# 健康检查
# - GET /health
# - GET /health/detailed
app.include_router(health.router)

# 认证
# - POST /api/auth/login
# - POST /api/auth/signup
# - GET  /api/auth/me
# - POST /api/auth/logout
app.include_router(auth.router)

# 后台账号管理
# - GET/POST /api/cms-users
# - GET/PUT/DELETE /api/cms-users/{id}
app.include_router(cms_users.router)

# 品类管理
# - GET /api/categories/tree
# - GET /api/categories
# - POST /api/categories/reorder
# - GET/PATCH /api/categories/{id}
# - GET /api/categories/{id}/products
# - PUT/DELETE /api/categories/{id}/exclusion
app.include_router(categories.router)

# 商品目录
# - GET /api/products
app.include_router(products.router)

# 订单商品工作流（先于订单路由注册，/api/orders/items/... 不会被 /{order_id} 匹配）
# - GET /api/orders/items
# - GET/PUT /api/orders/items/{item_id}/workflow
# - PUT /api/orders/items/bulk-workflow
app.include_router(order_items.router)

# 订单管理
# - GET /api/orders
# - GET/PUT /api/orders/{id}
# - PUT  /api/orders/{id}/status
# - POST /api/orders/{id}/refund
# - GET/POST /api/orders/{id}/invoices
# - PUT  /api/orders/{id}/items
app.include_router(orders.router)

# 发票
# - GET/PUT /api/invoices/{id}
app.include_router(invoices.router)

# 首页运营
# - /api/banners, /api/grid-elements
# - /api/flash-sales, /api/flash-sales/{id}, /api/flash-sales/{id}/products
app.include_router(marketing.router)

# 通知
# - GET/POST /api/notifications
# - GET/DELETE /api/notifications/{id}
app.include_router(notifications.router)

# 系统设置
# - GET/PATCH /api/settings/pricing
app.include_router(settings_router.router)


# ==================== 根路由 ====================

@app.get("/", tags=["Root"])
async def root():
    """返回应用基本信息和文档链接"""
    return {
        "app": settings.APP_NAME,
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }
