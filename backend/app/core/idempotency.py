# app/core/idempotency.py
# 幂等性中间件
#
# 功能说明：
# 防止后台重复提交导致的重复写操作（例如退款按钮双击、重复生成发票）：
# 1. 第一层：响应缓存，相同幂等 Key 的重复请求直接返回首次结果
# 2. 第二层：Redis 锁（SET NX），并发的相同请求只放行一个
# 3. 第三层：业务校验（已退款 400、同类型发票 409），由服务层保证
#
# 使用方法：
#   app.add_middleware(IdempotencyMiddleware)
#
# 客户端配合：
#   在请求头中添加 X-Idempotency-Key，例如：X-Idempotency-Key: refund-1024-9f3a
#
# 注意：
#   Redis 未连接时中间件直接放行，只依赖第三层业务校验

import json
from typing import Any, Optional

from fastapi import Request
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response, JSONResponse

from app.core.redis import redis_client
from app.core.logging import get_logger

logger = get_logger(__name__)

# ==================== 配置常量 ====================

# 幂等响应缓存时长（秒）
DEFAULT_IDEMPOTENCY_TTL = 300

IDEMPOTENCY_KEY_PREFIX = "idempotent:"
LOCK_KEY_PREFIX = "lock:"

# 锁超时（秒），请求处理异常退出时锁自动过期
DEFAULT_LOCK_TIMEOUT = 30

IDEMPOTENCY_HEADER = "X-Idempotency-Key"


# ==================== 响应缓存 ====================

async def get_cached_response(idempotency_key: str) -> Optional[dict]:
    """
    获取缓存的响应

    Returns:
        dict: {"status_code": ..., "data": ...}，不存在时返回 None
    """
    cache_key = f"{IDEMPOTENCY_KEY_PREFIX}{idempotency_key}"

    try:
        cached = await redis_client.get(cache_key)
    except RedisError as e:
        logger.warning(f"[Idempotency] 读取幂等缓存失败: {e}")
        return None

    if cached:
        logger.debug(f"[Idempotency] 命中幂等缓存: {idempotency_key}")
        return json.loads(cached)
    return None


async def cache_response(
    idempotency_key: str,
    status_code: int,
    response_data: Any,
    ttl: int = DEFAULT_IDEMPOTENCY_TTL,
) -> None:
    """缓存响应结果"""
    cache_key = f"{IDEMPOTENCY_KEY_PREFIX}{idempotency_key}"
    cache_data = json.dumps({"status_code": status_code, "data": response_data})

    try:
        await redis_client.set(cache_key, cache_data, ex=ttl)
        logger.debug(f"[Idempotency] 缓存幂等响应: {idempotency_key}, TTL: {ttl}s")
    except RedisError as e:
        logger.warning(f"[Idempotency] 缓存幂等响应失败: {e}")


# ==================== Redis 锁 ====================

async def acquire_lock(lock_key: str, timeout: int = DEFAULT_LOCK_TIMEOUT) -> bool:
    """
    获取锁

    使用 SET NX EX，Key 已存在时返回 False

    Returns:
        bool: True 表示获取成功；Redis 出错时同样返回 True（放行，由业务校验兜底）
    """
    full_key = f"{LOCK_KEY_PREFIX}{lock_key}"

    try:
        result = await redis_client.set(full_key, "1", nx=True, ex=timeout)
    except RedisError as e:
        logger.warning(f"[Idempotency] 获取锁失败，放行请求: {lock_key}, 错误: {e}")
        return True
    return bool(result)


async def release_lock(lock_key: str) -> None:
    full_key = f"{LOCK_KEY_PREFIX}{lock_key}"

    try:
        await redis_client.delete(full_key)
    except RedisError as e:
        logger.warning(f"[Idempotency] 释放锁失败: {lock_key}, 错误: {e}")


# ==================== 幂等性中间件 ====================

class IdempotencyMiddleware(BaseHTTPMiddleware):
    """
    幂等性中间件

    工作流程：
    1. 只处理携带 X-Idempotency-Key 的 POST/PUT/PATCH/DELETE 请求
    2. 命中缓存：直接返回首次的响应
    3. 未命中：获取锁，拿不到锁返回 409（相同请求正在处理）
    4. 处理完成后缓存 2xx 响应并释放锁
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method not in ("POST", "PUT", "PATCH", "DELETE"):
            return await call_next(request)

        idempotency_key = request.headers.get(IDEMPOTENCY_HEADER)
        if not idempotency_key or not redis_client.is_connected:
            return await call_next(request)

        # 带上路径，不同接口的相同 Key 互不影响
        full_key = f"{request.url.path}:{idempotency_key}"

        cached = await get_cached_response(full_key)
        if cached:
            logger.info(f"[Idempotency] 重复请求，返回缓存结果: {full_key}")
            return JSONResponse(
                status_code=cached["status_code"],
                content=cached["data"],
            )

        if not await acquire_lock(full_key):
            logger.warning(f"[Idempotency] 相同请求正在处理: {full_key}")
            return JSONResponse(
                status_code=409,
                content={"detail": "Request is already being processed"},
            )

        try:
            response = await call_next(request)

            if 200 <= response.status_code < 300:
                body = b""
                async for chunk in response.body_iterator:
                    body += chunk

                try:
                    response_data = json.loads(body.decode())
                except ValueError:
                    response_data = body.decode()

                await cache_response(full_key, response.status_code, response_data)

                # body_iterator 已被消费，重新构建响应
                return Response(
                    content=body,
                    status_code=response.status_code,
                    headers=dict(response.headers),
                    media_type=response.media_type,
                )

            return response

        finally:
            await release_lock(full_key)
