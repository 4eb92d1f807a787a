# app/core/redis.py
# Redis 客户端
#
# 功能说明：
# 幂等性中间件的响应缓存和并发锁存放在 Redis 中。
# Redis 是可选依赖：启动时连接失败只记录日志，is_connected 为 False，
# 幂等性中间件随之放行所有请求。
#
# 所有 Key 自动加上 KEY_NAMESPACE 前缀，与旧后端共用同一个 Redis 实例时互不干扰

from typing import Optional

import redis.asyncio as redis

from app.core.config import settings

KEY_NAMESPACE = "chihelo-cms:"


class RedisClient:
    """异步 Redis 客户端封装"""

    def __init__(self, url: Optional[str] = None, namespace: str = KEY_NAMESPACE):
        self._url = url or settings.REDIS_URL
        self._namespace = namespace
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """连接并 PING，成功后才标记为已连接"""
        client = redis.from_url(self._url, encoding="utf-8", decode_responses=True)
        await client.ping()
        self._client = client

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(self._key(key))

    async def set(self, key: str, value: str, ex: Optional[int] = None, nx: bool = False) -> bool:
        """nx=True 时只在 Key 不存在时写入（用作锁），返回是否写入成功"""
        return bool(await self.client.set(self._key(key), value, ex=ex, nx=nx))

    async def delete(self, key: str) -> int:
        return await self.client.delete(self._key(key))


redis_client = RedisClient()
