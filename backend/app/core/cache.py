# app/core/cache.py
# 进程内 TTL 缓存
#
# 功能说明：
# 1. 按 key 缓存异步加载函数的结果，超过 TTL 后重新加载
# 2. 缓存未命中时，同一 key 的并发请求合并为一次加载（共享同一个加载任务）
# 3. 支持手动失效（写操作之后调用）
# 4. 时钟可注入，单元测试无需真实等待
#
# 使用方法：
#   category_cache = AsyncTTLCache("category", ttl=300)
#   tree = await category_cache.get_or_load("tree", lambda: build_tree(session))
#   category_cache.invalidate("tree")
#
# 注意：
#   缓存只在当前进程内有效，多实例部署时各实例独立过期，
#   一个实例上的写操作不会让其它实例的缓存失效（最长 TTL 内最终一致）

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from app.core.logging import get_logger

logger = get_logger(__name__)

Loader = Callable[[], Awaitable[Any]]


@dataclass
class _Entry:
    value: Any
    stored_at: float


class AsyncTTLCache:
    """
    带请求合并的异步 TTL 缓存

    Args:
        name: 缓存名称，仅用于日志
        ttl: 有效期（秒）
        clock: 返回当前时间（秒）的函数，默认 time.monotonic
    """

    def __init__(
        self,
        name: str,
        ttl: float,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.name = name
        self.ttl = ttl
        self._clock = clock or time.monotonic
        self._entries: dict[str, _Entry] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        # 每次失效递增，用于丢弃失效之前发起的加载结果
        self._generation = 0

    def peek(self, key: str) -> Optional[Any]:
        """返回未过期的缓存值，不触发加载"""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl:
            return None
        return entry.value

    async def get_or_load(self, key: str, loader: Loader) -> Any:
        """
        获取缓存值，未命中或过期时调用 loader 加载

        并发调用时只有第一个调用方真正执行 loader，
        其余调用方等待同一个加载任务，拿到同一个结果对象；
        发起加载的调用方被取消时，加载继续进行，其余等待者照常拿到结果；
        loader 抛出的异常会传给所有等待者，且不会被缓存
        """
        cached = self.peek(key)
        if cached is not None:
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._load(key, loader, self._generation))
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._finish(key, done))

        # shield：某个调用方被取消只影响它自己，加载任务继续为其它等待者运行
        return await asyncio.shield(task)

    async def _load(self, key: str, loader: Loader, generation: int) -> Any:
        value = await loader()
        if generation == self._generation:
            self._entries[key] = _Entry(value=value, stored_at=self._clock())
        else:
            logger.debug(f"[Cache:{self.name}] 加载期间缓存已失效，结果不写入: {key}")
        return value

    def _finish(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # 所有调用方都已取消时，避免 "exception was never retrieved" 警告
        if not task.cancelled():
            task.exception()

    def invalidate(self, key: Optional[str] = None) -> None:
        """使指定 key（不传则全部）失效"""
        # 进行中的加载不再被新的调用方复用，已在等待的调用方仍拿到它的结果
        if key is None:
            self._entries.clear()
            self._inflight.clear()
        else:
            self._entries.pop(key, None)
            self._inflight.pop(key, None)
        self._generation += 1
        logger.debug(f"[Cache:{self.name}] 已失效: {key or '*'}")
