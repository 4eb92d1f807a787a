# app/services/backend_client.py
# 旧版后端（PHP）客户端
#
# 功能说明：
# 1. send_push - 向单个设备发送 FCM 推送
# 2. send_push_to_topic - 向主题（广播）发送推送
# 3. clear_home_cache - 清理 App 首页缓存（轮播、网格、闪购修改后调用）
#
# 调用约定：
#   所有调用都有超时（BACKEND_TIMEOUT_SECONDS，默认 5 秒）；
#   失败、超时、非 2xx 只记录日志并返回 False，从不抛出异常，
#   主流程（状态变更、退款等）的成败与推送结果无关
#
# 使用方法：
#   from app.services.backend_client import backend_client
#
#   await backend_client.send_push(token, "Order #12 Shipping", "Your order has been shipping.")

from typing import Any, Optional

import httpx

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

SEND_PUSH_PATH = "/v3_0_0-notification/send-push"
SEND_PUSH_TO_TOPIC_PATH = "/v3_0_0-notification/send-push-to-topic"
CLEAR_HOME_CACHE_PATH = "/v3_0_0-app/clear-home-cache"

BROADCAST_TOPIC = "global"


class BackendClient:
    """
    旧版后端 HTTP 客户端

    Args:
        base_url: 后端地址，默认 settings.BACKEND_URL
        timeout: 单次请求超时（秒）
        transport: 自定义 httpx 传输层（测试时传入 httpx.MockTransport）
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.BACKEND_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.BACKEND_TIMEOUT_SECONDS
        self._transport = transport

    async def _post(self, path: str, payload: dict[str, Any]) -> bool:
        url = f"{self.base_url}{path}"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(url, json=payload)
            except httpx.TimeoutException:
                logger.warning(f"[BackendClient] 请求超时 ({self.timeout}s): {path}")
                return False
            except httpx.HTTPError as e:
                logger.warning(f"[BackendClient] 请求失败: {path}, 错误: {e}")
                return False

        if response.is_success:
            logger.debug(f"[BackendClient] {path} -> {response.status_code}")
            return True

        logger.warning(
            f"[BackendClient] {path} 返回 {response.status_code}: {response.text[:200]}"
        )
        return False

    async def send_push(
        self,
        fcm_token: str,
        title: str,
        body: str,
        data: Optional[dict[str, str]] = None,
    ) -> bool:
        """向单个设备推送"""
        return await self._post(
            SEND_PUSH_PATH,
            {"fcm_token": fcm_token, "title": title, "body": body, "data": data or {}},
        )

    async def send_push_to_topic(
        self,
        title: str,
        body: str,
        data: Optional[dict[str, str]] = None,
        topic: str = BROADCAST_TOPIC,
    ) -> bool:
        """向订阅主题的所有设备推送"""
        return await self._post(
            SEND_PUSH_TO_TOPIC_PATH,
            {"topic": topic, "title": title, "body": body, "data": data or {}},
        )

    async def clear_home_cache(self) -> bool:
        """
        清理 App 首页缓存

        失败时首页内容最多在后端缓存过期（约 5 分钟）后更新
        """
        ok = await self._post(CLEAR_HOME_CACHE_PATH, {"secret": settings.CACHE_CLEAR_SECRET})
        if ok:
            logger.info("[BackendClient] 首页缓存已清理")
        return ok


backend_client = BackendClient()
