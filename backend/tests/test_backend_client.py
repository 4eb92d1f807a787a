# tests/test_backend_client.py
# 旧后端客户端测试

import json

import httpx
import pytest

from app.services.backend_client import (
    CLEAR_HOME_CACHE_PATH,
    SEND_PUSH_TO_TOPIC_PATH,
    BackendClient,
)


def client_with(handler) -> BackendClient:
    return BackendClient(base_url="http://backend.test/", timeout=1, transport=httpx.MockTransport(handler))


class TestBackendClient:
    """失败只返回 False，不抛异常"""

    @pytest.mark.asyncio
    async def test_success(self):
        seen = []

        def handler(request):
            seen.append((str(request.url), json.loads(request.content)))
            return httpx.Response(200, json={"ok": True})

        ok = await client_with(handler).send_push_to_topic("Sale", "50% off", {"notification_type": "promo"})

        assert ok is True
        url, payload = seen[0]
        assert url == f"http://backend.test{SEND_PUSH_TO_TOPIC_PATH}"
        assert payload["topic"] == "global"
        assert payload["data"] == {"notification_type": "promo"}

    @pytest.mark.asyncio
    async def test_non_2xx_returns_false(self):
        ok = await client_with(lambda request: httpx.Response(500, text="boom")).send_push("t", "a", "b")

        assert ok is False

    @pytest.mark.asyncio
    async def test_connection_error_returns_false(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert await client_with(handler).clear_home_cache() is False

    @pytest.mark.asyncio
    async def test_timeout_returns_false(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        assert await client_with(handler).send_push("t", "a", "b") is False

    @pytest.mark.asyncio
    async def test_clear_cache_sends_secret(self):
        seen = []

        def handler(request):
            seen.append((request.url.path, json.loads(request.content)))
            return httpx.Response(204)

        assert await client_with(handler).clear_home_cache() is True
        assert seen[0][0] == CLEAR_HOME_CACHE_PATH
        assert "secret" in seen[0][1]
