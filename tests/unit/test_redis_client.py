"""Unit tests for RedisClient"""

from unittest.mock import AsyncMock

import pytest

from tenant_auth_service.infrastructure.redis.client import RedisClient


@pytest.mark.unit
class TestRedisClient:
    """Connection holder and readiness reporting"""

    def test_get_client_before_connect(self, settings):
        with pytest.raises(RuntimeError):
            RedisClient(settings).get_client()

    @pytest.mark.asyncio
    async def test_health_check_disconnected(self, settings):
        assert await RedisClient(settings).health_check() == {"status": "disconnected"}

    @pytest.mark.asyncio
    async def test_health_check_ok(self, settings):
        client = RedisClient(settings)
        client._client = AsyncMock()

        result = await client.health_check()

        assert result["status"] == "ok"
        assert result["latency_ms"] >= 0

    @pytest.mark.asyncio
    async def test_health_check_unavailable(self, settings):
        client = RedisClient(settings)
        client._client = AsyncMock()
        client._client.ping.side_effect = ConnectionError("refused")

        result = await client.health_check()

        assert result == {"status": "unavailable", "error": "refused"}

    @pytest.mark.asyncio
    async def test_disconnect_closes_pool(self, settings):
        client = RedisClient(settings)
        pool = AsyncMock()
        client._client = pool

        await client.disconnect()

        pool.aclose.assert_awaited_once()
        with pytest.raises(RuntimeError):
            client.get_client()
