"""Redis Client for Tenant Auth Service

One connection pool shared by the identity store, sessions, token
revocation, organization records and the side-effect queues.
"""

import logging
import time
from typing import Any, Dict, Optional

import redis.asyncio as redis

from tenant_auth_service.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Async Redis connection holder"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._client: Optional[redis.Redis] = None

    async def connect(self):
        """Open the pool and fail fast if Redis is unreachable

        Environment Variables:
            REDIS_HOST, REDIS_PORT, REDIS_DB, REDIS_PASSWORD,
            REDIS_MAX_CONNECTIONS, REDIS_SOCKET_TIMEOUT
        """
        if self._client:
            return

        self._client = redis.from_url(
            self.settings.redis_url,
            decode_responses=True,
            max_connections=self.settings.redis_max_connections,
            socket_timeout=self.settings.redis_socket_timeout,
            socket_connect_timeout=self.settings.redis_socket_timeout,
        )
        await self._client.ping()

        logger.info(
            f"Connected to Redis {self.settings.redis_host}:{self.settings.redis_port}/{self.settings.redis_db} "
            f"(max_connections={self.settings.redis_max_connections})"
        )

    async def disconnect(self):
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from Redis")

    def get_client(self) -> redis.Redis:
        """Get the underlying Redis client

        Raises:
            RuntimeError: If client not connected
        """
        if not self._client:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    async def health_check(self) -> Dict[str, Any]:
        """Ping Redis and report latency for the readiness check"""
        if not self._client:
            return {"status": "disconnected"}

        started = time.perf_counter()
        try:
            await self._client.ping()
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return {"status": "unavailable", "error": str(e)}

        return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 2)}


# Global Redis client instance
_redis_client: Optional[RedisClient] = None


async def get_redis_client() -> RedisClient:
    """Get or create the global, connected Redis client"""
    global _redis_client
    if not _redis_client:
        client = RedisClient()
        await client.connect()
        _redis_client = client
    return _redis_client


def peek_redis_client() -> Optional[RedisClient]:
    """Return the global client without connecting (None before startup)"""
    return _redis_client


async def close_redis_client():
    """Close global Redis client"""
    global _redis_client
    if _redis_client:
        await _redis_client.disconnect()
        _redis_client = None
