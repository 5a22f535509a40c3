"""
Redis client with connection pooling for the persistence layer.

Uses redis-py's asyncio client; the proxy is fully async so no sync pool
is kept.
"""

import logging
from typing import Optional

from redis.asyncio import ConnectionPool as AsyncConnectionPool
from redis.asyncio import Redis as AsyncRedis

from pii_proxy.config import Settings

logger = logging.getLogger(__name__)


class RedisClient:
    """
    Redis client wrapper with a process-wide async connection pool.

    The pool is created lazily from REDIS_URL on first use and shared by
    every store instance.
    """

    _async_pool: Optional[AsyncConnectionPool] = None

    @classmethod
    def get_async_client(cls, settings: Settings) -> AsyncRedis:
        """
        Get asynchronous Redis client with connection pooling.

        Args:
            settings: Application settings (REDIS_URL must be set)

        Returns:
            AsyncRedis client instance
        """
        if not settings.REDIS_URL:
            raise ValueError("REDIS_URL is not configured")

        if cls._async_pool is None:
            cls._async_pool = AsyncConnectionPool.from_url(
                settings.REDIS_URL,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
                retry_on_timeout=True,
            )
            logger.info("Initialized Redis async connection pool")

        return AsyncRedis(connection_pool=cls._async_pool)

    @classmethod
    async def close_async_pool(cls):
        """Close async connection pool (cleanup on shutdown)."""
        if cls._async_pool is not None:
            await cls._async_pool.disconnect()
            cls._async_pool = None
            logger.info("Closed Redis async connection pool")
