import json
from typing import Any

import redis.asyncio as redis
import structlog

from app.core.config import settings

logger = structlog.get_logger(__name__)


class RedisClient:
    """Redis client used for broadcasting availability changes."""

    def __init__(self, url: str = settings.REDIS_URL):
        self.url = url
        self.redis_pool = None

    async def init_redis(self):
        """Initialize Redis connection pool."""
        try:
            self.redis_pool = redis.ConnectionPool.from_url(
                self.url,
                decode_responses=True,
                retry_on_timeout=True,
                socket_keepalive=True,
                socket_connect_timeout=2,
            )

            async with redis.Redis(connection_pool=self.redis_pool) as r:
                await r.ping()
                logger.info("Redis connection established")

        except Exception as e:
            self.redis_pool = None
            logger.error("Failed to connect to Redis", exc_info=e)
            raise

    async def get_redis(self) -> redis.Redis:
        """Get Redis client instance."""
        if not self.redis_pool:
            await self.init_redis()
        return redis.Redis(connection_pool=self.redis_pool)

    async def publish(self, channel: str, message: Any) -> int:
        """Publish a message on a pub/sub channel.

        Returns the number of subscribers that received it. Errors propagate;
        callers decide whether a failed publish matters.
        """
        client = await self.get_redis()
        payload = message if isinstance(message, str) else json.dumps(message, default=str)
        return await client.publish(channel, payload)

    async def close(self):
        if self.redis_pool:
            await self.redis_pool.disconnect()
            self.redis_pool = None


# Global Redis client instance
redis_client = RedisClient()
