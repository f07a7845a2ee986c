"""Redis client for aggregate locks."""

import redis.asyncio as redis
from redis.asyncio import ConnectionPool, Redis

from streamcore.config import get_settings

# Global Redis connection pool and client instance
redis_pool: ConnectionPool | None = None
redis_client: Redis | None = None


async def init_redis() -> Redis:
    """Initialize the shared Redis client and check the connection."""
    global redis_pool, redis_client

    settings = get_settings()
    redis_pool = ConnectionPool.from_url(
        settings.redis_url,
        socket_timeout=settings.redis_socket_timeout,
        retry_on_timeout=True,
        encoding="utf-8",
        decode_responses=True,
    )
    redis_client = redis.Redis(connection_pool=redis_pool)

    await redis_client.ping()
    return redis_client


async def close_redis() -> None:
    """Close Redis connection and pool."""
    global redis_pool, redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
    if redis_pool:
        await redis_pool.disconnect()
        redis_pool = None


def get_redis_client() -> Redis | None:
    """The shared client, or None before ``init_redis``."""
    return redis_client
