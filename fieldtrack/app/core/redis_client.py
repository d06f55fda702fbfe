"""
Redis client for the last known location cache.

Redis is optional at runtime: when it is down the tracking engine keeps
working and only the location mirror is lost.
"""

import logging
import redis.asyncio as redis
from redis.exceptions import RedisError
from fieldtrack.app.core.config import settings

logger = logging.getLogger(__name__)

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """FastAPI dependency returning the shared Redis client."""
    return redis_client


async def ping_redis() -> bool:
    """
    Check the Redis connection for /health.

    Returns:
        True if Redis answered, False otherwise
    """
    try:
        return bool(await redis_client.ping())
    except (RedisError, OSError) as e:
        logger.warning("Redis ping failed", extra={"error": str(e)})
        return False


async def close_redis() -> None:
    """Release the connection pool on shutdown."""
    await redis_client.aclose()
