"""
Redis Connection
Shared connection for the generation and sample queues.
"""

import logging
from functools import lru_cache

from redis import Redis
from redis.exceptions import RedisError

from dreamboat.core.config import settings

logger = logging.getLogger(__name__)


class Queues:
    """RQ queue names.

    Paid generation runs and the free preview images live on separate
    queues so a backlog of long runs never delays a preview.
    """
    GENERATION = "generation"
    SAMPLES = "samples"
    DEFAULT = "default"

    # Listening order for a worker serving every queue
    PRIORITY = (GENERATION, SAMPLES, DEFAULT)


def masked_url(url: str) -> str:
    """redis://:secret@host:6379 -> redis://***@host:6379"""
    if "@" in url:
        return f"redis://***@{url.rsplit('@', 1)[-1]}"
    return url


@lru_cache()
def get_redis() -> Redis:
    """Process-wide client; RQ needs raw bytes, so responses are not decoded."""
    logger.info(f"Connecting to Redis at {masked_url(settings.REDIS_URL)}")
    return Redis.from_url(
        settings.REDIS_URL,
        socket_connect_timeout=5,
        socket_timeout=5,
        retry_on_timeout=True,
    )


def redis_health_check() -> dict:
    """Ping Redis; never raises."""
    try:
        get_redis().ping()
        return {"connected": True, "url": masked_url(settings.REDIS_URL)}
    except RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        return {"connected": False, "error": str(e), "url": masked_url(settings.REDIS_URL)}


__all__ = ["Queues", "masked_url", "get_redis", "redis_health_check"]
