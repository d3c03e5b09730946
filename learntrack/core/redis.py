# ruff: noqa: PLW0603
"""Redis connection management.

Redis backs the distributed locks that serialize progress cascades and
content counter updates across API workers. It is optional: without it
the service runs single-process with in-memory locks.
"""

import redis.asyncio as redis

from learntrack.config import get_settings
from learntrack.core.logging import get_logger


logger = get_logger(__name__)

# Global Redis client
_redis_client: redis.Redis | None = None


async def init_redis() -> redis.Redis:
    """Initialize Redis connection pool."""
    global _redis_client

    settings = get_settings()

    _redis_client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )

    try:
        await _redis_client.ping()
        logger.info("redis_connected", url=settings.redis_url)
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", error=str(e))
        _redis_client = None
        raise

    return _redis_client


async def shutdown_redis() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client:
        await _redis_client.aclose()
        logger.info("redis_disconnected")
        _redis_client = None


# Lock key patterns
def progress_lock_key(tenant_id: str, user_id: str) -> str:
    """Lock serializing all progress writes of one learner."""
    return f"locks:progress:{tenant_id}:{user_id}"


def content_stats_lock_key(tenant_id: str) -> str:
    """Lock serializing stored content counter updates of one tenant."""
    return f"locks:content_stats:{tenant_id}"


def unit_lock_key(tenant_id: str, unit_id: str) -> str:
    """Lock serializing lesson-count updates of one unit."""
    return f"locks:unit:{tenant_id}:{unit_id}"
