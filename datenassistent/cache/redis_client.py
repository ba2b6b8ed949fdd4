"""
Redis Client

Shared async Redis pool. Tool-call limits are counted here so that every
worker process sees the same per-client counters.
"""

from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis

from datenassistent.config.settings import settings
from datenassistent.core.logging import logger


class _RedisState:
    """Container for Redis connection state."""

    pool: Optional[Redis] = None


_state = _RedisState()


async def init_redis() -> None:
    """Open the pool and verify the server answers."""
    logger.info("Initializing Redis connection")
    try:
        _state.pool = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.REDIS_POOL_SIZE,
        )
        await _state.pool.ping()
        logger.info("Redis connection established")
    except Exception as e:
        logger.error("Failed to connect to Redis", error=str(e))
        raise


async def close_redis() -> None:
    """Close the pool if it was opened."""
    if _state.pool:
        await _state.pool.aclose()
        _state.pool = None
        logger.info("Redis connection closed")


def get_redis() -> Redis:
    """Get the shared Redis client.

    Raises:
        RuntimeError: If init_redis() has not run
    """
    if _state.pool is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _state.pool
