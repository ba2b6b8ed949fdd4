"""
Limit Stores

Redis-backed counters for tool-call throttling, keyed by client (the caller's
IP address).

Key Layout:
===========
    limit:rate:{client_id}:{window}   sorted set, one member per request,
                                      scored by its timestamp
    limit:active:{client_id}          integer, requests currently in flight

The rate window slides: entries older than the window are trimmed before
counting. In-flight counters carry a TTL so a crashed worker cannot pin a
client at its limit forever.
"""

import time
from typing import Callable, Optional

from redis.asyncio import Redis

from datenassistent.cache.redis_client import get_redis
from datenassistent.core.utils import generate_short_id

WINDOW_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
}


class RateLimitStore:
    """Sliding-window request counter."""

    def __init__(
        self,
        prefix: str = "limit:rate:",
        client_factory: Callable[[], Redis] = get_redis,
    ) -> None:
        """Initialize the store.

        Args:
            prefix: Redis key prefix
            client_factory: Returns the Redis client to use per call
        """
        self.prefix = prefix
        self.client_factory = client_factory

    def _build_key(self, client_id: str, window: str) -> str:
        return f"{self.prefix}{client_id}:{window}"

    async def check_and_increment(
        self,
        client_id: str,
        limit: int,
        window: str = "minute",
    ) -> tuple[bool, int, int]:
        """Count this request against the client's window.

        Returns:
            Tuple of (allowed, current_count, retry_after_seconds)
        """
        redis_client = self.client_factory()
        key = self._build_key(client_id, window)
        window_seconds = WINDOW_SECONDS.get(window, 60)

        now = time.time()
        pipe = redis_client.pipeline()
        pipe.zremrangebyscore(key, 0, now - window_seconds)
        pipe.zcard(key)
        results = await pipe.execute()
        current_count = results[1]

        if current_count < limit:
            await redis_client.zadd(key, {generate_short_id(str(now)): now})
            await redis_client.expire(key, window_seconds * 2)
            return True, current_count + 1, 0

        oldest = await redis_client.zrange(key, 0, 0, withscores=True)
        if oldest:
            retry_after = int(window_seconds - (now - oldest[0][1])) + 1
        else:
            retry_after = window_seconds
        return False, current_count, retry_after


class ConcurrencyStore:
    """In-flight request counter per client."""

    def __init__(
        self,
        prefix: str = "limit:active:",
        ttl_seconds: int = 300,
        client_factory: Callable[[], Redis] = get_redis,
    ) -> None:
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds
        self.client_factory = client_factory

    def _build_key(self, client_id: str) -> str:
        return f"{self.prefix}{client_id}"

    async def acquire(self, client_id: str, limit: int) -> tuple[bool, int]:
        """Take a slot if the client is below its limit.

        Returns:
            Tuple of (allowed, active_count)
        """
        redis_client = self.client_factory()
        key = self._build_key(client_id)

        active = await redis_client.incr(key)
        await redis_client.expire(key, self.ttl_seconds)
        if active > limit:
            await redis_client.decr(key)
            return False, active - 1
        return True, active

    async def release(self, client_id: str) -> None:
        await self.client_factory().decr(self._build_key(client_id))

    async def active(self, client_id: str) -> int:
        value: Optional[str] = await self.client_factory().get(self._build_key(client_id))
        return int(value or 0)
