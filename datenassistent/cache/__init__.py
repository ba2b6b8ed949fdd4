"""Redis-backed counters for tool-call limits."""

from datenassistent.cache.limit_store import ConcurrencyStore, RateLimitStore
from datenassistent.cache.redis_client import close_redis, get_redis, init_redis

__all__ = [
    "get_redis",
    "init_redis",
    "close_redis",
    "RateLimitStore",
    "ConcurrencyStore",
]
