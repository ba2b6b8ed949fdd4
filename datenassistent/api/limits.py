"""
Tool-Call Limits

Throttles POST /api/v1/tools/{tool_name} per client IP before any tool runs:

    request ──▶ rate window check ──▶ take in-flight slot ──▶ tool call ──▶ release slot
                      │                        │
                      └── 429 RATE_LIMITED     └── 429 TOO_MANY_CONCURRENT_REQUESTS

Both counters live in Redis (see datenassistent.cache.limit_store).
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from datenassistent.cache.limit_store import ConcurrencyStore, RateLimitStore
from datenassistent.config.settings import Settings
from datenassistent.core.exceptions import (
    ConcurrencyLimitExceededError,
    RateLimitExceededError,
)
from datenassistent.core.logging import logger


@dataclass
class ToolCallLimiter:
    """Per-client rate and concurrency limits for tool calls.

    Attributes:
        requests: Calls allowed per window
        window: second, minute, hour or day
        max_concurrent: Calls a client may have in flight at once
        enabled: False turns both checks off
    """

    requests: int = 60
    window: str = "minute"
    max_concurrent: int = 4
    enabled: bool = True
    rate_store: RateLimitStore = field(default_factory=RateLimitStore)
    concurrency_store: ConcurrencyStore = field(default_factory=ConcurrencyStore)

    @classmethod
    def from_settings(cls, s: Settings) -> "ToolCallLimiter":
        return cls(
            requests=s.RATE_LIMIT_REQUESTS,
            window=s.RATE_LIMIT_WINDOW,
            max_concurrent=s.TOOL_CALL_MAX_CONCURRENT,
            enabled=s.RATE_LIMIT_ENABLED,
        )

    async def check_rate(self, client_id: str) -> None:
        """Count one call against the client's window.

        Raises:
            RateLimitExceededError: Window already full
        """
        if not self.enabled:
            return

        allowed, current, retry_after = await self.rate_store.check_and_increment(
            client_id, self.requests, self.window
        )
        if not allowed:
            logger.warning(
                "RateLimit: BLOCKED - Rate limit exceeded",
                client_id=client_id,
                current_count=current,
                limit=self.requests,
                window=self.window,
                retry_after_seconds=retry_after,
            )
            raise RateLimitExceededError(self.requests, self.window, retry_after)

    @asynccontextmanager
    async def slot(self, client_id: str) -> AsyncIterator[None]:
        """Hold one in-flight slot for the duration of the block.

        Raises:
            ConcurrencyLimitExceededError: All of the client's slots are taken
        """
        if not self.enabled:
            yield
            return

        allowed, active = await self.concurrency_store.acquire(client_id, self.max_concurrent)
        if not allowed:
            logger.warning(
                "RateLimit: BLOCKED - Too many concurrent calls",
                client_id=client_id,
                active=active,
                limit=self.max_concurrent,
            )
            raise ConcurrencyLimitExceededError(self.max_concurrent)

        try:
            yield
        finally:
            await self.concurrency_store.release(client_id)
