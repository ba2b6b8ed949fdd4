"""
Retry with Exponential Backoff

Backend calls fail transiently: dropped connections, pool exhaustion,
serialization failures. retry_with_backoff() re-runs an awaitable factory
while the error looks transient and gives up immediately otherwise.

Delay schedule (defaults):

    attempt 1 fails → sleep 100ms
    attempt 2 fails → sleep 200ms
    attempt 3 fails → raise last error

A failure is retryable when its lower-cased text or error code contains one
of the configured signatures. Application exceptions (validation, cardinality
gate) are never retried: they are deterministic.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any, Generic, Optional, TypeVar

from sqlalchemy.exc import DBAPIError

from datenassistent.config.constants import (
    BACKEND_RETRYABLE_CODES,
    BACKEND_RETRYABLE_PATTERNS,
    RETRYABLE_ERROR_PATTERNS,
)
from datenassistent.config.settings import Settings, settings as default_settings
from datenassistent.core.exceptions import DatenassistentException
from datenassistent.core.logging import logger

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy.

    `retryable_errors` are substrings matched against the error text and
    code. `retryable_codes` are prefixes matched against the error code only,
    so short SQLSTATE classes like "08" never match inside message text.
    """

    max_attempts: int = 3
    initial_delay_ms: int = 100
    backoff_multiplier: float = 2.0
    max_delay_ms: int = 5000
    retryable_errors: tuple[str, ...] = RETRYABLE_ERROR_PATTERNS
    retryable_codes: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_settings(cls, app_settings: Settings | None = None) -> "RetryConfig":
        """Build the policy from application settings."""
        s = app_settings or default_settings
        return cls(
            max_attempts=s.RETRY_MAX_ATTEMPTS,
            initial_delay_ms=s.RETRY_INITIAL_DELAY_MS,
            backoff_multiplier=s.RETRY_BACKOFF_MULTIPLIER,
            max_delay_ms=s.RETRY_MAX_DELAY_MS,
        )

    def for_backend(self) -> "RetryConfig":
        """Extend the policy with database driver signatures."""
        extra = tuple(p for p in BACKEND_RETRYABLE_PATTERNS if p not in self.retryable_errors)
        codes = tuple(c for c in BACKEND_RETRYABLE_CODES if c not in self.retryable_codes)
        return replace(
            self,
            retryable_errors=self.retryable_errors + extra,
            retryable_codes=self.retryable_codes + codes,
        )


@dataclass
class BackendResult(Generic[T]):
    """Outcome of a retried backend call. Exactly one field is set."""

    data: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def error_text(error: BaseException) -> str:
    """Extract the message of an error.

    For SQLAlchemy DBAPI errors the driver exception is used, which keeps
    the rendered SQL statement and its parameters out of the text. Errors
    with an empty message (e.g. TimeoutError()) are described by class name.
    """
    source: BaseException = error
    if isinstance(error, DBAPIError) and error.orig is not None:
        source = error.orig
    message = str(source).strip()
    return message or type(source).__name__


def error_code(error: BaseException) -> str:
    """Extract a driver error code (SQLSTATE where available)."""
    candidates: list[Any] = []
    if isinstance(error, DBAPIError) and error.orig is not None:
        orig = error.orig
        candidates += [getattr(orig, "sqlstate", None), getattr(orig, "pgcode", None)]
    elif not isinstance(error, DatenassistentException):
        candidates += [getattr(error, "sqlstate", None), getattr(error, "code", None)]
    for candidate in candidates:
        if candidate:
            return str(candidate)
    return ""


def is_retryable_error(error: BaseException | None, config: RetryConfig) -> bool:
    """Decide whether an error is worth another attempt."""
    if error is None or isinstance(error, DatenassistentException):
        return False

    message = error_text(error).lower()
    code = error_code(error).lower()

    for pattern in config.retryable_errors:
        lowered = pattern.lower()
        if lowered in message or (code and lowered in code):
            return True
    return any(code.startswith(prefix.lower()) for prefix in config.retryable_codes if code)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Delay in milliseconds before the attempt after `attempt` (1-based)."""
    delay = config.initial_delay_ms * (config.backoff_multiplier ** (attempt - 1))
    return min(delay, config.max_delay_ms)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
) -> T:
    """Await `operation()` until it succeeds or fails non-transiently.

    Args:
        operation: Zero-argument factory returning a fresh awaitable per attempt
        config: Retry policy (defaults to RetryConfig())

    Returns:
        The operation's result

    Raises:
        The first non-retryable error, or the last error after all attempts
    """
    config = config or RetryConfig()
    attempts = max(1, config.max_attempts)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt >= attempts or not is_retryable_error(e, config):
                raise

            delay_ms = calculate_delay(attempt, config)
            logger.warning(
                "Retrying after transient failure",
                attempt=attempt,
                max_attempts=attempts,
                delay_ms=delay_ms,
                error=error_text(e),
                error_type=type(e).__name__,
            )
            await asyncio.sleep(delay_ms / 1000)

    # Unreachable: the loop either returns or raises
    raise RuntimeError("retry loop exited without a result")


async def retry_backend_operation(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
) -> BackendResult[T]:
    """Run a backend call with backend-aware retry and capture the outcome.

    Never raises for ordinary exceptions; the final error is returned in
    BackendResult.error for translation by the caller.
    """
    backend_config = (config or RetryConfig()).for_backend()
    try:
        data = await retry_with_backoff(operation, backend_config)
    except Exception as e:
        return BackendResult(error=e)
    return BackendResult(data=data)
