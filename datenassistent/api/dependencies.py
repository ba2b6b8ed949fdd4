"""
API Dependencies

Wires the table-access stack from settings and exposes it to routes.

    engine ──▶ TableBackend ──▶ TableAccessService ──▶ ToolDispatcher
                                      │
                                      └── AuditLogger (structlog [+ t_audit_log])

Tool calls pass through ToolCallLimiter (per-IP rate and concurrency limits).

Tests replace get_tool_dispatcher, get_tool_call_limiter and get_db via
app.dependency_overrides.
"""

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from datenassistent.api.limits import ToolCallLimiter
from datenassistent.config.settings import settings
from datenassistent.core.logging import logger
from datenassistent.data_access.audit import (
    AuditLogger,
    AuditSink,
    DatabaseAuditSink,
    StructlogAuditSink,
)
from datenassistent.data_access.backend import TableBackend
from datenassistent.data_access.service import TableAccessConfig, TableAccessService
from datenassistent.data_access.tools import ToolDispatcher
from datenassistent.db.session import AsyncSessionLocal, engine, get_db


def create_table_access_service() -> TableAccessService:
    """Build the service from application settings."""
    sinks: list[AuditSink] = [StructlogAuditSink()]
    if settings.AUDIT_LOG_TO_DATABASE:
        sinks.append(DatabaseAuditSink(AsyncSessionLocal))

    config = TableAccessConfig.from_settings(settings)
    logger.info(
        "Table access configured",
        write_allowed_tables=sorted(config.write_allowed_tables),
        read_restricted=config.read_allowed_tables is not None,
        audit_sinks=[type(s).__name__ for s in sinks],
    )
    return TableAccessService(
        backend=TableBackend(engine, schema=settings.DATABASE_SCHEMA),
        config=config,
        audit=AuditLogger(sinks, debug=settings.DEBUG),
    )


@lru_cache
def get_tool_dispatcher() -> ToolDispatcher:
    """Process-wide dispatcher (the service is stateless per call)."""
    return ToolDispatcher(create_table_access_service())


@dataclass(frozen=True)
class CallerContext:
    """Audit attribution for one request."""

    user_id: str | None
    ip_address: str | None


def _get_client_ip(request: Request) -> str | None:
    """Extract client IP, considering X-Forwarded-For from proxies."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


async def get_caller_context(
    request: Request,
    x_user_id: Annotated[str | None, Header()] = None,
) -> CallerContext:
    """Caller identity from the X-User-ID header and the client address."""
    return CallerContext(user_id=x_user_id, ip_address=_get_client_ip(request))


Dispatcher = Annotated[ToolDispatcher, Depends(get_tool_dispatcher)]
Caller = Annotated[CallerContext, Depends(get_caller_context)]


@lru_cache
def get_tool_call_limiter() -> ToolCallLimiter:
    """Process-wide limiter; the counters themselves live in Redis."""
    return ToolCallLimiter.from_settings(settings)


async def enforce_tool_call_limits(
    caller: Caller,
    limiter: Annotated[ToolCallLimiter, Depends(get_tool_call_limiter)],
) -> AsyncGenerator[None, None]:
    """Reject over-limit callers with 429 and hold a slot while the call runs."""
    client_id = caller.ip_address or "unknown"
    await limiter.check_rate(client_id)
    async with limiter.slot(client_id):
        yield


DbSession = Annotated[AsyncSession, Depends(get_db)]
