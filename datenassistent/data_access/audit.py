"""
Audit Trail

Every mutation attempt (insert, update, delete) produces exactly one audit
entry, whether it succeeds or fails validation. Reads are audited only when
AUDIT_QUERIES is enabled.

Flow:
=====
    TableAccessService
        │
        │  record(action, table, result, filters=..., values=..., error=...)
        ▼
    AuditLogger ── builds AuditLogEntry (UTC timestamp, immutable)
        │
        │  outside debug: filters/values → "[REDACTED]", error scrubbed
        ▼
    ┌──────────────────────┐   ┌──────────────────────────────┐
    │ StructlogAuditSink   │   │ DatabaseAuditSink (optional) │
    │ logger "…audit"      │   │ t_audit_log via repository   │
    └──────────────────────┘   └──────────────────────────────┘

A failing sink is logged and skipped; auditing never changes the outcome of
the operation being audited.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from datenassistent.config.constants import REDACTED_MARKER, AuditAction, AuditResult
from datenassistent.core.logging import audit_logger, logger
from datenassistent.core.utils import redact_for_logging, utc_now
from datenassistent.db.repositories import AuditLogRepository


class AuditLogEntry(BaseModel):
    """Immutable record of one table operation."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utc_now)
    action: AuditAction
    table_name: str
    result: AuditResult
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    filters: Optional[Any] = None
    values: Optional[Any] = None
    error: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    def redacted(self) -> "AuditLogEntry":
        """Copy safe for production sinks.

        Filters and values are replaced by a marker and the error text is
        scrubbed of e-mails, phone and card numbers and API keys.
        """
        return self.model_copy(
            update={
                "filters": REDACTED_MARKER if self.filters is not None else None,
                "values": REDACTED_MARKER if self.values is not None else None,
                "error": redact_for_logging(self.error) if self.error else None,
            }
        )


class AuditSink(Protocol):
    """Destination for audit entries."""

    async def write(self, entry: AuditLogEntry) -> None: ...


class StructlogAuditSink:
    """Writes audit entries as structured events on the audit logger."""

    async def write(self, entry: AuditLogEntry) -> None:
        audit_logger.info("audit", **entry.model_dump(mode="json"))


class DatabaseAuditSink:
    """Persists audit entries to t_audit_log.

    Each entry is written in its own session and committed immediately, so
    it is independent of the audited operation's transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def write(self, entry: AuditLogEntry) -> None:
        data = entry.model_dump(mode="json")
        async with self.session_factory() as session:
            repo = AuditLogRepository(session)
            await repo.create_entry(
                action=data["action"],
                table_name=entry.table_name,
                result=data["result"],
                created_at=entry.timestamp,
                user_id=entry.user_id,
                ip_address=entry.ip_address,
                filters=data["filters"],
                values=data["values"],
                error=entry.error,
                metadata=data["metadata"],
            )
            await session.commit()


class AuditLogger:
    """Builds audit entries and fans them out to the configured sinks."""

    def __init__(
        self,
        sinks: Sequence[AuditSink] | None = None,
        debug: bool = False,
    ) -> None:
        """Initialize the audit logger.

        Args:
            sinks: Destinations (defaults to a single StructlogAuditSink)
            debug: Write filters, values and raw error text unredacted
        """
        self.sinks: list[AuditSink] = list(sinks) if sinks is not None else [StructlogAuditSink()]
        self.debug = debug

    async def record(
        self,
        action: AuditAction,
        table_name: str,
        result: AuditResult,
        *,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        filters: Optional[Any] = None,
        values: Optional[Any] = None,
        error: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> AuditLogEntry:
        """Create an entry, write it to every sink and return it.

        The returned entry carries the original (unredacted) arguments;
        redaction applies to what the sinks receive.
        """
        entry = AuditLogEntry(
            action=action,
            table_name=table_name if isinstance(table_name, str) else str(table_name or ""),
            result=result,
            user_id=user_id,
            ip_address=ip_address,
            filters=filters,
            values=values,
            error=error,
            metadata=metadata,
        )
        outgoing = entry if self.debug else entry.redacted()

        for sink in self.sinks:
            try:
                await sink.write(outgoing)
            except Exception as e:
                logger.error(
                    "Audit sink failed",
                    sink=type(sink).__name__,
                    action=entry.action.value,
                    table_name=entry.table_name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
        return entry
