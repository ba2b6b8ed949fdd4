"""
Audit Log Repository

Database operations for the t_audit_log table.

Common Operations:
==================
- create_entry()     → Persist one audit entry
- list_for_table()   → Most recent entries for a table
- count_failures()   → Number of failed operations, optionally per table

Audit rows are append-only: this repository offers no update or delete.
"""

from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from datenassistent.config.constants import AuditResult
from datenassistent.db.repositories.base import BaseRepository
from datenassistent.models.audit_log import AuditLog


class AuditLogRepository(BaseRepository[AuditLog]):
    """Repository for audit log operations."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(AuditLog, session)

    async def create_entry(
        self,
        *,
        action: str,
        table_name: str,
        result: str,
        created_at: datetime,
        user_id: str | None = None,
        ip_address: str | None = None,
        filters: Any = None,
        values: Any = None,
        error: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Persist a single audit entry.

        Args:
            action: INSERT, UPDATE, DELETE or QUERY
            table_name: Target table
            result: SUCCESS or FAILURE
            created_at: Entry timestamp
            user_id: Caller identity
            ip_address: Client IP
            filters: Filters or the redaction marker
            values: Values or the redaction marker
            error: Error text for failures
            metadata: Free-form metadata

        Returns:
            The created AuditLog
        """
        return await self.create(
            action=action,
            table_name=table_name,
            result=result,
            created_at=created_at,
            user_id=user_id,
            ip_address=ip_address,
            filters=filters,
            values=values,
            error=error,
            metadata_=metadata,
        )

    async def list_for_table(self, table_name: str, limit: int = 50) -> list[AuditLog]:
        """Most recent audit entries for a table, newest first."""
        return await self.list(
            limit=limit,
            filters={"table_name": table_name},
            order_by="created_at",
            order_desc=True,
        )

    async def count_failures(self, table_name: str | None = None) -> int:
        """Count failed operations, optionally restricted to one table."""
        filters: dict[str, Any] = {"result": AuditResult.FAILURE.value}
        if table_name:
            filters["table_name"] = table_name
        return await self.count(filters=filters)
