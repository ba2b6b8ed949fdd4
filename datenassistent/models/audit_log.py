"""
Audit Log Model

Persistent audit trail for table operations performed through the
chat assistant. Written by DatabaseAuditSink when AUDIT_LOG_TO_DATABASE
is enabled.

Each row captures:
- What was attempted (action, table)
- Who attempted it (user id, client IP)
- With which arguments (filters, values; "[REDACTED]" outside debug)
- The outcome (SUCCESS / FAILURE and the scrubbed error text)

SAMPLE AUDIT LOG (failed delete):
┌──────────────────────────────────────────────────────────────────────────────┐
│ id           │ 3f2a8b4c-1d5e-4f6a-9b7c-8d9e0f1a2b3c                          │
│ action       │ "DELETE"                                                      │
│ table_name   │ "t_projects"                                                  │
│ user_id      │ "buero-1"                                                     │
│ ip_address   │ "10.0.0.12"                                                   │
│ filters      │ "[REDACTED]"                                                  │
│ values       │ null                                                          │
│ result       │ "FAILURE"                                                     │
│ error        │ "Mehrere Zeilen (2) passen zu diesen Filtern. ..."            │
│ metadata     │ {"error_code": "AMBIGUOUS_UPDATE"}                            │
│ created_at   │ 2025-03-04T07:12:09Z                                          │
└──────────────────────────────────────────────────────────────────────────────┘
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar

from sqlalchemy import DateTime, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from datenassistent.config.constants import AUDIT_TABLE_NAME, AuditAction, AuditResult
from datenassistent.models.base import Base, EnumValidationMixin, PortableJSON


class AuditLog(Base, EnumValidationMixin):
    """
    Audit record of a single table operation.

    Audit rows are immutable: no updated_at and no soft delete.

    Attributes:
        id: Unique identifier (UUID v4)
        action: AuditAction value (INSERT, UPDATE, DELETE, QUERY)
        table_name: Target table of the operation
        user_id: Caller identity, if known
        ip_address: Client IP, if known
        filters: Filters as passed (or the redaction marker)
        values: Values as passed (or the redaction marker)
        result: AuditResult value (SUCCESS, FAILURE)
        error: Error text for failures
        metadata_: Free-form metadata (column name "metadata")
        created_at: When the operation finished
    """

    _enum_fields: ClassVar[dict[str, type[Enum]]] = {
        "action": AuditAction,
        "result": AuditResult,
    }

    __tablename__ = AUDIT_TABLE_NAME

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        doc="Unique identifier for this audit entry",
    )

    action: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="INSERT, UPDATE, DELETE or QUERY",
    )

    table_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        doc="Table the operation targeted",
    )

    user_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    ip_address: Mapped[str | None] = mapped_column(
        String(45),
        nullable=True,
    )

    # JSON rather than dict-typed: may hold the string redaction marker
    filters: Mapped[Any | None] = mapped_column(PortableJSON, nullable=True)

    values: Mapped[Any | None] = mapped_column(PortableJSON, nullable=True)

    result: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="SUCCESS or FAILURE",
    )

    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        PortableJSON,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        doc="When the operation finished",
    )

    __table_args__ = (
        Index("ix_t_audit_log_table_created", "table_name", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<AuditLog(id={self.id}, action={self.action}, result={self.result})>"

    @property
    def succeeded(self) -> bool:
        """Check if the audited operation succeeded."""
        return self.result == AuditResult.SUCCESS.value
