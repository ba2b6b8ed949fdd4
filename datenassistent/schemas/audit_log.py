"""
Audit Log Schemas

Response models for the persisted audit trail (t_audit_log).
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AuditLogResponse(BaseModel):
    """One persisted audit entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    action: str
    table_name: str
    result: str
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    filters: Optional[Any] = None
    values: Optional[Any] = None
    error: Optional[str] = None
    # ORM attribute is metadata_ ("metadata" is reserved on declarative models)
    metadata: Optional[dict[str, Any]] = Field(default=None, validation_alias="metadata_")
    created_at: datetime


class AuditLogListResponse(BaseModel):
    """Recent entries for a table plus its failure count."""

    table_name: str
    data: list[AuditLogResponse]
    failures: int
