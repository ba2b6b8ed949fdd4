"""
Audit Log Endpoints

Read access to the persisted audit trail. Entries only exist when
AUDIT_LOG_TO_DATABASE is enabled; otherwise the audit goes to the structured
log and these endpoints return empty results.

    GET /api/v1/audit-logs/tables/{table_name}  → recent entries + failure count
    GET /api/v1/audit-logs/{entry_id}           → one entry
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query

from datenassistent.api.dependencies import DbSession
from datenassistent.core.exceptions import DatenassistentException
from datenassistent.data_access.validation import validate_identifier
from datenassistent.db.repositories import AuditLogRepository
from datenassistent.schemas.audit_log import AuditLogListResponse, AuditLogResponse

router = APIRouter()


@router.get(
    "/tables/{table_name}",
    response_model=AuditLogListResponse,
    summary="Audit entries for a table",
)
async def list_table_entries(
    table_name: str,
    db: DbSession,
    limit: Annotated[int, Query(ge=1, le=500, description="Maximum entries")] = 50,
) -> AuditLogListResponse:
    """Most recent audit entries for a table, newest first.

    Raises:
        400: Malformed table name
    """
    validate_identifier(table_name)

    repo = AuditLogRepository(db)
    entries = await repo.list_for_table(table_name, limit=limit)
    failures = await repo.count_failures(table_name)

    return AuditLogListResponse(
        table_name=table_name,
        data=[AuditLogResponse.model_validate(entry) for entry in entries],
        failures=failures,
    )


@router.get("/{entry_id}", response_model=AuditLogResponse, summary="Audit entry detail")
async def get_entry(entry_id: UUID, db: DbSession) -> AuditLogResponse:
    """Fetch a single audit entry.

    Raises:
        404: No entry with this id
    """
    entry = await AuditLogRepository(db).get(entry_id)
    if entry is None:
        raise DatenassistentException(
            message="Audit-Eintrag nicht gefunden.",
            status_code=404,
            error_code="AUDIT_ENTRY_NOT_FOUND",
            details={"entry_id": str(entry_id)},
        )
    return AuditLogResponse.model_validate(entry)
