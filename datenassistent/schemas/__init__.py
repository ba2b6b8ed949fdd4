"""
Schemas

Result types and request/response models.
"""

from datenassistent.schemas.audit_log import AuditLogListResponse, AuditLogResponse
from datenassistent.schemas.common import (
    DetailedHealthResponse,
    ErrorDetail,
    ErrorResponse,
    HealthResponse,
)
from datenassistent.schemas.results import OperationResult
from datenassistent.schemas.tools import (
    DeleteRowArguments,
    InsertRowArguments,
    OperationOptions,
    QueryTableArguments,
    StatisticsArguments,
    TableArguments,
    ToolDefinitionsResponse,
    UpdateRowArguments,
)

__all__ = [
    "ErrorDetail",
    "ErrorResponse",
    "HealthResponse",
    "DetailedHealthResponse",
    "OperationResult",
    "TableArguments",
    "QueryTableArguments",
    "InsertRowArguments",
    "OperationOptions",
    "UpdateRowArguments",
    "DeleteRowArguments",
    "StatisticsArguments",
    "ToolDefinitionsResponse",
    "AuditLogResponse",
    "AuditLogListResponse",
]
