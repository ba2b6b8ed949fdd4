"""
Table Access

Validated, retried and audited access to the office tables, plus the chat
tool dispatch built on top of it.
"""

from datenassistent.data_access.audit import (
    AuditLogEntry,
    AuditLogger,
    DatabaseAuditSink,
    StructlogAuditSink,
)
from datenassistent.data_access.backend import TableBackend
from datenassistent.data_access.retry import RetryConfig, retry_backend_operation, retry_with_backoff
from datenassistent.data_access.service import TableAccessConfig, TableAccessService
from datenassistent.data_access.tools import TOOL_DEFINITIONS, ToolDispatcher

__all__ = [
    "AuditLogEntry",
    "AuditLogger",
    "DatabaseAuditSink",
    "StructlogAuditSink",
    "TableBackend",
    "RetryConfig",
    "retry_with_backoff",
    "retry_backend_operation",
    "TableAccessConfig",
    "TableAccessService",
    "TOOL_DEFINITIONS",
    "ToolDispatcher",
]
