"""
Application Constants

Centralized constants used throughout the application.
"""

import re
from enum import Enum


class FilterOperator(str, Enum):
    """Comparison operators accepted in a `{type, value}` filter."""

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    BETWEEN = "between"
    LIKE = "like"
    ILIKE = "ilike"
    IN = "in"


class AuditAction(str, Enum):
    """Kinds of table operations recorded in the audit trail."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    QUERY = "QUERY"


class AuditResult(str, Enum):
    """Outcome of an audited operation."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class Aggregation(str, Enum):
    """Aggregations supported by getStatistics."""

    COUNT = "count"
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"


class ErrorCategory(str, Enum):
    """Categories a backend error is translated into, in priority order."""

    CONNECTION = "connection"
    TIMEOUT = "timeout"
    PERMISSION = "permission"
    TABLE_NOT_FOUND = "table_not_found"
    UNIQUE_VIOLATION = "unique_violation"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"
    NOT_NULL_VIOLATION = "not_null_violation"
    CONSTRAINT_VIOLATION = "constraint_violation"
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    OPERATION_DEFAULT = "operation_default"
    UNKNOWN = "unknown"


# =============================================================================
# INPUT SHAPE
# =============================================================================

IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

# [alias:]table(col, col) or [alias:]table(*)
JOIN_PATTERN = re.compile(
    r"^(?:(?P<alias>[a-zA-Z_][a-zA-Z0-9_]*):)?"
    r"(?P<table>[a-zA-Z_][a-zA-Z0-9_]*)"
    r"\((?P<columns>\*|[a-zA-Z_][a-zA-Z0-9_]*(?:\s*,\s*[a-zA-Z_][a-zA-Z0-9_]*)*)\)$"
)

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MAX_STRING_LENGTH = 10_000
MAX_ARRAY_LENGTH = 1_000
MAX_FILTER_KEYS = 50
MAX_VALUE_KEYS = 100
MAX_JOINS = 10

DEFAULT_QUERY_LIMIT = 100
DEFAULT_STATISTICS_LIMIT = 1000

# Columns that identify a single row in the office schema. Keys ending in
# "_id" or "_code" count as identifying as well.
UNIQUE_IDENTIFIER_COLUMNS = frozenset({
    "project_id",
    "employee_id",
    "vehicle_id",
    "plan_id",
    "material_id",
    "service_id",
    "project_code",
    "employee_code",
    "vehicle_nickname",
    "name",
})
UNIQUE_IDENTIFIER_SUFFIXES = ("_id", "_code")

DEFAULT_WRITE_ALLOWED_TABLES = frozenset({
    "t_projects",
    "t_morningplan",
    "t_morningplan_staff",
    "t_vehicles",
    "t_employees",
    "t_services",
    "t_materials",
    "t_material_prices",
})


# =============================================================================
# RETRY
# =============================================================================

RETRYABLE_ERROR_PATTERNS: tuple[str, ...] = (
    "ECONNRESET",
    "ETIMEDOUT",
    "ENOTFOUND",
    "ECONNREFUSED",
    "timeout",
    "network",
    "connection",
    "temporary",
    "transient",
    "rate limit",
    "too many requests",
    "service unavailable",
    "bad gateway",
    "gateway timeout",
)

# Driver signatures matched against the backend error text
BACKEND_RETRYABLE_PATTERNS: tuple[str, ...] = (
    "connection",
    "timeout",
    "network",
    "could not serialize access",
    "deadlock detected",
)

# SQLSTATE prefixes matched against the error code only.
# 08xxx connection exception, 40001 serialization failure, 40P01 deadlock,
# 53300 too many connections, 57P01 admin shutdown.
BACKEND_RETRYABLE_CODES: tuple[str, ...] = (
    "08",
    "40001",
    "40P01",
    "53300",
    "57P01",
)


# =============================================================================
# AUDIT / LOGGING
# =============================================================================

REDACTED_MARKER = "[REDACTED]"
RAW_ERROR_PREVIEW_LENGTH = 200
AUDIT_TABLE_NAME = "t_audit_log"
