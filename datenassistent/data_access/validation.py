"""
Input Validation and Sanitization

Every argument that reaches the table-access core comes from LLM output and
is treated as untrusted. This module turns it into a bounded, well-shaped
copy or rejects the whole call.

Rules:
======
- Table names and every mapping key must match ^[a-zA-Z_][a-zA-Z0-9_]*$
- Strings: NUL bytes removed, trimmed, at most 10,000 characters
- Numbers: finite only (no NaN / inf)
- Lists: at most 1,000 elements
- Nested mappings: validated recursively with the same key rule
- At most 50 filter keys and 100 value keys per call

Fail closed: one bad key or value invalidates the whole call. Nothing is
dropped silently and the caller's objects are never mutated.
"""

import math
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any

from datenassistent.config.constants import (
    IDENTIFIER_PATTERN,
    ISO_DATE_PATTERN,
    JOIN_PATTERN,
    MAX_ARRAY_LENGTH,
    MAX_FILTER_KEYS,
    MAX_JOINS,
    MAX_STRING_LENGTH,
    MAX_VALUE_KEYS,
    UNIQUE_IDENTIFIER_COLUMNS,
    UNIQUE_IDENTIFIER_SUFFIXES,
    FilterOperator,
)
from datenassistent.core.exceptions import (
    AmbiguousFilterError,
    ArrayTooLongError,
    InvalidFilterTypeError,
    InvalidJoinError,
    InvalidKeyError,
    InvalidLimitError,
    InvalidNumberError,
    InvalidTableNameError,
    TooManyKeysError,
    ValidationError,
    ValueTooLongError,
)

ALLOWED_FILTER_TYPES = frozenset(op.value for op in FilterOperator)


def is_identifier(name: Any) -> bool:
    """Check that a value is a plain SQL identifier."""
    return isinstance(name, str) and IDENTIFIER_PATTERN.match(name) is not None


def validate_identifier(table_name: Any) -> str:
    """Check the shape of a table name without consulting an allow-list."""
    if not table_name or not isinstance(table_name, str):
        raise InvalidTableNameError(table_name, reason="empty")
    if not is_identifier(table_name):
        raise InvalidTableNameError(table_name, reason="format")
    return table_name


def validate_table_name(table_name: Any, allowed_tables: Iterable[str]) -> str:
    """Validate a table name against an allow-list.

    Args:
        table_name: Candidate table name
        allowed_tables: Tables permitted for the operation class

    Returns:
        The table name, unchanged

    Raises:
        InvalidTableNameError: Empty, malformed, or not allow-listed
    """
    validate_identifier(table_name)
    if table_name not in allowed_tables:
        raise InvalidTableNameError(table_name, reason="not_allowed")
    return table_name


def sanitize_value(value: Any) -> Any:
    """Sanitize a single scalar, list, or nested mapping.

    Raises:
        ValueTooLongError, InvalidNumberError, ArrayTooLongError,
        InvalidKeyError, ValidationError
    """
    if value is None:
        return None

    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return value

    if isinstance(value, str):
        if len(value) > MAX_STRING_LENGTH:
            raise ValueTooLongError(len(value), MAX_STRING_LENGTH)
        return value.replace("\0", "").strip()

    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise InvalidNumberError(value)
        return value

    if isinstance(value, (datetime, date)):
        return value.isoformat()

    if isinstance(value, (list, tuple)):
        if len(value) > MAX_ARRAY_LENGTH:
            raise ArrayTooLongError(len(value), MAX_ARRAY_LENGTH)
        return [sanitize_value(item) for item in value]

    if isinstance(value, Mapping):
        sanitized: dict[str, Any] = {}
        for key, nested in value.items():
            if not is_identifier(key):
                raise InvalidKeyError(key)
            sanitized[key] = sanitize_value(nested)
        return sanitized

    raise ValidationError(
        message=f"Nicht unterstützter Werttyp: {type(value).__name__}.",
        error_code="UNSUPPORTED_VALUE_TYPE",
    )


def sanitize_filter_value(value: Any, column: str | None = None) -> Any:
    """Sanitize one filter entry: a literal or a `{type, value}` object."""
    if isinstance(value, Mapping) and "type" in value:
        filter_type = value.get("type")
        if filter_type not in ALLOWED_FILTER_TYPES:
            raise InvalidFilterTypeError(filter_type, column)
        sanitized = {"type": filter_type, "value": sanitize_value(value.get("value"))}
        return sanitized
    return sanitize_value(value)


def sanitize_filters(filters: Any) -> dict[str, Any]:
    """Validate and sanitize a filter mapping.

    Args:
        filters: Mapping of column name to literal or `{type, value}` object

    Returns:
        A sanitized copy

    Raises:
        ValidationError: Any key or value fails the rules above
    """
    if filters is None:
        return {}
    if not isinstance(filters, Mapping):
        raise ValidationError(
            message="Die Filter müssen ein Objekt sein.",
            error_code="INVALID_FILTERS",
        )
    if len(filters) > MAX_FILTER_KEYS:
        raise TooManyKeysError(len(filters), MAX_FILTER_KEYS, kind="filter")

    sanitized: dict[str, Any] = {}
    for key, value in filters.items():
        if not is_identifier(key):
            raise InvalidKeyError(key, kind="filter")
        sanitized[key] = sanitize_filter_value(value, column=key)
    return sanitized


def sanitize_values(values: Any) -> dict[str, Any]:
    """Validate and sanitize the column values of an insert or update.

    Raises:
        ValidationError: Not a mapping, empty, or any key/value invalid
    """
    if not isinstance(values, Mapping) or not values:
        raise ValidationError(
            message="Die Werte müssen ein nicht-leeres Objekt sein.",
            error_code="INVALID_VALUES",
        )
    if len(values) > MAX_VALUE_KEYS:
        raise TooManyKeysError(len(values), MAX_VALUE_KEYS, kind="column")

    sanitized: dict[str, Any] = {}
    for key, value in values.items():
        if not is_identifier(key):
            raise InvalidKeyError(key, kind="column")
        sanitized[key] = sanitize_value(value)
    return sanitized


def validate_single_row_filters(filters: Mapping[str, Any]) -> None:
    """Require at least one uniquely identifying column among the filter keys.

    A heuristic: it proves the caller *intends* a single row. The live count
    in the service proves it.

    Raises:
        AmbiguousFilterError: No filters, or none of them identifying
    """
    if not filters:
        raise AmbiguousFilterError("Für diese Aktion sind Filter erforderlich.")

    for key in filters:
        lowered = key.lower()
        if lowered in UNIQUE_IDENTIFIER_COLUMNS or lowered.endswith(UNIQUE_IDENTIFIER_SUFFIXES):
            return
    raise AmbiguousFilterError()


def validate_limit(limit: Any, maximum: int) -> int:
    """Check 1 <= limit <= maximum.

    Raises:
        InvalidLimitError: Not an integer or out of range
    """
    if isinstance(limit, bool) or not isinstance(limit, int):
        if isinstance(limit, float) and limit.is_integer():
            limit = int(limit)
        else:
            raise InvalidLimitError(limit, maximum)
    if limit < 1 or limit > maximum:
        raise InvalidLimitError(limit, maximum)
    return limit


def validate_joins(joins: Any) -> list[str]:
    """Check every relationship-join fragment against the join grammar.

    Accepted: "t_vehicles(nickname, status)", "fahrzeug:t_vehicles(*)".

    Raises:
        InvalidJoinError: Not a list of strings or a fragment is malformed
    """
    if joins is None:
        return []
    if isinstance(joins, str) or not isinstance(joins, (list, tuple)):
        raise InvalidJoinError(joins, "Verknüpfungen müssen als Liste angegeben werden.")
    if len(joins) > MAX_JOINS:
        raise InvalidJoinError(
            f"{len(joins)} Verknüpfungen", f"Maximal {MAX_JOINS} erlaubt."
        )
    validated = []
    for join in joins:
        if not isinstance(join, str) or not JOIN_PATTERN.match(join.strip()):
            raise InvalidJoinError(join)
        validated.append(join.strip())
    return validated


def validate_date(value: Any) -> date:
    """Parse an ISO date (YYYY-MM-DD).

    Raises:
        ValidationError: Wrong format or impossible date
    """
    if not isinstance(value, str) or not ISO_DATE_PATTERN.match(value):
        raise ValidationError(
            message="Das Datum muss im ISO-Format (JJJJ-MM-TT) angegeben werden.",
            error_code="INVALID_DATE",
        )
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(
            message=f"Ungültiges Datum: {value}.",
            error_code="INVALID_DATE",
        ) from e
