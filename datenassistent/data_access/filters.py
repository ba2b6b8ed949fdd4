"""
Filter Model

Sanitized filter mappings arrive as loosely shaped JSON:

    {"status": "aktiv"}                                  → equality
    {"hourly_rate": {"type": "gte", "value": 20}}        → comparison
    {"start_date": {"type": "between", "value": [a, b]}} → range
    {"name": {"type": "ilike", "value": "meier"}}        → substring match

parse_filters() turns them into FilterCondition values whose operator is a
closed FilterOperator enum, and build_where_clause() maps each operator onto
a SQLAlchemy column expression. Every operator is handled explicitly; there is
no fall-through to equality for unknown types.
"""

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Column, Date, DateTime, Table, Uuid, and_
from sqlalchemy.sql.elements import ColumnElement

from datenassistent.config.constants import FilterOperator
from datenassistent.core.exceptions import UnknownColumnError, ValidationError
from datenassistent.data_access.validation import validate_date


@dataclass(frozen=True)
class FilterCondition:
    """One column comparison."""

    column: str
    operator: FilterOperator
    value: Any


def parse_filters(filters: Mapping[str, Any]) -> list[FilterCondition]:
    """Convert a sanitized filter mapping into conditions.

    Entries whose value is None are skipped.

    Raises:
        ValidationError: `between` without two bounds, `in` without a list
    """
    conditions: list[FilterCondition] = []
    for column, raw in filters.items():
        if raw is None:
            continue

        if isinstance(raw, Mapping) and "type" in raw:
            operator = FilterOperator(raw["type"])
            value = raw.get("value")
        else:
            operator = FilterOperator.EQ
            value = raw

        if value is None and operator not in (FilterOperator.EQ, FilterOperator.NEQ):
            raise ValidationError(
                message=f'Für den Filter "{column}" fehlt ein Wert.',
                error_code="INVALID_FILTER_VALUE",
            )
        if operator is FilterOperator.BETWEEN and (
            not isinstance(value, list) or len(value) != 2
        ):
            raise ValidationError(
                message=f'Der Filter "{column}" (between) erwartet genau zwei Werte [von, bis].',
                error_code="INVALID_FILTER_VALUE",
            )
        if operator is FilterOperator.IN and not isinstance(value, list):
            raise ValidationError(
                message=f'Der Filter "{column}" (in) erwartet eine Liste.',
                error_code="INVALID_FILTER_VALUE",
            )

        conditions.append(FilterCondition(column=column, operator=operator, value=value))
    return conditions


def get_column(table: Table, column_name: str) -> Column:
    """Look up a column, raising a user-facing error when it is missing."""
    try:
        return table.c[column_name]
    except KeyError as e:
        raise UnknownColumnError(column_name, table.name) from e


def coerce_value(column: Column, value: Any) -> Any:
    """Convert strings for date, datetime and UUID columns into Python objects.

    Drivers such as asyncpg refuse strings for DATE/TIMESTAMP parameters, and
    the Uuid type expects uuid.UUID values.
    """
    if not isinstance(value, str):
        return value
    if isinstance(column.type, Uuid):
        try:
            return uuid.UUID(value)
        except ValueError as e:
            raise ValidationError(
                message=f'Ungültige ID für "{column.name}": {value}.',
                error_code="INVALID_UUID",
            ) from e
    if isinstance(column.type, DateTime):
        try:
            return datetime.fromisoformat(value)
        except ValueError as e:
            raise ValidationError(
                message=f'Ungültiger Zeitstempel für "{column.name}": {value}.',
                error_code="INVALID_DATETIME",
            ) from e
    if isinstance(column.type, Date):
        return validate_date(value)
    return value


def _coerce(column: Column, value: Any) -> Any:
    if isinstance(value, list):
        return [coerce_value(column, item) for item in value]
    return coerce_value(column, value)


def build_condition(table: Table, condition: FilterCondition) -> ColumnElement[bool]:
    """Build the SQL expression for one condition."""
    column = get_column(table, condition.column)
    value = _coerce(column, condition.value)
    op = condition.operator

    if op is FilterOperator.EQ:
        return column.is_(None) if value is None else column == value
    if op is FilterOperator.NEQ:
        return column.is_not(None) if value is None else column != value
    if op is FilterOperator.GT:
        return column > value
    if op is FilterOperator.GTE:
        return column >= value
    if op is FilterOperator.LT:
        return column < value
    if op is FilterOperator.LTE:
        return column <= value
    if op is FilterOperator.BETWEEN:
        low, high = value
        return column.between(low, high)
    if op is FilterOperator.LIKE:
        return column.like(f"%{value}%")
    if op is FilterOperator.ILIKE:
        return column.ilike(f"%{value}%")
    if op is FilterOperator.IN:
        return column.in_(value)
    raise ValidationError(
        message=f"Nicht unterstützter Filtertyp: {op.value}.",
        error_code="INVALID_FILTER_TYPE",
    )


def build_where_clause(
    table: Table, conditions: list[FilterCondition]
) -> ColumnElement[bool] | None:
    """AND all conditions together; None when there are none."""
    if not conditions:
        return None
    return and_(*(build_condition(table, c) for c in conditions))


def coerce_row_values(table: Table, values: Mapping[str, Any]) -> dict[str, Any]:
    """Validate column names of an insert/update payload and coerce dates."""
    return {
        key: coerce_value(get_column(table, key), value) for key, value in values.items()
    }
