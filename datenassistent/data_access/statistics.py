"""
In-Memory Aggregation

Fallback for getStatistics when the aggregation cannot be pushed into SQL
(e.g. numbers stored in text columns). Works on rows already fetched by
query_table, so the result only covers the fetched window.
"""

import json
import math
from collections.abc import Iterable
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from datenassistent.config.constants import Aggregation
from datenassistent.core.exceptions import NoValidNumericValuesError


def parse_numeric(value: Any) -> Optional[float]:
    """Parse a value as a finite number, or None.

    Accepts ints, floats, Decimals and numeric strings (a German decimal
    comma is accepted when it is the only separator).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if "," in text and "." not in text:
            text = text.replace(",", ".")
        try:
            number = float(Decimal(text))
        except (InvalidOperation, ValueError):
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _normalize(number: float) -> int | float:
    return int(number) if number.is_integer() else number


def aggregate_values(
    values: Iterable[Any],
    aggregation: Aggregation,
    column: Optional[str] = None,
) -> int | float:
    """Aggregate one group of raw column values.

    `count` counts every value it receives (one per row). The other
    aggregations drop values that do not parse as numbers.

    Raises:
        NoValidNumericValuesError: No parseable values for sum/avg/min/max
    """
    items = list(values)
    if aggregation is Aggregation.COUNT:
        return len(items)

    numbers = [n for n in (parse_numeric(v) for v in items) if n is not None]
    if not numbers:
        raise NoValidNumericValuesError(column or "")

    if aggregation is Aggregation.SUM:
        return _normalize(math.fsum(numbers))
    if aggregation is Aggregation.AVG:
        return math.fsum(numbers) / len(numbers)
    if aggregation is Aggregation.MIN:
        return _normalize(min(numbers))
    return _normalize(max(numbers))


def _group_key(value: Any) -> Any:
    # JSON columns yield lists and dicts, which cannot key a dict
    if isinstance(value, (list, dict)):
        return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)
    return value


def _sort_key(key: Any) -> tuple[int, Any]:
    # None sorts last; mixed types fall back to their string form
    if key is None:
        return (2, "")
    if isinstance(key, (int, float)) and not isinstance(key, bool):
        return (0, key)
    return (1, str(key))


def aggregate_rows(
    rows: list[dict[str, Any]],
    aggregation: Aggregation,
    column: Optional[str] = None,
    group_by: Optional[str] = None,
) -> Any:
    """Aggregate fetched rows, optionally grouped.

    Returns:
        `{aggregation: value}` without grouping, otherwise
        `[{group_by: key, aggregation: value}, ...]` ordered by key
    """
    name = aggregation.value

    if not group_by:
        values = rows if aggregation is Aggregation.COUNT else [r.get(column) for r in rows]
        return {name: aggregate_values(values, aggregation, column)}

    groups: dict[Any, list[Any]] = {}
    labels: dict[Any, Any] = {}
    for row in rows:
        label = row.get(group_by)
        key = _group_key(label)
        labels.setdefault(key, label)
        groups.setdefault(key, []).append(row if aggregation is Aggregation.COUNT else row.get(column))

    results = []
    for key in sorted(groups, key=_sort_key):
        if aggregation is not Aggregation.COUNT and not any(
            parse_numeric(v) is not None for v in groups[key]
        ):
            # Groups without any numeric value are omitted
            continue
        results.append({group_by: labels[key], name: aggregate_values(groups[key], aggregation, column)})

    if not results and aggregation is not Aggregation.COUNT and rows:
        raise NoValidNumericValuesError(column or "")
    return results
