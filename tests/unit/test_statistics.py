"""
In-Memory Aggregation Tests

Unit tests for numeric parsing and row aggregation used when statistics
cannot be computed in SQL.
"""

import pytest

from datenassistent.config.constants import Aggregation
from datenassistent.core.exceptions import NoValidNumericValuesError
from datenassistent.data_access.statistics import aggregate_rows, aggregate_values, parse_numeric


class TestParseNumeric:
    """Tests for parse_numeric."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(3, 3.0), (2.5, 2.5), ("42", 42.0), (" 7.25 ", 7.25), ("250,5", 250.5)],
    )
    def test_parseable(self, value, expected) -> None:
        assert parse_numeric(value) == expected

    @pytest.mark.parametrize("value", [None, True, "n/a", "", "1.000,50", "inf", [1]])
    def test_not_parseable(self, value) -> None:
        assert parse_numeric(value) is None


class TestAggregateValues:
    """Tests for aggregate_values."""

    def test_count_counts_everything(self) -> None:
        assert aggregate_values([1, None, "x"], Aggregation.COUNT) == 3

    def test_sum_skips_non_numeric(self) -> None:
        assert aggregate_values(["100", "250,5", "n/a"], Aggregation.SUM) == 350.5

    def test_integral_results_are_ints(self) -> None:
        result = aggregate_values([1.0, 2.0], Aggregation.SUM)

        assert result == 3
        assert isinstance(result, int)

    def test_avg_min_max(self) -> None:
        values = [20, 30, 25]

        assert aggregate_values(values, Aggregation.AVG) == 25
        assert aggregate_values(values, Aggregation.MIN) == 20
        assert aggregate_values(values, Aggregation.MAX) == 30

    def test_no_numeric_values(self) -> None:
        with pytest.raises(NoValidNumericValuesError) as exc_info:
            aggregate_values(["n/a", None], Aggregation.AVG, column="budget_text")

        assert "budget_text" in exc_info.value.message


class TestAggregateRows:
    """Tests for aggregate_rows."""

    rows = [
        {"status": "b", "budget": "10"},
        {"status": "a", "budget": "5"},
        {"status": "a", "budget": "7"},
        {"status": None, "budget": "1"},
        {"status": "c", "budget": "n/a"},
    ]

    def test_ungrouped(self) -> None:
        assert aggregate_rows(self.rows, Aggregation.SUM, "budget") == {"sum": 23}

    def test_grouped_count_ordered_by_key(self) -> None:
        """None groups sort last."""
        result = aggregate_rows(self.rows, Aggregation.COUNT, group_by="status")

        assert result == [
            {"status": "a", "count": 2},
            {"status": "b", "count": 1},
            {"status": "c", "count": 1},
            {"status": None, "count": 1},
        ]

    def test_grouped_sum_omits_groups_without_numbers(self) -> None:
        result = aggregate_rows(self.rows, Aggregation.SUM, "budget", "status")

        assert result == [
            {"status": "a", "sum": 12},
            {"status": "b", "sum": 10},
            {"status": None, "sum": 1},
        ]

    def test_grouped_without_any_numbers(self) -> None:
        rows = [{"status": "a", "budget": "n/a"}]

        with pytest.raises(NoValidNumericValuesError):
            aggregate_rows(rows, Aggregation.MAX, "budget", "status")

    def test_empty_grouped_result(self) -> None:
        assert aggregate_rows([], Aggregation.SUM, "budget", "status") == []

    def test_grouping_by_list_values(self) -> None:
        """JSON list keys are grouped by content and returned unchanged."""
        rows = [
            {"tags": ["gerüst", "baustelle"], "hours": "2"},
            {"tags": {"ort": "lager"}, "hours": "1,5"},
            {"tags": ["gerüst", "baustelle"], "hours": "3"},
        ]

        result = aggregate_rows(rows, Aggregation.SUM, "hours", "tags")

        assert result == [
            {"tags": ["gerüst", "baustelle"], "sum": 5},
            {"tags": {"ort": "lager"}, "sum": 1.5},
        ]
