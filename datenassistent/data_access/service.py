"""
Table Access Service

The operations behind the chat tools. Each one runs the same pipeline and
returns an OperationResult instead of raising:

    ┌────────────┐   ┌──────────────────┐   ┌──────────────────┐
    │ Validation │──▶│ Retry-wrapped    │──▶│ Error            │
    │ (no I/O)   │   │ backend call     │   │ translation      │
    └────────────┘   └──────────────────┘   └──────────────────┘
          │                   │                      │
          └───────────────────┴──────────┬───────────┘
                                         ▼
                                 Audit (mutations)

Mutations:
==========
- Writes are restricted to the configured write allow-list. A table outside
  it is rejected before any backend call.
- update_row / delete_row require a single matching row unless the caller
  passes require_single_row=False. The count, the mutation and the check of
  the rows actually returned share one transaction (see TableBackend).
- Every mutation attempt, including validation failures, is audited
  exactly once.

Reads:
======
- query_table accepts any identifier-shaped table name unless a read
  allow-list is configured.
- get_statistics pushes the aggregation into SQL where the column type
  allows it and otherwise aggregates up to `limit` fetched rows in memory,
  flagging `truncated` when the fetch hit the limit.
"""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from datenassistent.config.constants import (
    AUDIT_TABLE_NAME,
    DEFAULT_QUERY_LIMIT,
    DEFAULT_STATISTICS_LIMIT,
    Aggregation,
    AuditAction,
    AuditResult,
)
from datenassistent.config.settings import Settings, settings as default_settings
from datenassistent.core.exceptions import (
    AmbiguousFilterError,
    AmbiguousUpdateError,
    DatenassistentException,
    InvalidAggregationError,
    InvalidKeyError,
    InvalidTableNameError,
    NoValidNumericValuesError,
    ValidationError,
)
from datenassistent.core.logging import logger
from datenassistent.core.utils import redact_for_logging, to_jsonable
from datenassistent.data_access.audit import AuditLogger
from datenassistent.data_access.backend import TableBackend, parse_joins
from datenassistent.data_access.error_messages import (
    classify_error,
    get_user_friendly_error_message,
)
from datenassistent.data_access.filters import FilterCondition, get_column, parse_filters
from datenassistent.data_access.retry import (
    BackendResult,
    RetryConfig,
    error_text,
    retry_backend_operation,
)
from datenassistent.data_access.statistics import aggregate_rows
from datenassistent.data_access.validation import (
    is_identifier,
    sanitize_filters,
    sanitize_values,
    validate_identifier,
    validate_joins,
    validate_limit,
    validate_single_row_filters,
    validate_table_name,
)
from datenassistent.schemas.results import OperationResult
from datenassistent.schemas.tools import OperationOptions

T = TypeVar("T")

FILTERS_REQUIRED_MESSAGE = "Für diese Aktion sind Filter erforderlich."


@dataclass(frozen=True)
class TableAccessConfig:
    """Policy injected into TableAccessService.

    Attributes:
        write_allowed_tables: Tables insert/update/delete may touch
        read_allowed_tables: Readable tables; None means unrestricted
        query_max_limit: Upper bound for query_table's limit
        statistics_max_limit: Upper bound for get_statistics' limit
        native_aggregation: Push aggregations into SQL where possible
        audit_queries: Also audit reads as QUERY entries
        debug: Expose raw backend messages as a last resort
        retry: Retry policy for backend calls
    """

    write_allowed_tables: frozenset[str]
    read_allowed_tables: Optional[frozenset[str]] = None
    query_max_limit: int = 1000
    statistics_max_limit: int = 10000
    native_aggregation: bool = True
    audit_queries: bool = False
    debug: bool = False
    retry: RetryConfig = field(default_factory=RetryConfig)

    @classmethod
    def from_settings(cls, app_settings: Settings | None = None) -> "TableAccessConfig":
        """Build the policy from application settings."""
        s = app_settings or default_settings
        return cls(
            write_allowed_tables=s.write_allowed_tables,
            read_allowed_tables=s.read_allowed_tables,
            query_max_limit=s.QUERY_MAX_LIMIT,
            statistics_max_limit=s.STATISTICS_MAX_LIMIT,
            native_aggregation=s.STATISTICS_NATIVE_AGGREGATION,
            audit_queries=s.AUDIT_QUERIES,
            debug=s.DEBUG,
            retry=RetryConfig.from_settings(s),
        )


def parse_options(options: Any) -> OperationOptions:
    """Normalize the per-call options mapping.

    Raises:
        ValidationError: Options are not a mapping or have wrong types
    """
    if options is None:
        return OperationOptions()
    if isinstance(options, OperationOptions):
        return options
    if not isinstance(options, Mapping):
        raise ValidationError(
            message="Die Optionen müssen ein Objekt sein.",
            error_code="INVALID_OPTIONS",
        )
    try:
        return OperationOptions.model_validate(dict(options))
    except PydanticValidationError as e:
        raise ValidationError(
            message="Ungültige Optionen.",
            error_code="INVALID_OPTIONS",
        ) from e


class TableAccessService:
    """Validated, retried and audited access to the office tables."""

    def __init__(
        self,
        backend: TableBackend,
        config: TableAccessConfig,
        audit: AuditLogger | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            backend: Database adapter
            config: Allow-lists, limits and retry policy
            audit: Audit logger (defaults to structlog-only auditing)
        """
        self.backend = backend
        self.config = config
        self.audit = audit or AuditLogger(debug=config.debug)

    # ═══════════════════════════════════════════════════════════════════════════
    # READ OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════════

    async def query_table(
        self,
        table_name: Any,
        filters: Any = None,
        limit: Any = DEFAULT_QUERY_LIMIT,
        joins: Any = None,
        options: Any = None,
    ) -> OperationResult:
        """Read rows matching the filters.

        Args:
            table_name: Table to read
            filters: Column filters (literal = equality, or {type, value})
            limit: 1..query_max_limit rows
            joins: Relationship fragments such as "t_vehicles(nickname)"
            options: {userId, ipAddress} for audit attribution

        Returns:
            OperationResult with a list of row dicts (empty list is success)
        """
        opts = OperationOptions()
        try:
            opts = parse_options(options)
            self._check_readable(table_name)
            limit = validate_limit(limit, self.config.query_max_limit)
            clean_filters = sanitize_filters(filters)
            join_specs = parse_joins(validate_joins(joins))
            for join in join_specs:
                self._check_readable(join.table)
            conditions = parse_filters(clean_filters)
        except DatenassistentException as e:
            await self._audit_read(table_name, opts, filters, error=e.message)
            return OperationResult.from_error(e.message, e.error_code)

        outcome = await self._run(
            lambda: self.backend.select_rows(table_name, conditions, limit, join_specs)
        )
        if outcome.error is not None:
            message, code = self._translate(outcome.error, AuditAction.QUERY, table_name)
            await self._audit_read(table_name, opts, clean_filters, error=message)
            return OperationResult.from_error(message, code)

        rows = to_jsonable(outcome.data)
        logger.info(
            "TableAccessService: Query completed",
            table_name=table_name,
            filter_count=len(conditions),
            join_count=len(join_specs),
            row_count=len(rows),
        )
        await self._audit_read(table_name, opts, clean_filters, metadata={"row_count": len(rows)})
        return OperationResult.from_success(rows)

    async def get_statistics(
        self,
        table_name: Any,
        aggregation: Any,
        column: Any = None,
        group_by: Any = None,
        filters: Any = None,
        limit: Any = DEFAULT_STATISTICS_LIMIT,
        options: Any = None,
    ) -> OperationResult:
        """Aggregate a column, optionally grouped.

        Returns:
            `{aggregation: value}` or `[{group_by: key, aggregation: value}, ...]`
        """
        opts = OperationOptions()
        try:
            opts = parse_options(options)
            self._check_readable(table_name)
            agg = self._parse_aggregation(aggregation)
            if agg is not Aggregation.COUNT and not column:
                raise InvalidAggregationError(
                    f'Für "{agg.value}" muss eine Spalte angegeben werden.', agg.value
                )
            for key in (column, group_by):
                if key is not None and not is_identifier(key):
                    raise InvalidKeyError(key)
            limit = validate_limit(limit, self.config.statistics_max_limit)
            conditions = parse_filters(sanitize_filters(filters))
        except DatenassistentException as e:
            await self._audit_read(table_name, opts, filters, error=e.message)
            return OperationResult.from_error(e.message, e.error_code)

        table_outcome = await self._run(lambda: self.backend.get_table(table_name))
        if table_outcome.error is not None:
            message, code = self._translate(table_outcome.error, AuditAction.QUERY, table_name)
            await self._audit_read(table_name, opts, filters, error=message)
            return OperationResult.from_error(message, code)

        try:
            for key in (column, group_by):
                if key is not None:
                    get_column(table_outcome.data, key)
            native = self.config.native_aggregation and (
                agg is Aggregation.COUNT
                or self.backend.is_numeric_column(table_outcome.data, column)
            )
            if native:
                result = await self._native_statistics(table_name, agg, column, group_by, conditions)
            else:
                result = await self._in_memory_statistics(
                    table_name, agg, column, group_by, conditions, limit
                )
        except DatenassistentException as e:
            await self._audit_read(table_name, opts, filters, error=e.message)
            return OperationResult.from_error(e.message, e.error_code)

        if result.success:
            logger.info(
                "TableAccessService: Statistics computed",
                table_name=table_name,
                aggregation=agg.value,
                group_by=group_by,
                native=native,
                truncated=result.truncated,
            )
        await self._audit_read(
            table_name,
            opts,
            filters,
            error=result.error,
            metadata={"aggregation": agg.value, "native": native},
        )
        return result

    async def get_table_names(self) -> OperationResult:
        """List readable tables as `{"tables": [...]}`."""
        outcome = await self._run(self.backend.list_tables)
        if outcome.error is not None:
            message, code = self._translate(outcome.error, AuditAction.QUERY, None)
            return OperationResult.from_error(message, code)

        tables = [t for t in outcome.data if t != AUDIT_TABLE_NAME]
        if self.config.read_allowed_tables is not None:
            tables = [t for t in tables if t in self.config.read_allowed_tables]
        return OperationResult.from_success({"tables": tables})

    async def get_table_structure(self, table_name: Any) -> OperationResult:
        """Describe a table's columns and include one sample row."""
        try:
            self._check_readable(table_name)
        except DatenassistentException as e:
            return OperationResult.from_error(e.message, e.error_code)

        outcome = await self._run(lambda: self.backend.describe_table(table_name))
        if outcome.error is not None:
            message, code = self._translate(outcome.error, AuditAction.QUERY, table_name)
            return OperationResult.from_error(message, code)

        columns, sample_row = outcome.data
        return OperationResult.from_success(
            {
                "table": table_name,
                "columns": columns,
                "sample_row": to_jsonable(sample_row),
            }
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # WRITE OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════════

    async def insert_row(
        self,
        table_name: Any,
        values: Any,
        options: Any = None,
    ) -> OperationResult:
        """Insert one row into an allow-listed table and return it."""
        opts = OperationOptions()
        try:
            opts = parse_options(options)
            validate_table_name(table_name, self.config.write_allowed_tables)
            clean_values = sanitize_values(values)
        except DatenassistentException as e:
            return await self._mutation_failed(
                AuditAction.INSERT, table_name, e, opts, values=values
            )

        outcome = await self._run(lambda: self.backend.insert_row(table_name, clean_values))
        if outcome.error is not None:
            return await self._mutation_failed(
                AuditAction.INSERT, table_name, outcome.error, opts, values=clean_values
            )

        row = to_jsonable(outcome.data)
        logger.info("TableAccessService: Row inserted", table_name=table_name)
        await self._mutation_succeeded(
            AuditAction.INSERT, table_name, opts, affected=1, values=clean_values
        )
        return OperationResult.from_success(row)

    async def update_row(
        self,
        table_name: Any,
        filters: Any,
        values: Any,
        options: Any = None,
    ) -> OperationResult:
        """Update the row identified by the filters.

        With `require_single_row=False` all matching rows are updated and
        the result is the list of updated rows.
        """
        opts = OperationOptions()
        try:
            opts = parse_options(options)
            validate_table_name(table_name, self.config.write_allowed_tables)
            clean_filters = sanitize_filters(filters)
            clean_values = sanitize_values(values)
            conditions = self._mutation_conditions(clean_filters, opts.require_single_row)
        except DatenassistentException as e:
            return await self._mutation_failed(
                AuditAction.UPDATE, table_name, e, opts, filters=filters, values=values
            )

        outcome = await self._run(
            lambda: self.backend.update_rows(
                table_name, conditions, clean_values, opts.require_single_row
            )
        )
        if outcome.error is not None:
            return await self._mutation_failed(
                AuditAction.UPDATE,
                table_name,
                outcome.error,
                opts,
                filters=clean_filters,
                values=clean_values,
            )

        rows = to_jsonable(outcome.data)
        logger.info("TableAccessService: Rows updated", table_name=table_name, row_count=len(rows))
        await self._mutation_succeeded(
            AuditAction.UPDATE,
            table_name,
            opts,
            affected=len(rows),
            filters=clean_filters,
            values=clean_values,
        )
        return OperationResult.from_success(rows[0] if opts.require_single_row else rows)

    async def delete_row(
        self,
        table_name: Any,
        filters: Any,
        options: Any = None,
    ) -> OperationResult:
        """Delete the row identified by the filters.

        Returns:
            OperationResult with `{deleted_count, deleted_rows}`
        """
        opts = OperationOptions()
        try:
            opts = parse_options(options)
            validate_table_name(table_name, self.config.write_allowed_tables)
            clean_filters = sanitize_filters(filters)
            conditions = self._mutation_conditions(clean_filters, opts.require_single_row)
        except DatenassistentException as e:
            return await self._mutation_failed(
                AuditAction.DELETE, table_name, e, opts, filters=filters
            )

        outcome = await self._run(
            lambda: self.backend.delete_rows(table_name, conditions, opts.require_single_row)
        )
        if outcome.error is not None:
            return await self._mutation_failed(
                AuditAction.DELETE, table_name, outcome.error, opts, filters=clean_filters
            )

        rows = to_jsonable(outcome.data)
        logger.info("TableAccessService: Rows deleted", table_name=table_name, row_count=len(rows))
        await self._mutation_succeeded(
            AuditAction.DELETE, table_name, opts, affected=len(rows), filters=clean_filters
        )
        return OperationResult.from_success({"deleted_count": len(rows), "deleted_rows": rows})

    # ═══════════════════════════════════════════════════════════════════════════
    # HELPERS
    # ═══════════════════════════════════════════════════════════════════════════

    async def _run(self, operation: Callable[[], Awaitable[T]]) -> BackendResult[T]:
        return await retry_backend_operation(operation, self.config.retry)

    def _check_readable(self, table_name: Any) -> None:
        if self.config.read_allowed_tables is None:
            validate_identifier(table_name)
        else:
            validate_table_name(table_name, self.config.read_allowed_tables)

    @staticmethod
    def _parse_aggregation(aggregation: Any) -> Aggregation:
        try:
            return Aggregation(str(aggregation).lower())
        except ValueError as e:
            allowed = ", ".join(a.value for a in Aggregation)
            raise InvalidAggregationError(
                f'Ungültige Aggregation: "{aggregation}". Erlaubt: {allowed}.', aggregation
            ) from e

    @staticmethod
    def _mutation_conditions(
        filters: dict[str, Any], require_single_row: bool
    ) -> list[FilterCondition]:
        if require_single_row:
            validate_single_row_filters(filters)
        conditions = parse_filters(filters)
        if not conditions:
            raise AmbiguousFilterError(FILTERS_REQUIRED_MESSAGE)
        return conditions

    async def _native_statistics(
        self,
        table_name: str,
        agg: Aggregation,
        column: Optional[str],
        group_by: Optional[str],
        conditions: list[FilterCondition],
    ) -> OperationResult:
        outcome = await self._run(
            lambda: self.backend.aggregate(table_name, agg, column, group_by, conditions)
        )
        if outcome.error is not None:
            message, code = self._translate(outcome.error, AuditAction.QUERY, table_name)
            return OperationResult.from_error(message, code)

        if group_by:
            data = [
                {group_by: to_jsonable(key), agg.value: to_jsonable(value)}
                for key, value in outcome.data
                if value is not None
            ]
            if outcome.data and not data and agg is not Aggregation.COUNT:
                raise NoValidNumericValuesError(column or "")
            return OperationResult.from_success(data)

        if outcome.data is None and agg is not Aggregation.COUNT:
            raise NoValidNumericValuesError(column or "")
        return OperationResult.from_success({agg.value: to_jsonable(outcome.data)})

    async def _in_memory_statistics(
        self,
        table_name: str,
        agg: Aggregation,
        column: Optional[str],
        group_by: Optional[str],
        conditions: list[FilterCondition],
        limit: int,
    ) -> OperationResult:
        outcome = await self._run(
            lambda: self.backend.select_rows(table_name, conditions, limit)
        )
        if outcome.error is not None:
            message, code = self._translate(outcome.error, AuditAction.QUERY, table_name)
            return OperationResult.from_error(message, code)

        rows = to_jsonable(outcome.data)
        truncated = len(rows) >= limit
        if truncated:
            logger.warning(
                "TableAccessService: Statistics computed on a truncated row set",
                table_name=table_name,
                limit=limit,
            )
        data = aggregate_rows(rows, agg, column, group_by)
        return OperationResult.from_success(data, truncated=truncated)

    def _translate(
        self, error: BaseException, action: AuditAction, table_name: Any
    ) -> tuple[str, str]:
        """Turn a backend-call failure into (message, error_code)."""
        if isinstance(error, DatenassistentException):
            return error.message, error.error_code

        raw = error_text(error)
        category = classify_error(error)
        logger.error(
            "TableAccessService: Backend operation failed",
            action=action.value,
            table_name=table_name,
            error_category=category.value,
            error_type=type(error).__name__,
            error=raw if self.config.debug else redact_for_logging(raw),
        )
        message = get_user_friendly_error_message(
            error,
            action,
            table_name if isinstance(table_name, str) else None,
            debug=self.config.debug,
        )
        return message, f"BACKEND_{category.value.upper()}"

    async def _mutation_failed(
        self,
        action: AuditAction,
        table_name: Any,
        error: BaseException,
        opts: OperationOptions,
        filters: Any = None,
        values: Any = None,
    ) -> OperationResult:
        message, code = self._translate(error, action, table_name)
        metadata: dict[str, Any] = {"error_code": code}
        if isinstance(error, AmbiguousUpdateError):
            metadata["matched_rows"] = error.count
        if isinstance(error, InvalidTableNameError):
            logger.warning(
                "TableAccessService: Write to table rejected",
                action=action.value,
                table_name=table_name,
            )
        await self.audit.record(
            action,
            table_name,
            AuditResult.FAILURE,
            user_id=opts.user_id,
            ip_address=opts.ip_address,
            filters=filters,
            values=values,
            error=message,
            metadata=metadata,
        )
        return OperationResult.from_error(message, code)

    async def _mutation_succeeded(
        self,
        action: AuditAction,
        table_name: str,
        opts: OperationOptions,
        affected: int,
        filters: Any = None,
        values: Any = None,
    ) -> None:
        await self.audit.record(
            action,
            table_name,
            AuditResult.SUCCESS,
            user_id=opts.user_id,
            ip_address=opts.ip_address,
            filters=filters,
            values=values,
            metadata={"affected_rows": affected},
        )

    async def _audit_read(
        self,
        table_name: Any,
        opts: OperationOptions,
        filters: Any,
        error: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        if not self.config.audit_queries:
            return
        await self.audit.record(
            AuditAction.QUERY,
            table_name,
            AuditResult.FAILURE if error else AuditResult.SUCCESS,
            user_id=opts.user_id,
            ip_address=opts.ip_address,
            filters=filters,
            error=error,
            metadata=metadata,
        )
