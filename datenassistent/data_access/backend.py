"""
Table Backend

SQLAlchemy Core adapter between TableAccessService and the database.
Business tables are not modelled as ORM classes: they are reflected on first
use and cached in a MetaData collection shared by all calls.

Operations:
===========
- select_rows()    → SELECT with filters, limit and embedded relations
- insert_row()     → INSERT ... RETURNING
- update_rows()    → COUNT + UPDATE ... RETURNING in one transaction
- delete_rows()    → COUNT + DELETE ... RETURNING in one transaction
- aggregate()      → COUNT/SUM/AVG/MIN/MAX [GROUP BY]
- list_tables()    → table names via the inspector
- describe_table() → column metadata and one sample row

Single-row gate (update/delete):
================================
    BEGIN
      SELECT count(*) WHERE <filters>     0 → NoRowsFoundError
                                          >1 → AmbiguousUpdateError
      UPDATE/DELETE WHERE <filters> RETURNING *
      len(returned) != 1 → AmbiguousUpdateError   (concurrent writer)
    COMMIT                                 any raise → ROLLBACK

Application exceptions raised here are deterministic and are not retried by
the retry layer; driver exceptions propagate unchanged for translation.
"""

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import (
    Column,
    Float,
    Integer,
    MetaData,
    Numeric,
    Table,
    delete,
    func,
    inspect,
    insert,
    select,
    update,
)
from sqlalchemy.exc import CompileError, NoSuchTableError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql.elements import ColumnElement

from datenassistent.config.constants import JOIN_PATTERN, Aggregation, AuditAction
from datenassistent.core.exceptions import (
    AmbiguousUpdateError,
    InvalidJoinError,
    NoRowsFoundError,
    TableNotFoundError,
    ValidationError,
)
from datenassistent.core.logging import logger
from datenassistent.data_access.filters import (
    FilterCondition,
    build_where_clause,
    coerce_row_values,
    get_column,
)

Row = dict[str, Any]

_AGGREGATE_FUNCTIONS = {
    Aggregation.SUM: func.sum,
    Aggregation.AVG: func.avg,
    Aggregation.MIN: func.min,
    Aggregation.MAX: func.max,
}


@dataclass(frozen=True)
class JoinSpec:
    """Parsed relationship join: `[alias:]table(col, ...)` or `table(*)`."""

    table: str
    columns: tuple[str, ...]
    alias: Optional[str] = None

    @property
    def key(self) -> str:
        """Key under which related rows are embedded."""
        return self.alias or self.table

    @property
    def all_columns(self) -> bool:
        return self.columns == ("*",)

    @classmethod
    def parse(cls, fragment: str) -> "JoinSpec":
        match = JOIN_PATTERN.match(fragment.strip())
        if not match:
            raise InvalidJoinError(fragment)
        columns = tuple(c.strip() for c in match.group("columns").split(","))
        return cls(table=match.group("table"), columns=columns, alias=match.group("alias"))


def _row_to_dict(row: Any) -> Row:
    return dict(row._mapping)


def _type_name(column: Column, engine: AsyncEngine) -> str:
    try:
        return str(column.type.compile(dialect=engine.dialect))
    except (CompileError, NotImplementedError):
        return type(column.type).__name__


class TableBackend:
    """Reflected-table access over an AsyncEngine."""

    def __init__(
        self,
        engine: AsyncEngine,
        schema: Optional[str] = None,
        metadata: Optional[MetaData] = None,
    ) -> None:
        """Initialize the backend.

        Args:
            engine: Async engine for the business database
            schema: Schema holding the business tables (None = default)
            metadata: Pre-populated metadata (tables found here skip reflection)
        """
        self.engine = engine
        self.schema = schema
        self.metadata = metadata if metadata is not None else MetaData(schema=schema)
        self._reflect_lock = asyncio.Lock()

    # ═══════════════════════════════════════════════════════════════════════════
    # METADATA
    # ═══════════════════════════════════════════════════════════════════════════

    def _table_key(self, table_name: str) -> str:
        schema = self.schema or self.metadata.schema
        return f"{schema}.{table_name}" if schema else table_name

    async def get_table(self, table_name: str) -> Table:
        """Return the (cached) table, reflecting it on first use.

        Raises:
            TableNotFoundError: The table does not exist
        """
        key = self._table_key(table_name)
        table = self.metadata.tables.get(key)
        if table is not None:
            return table

        async with self._reflect_lock:
            table = self.metadata.tables.get(key)
            if table is not None:
                return table

            def _reflect(sync_conn: Any) -> Table:
                return Table(table_name, self.metadata, schema=self.schema, autoload_with=sync_conn)

            try:
                async with self.engine.connect() as conn:
                    table = await conn.run_sync(_reflect)
            except NoSuchTableError as e:
                # A failed autoload leaves no partial table behind in metadata
                raise TableNotFoundError(table_name) from e

            logger.info("Reflected table", table_name=table_name, columns=len(table.columns))
            return table

    def is_numeric_column(self, table: Table, column_name: str) -> bool:
        """True when SQL aggregation over the column is meaningful."""
        column = get_column(table, column_name)
        return isinstance(column.type, (Integer, Numeric, Float))

    # ═══════════════════════════════════════════════════════════════════════════
    # READ OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════════

    async def select_rows(
        self,
        table_name: str,
        conditions: Sequence[FilterCondition],
        limit: int,
        joins: Sequence[JoinSpec] = (),
    ) -> list[Row]:
        """SELECT * with filters and limit, embedding joined relations.

        SQL Generated:
            SELECT * FROM t_projects WHERE status = 'aktiv' LIMIT 100
        """
        table = await self.get_table(table_name)
        related = [(join, await self.get_table(join.table)) for join in joins]

        stmt = select(table)
        where = build_where_clause(table, list(conditions))
        if where is not None:
            stmt = stmt.where(where)
        stmt = stmt.limit(limit)

        async with self.engine.connect() as conn:
            result = await conn.execute(stmt)
            rows = [_row_to_dict(r) for r in result]
            for join, related_table in related:
                await self._embed_relation(conn, table, rows, join, related_table)
        return rows

    async def aggregate(
        self,
        table_name: str,
        aggregation: Aggregation,
        column: Optional[str],
        group_by: Optional[str],
        conditions: Sequence[FilterCondition],
    ) -> Any:
        """Run an aggregation in SQL.

        Returns:
            The scalar value, or a list of (group_key, value) tuples ordered
            by group key when `group_by` is set

        SQL Generated:
            SELECT status, count(*) FROM t_projects GROUP BY status ORDER BY status
        """
        table = await self.get_table(table_name)
        if aggregation is Aggregation.COUNT:
            value_expr = func.count()
        else:
            if not column:
                raise ValidationError(
                    message=f'Für "{aggregation.value}" muss eine Spalte angegeben werden.',
                    error_code="INVALID_AGGREGATION",
                )
            value_expr = _AGGREGATE_FUNCTIONS[aggregation](get_column(table, column))

        where = build_where_clause(table, list(conditions))

        if group_by:
            group_column = get_column(table, group_by)
            stmt = select(group_column, value_expr).select_from(table)
            if where is not None:
                stmt = stmt.where(where)
            stmt = stmt.group_by(group_column).order_by(group_column)
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt)
                return [(row[0], row[1]) for row in result]

        stmt = select(value_expr).select_from(table)
        if where is not None:
            stmt = stmt.where(where)
        async with self.engine.connect() as conn:
            return await conn.scalar(stmt)

    async def list_tables(self) -> list[str]:
        """Names of all tables in the configured schema, sorted."""

        def _names(sync_conn: Any) -> list[str]:
            return inspect(sync_conn).get_table_names(schema=self.schema)

        async with self.engine.connect() as conn:
            names = await conn.run_sync(_names)
        return sorted(names)

    async def describe_table(self, table_name: str) -> tuple[list[dict[str, Any]], Optional[Row]]:
        """Column descriptions plus one sample row (None for an empty table)."""
        table = await self.get_table(table_name)
        columns = [
            {
                "name": column.name,
                "type": _type_name(column, self.engine),
                "nullable": bool(column.nullable),
                "primary_key": bool(column.primary_key),
            }
            for column in table.columns
        ]
        async with self.engine.connect() as conn:
            result = await conn.execute(select(table).limit(1))
            first = result.first()
        return columns, (_row_to_dict(first) if first is not None else None)

    # ═══════════════════════════════════════════════════════════════════════════
    # WRITE OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════════

    async def insert_row(self, table_name: str, values: Mapping[str, Any]) -> Row:
        """INSERT a single row and return it as stored.

        SQL Generated:
            INSERT INTO t_employees (name, hourly_rate) VALUES (...) RETURNING *
        """
        table = await self.get_table(table_name)
        payload = coerce_row_values(table, values)

        async with self.engine.begin() as conn:
            if self.engine.dialect.insert_returning:
                result = await conn.execute(insert(table).values(**payload).returning(*table.c))
                return _row_to_dict(result.one())

            result = await conn.execute(insert(table).values(**payload))
            pk = result.inserted_primary_key
            pk_columns = list(table.primary_key.columns)
            if not pk_columns or pk is None:
                return dict(payload)
            lookup = select(table).where(*(c == v for c, v in zip(pk_columns, pk)))
            return _row_to_dict((await conn.execute(lookup)).one())

    async def update_rows(
        self,
        table_name: str,
        conditions: Sequence[FilterCondition],
        values: Mapping[str, Any],
        require_single_row: bool = True,
    ) -> list[Row]:
        """UPDATE matching rows and return them after the change.

        Raises:
            NoRowsFoundError: Nothing matched
            AmbiguousUpdateError: More than one row matched a single-row update
        """
        table = await self.get_table(table_name)
        payload = coerce_row_values(table, values)
        where = self._mutation_where(table, conditions)

        async with self.engine.begin() as conn:
            if require_single_row:
                await self._enforce_single_row(conn, table, where, AuditAction.UPDATE)

            if self.engine.dialect.update_returning:
                result = await conn.execute(
                    update(table).where(where).values(**payload).returning(*table.c)
                )
                rows = [_row_to_dict(r) for r in result]
            else:
                rows = await self._update_without_returning(conn, table, where, payload)

            self._check_affected(table_name, rows, require_single_row, AuditAction.UPDATE)
        return rows

    async def delete_rows(
        self,
        table_name: str,
        conditions: Sequence[FilterCondition],
        require_single_row: bool = True,
    ) -> list[Row]:
        """DELETE matching rows and return what was deleted.

        Raises:
            NoRowsFoundError: Nothing matched
            AmbiguousUpdateError: More than one row matched a single-row delete
        """
        table = await self.get_table(table_name)
        where = self._mutation_where(table, conditions)

        async with self.engine.begin() as conn:
            if require_single_row:
                await self._enforce_single_row(conn, table, where, AuditAction.DELETE)

            if self.engine.dialect.delete_returning:
                result = await conn.execute(delete(table).where(where).returning(*table.c))
                rows = [_row_to_dict(r) for r in result]
            else:
                rows = [_row_to_dict(r) for r in await conn.execute(select(table).where(where))]
                await conn.execute(delete(table).where(where))

            self._check_affected(table_name, rows, require_single_row, AuditAction.DELETE)
        return rows

    # ═══════════════════════════════════════════════════════════════════════════
    # HELPERS
    # ═══════════════════════════════════════════════════════════════════════════

    @staticmethod
    def _mutation_where(
        table: Table, conditions: Sequence[FilterCondition]
    ) -> ColumnElement[bool]:
        where = build_where_clause(table, list(conditions))
        if where is None:
            raise ValidationError(
                message="Für diese Aktion sind Filter erforderlich.",
                error_code="FILTERS_REQUIRED",
            )
        return where

    @staticmethod
    async def _count(
        conn: AsyncConnection, table: Table, where: Optional[ColumnElement[bool]]
    ) -> int:
        stmt = select(func.count()).select_from(table)
        if where is not None:
            stmt = stmt.where(where)
        return int(await conn.scalar(stmt) or 0)

    async def _enforce_single_row(
        self,
        conn: AsyncConnection,
        table: Table,
        where: ColumnElement[bool],
        action: AuditAction,
    ) -> None:
        matched = await self._count(conn, table, where)
        if matched == 0:
            raise NoRowsFoundError(table.name, action.value)
        if matched > 1:
            raise AmbiguousUpdateError(matched, action.value)

    @staticmethod
    def _check_affected(
        table_name: str,
        rows: list[Row],
        require_single_row: bool,
        action: AuditAction,
    ) -> None:
        if not rows:
            raise NoRowsFoundError(table_name, action.value)
        if require_single_row and len(rows) != 1:
            logger.warning(
                "Row count changed between count and mutation",
                table_name=table_name,
                action=action.value,
                affected=len(rows),
            )
            raise AmbiguousUpdateError(len(rows), action.value)

    @staticmethod
    async def _update_without_returning(
        conn: AsyncConnection,
        table: Table,
        where: ColumnElement[bool],
        payload: Mapping[str, Any],
    ) -> list[Row]:
        pk_columns = list(table.primary_key.columns)
        if not pk_columns:
            raise ValidationError(
                message=f'Tabelle "{table.name}" hat keinen Primärschlüssel.',
                error_code="NO_PRIMARY_KEY",
            )
        keys = (await conn.execute(select(*pk_columns).where(where))).all()
        await conn.execute(update(table).where(where).values(**payload))
        if not keys:
            return []
        pk = pk_columns[0]
        refreshed = await conn.execute(select(table).where(pk.in_([k[0] for k in keys])))
        return [_row_to_dict(r) for r in refreshed]

    async def _embed_relation(
        self,
        conn: AsyncConnection,
        base: Table,
        rows: list[Row],
        join: JoinSpec,
        related: Table,
    ) -> None:
        """Attach related rows to each base row under `join.key`.

        Many-to-one (base has a FK to related) embeds a single object or
        None; one-to-many (related has a FK to base) embeds a list.
        """
        many_to_one = next((fk for fk in base.foreign_keys if fk.references(related)), None)
        one_to_many = None
        if many_to_one is None:
            one_to_many = next((fk for fk in related.foreign_keys if fk.references(base)), None)
        if many_to_one is None and one_to_many is None:
            raise InvalidJoinError(
                join.table,
                f'Keine Beziehung zwischen "{base.name}" und "{join.table}".',
            )

        if many_to_one is not None:
            local_key = many_to_one.parent.name
            remote_column = many_to_one.column
        else:
            local_key = one_to_many.column.name
            remote_column = one_to_many.parent

        selected = self._join_columns(related, join, remote_column)
        keys = {row[local_key] for row in rows if row.get(local_key) is not None}

        grouped: dict[Any, list[Row]] = {}
        if keys:
            result = await conn.execute(select(*selected).where(remote_column.in_(keys)))
            for record in result:
                data = _row_to_dict(record)
                grouped.setdefault(data[remote_column.name], []).append(data)

        strip_key = not join.all_columns and remote_column.name not in join.columns
        for row in rows:
            matches = [
                {k: v for k, v in m.items() if not (strip_key and k == remote_column.name)}
                for m in grouped.get(row.get(local_key), [])
            ]
            if many_to_one is not None:
                row[join.key] = matches[0] if matches else None
            else:
                row[join.key] = matches

    @staticmethod
    def _join_columns(related: Table, join: JoinSpec, key_column: Column) -> list[Column]:
        if join.all_columns:
            return list(related.columns)
        columns = [get_column(related, name) for name in join.columns]
        if key_column.name not in join.columns:
            columns.append(key_column)
        return columns


def parse_joins(fragments: Iterable[str]) -> list[JoinSpec]:
    """Parse validated join fragments."""
    return [JoinSpec.parse(fragment) for fragment in fragments]
