"""
Chat Tool Dispatch

Maps a model-issued tool call (name + JSON arguments) onto a
TableAccessService operation and serializes the result back to the
`{data, error}` shape the model reads.

TOOL_DEFINITIONS holds the function-calling schemas offered to the model.
Descriptions are German because the assistant converses in German.
"""

import json
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from datenassistent.core.exceptions import (
    DatenassistentException,
    InvalidToolArgumentsError,
    UnknownToolError,
)
from datenassistent.core.logging import logger
from datenassistent.data_access.service import TableAccessService
from datenassistent.schemas.results import OperationResult
from datenassistent.schemas.tools import (
    DeleteRowArguments,
    InsertRowArguments,
    QueryTableArguments,
    StatisticsArguments,
    TableArguments,
    UpdateRowArguments,
)

_FILTERS_SCHEMA = {
    "type": "object",
    "description": (
        "Filter als Schlüssel-Wert-Paare. Ein einfacher Wert bedeutet Gleichheit. "
        'Für Vergleiche ein Objekt {"type": "gte", "value": 20} verwenden. '
        "Erlaubte Typen: eq, neq, gt, gte, lt, lte, between ([von, bis]), "
        "like, ilike (Teiltext), in (Liste)."
    ),
    "additionalProperties": True,
}

_TABLE_NAME_SCHEMA = {"type": "string", "description": "Name der Tabelle, z. B. t_projects"}

_REQUIRE_SINGLE_ROW_SCHEMA = {
    "type": "boolean",
    "description": (
        "Standard true: die Filter müssen genau eine Zeile treffen. "
        "Nur auf false setzen, wenn ausdrücklich mehrere Zeilen gemeint sind."
    ),
    "default": True,
}


def _function(name: str, description: str, properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {"type": "object", "properties": properties, "required": required},
        },
    }


TOOL_DEFINITIONS: list[dict[str, Any]] = [
    _function(
        "queryTable",
        "Liest Zeilen aus einer Tabelle, optional gefiltert und mit verknüpften Tabellen.",
        {
            "tableName": _TABLE_NAME_SCHEMA,
            "filters": _FILTERS_SCHEMA,
            "limit": {
                "type": "number",
                "description": "Maximale Anzahl Zeilen (Standard 100, höchstens 1000)",
                "default": 100,
            },
            "joins": {
                "type": "array",
                "items": {"type": "string"},
                "description": (
                    'Verknüpfte Tabellen, z. B. "t_vehicles(nickname, status)" '
                    'oder "fahrzeug:t_vehicles(*)"'
                ),
            },
        },
        ["tableName"],
    ),
    _function(
        "insertRow",
        "Legt eine neue Zeile in einer freigegebenen Tabelle an.",
        {
            "tableName": _TABLE_NAME_SCHEMA,
            "values": {
                "type": "object",
                "description": "Spaltenwerte der neuen Zeile",
                "additionalProperties": True,
            },
        },
        ["tableName", "values"],
    ),
    _function(
        "updateRow",
        (
            "Ändert eine bestehende Zeile. Die Filter müssen eine eindeutige Kennung "
            "enthalten (z. B. project_id oder name)."
        ),
        {
            "tableName": _TABLE_NAME_SCHEMA,
            "filters": _FILTERS_SCHEMA,
            "values": {
                "type": "object",
                "description": "Zu ändernde Spaltenwerte",
                "additionalProperties": True,
            },
            "requireSingleRow": _REQUIRE_SINGLE_ROW_SCHEMA,
        },
        ["tableName", "filters", "values"],
    ),
    _function(
        "deleteRow",
        (
            "Löscht eine Zeile. Die Filter müssen eine eindeutige Kennung enthalten. "
            "Vorher immer beim Nutzer nachfragen."
        ),
        {
            "tableName": _TABLE_NAME_SCHEMA,
            "filters": _FILTERS_SCHEMA,
            "requireSingleRow": _REQUIRE_SINGLE_ROW_SCHEMA,
        },
        ["tableName", "filters"],
    ),
    _function(
        "getStatistics",
        "Berechnet Anzahl, Summe, Durchschnitt, Minimum oder Maximum, optional gruppiert.",
        {
            "tableName": _TABLE_NAME_SCHEMA,
            "aggregation": {
                "type": "string",
                "enum": ["count", "sum", "avg", "min", "max"],
            },
            "column": {
                "type": "string",
                "description": "Spalte für sum/avg/min/max",
            },
            "groupBy": {"type": "string", "description": "Spalte zum Gruppieren"},
            "filters": _FILTERS_SCHEMA,
        },
        ["tableName", "aggregation"],
    ),
    _function(
        "getTableNames",
        "Listet die verfügbaren Tabellen auf.",
        {},
        [],
    ),
    _function(
        "getTableStructure",
        (
            "Zeigt die Spalten einer Tabelle mit einer Beispielzeile. "
            "Vor dem Abfragen nutzen, um die Feldnamen zu kennen."
        ),
        {"tableName": _TABLE_NAME_SCHEMA},
        ["tableName"],
    ),
]

TOOL_NAMES = frozenset(d["function"]["name"] for d in TOOL_DEFINITIONS)


def parse_arguments(tool_name: str, arguments: Any) -> dict[str, Any]:
    """Decode tool arguments given as a JSON string or a mapping.

    Raises:
        InvalidToolArgumentsError: Not JSON, or not a JSON object
    """
    if arguments is None or arguments == "":
        return {}
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments)
        except json.JSONDecodeError as e:
            raise InvalidToolArgumentsError(tool_name, "kein gültiges JSON") from e
    if not isinstance(arguments, dict):
        raise InvalidToolArgumentsError(tool_name, "ein JSON-Objekt wird erwartet")
    return arguments


class ToolDispatcher:
    """Executes chat tool calls against a TableAccessService."""

    def __init__(self, service: TableAccessService) -> None:
        self.service = service
        self._handlers: dict[str, Callable[[dict[str, Any], dict[str, Any]], Awaitable[OperationResult]]] = {
            "queryTable": self._query_table,
            "insertRow": self._insert_row,
            "updateRow": self._update_row,
            "deleteRow": self._delete_row,
            "getStatistics": self._get_statistics,
            "getTableNames": self._get_table_names,
            "getTableStructure": self._get_table_structure,
        }

    @staticmethod
    def is_known_tool(tool_name: str) -> bool:
        return tool_name in TOOL_NAMES

    async def dispatch(
        self,
        tool_name: str,
        arguments: Any = None,
        *,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> dict[str, Any]:
        """Run one tool call and return its serialized result.

        Never raises for bad input: unknown tools and malformed arguments
        come back as `{"data": None, "error": "..."}`.
        """
        try:
            handler = self._handlers.get(tool_name)
            if handler is None:
                raise UnknownToolError(tool_name)
            args = parse_arguments(tool_name, arguments)
            context = {"userId": user_id, "ipAddress": ip_address}
            result = await handler(args, context)
        except DatenassistentException as e:
            logger.warning(
                "ToolDispatcher: Tool call rejected",
                tool_name=tool_name,
                error_code=e.error_code,
            )
            result = OperationResult.from_error(e.message, e.error_code)

        logger.info(
            "ToolDispatcher: Tool call finished",
            tool_name=tool_name,
            success=result.success,
        )
        return result.to_dict()

    @staticmethod
    def _parse(tool_name: str, model: type[BaseModel], args: dict[str, Any]) -> Any:
        try:
            return model.model_validate(args)
        except PydanticValidationError as e:
            fields = ", ".join(
                ".".join(str(p) for p in err["loc"]) or "?" for err in e.errors()
            )
            raise InvalidToolArgumentsError(tool_name, f"fehlerhafte Felder: {fields}") from e

    async def _query_table(self, args: dict[str, Any], context: dict[str, Any]) -> OperationResult:
        parsed = self._parse("queryTable", QueryTableArguments, args)
        return await self.service.query_table(
            parsed.table_name, parsed.filters, parsed.limit, parsed.joins, options=context
        )

    async def _insert_row(self, args: dict[str, Any], context: dict[str, Any]) -> OperationResult:
        parsed = self._parse("insertRow", InsertRowArguments, args)
        return await self.service.insert_row(parsed.table_name, parsed.values, options=context)

    async def _update_row(self, args: dict[str, Any], context: dict[str, Any]) -> OperationResult:
        parsed = self._parse("updateRow", UpdateRowArguments, args)
        return await self.service.update_row(
            parsed.table_name,
            parsed.filters,
            parsed.values,
            options={**context, "requireSingleRow": parsed.require_single_row},
        )

    async def _delete_row(self, args: dict[str, Any], context: dict[str, Any]) -> OperationResult:
        parsed = self._parse("deleteRow", DeleteRowArguments, args)
        return await self.service.delete_row(
            parsed.table_name,
            parsed.filters,
            options={**context, "requireSingleRow": parsed.require_single_row},
        )

    async def _get_statistics(self, args: dict[str, Any], context: dict[str, Any]) -> OperationResult:
        parsed = self._parse("getStatistics", StatisticsArguments, args)
        return await self.service.get_statistics(
            parsed.table_name,
            parsed.aggregation,
            column=parsed.column,
            group_by=parsed.group_by,
            filters=parsed.filters,
            limit=parsed.limit,
            options=context,
        )

    async def _get_table_names(self, args: dict[str, Any], context: dict[str, Any]) -> OperationResult:
        return await self.service.get_table_names()

    async def _get_table_structure(
        self, args: dict[str, Any], context: dict[str, Any]
    ) -> OperationResult:
        parsed = self._parse("getTableStructure", TableArguments, args)
        return await self.service.get_table_structure(parsed.table_name)
