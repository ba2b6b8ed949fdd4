"""
Tool Schemas

Argument models for the chat tools. The model emits camelCase keys
(tableName, groupBy, requireSingleRow); the aliases map them onto the
service's parameter names. Snake-case keys are accepted as well.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from datenassistent.config.constants import (
    DEFAULT_QUERY_LIMIT,
    DEFAULT_STATISTICS_LIMIT,
)


class ToolArguments(BaseModel):
    """Base for tool argument models."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TableArguments(ToolArguments):
    table_name: Any = Field(default=None, alias="tableName")


class QueryTableArguments(TableArguments):
    filters: Optional[Any] = None
    limit: Any = DEFAULT_QUERY_LIMIT
    joins: Optional[Any] = None


class InsertRowArguments(TableArguments):
    values: Any = None


class OperationOptions(ToolArguments):
    """Per-call options: audit attribution and the single-row gate."""

    user_id: Optional[str] = Field(default=None, alias="userId")
    ip_address: Optional[str] = Field(default=None, alias="ipAddress")
    require_single_row: bool = Field(default=True, alias="requireSingleRow")


class UpdateRowArguments(TableArguments):
    filters: Any = None
    values: Any = None
    require_single_row: bool = Field(default=True, alias="requireSingleRow")


class DeleteRowArguments(TableArguments):
    filters: Any = None
    require_single_row: bool = Field(default=True, alias="requireSingleRow")


class StatisticsArguments(TableArguments):
    aggregation: Any = None
    column: Optional[str] = None
    group_by: Optional[str] = Field(default=None, alias="groupBy")
    filters: Optional[Any] = None
    limit: Any = DEFAULT_STATISTICS_LIMIT


class ToolDefinitionsResponse(BaseModel):
    """List of tool definitions in OpenAI function-calling format."""

    tools: list[dict[str, Any]]
