"""
Tool Endpoints

HTTP access to the chat tools for the chat backend:

    GET  /api/v1/tools              → function-calling definitions
    POST /api/v1/tools/{tool_name}  → run one tool call

The body of a tool call is the tool's argument object, exactly as the model
produced it. Known tools always answer 200 with `{data, error}`; the error
string is meant to be handed back to the model verbatim.

Callers over their per-IP rate or concurrency limit get 429 before the
tool runs.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends

from datenassistent.api.dependencies import Caller, Dispatcher, enforce_tool_call_limits
from datenassistent.core.exceptions import UnknownToolError
from datenassistent.core.logging import logger
from datenassistent.data_access.tools import TOOL_DEFINITIONS
from datenassistent.schemas.tools import ToolDefinitionsResponse

router = APIRouter()


@router.get("", response_model=ToolDefinitionsResponse)
async def list_tools() -> ToolDefinitionsResponse:
    """Tool definitions to pass to the chat completion call."""
    return ToolDefinitionsResponse(tools=TOOL_DEFINITIONS)


@router.post("/{tool_name}", dependencies=[Depends(enforce_tool_call_limits)])
async def call_tool(
    tool_name: str,
    dispatcher: Dispatcher,
    caller: Caller,
    arguments: Any = Body(default=None),
) -> dict[str, Any]:
    """Execute a tool call and return `{data, error}`."""
    if not dispatcher.is_known_tool(tool_name):
        raise UnknownToolError(tool_name)

    logger.info(
        "Tool call received",
        tool_name=tool_name,
        user_id=caller.user_id,
    )
    return await dispatcher.dispatch(
        tool_name,
        arguments,
        user_id=caller.user_id,
        ip_address=caller.ip_address,
    )
