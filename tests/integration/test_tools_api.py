"""
Tool API Integration Tests

Tests for the HTTP surface the chat backend calls.

Endpoint Summary:
=================
- GET  /health                    - Liveness
- GET  /health/detailed           - Readiness with database ping
- GET  /api/v1/tools              - Tool definitions (function-calling format)
- POST /api/v1/tools/{tool_name}  - Execute one tool call

Attribution:
============
- X-User-ID header → audit user_id
- X-Forwarded-For (first hop) or the client address → audit ip_address
"""

from httpx import AsyncClient

from datenassistent.config.constants import AuditAction, AuditResult
from datenassistent.data_access.tools import TOOL_NAMES, ToolDispatcher


# =============================================================================
# HEALTH TESTS
# =============================================================================


class TestHealth:
    """Tests for the health endpoints."""

    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_detailed_health_pings_database(self, client: AsyncClient):
        """
        Scenario: Readiness check with the fixture store reachable.
        Expected: 200 OK with database marked healthy.
        """
        response = await client.get("/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"] == {"database": "healthy"}

    async def test_request_id_header(self, client: AsyncClient):
        generated = await client.get("/health")
        echoed = await client.get("/health", headers={"X-Request-ID": "chat-7"})

        assert generated.headers["X-Request-ID"].startswith("req-")
        assert echoed.headers["X-Request-ID"] == "chat-7"


# =============================================================================
# TOOL DEFINITION TESTS
# =============================================================================


class TestListTools:
    """Tests for GET /api/v1/tools."""

    async def test_lists_all_tools(self, client: AsyncClient):
        response = await client.get("/api/v1/tools")

        assert response.status_code == 200
        tools = response.json()["tools"]
        names = {tool["function"]["name"] for tool in tools}
        assert names == {
            "queryTable",
            "insertRow",
            "updateRow",
            "deleteRow",
            "getStatistics",
            "getTableNames",
            "getTableStructure",
        }
        assert names == TOOL_NAMES

    async def test_definitions_declare_required_arguments(self, client: AsyncClient):
        response = await client.get("/api/v1/tools")

        by_name = {t["function"]["name"]: t["function"] for t in response.json()["tools"]}
        assert by_name["updateRow"]["parameters"]["required"] == ["tableName", "filters", "values"]
        assert "requireSingleRow" in by_name["deleteRow"]["parameters"]["properties"]


# =============================================================================
# TOOL CALL TESTS
# =============================================================================


class TestCallTool:
    """Tests for POST /api/v1/tools/{tool_name}."""

    async def test_query_table(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/tools/queryTable",
            json={"tableName": "t_projects", "filters": {"status": "b"}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["error"] is None
        assert [row["name"] for row in body["data"]] == ["Y"]

    async def test_insert_attributed_to_caller(self, client: AsyncClient, audit_sink):
        """
        Scenario: Insert with X-User-ID and X-Forwarded-For headers.
        Expected: Row returned; audit entry carries user and first forwarded IP.
        """
        response = await client.post(
            "/api/v1/tools/insertRow",
            json={"tableName": "t_employees", "values": {"name": "Dora"}},
            headers={"X-User-ID": "user-42", "X-Forwarded-For": "203.0.113.5, 10.0.0.1"},
        )

        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Dora"
        entry = audit_sink.entries[0]
        assert entry.action is AuditAction.INSERT
        assert entry.result is AuditResult.SUCCESS
        assert entry.user_id == "user-42"
        assert entry.ip_address == "203.0.113.5"

    async def test_ambiguous_delete_returns_error_in_body(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/tools/deleteRow",
            json={"tableName": "t_projects", "filters": {"name": "X"}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["data"] is None
        assert body["error"].startswith("Mehrere Zeilen (2)")

    async def test_statistics(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/tools/getStatistics",
            json={"tableName": "t_projects", "aggregation": "count", "groupBy": "status"},
        )

        assert response.json() == {
            "data": [{"status": "a", "count": 2}, {"status": "b", "count": 1}],
            "error": None,
        }

    async def test_in_memory_statistics_report_truncation(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/tools/getStatistics",
            json={"tableName": "t_projects", "aggregation": "sum", "column": "budget_text"},
        )

        assert response.json() == {"data": {"sum": 350.5}, "error": None, "truncated": False}

    async def test_table_names_without_body(self, client: AsyncClient):
        response = await client.post("/api/v1/tools/getTableNames")

        assert response.status_code == 200
        assert "t_projects" in response.json()["data"]["tables"]

    async def test_table_structure(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/tools/getTableStructure", json={"tableName": "t_employees"}
        )

        columns = [c["name"] for c in response.json()["data"]["columns"]]
        assert "hourly_rate" in columns

    async def test_unknown_tool(self, client: AsyncClient):
        """
        Scenario: Call a tool that is not declared.
        Expected: 404 with UNKNOWN_TOOL.
        """
        response = await client.post("/api/v1/tools/dropTable", json={})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "UNKNOWN_TOOL"

    async def test_arguments_must_be_object(self, client: AsyncClient):
        response = await client.post("/api/v1/tools/queryTable", json=["t_projects"])

        assert response.status_code == 200
        assert response.json()["error"].startswith("Ungültige Argumente für queryTable")


# =============================================================================
# DISPATCHER TESTS
# =============================================================================


class TestToolDispatcher:
    """Tests for ToolDispatcher.dispatch."""

    async def test_json_string_arguments(self, dispatcher: ToolDispatcher):
        result = await dispatcher.dispatch(
            "queryTable", '{"tableName": "t_employees", "filters": {"name": "Ben"}}'
        )

        assert result["error"] is None
        assert result["data"][0]["name"] == "Ben"

    async def test_malformed_json(self, dispatcher: ToolDispatcher):
        result = await dispatcher.dispatch("queryTable", "{tableName: t_projects")

        assert result == {
            "data": None,
            "error": "Ungültige Argumente für queryTable: kein gültiges JSON",
        }

    async def test_unknown_tool_is_error_result(self, dispatcher: ToolDispatcher):
        result = await dispatcher.dispatch("dropTable", {})

        assert result == {"data": None, "error": "Unbekannte Funktion: dropTable"}

    async def test_wrong_argument_type(self, dispatcher: ToolDispatcher):
        result = await dispatcher.dispatch(
            "updateRow",
            {"tableName": "t_projects", "filters": {"name": "Y"}, "values": {}, "requireSingleRow": "vielleicht"},
        )

        assert "requireSingleRow" in result["error"]

    async def test_bulk_update_through_dispatcher(self, dispatcher: ToolDispatcher):
        result = await dispatcher.dispatch(
            "updateRow",
            {
                "tableName": "t_projects",
                "filters": {"status": "a"},
                "values": {"status": "c"},
                "requireSingleRow": False,
            },
            user_id="u-1",
        )

        assert result["error"] is None
        assert len(result["data"]) == 2

    async def test_snake_case_arguments_accepted(self, dispatcher: ToolDispatcher):
        result = await dispatcher.dispatch(
            "getStatistics",
            {"table_name": "t_employees", "aggregation": "max", "column": "hourly_rate"},
        )

        assert result == {"data": {"max": 30}, "error": None}
