"""Integration tests for the MCP server.

Tools are called through FastMCP's in-memory Client, i.e. over the actual
MCP protocol.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from fastmcp import Client

from vacation_calendar.mcp.server import _server_state, mcp


@pytest.fixture(autouse=True)
def _reset_state(service):
    _server_state.clear()
    _server_state["service"] = service
    yield
    _server_state.clear()


@pytest_asyncio.fixture
async def client():
    """In-memory MCP client."""
    async with Client(mcp) as c:
        yield c


class TestMCPToolDiscovery:
    @pytest.mark.asyncio
    async def test_list_tools(self, client: Client):
        """All ten tools are registered."""
        tools = await client.list_tools()
        tool_names = sorted(t.name for t in tools)

        assert len(tools) == 10
        assert tool_names == [
            "approve_request",
            "delete_request",
            "export_month_report",
            "get_date_detail",
            "get_month_availability",
            "list_pending_requests",
            "reject_request",
            "set_limit",
            "set_limits",
            "submit_request",
        ]

    @pytest.mark.asyncio
    async def test_tools_have_descriptions(self, client: Client):
        tools = await client.list_tools()

        for tool in tools:
            assert tool.description, f"{tool.name} has no description"
            assert len(tool.description) > 10, f"{tool.name} description too short"


class TestMCPToolCalls:
    @pytest.mark.asyncio
    async def test_submit_via_protocol(self, client: Client, service):
        result = await client.call_tool(
            "submit_request",
            {"requester_name": "Alice", "date": "2025-03-10", "deletion_secret": "pw"},
        )

        assert result is not None
        assert len(await service.list_pending_requests()) == 1

    @pytest.mark.asyncio
    async def test_month_view_via_protocol(self, client: Client):
        result = await client.call_tool(
            "get_month_availability", {"year": 2025, "month": 3, "role_filter": "office"}
        )

        assert result is not None

    @pytest.mark.asyncio
    async def test_error_is_returned_not_raised(self, client: Client, service):
        result = await client.call_tool(
            "set_limit", {"date": "2025-03-10", "role": "all", "max_allowed": 2}
        )

        # Tool errors come back as a payload without crashing the session
        assert result is not None
        assert len(service.limit_store) == 0
