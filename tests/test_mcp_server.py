"""
Smoke tests for the FastMCP server wiring (codeledger.mcp.server).
"""

import json

import pytest
from fastmcp import Client

from codeledger.client import TOOL_NAMES
from codeledger.core.config import LedgerConfig
from codeledger.mcp.server import create_server


def _tool_payload(result):
    """Decode the JSON text a tool returned, across fastmcp result shapes."""
    content = result.content if hasattr(result, "content") else result
    return json.loads(content[0].text)


def _resource_payload(contents):
    return json.loads(contents[0].text)


class TestServerWiring:
    """Every tool of the ledger is registered with the MCP server."""

    @pytest.mark.asyncio
    async def test_tools_registered(self, config, ledger):
        server = create_server(config, ledger=ledger)
        async with Client(server) as client:
            tools = await client.list_tools()
        assert sorted(t.name for t in tools) == sorted(TOOL_NAMES)

    @pytest.mark.asyncio
    async def test_prompts_registered(self, config, ledger):
        server = create_server(config, ledger=ledger)
        async with Client(server) as client:
            prompts = await client.list_prompts()
        assert {"document_project", "trace_endpoint"} <= {p.name for p in prompts}


class TestToolCalls:
    """Tools invoked through an MCP client."""

    @pytest.mark.asyncio
    async def test_create_then_get_project(self, config, ledger, tmp_project):
        server = create_server(config, ledger=ledger)
        async with Client(server) as client:
            created = _tool_payload(await client.call_tool("create_project", {
                "name": "shop", "path": str(tmp_project), "description": "Storefront",
            }))
            fetched = _tool_payload(await client.call_tool("get_project", {
                "projectId": created["projectId"],
            }))
        assert created["success"] is True
        assert fetched["results"][0]["name"] == "shop"

    @pytest.mark.asyncio
    async def test_in_memory_database(self, tmp_project):
        server = create_server(LedgerConfig(db_path=":memory:"))
        async with Client(server) as client:
            created = _tool_payload(await client.call_tool("create_project", {
                "name": "shop", "path": str(tmp_project), "description": "Storefront",
            }))
            listed = _tool_payload(await client.call_tool("query", {"type": "project"}))
        assert created["success"] is True, created
        assert [p["id"] for p in listed["results"]] == [created["projectId"]]


class TestResources:
    """codeledger:// resources read through an MCP client."""

    @pytest.mark.asyncio
    async def test_project_functions_resource(self, config, ledger, tmp_project):
        project = ledger.create_project("shop", str(tmp_project), "Storefront")
        ledger.scan_project(project.id, ["*.ts"])
        server = create_server(config, ledger=ledger)
        async with Client(server) as client:
            contents = await client.read_resource(f"codeledger://projects/{project.id}/functions")
        payload = _resource_payload(contents)
        assert payload["success"] is True
        assert [f["name"] for f in payload["data"]] == ["listUsers"]

    @pytest.mark.asyncio
    async def test_missing_function_resource(self, config, ledger):
        server = create_server(config, ledger=ledger)
        async with Client(server) as client:
            contents = await client.read_resource("codeledger://functions/function_x")
        assert _resource_payload(contents) == {
            "success": False, "error": "Function with ID function_x not found",
        }

    @pytest.mark.asyncio
    async def test_missing_project_children(self, config, ledger):
        server = create_server(config, ledger=ledger)
        async with Client(server) as client:
            contents = await client.read_resource("codeledger://projects/project_x/functions")
        payload = _resource_payload(contents)
        assert payload["success"] is False
        assert "not found" in payload["error"]
