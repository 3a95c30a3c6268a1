"""
Tests for MCPServer: configuration, stdio tool registration and the
startup self-check.

Uses the FastMCP in-memory client against the server's FastMCP app.
"""

import json

import httpx
import pytest
from fastapi import FastAPI
from fastmcp.client import Client

from droste_mcp.server import MCPServer


@pytest.fixture
def stdio_server(backend):
    backend.access_token = "static-key"
    return MCPServer(
        backend_url=backend.url,
        api_key="static-key",
        backend_transport=backend.transport(),
    )


class TestServerConfiguration:
    """Construction and validation."""

    def test_server_initialization_default(self):
        server = MCPServer()
        assert server.host == "127.0.0.1"
        assert server.port == 3001
        assert server.transport == "stdio"
        assert server.api_key is None
        assert server._app is not None
        assert not server.context.is_authenticated

    def test_api_key_seeds_process_context(self):
        server = MCPServer(api_key="static-key")
        assert server.context.is_authenticated
        assert server.context.session_id == "process"

    def test_server_invalid_transport(self):
        with pytest.raises(ValueError, match="Invalid transport"):
            MCPServer(transport="sse")

    def test_server_invalid_timeout(self):
        with pytest.raises(ValueError, match="request_timeout must be positive"):
            MCPServer(request_timeout=0)

    def test_port_from_environment(self, monkeypatch):
        monkeypatch.setenv("PORT", "4567")
        assert MCPServer().port == 4567

    def test_invalid_port_env(self, monkeypatch):
        monkeypatch.setenv("PORT", "not-a-number")
        with pytest.raises(ValueError, match="Invalid PORT"):
            MCPServer()

    @pytest.mark.parametrize("transport", ["http", "jsonrpc"])
    def test_create_http_app(self, transport):
        app = MCPServer(transport=transport, session_secret="s").create_http_app()
        assert isinstance(app, FastAPI)

    def test_stdio_has_no_http_app(self):
        with pytest.raises(RuntimeError, match="not served over HTTP"):
            MCPServer().create_http_app()

    def test_start_reports_busy_port(self, monkeypatch):
        server = MCPServer(transport="jsonrpc")
        monkeypatch.setattr(server, "_check_port_available", lambda host, port: False)

        with pytest.raises(RuntimeError, match="already in use"):
            server.start()


class TestStdioTools:
    """Tools exposed through FastMCP."""

    @pytest.mark.asyncio
    async def test_all_tools_registered(self, stdio_server):
        async with Client(stdio_server._app) as client:
            tools = await client.list_tools()

        by_name = {tool.name: tool for tool in tools}
        assert set(by_name) == {
            "loginToMcp",
            "getCvOverview",
            "getCvFields",
            "getFieldVersions",
            "getMedia",
            "searchCvs",
            "triggerBackendAction",
            "testTool",
        }
        assert "cvId" in by_name["getCvFields"].inputSchema["properties"]
        assert by_name["searchCvs"].inputSchema["required"] == ["query"]

    @pytest.mark.asyncio
    async def test_cv_overview_with_static_key(self, stdio_server, backend):
        async with Client(stdio_server._app) as client:
            result = await client.call_tool_mcp("getCvOverview", {})

        assert not result.isError
        assert json.loads(result.content[0].text) == backend.cvs
        assert backend.requests[0].headers["Authorization"] == "Bearer static-key"

    @pytest.mark.asyncio
    async def test_optional_arguments_are_omitted(self, stdio_server, backend):
        async with Client(stdio_server._app) as client:
            result = await client.call_tool_mcp("searchCvs", {"query": "Mercedes"})

        assert json.loads(result.content[0].text)["body"] == {"query": "Mercedes"}

    @pytest.mark.asyncio
    async def test_test_tool(self, stdio_server):
        async with Client(stdio_server._app) as client:
            result = await client.call_tool_mcp("testTool", {})

        assert result.content[0].text == "Test successful!"

    @pytest.mark.asyncio
    async def test_tool_failure_is_error_result(self, backend):
        server = MCPServer(backend_url=backend.url, backend_transport=backend.transport())

        async with Client(server._app) as client:
            result = await client.call_tool_mcp("getCvOverview", {})

        assert result.isError
        assert "DROSTE_CV_API_KEY" in result.content[0].text

    @pytest.mark.asyncio
    async def test_login_enables_protected_tools(self, backend):
        server = MCPServer(backend_url=backend.url, backend_transport=backend.transport())

        async with Client(server._app) as client:
            login = await client.call_tool_mcp(
                "loginToMcp", {"email": backend.email, "password": backend.password}
            )
            overview = await client.call_tool_mcp("getCvOverview", {})

        assert not login.isError
        assert "Welcome Ada Lovelace" in login.content[0].text
        assert not overview.isError
        assert server.context.user == backend.user


class TestSelfCheck:
    """Startup check against GET /api/cvs."""

    @pytest.mark.asyncio
    async def test_passes_with_valid_key(self, stdio_server, backend):
        assert await stdio_server.self_check() is True
        assert backend.requests[0].url.path == "/api/cvs"

    @pytest.mark.asyncio
    async def test_fails_without_key(self, backend):
        server = MCPServer(backend_url=backend.url, backend_transport=backend.transport())

        assert await server.self_check() is False
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_fails_with_rejected_key(self, backend):
        server = MCPServer(
            backend_url=backend.url, api_key="wrong", backend_transport=backend.transport()
        )

        assert await server.self_check() is False
        # The process credentials are untouched by the check
        assert server.context.is_authenticated

    @pytest.mark.asyncio
    async def test_fails_when_backend_unreachable(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        server = MCPServer(api_key="k", backend_transport=httpx.MockTransport(refuse))

        assert await server.self_check() is False
