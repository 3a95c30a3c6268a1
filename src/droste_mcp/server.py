"""
MCP server initialization and transport startup.

Main server class that owns the backend gateway, the tool dispatcher and
the FastMCP app. Supports the stdio transport (FastMCP) and two HTTP
transports served by uvicorn: the in-process wrapper and the JSON-RPC
endpoint.
"""

import asyncio
import logging
import os
import socket
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Literal, Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from droste_mcp.adapters import DEFAULT_BACKEND_URL, BackendGateway
from droste_mcp.errors import AuthenticationError, BackendError, TransportError
from droste_mcp.protocol import ProtocolServer
from droste_mcp.session import CredentialStore, SessionContext, SessionRegistry
from droste_mcp.session.credentials import MISSING_API_KEY_HINT
from droste_mcp.tools import ToolCall, ToolDispatcher
from droste_mcp.transport import DEFAULT_TIMEOUT_SECONDS, InMemoryTransport

logger = logging.getLogger(__name__)


FieldType = Literal["job", "skill", "certification", "education", "all"]


@dataclass
class MCPServer:
    """
    Main MCP server instance for the Droste CV backend.

    Attributes:
        host: Server bind address (default: "127.0.0.1", HTTP transports only)
        port: Server port (default: 3001, HTTP transports only)
        transport: Transport mode ("stdio", "http" or "jsonrpc")
        backend_url: Base URL of the backend API
        api_key: Static backend API key used by the stdio transport
        session_secret: Cookie signing secret for the JSON-RPC transport
        request_timeout: Backend and correlation timeout in seconds
        backend_transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    host: str = "127.0.0.1"
    port: int = 3001
    transport: Literal["stdio", "http", "jsonrpc"] = "stdio"
    backend_url: str = DEFAULT_BACKEND_URL
    api_key: Optional[str] = None
    session_secret: Optional[str] = None
    request_timeout: float = DEFAULT_TIMEOUT_SECONDS
    backend_transport: Optional[httpx.AsyncBaseTransport] = field(default=None, repr=False)
    context: SessionContext = field(init=False, repr=False)
    gateway: BackendGateway = field(init=False, repr=False)
    dispatcher: ToolDispatcher = field(init=False, repr=False)
    _app: Optional[FastMCP] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        """Validate configuration and build the tool stack."""
        if self.transport not in ("stdio", "http", "jsonrpc"):
            raise ValueError(
                f"Invalid transport '{self.transport}'. "
                "Must be 'stdio', 'http' or 'jsonrpc'."
            )

        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")

        # Load port from environment if not explicitly set
        if self.port == 3001 and "PORT" in os.environ:
            try:
                self.port = int(os.environ["PORT"])
            except ValueError:
                raise ValueError(
                    f"Invalid PORT: {os.environ['PORT']}. Must be an integer."
                )

        self.gateway = self._new_gateway()
        self.dispatcher = ToolDispatcher(self.gateway)

        # Process-wide context for stdio; HTTP transports build their own
        self.context = SessionContext.for_process(self.api_key)

        self._app = FastMCP("Droste CV MCP Server")
        self._register_tools()

    def _new_gateway(self) -> BackendGateway:
        return BackendGateway(
            self.backend_url,
            timeout=self.request_timeout,
            transport=self.backend_transport,
        )

    def _check_port_available(self, host: str, port: int) -> bool:
        """
        Check if port is available for binding.

        Args:
            host: Host address to check
            port: Port number to check

        Returns:
            True if port is available, False otherwise
        """
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.bind((host, port))
                return True
        except OSError:
            return False

    async def _invoke(self, name: str, **arguments: Any) -> str:
        """Run a tool for the stdio transport and unwrap its text."""
        arguments = {k: v for k, v in arguments.items() if v is not None}
        result = await self.dispatcher.dispatch(ToolCall(name=name, arguments=arguments), self.context)
        if result.is_error:
            raise ToolError(result.first_text)
        return result.first_text

    def _register_tools(self):
        """Register every catalog tool with the FastMCP app."""
        invoke = self._invoke

        async def login_to_mcp(email: str, password: str):
            return await invoke("loginToMcp", email=email, password=password)

        async def get_cv_overview():
            return await invoke("getCvOverview")

        async def get_cv_fields(cvId: str):
            return await invoke("getCvFields", cvId=cvId)

        async def get_field_versions(fieldId: str):
            return await invoke("getFieldVersions", fieldId=fieldId)

        async def get_media(key: str):
            return await invoke("getMedia", key=key)

        async def search_cvs(
            query: str,
            type: Optional[FieldType] = None,
            dateRange: Optional[Dict[str, str]] = None,
        ):
            return await invoke("searchCvs", query=query, type=type, dateRange=dateRange)

        async def trigger_backend_action(actionName: str, payload: Optional[Dict[str, Any]] = None):
            return await invoke("triggerBackendAction", actionName=actionName, payload=payload)

        async def test_tool(message: Optional[str] = None):
            return await invoke("testTool", message=message)

        handlers: Dict[str, Callable] = {
            "loginToMcp": login_to_mcp,
            "getCvOverview": get_cv_overview,
            "getCvFields": get_cv_fields,
            "getFieldVersions": get_field_versions,
            "getMedia": get_media,
            "searchCvs": search_cvs,
            "triggerBackendAction": trigger_backend_action,
            "testTool": test_tool,
        }

        for spec in self.dispatcher.catalog.values():
            handler = handlers.get(spec.name)
            if handler is None:
                logger.warning(f"No stdio binding for tool {spec.name}; skipping")
                continue
            self.register_tool(name=spec.name, description=spec.description, handler=handler)

    def register_tool(self, name: str, description: str, handler):
        """
        Register an MCP tool with the FastMCP app.

        Args:
            name: Tool name (e.g., "getCvFields")
            description: Human-readable tool description
            handler: Coroutine function whose signature defines the tool inputs
        """
        if not self._app:
            raise RuntimeError("FastMCP app not initialized")

        self._app.tool(name=name, description=description)(handler)

    async def self_check(self) -> bool:
        """
        Verify that the static API key is accepted by the backend.

        Uses a short-lived gateway so the check never touches the
        process credentials.

        Returns:
            True if the backend answered GET /api/cvs successfully
        """
        if not self.api_key:
            logger.warning(MISSING_API_KEY_HINT)
            return False

        store = CredentialStore.from_api_key(self.api_key)
        try:
            async with self._new_gateway() as gateway:
                response = await gateway.call(store, "GET", "/api/cvs")
        except (AuthenticationError, BackendError, TransportError) as e:
            logger.error(f"Backend self-check failed against {self.backend_url}: {e}")
            return False

        count = len(response.data) if isinstance(response.data, list) else "unknown"
        logger.info(f"Backend self-check passed: {count} CV(s) visible at {self.backend_url}")
        return True

    def create_http_app(self) -> FastAPI:
        """
        Build the FastAPI app for the configured HTTP transport.

        Raises:
            RuntimeError: If the transport is stdio
        """
        from droste_mcp.http import create_jsonrpc_app, create_wrapper_app

        protocol = ProtocolServer(self.dispatcher)
        if self.transport == "http":
            return create_wrapper_app(protocol, InMemoryTransport(timeout=self.request_timeout))
        if self.transport == "jsonrpc":
            return create_jsonrpc_app(protocol, SessionRegistry(), self.session_secret)
        raise RuntimeError(f"Transport '{self.transport}' is not served over HTTP")

    def start(self):
        """
        Start the MCP server with configured transport.

        Raises:
            RuntimeError: If port unavailable (HTTP) or the server fails to start
        """
        if not self._app:
            raise RuntimeError("FastMCP app not initialized. This should not happen.")

        if self.transport == "stdio":
            # Stdio transport:
            # - Used by Claude Desktop, Cursor and other local MCP clients
            # - stdout carries JSON-RPC frames; logs go to stderr
            # - Credentials come from DROSTE_CV_API_KEY or loginToMcp
            asyncio.run(self.self_check())
            try:
                self._app.run()  # STDIO is the default transport
            except Exception as e:
                raise RuntimeError(f"Failed to start MCP server with stdio transport: {e}") from e
            return

        # HTTP transports:
        # - "http": REST-style wrapper correlating requests through InMemoryTransport
        # - "jsonrpc": POST /mcp with per-cookie session credentials
        if not self._check_port_available(self.host, self.port):
            raise RuntimeError(
                f"Port {self.port} already in use. "
                f"Choose a different port or stop the conflicting service."
            )

        app = self.create_http_app()
        try:
            uvicorn.run(app, host=self.host, port=self.port, log_config=None)
        except Exception as e:
            raise RuntimeError(
                f"Failed to start MCP server on {self.host}:{self.port}: {e}"
            ) from e
