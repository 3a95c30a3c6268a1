"""
JSON-RPC protocol server for the HTTP transports.

Implements the MCP methods the adapter supports (initialize, ping,
tools/list, tools/call and notifications). The JSON-RPC endpoint calls
``handle()`` directly; the HTTP wrapper reaches it through the
in-memory transport.
"""

import asyncio
import logging
from contextvars import ContextVar
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Set

from droste_mcp import __version__
from droste_mcp.errors import (
    AUTH_REQUIRED,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    TOOL_EXECUTION_ERROR,
    AuthenticationError,
    RPCError,
)
from droste_mcp.session import SessionContext
from droste_mcp.tools import ToolCall, ToolDispatcher
from droste_mcp.transport import InMemoryTransport

logger = logging.getLogger(__name__)


SERVER_NAME = "cv-mcp-server"
PROTOCOL_VERSION = "2024-11-05"

current_context: ContextVar[Optional[SessionContext]] = ContextVar(
    "droste_mcp_current_context", default=None
)
"""Session context of the HTTP request currently sending through the transport."""


def is_notification(message: Mapping[str, Any]) -> bool:
    """A message without an id, or with a notifications/ method, gets no response."""
    method = message.get("method")
    return "id" not in message or (isinstance(method, str) and method.startswith("notifications/"))


def success_response(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def error_response(request_id: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "error": RPCError(code, message, data).to_dict(),
    }


class ProtocolServer:
    """
    Routes JSON-RPC requests to MCP method handlers.

    ``handle()`` never raises: every failure becomes a JSON-RPC error
    response, and notifications return None.
    """

    def __init__(self, dispatcher: ToolDispatcher, name: str = SERVER_NAME, version: str = __version__):
        self.dispatcher = dispatcher
        self.name = name
        self.version = version
        self._transport: Optional[InMemoryTransport] = None
        self._tasks: Set[asyncio.Task] = set()
        self._methods: Dict[str, Callable[[Dict[str, Any], SessionContext], Awaitable[Any]]] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }

    def capabilities(self) -> Dict[str, Any]:
        """Server capabilities, with the tool catalog keyed by tool name."""
        return {
            "tools": {
                tool["name"]: {
                    "description": tool["description"],
                    "inputSchema": tool["inputSchema"],
                }
                for tool in self.dispatcher.list_tools()
            }
        }

    async def handle(
        self, message: Any, context: Optional[SessionContext] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Process one JSON-RPC message.

        Args:
            message: Decoded JSON-RPC message
            context: Caller's session context (an empty one is used if None)

        Returns:
            Response dict, or None for notifications
        """
        if not isinstance(message, dict):
            return error_response(None, INVALID_REQUEST, "Invalid Request: expected a JSON object")

        request_id = message.get("id")
        method = message.get("method")

        if message.get("jsonrpc") != "2.0" or not isinstance(method, str) or not method:
            return error_response(
                request_id, INVALID_REQUEST, "Invalid Request: 'jsonrpc' must be '2.0' and 'method' is required"
            )

        if is_notification(message):
            logger.debug(f"Notification received: {method}")
            return None

        params = message.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return error_response(request_id, INVALID_PARAMS, "Invalid params: expected an object")

        handler = self._methods.get(method)
        if handler is None:
            logger.warning(f"Method not found: {method}")
            return error_response(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

        if context is None:
            context = SessionContext.from_bearer(None)

        try:
            result = await handler(params, context)
        except RPCError as e:
            return error_response(request_id, e.code, e.message, e.data)
        except Exception as e:
            logger.exception(f"Unhandled error processing {method}")
            return error_response(request_id, TOOL_EXECUTION_ERROR, f"Internal error: {e}")

        return success_response(request_id, result)

    # ------------------------------------------------------------------
    # MCP methods
    # ------------------------------------------------------------------

    async def _initialize(self, params: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        return {
            "protocolVersion": params.get("protocolVersion") or PROTOCOL_VERSION,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": self.name, "version": self.version},
        }

    async def _ping(self, params: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        return {}

    async def _list_tools(self, params: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        return {"tools": self.dispatcher.list_tools()}

    async def _call_tool(self, params: Dict[str, Any], context: SessionContext) -> Dict[str, Any]:
        name = params.get("tool_id") or params.get("name")
        if not isinstance(name, str) or not name:
            raise RPCError(INVALID_PARAMS, "Invalid params: 'tool_id' is required")

        inputs = params.get("inputs", params.get("arguments"))
        if inputs is None:
            inputs = {}
        if not isinstance(inputs, dict):
            raise RPCError(INVALID_PARAMS, "Invalid params: 'inputs' must be an object")

        if self.dispatcher.get_tool(name) is None:
            raise RPCError(METHOD_NOT_FOUND, f"Tool not found: {name}")

        result = await self.dispatcher.dispatch(ToolCall(name=name, arguments=dict(inputs)), context)

        if isinstance(result.error, AuthenticationError):
            raise RPCError(
                AUTH_REQUIRED,
                str(result.error),
                {"tool": name, "reason": type(result.error).__name__},
            )
        return result.to_dict()

    # ------------------------------------------------------------------
    # In-memory transport binding
    # ------------------------------------------------------------------

    async def connect(self, transport: InMemoryTransport) -> None:
        """Register this server as the transport's single message handler."""
        await transport.connect()
        transport.on_message(self._on_transport_message)
        self._transport = transport
        logger.info("Protocol server connected via InMemoryTransport")

    async def close(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            transport.remove_message_handler()
            await transport.disconnect()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _on_transport_message(self, message: Dict[str, Any]) -> None:
        # Runs synchronously inside send(), so the sender's context is current
        context = current_context.get()
        task = asyncio.get_running_loop().create_task(self._respond(message, context))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _respond(self, message: Dict[str, Any], context: Optional[SessionContext]) -> None:
        response = await self.handle(message, context)
        if response is not None and self._transport is not None:
            self._transport.deliver(response)
