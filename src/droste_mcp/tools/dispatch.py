"""Tool dispatch: validate, execute and shape results for every transport."""

import logging
from typing import Any, Dict, List, Mapping, Optional

from droste_mcp.adapters import BackendGateway
from droste_mcp.errors import (
    AuthenticationError,
    BackendError,
    TransportError,
    ValidationError,
)
from droste_mcp.session import SessionContext

from .definitions import TOOL_CATALOG, ToolSpec
from .result import ToolCall, ToolCallState, ToolResult

logger = logging.getLogger(__name__)


_JSON_TYPES = {
    "string": (str,),
    "object": (dict,),
    "array": (list,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
}


def _matches_type(value: Any, declared: str) -> bool:
    expected = _JSON_TYPES.get(declared)
    if expected is None:
        return True
    if isinstance(value, bool) and declared in ("integer", "number"):
        return False
    return isinstance(value, expected)


def validate_arguments(arguments: Mapping[str, Any], schema: Mapping[str, Any]) -> None:
    """
    Check tool arguments against a JSON Schema input contract.

    Only required-key presence, primitive types and enums are checked.

    Raises:
        ValidationError: Naming the first offending field
    """
    for name in schema.get("required", []):
        value = arguments.get(name)
        if value is None or value == "":
            raise ValidationError(f"Missing required parameter: {name}", field=name)

    properties = schema.get("properties", {})
    for name, value in arguments.items():
        prop = properties.get(name)
        if prop is None or value is None:
            continue
        declared = prop.get("type")
        if declared and not _matches_type(value, declared):
            raise ValidationError(
                f"Invalid type for parameter '{name}': expected {declared}",
                field=name,
            )
        if "enum" in prop and value not in prop["enum"]:
            allowed = ", ".join(str(v) for v in prop["enum"])
            raise ValidationError(
                f"Invalid value for parameter '{name}': must be one of {allowed}",
                field=name,
            )


class ToolDispatcher:
    """
    Routes tool calls to their handlers.

    Tool failures are data: validation, auth and backend errors come back
    as ``ToolResult(is_error=True)`` and are never raised to the transport.
    """

    def __init__(self, gateway: BackendGateway, catalog: Optional[Dict[str, ToolSpec]] = None):
        self.gateway = gateway
        self.catalog = catalog if catalog is not None else TOOL_CATALOG

    def get_tool(self, name: str) -> Optional[ToolSpec]:
        return self.catalog.get(name)

    def list_tools(self) -> List[Dict[str, Any]]:
        return [spec.to_mcp() for spec in self.catalog.values()]

    async def dispatch(self, call: ToolCall, context: SessionContext) -> ToolResult:
        """
        Execute a tool call.

        Args:
            call: Tool name and arguments
            context: Session context holding the caller's credentials

        Returns:
            ToolResult (is_error=True on any failure)
        """
        spec = self.get_tool(call.name)
        if spec is None:
            call.advance(ToolCallState.FAILED)
            logger.warning(f"Unknown tool requested: {call.name}")
            return ToolResult.failure(f"Unknown tool: {call.name}")

        arguments = call.arguments or {}
        try:
            validate_arguments(arguments, spec.input_schema)
        except ValidationError as e:
            call.advance(ToolCallState.FAILED)
            logger.info(f"Tool {call.name} rejected: {e}")
            return ToolResult.failure(str(e), error=e)

        call.advance(ToolCallState.VALIDATED)
        logger.info(f"Tool call: {call.name}")
        call.advance(ToolCallState.EXECUTING)

        try:
            payload = await spec.handler(self.gateway, context, arguments)
        except AuthenticationError as e:
            call.advance(ToolCallState.FAILED)
            logger.warning(f"Tool {call.name} failed authentication: {e}")
            return ToolResult.failure(f"{spec.failure_label}: {e}", error=e)
        except BackendError as e:
            call.advance(ToolCallState.FAILED)
            logger.warning(f"Tool {call.name} failed with backend status {e.status}: {e}")
            return ToolResult.failure(f"{spec.failure_label}: {e}", error=e)
        except TransportError as e:
            call.advance(ToolCallState.FAILED)
            logger.error(f"Tool {call.name} failed to reach backend: {e}")
            return ToolResult.failure(f"{spec.failure_label}: {e}", error=e)
        except Exception as e:
            call.advance(ToolCallState.FAILED)
            logger.exception(f"Unexpected error in tool {call.name}")
            return ToolResult.failure(f"{spec.failure_label}: {e}", error=e)

        call.advance(ToolCallState.SUCCEEDED)
        if isinstance(payload, str):
            return ToolResult.text(payload)
        return ToolResult.json(payload)
