"""
Error taxonomy for the Droste CV MCP adapter.

Tool-level failures (validation, backend errors) are turned into
``isError`` tool results by the dispatcher. Transport and correlation
failures surface as JSON-RPC error objects or HTTP 5xx responses.
"""

from typing import Any, Optional


# JSON-RPC error codes used across the protocol server and HTTP apps
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
AUTH_REQUIRED = -32000
TOOL_EXECUTION_ERROR = -32001
INTERNAL_ERROR = -32603


class DrosteMCPError(Exception):
    """Base exception for all adapter errors."""
    pass


class ValidationError(DrosteMCPError):
    """Raised when tool arguments do not match the declared schema."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class AuthenticationError(DrosteMCPError):
    """Raised when a call cannot be authenticated against the backend."""

    status_code = 401
    rpc_code = AUTH_REQUIRED

    def __init__(self, message: str = "Authentication required"):
        self.message = message
        super().__init__(message)


class AuthRequired(AuthenticationError):
    """No credentials are available for this session or process."""

    def __init__(self, message: str = "Please login first using the loginToMcp tool"):
        super().__init__(message)


class AuthExpired(AuthenticationError):
    """Credentials were rejected and could not be refreshed."""

    def __init__(self, message: str = "Authentication expired. Please login again."):
        super().__init__(message)


class BackendError(DrosteMCPError):
    """Raised for non-2xx, non-auth responses from the backend API."""

    def __init__(self, status: int, body: Any = None, message: Optional[str] = None):
        self.status = status
        self.body = body
        if message is None:
            message = f"Backend responded with status {status}"
            detail = _describe_body(body)
            if detail:
                message = f"{message}: {detail}"
        super().__init__(message)


class TransportError(DrosteMCPError):
    """Raised when the backend or the in-memory transport cannot be reached."""
    pass


class CorrelationTimeoutError(TransportError):
    """Raised when a correlated request receives no response in time."""

    def __init__(self, request_id: Any, timeout: float):
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(f"Request timed out for ID {request_id} after {timeout:g}s")


class RPCError(DrosteMCPError):
    """A JSON-RPC error object raised as an exception."""

    def __init__(self, code: int, message: str, data: Any = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)

    def to_dict(self) -> dict:
        """Serialize to a JSON-RPC error object."""
        error = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


def _describe_body(body: Any) -> str:
    if body is None or body == "":
        return ""
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if isinstance(body.get(key), str):
                return body[key]
    text = body if isinstance(body, str) else repr(body)
    return text[:200]
