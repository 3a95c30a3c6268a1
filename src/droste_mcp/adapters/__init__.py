"""
Backend adapter layer for MCP tool integration.

Provides a single gateway for MCP tools to call the Droste CV backend API
with consistent credential handling, token refresh and error mapping.
"""

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class BackendResponse:
    """Successful (2xx) response from the backend API."""

    status: int
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


from .backend import DEFAULT_BACKEND_URL, REFRESH_PATH, LOGIN_PATH, BackendGateway

__all__ = [
    "BackendGateway",
    "BackendResponse",
    "DEFAULT_BACKEND_URL",
    "LOGIN_PATH",
    "REFRESH_PATH",
]
