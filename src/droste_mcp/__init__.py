"""
MCP (Model Context Protocol) adapter for the Droste CV backend.

Exposes the CV backend API as MCP tools so AI clients can browse CVs,
fields, versions, media and search results.

Architecture:
- server.py: FastMCP server (stdio) and HTTP transport startup
- config.py: Configuration loading (droste-mcp.yaml + environment)
- protocol.py: JSON-RPC method routing for the HTTP transports
- http/: FastAPI apps (in-process wrapper and JSON-RPC endpoint)
- transport/: In-memory request/response correlator
- tools/: Tool catalog, argument validation and dispatch
- adapters/: Backend API gateway (auth headers, token refresh)
- session/: Credential store and per-session context
- auth/: API key loading and session gates
"""

__version__ = "1.0.0"

__all__ = ["MCPServer", "MCPConfig", "__version__"]

from .config import MCPConfig
from .server import MCPServer
