"""
FastAPI apps for the HTTP transports.

- wrapper.py: REST-style wrapper that correlates requests with the
  protocol server through the in-memory transport
- jsonrpc.py: JSON-RPC endpoint with cookie-backed session credentials
"""

__all__ = ["SESSION_COOKIE", "create_jsonrpc_app", "create_wrapper_app"]

from .jsonrpc import SESSION_COOKIE, create_jsonrpc_app
from .wrapper import create_wrapper_app
