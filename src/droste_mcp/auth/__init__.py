"""
Authentication helpers for the MCP server.

Provides the static API key loader used by the stdio transport and the
session gates used by the HTTP transports.
"""

from .api_key import REDACTED, load_api_key_from_env, redact
from .middleware import bearer_token_from_header, ensure_authenticated

__all__ = [
    # API key
    "REDACTED",
    "load_api_key_from_env",
    "redact",
    # Middleware
    "bearer_token_from_header",
    "ensure_authenticated",
]
