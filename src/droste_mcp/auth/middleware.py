"""
Authentication gates for the HTTP transports.

The JSON-RPC transport rejects calls to protected tools before dispatch
when the session holds no access token. The HTTP wrapper derives a
request-scoped context from the Authorization header.
"""

import logging
from typing import Optional

from droste_mcp.errors import AuthRequired
from droste_mcp.session import SessionContext
from droste_mcp.tools import ToolSpec

logger = logging.getLogger(__name__)


def ensure_authenticated(context: SessionContext, tool: Optional[ToolSpec]) -> None:
    """
    Reject a protected tool call when the session is not logged in.

    Args:
        context: Session context of the caller
        tool: Tool being called (None for unknown tools, which pass through)

    Raises:
        AuthRequired: If the tool requires auth and no access token is held
    """
    if tool is None or not tool.requires_auth:
        return
    if not context.is_authenticated:
        logger.warning(f"Authentication required for tool {tool.name}")
        raise AuthRequired(context.credentials.missing_hint)


def bearer_token_from_header(authorization: Optional[str]) -> Optional[str]:
    """
    Extract the token from an ``Authorization: Bearer <token>`` header.

    Returns:
        The token, or None if the header is absent or not a bearer header
    """
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None
