"""
JSON-RPC endpoint with per-session credentials.

Each browser or client session is identified by a signed cookie that
carries only an opaque session id; the session's backend tokens stay in
the in-process SessionRegistry.
"""

import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.middleware.sessions import SessionMiddleware

from droste_mcp.auth import ensure_authenticated
from droste_mcp.errors import (
    AUTH_REQUIRED,
    INVALID_REQUEST,
    PARSE_ERROR,
    TOOL_EXECUTION_ERROR,
    AuthRequired,
)
from droste_mcp.protocol import ProtocolServer, error_response, is_notification
from droste_mcp.session import SessionRegistry

logger = logging.getLogger(__name__)


SESSION_COOKIE = "droste_mcp_session"

_STATUS_BY_CODE = {
    PARSE_ERROR: 400,
    INVALID_REQUEST: 400,
    AUTH_REQUIRED: 401,
    TOOL_EXECUTION_ERROR: 500,
}


def _status_for(response: Dict[str, Any]) -> int:
    error = response.get("error")
    if not error:
        return 200
    return _STATUS_BY_CODE.get(error.get("code"), 200)


def _requested_tool(message: Any) -> Optional[str]:
    """Name of the tool a tools/call request targets, if it has one."""
    if not isinstance(message, dict) or message.get("method") != "tools/call":
        return None
    params = message.get("params")
    if not isinstance(params, dict):
        return None
    name = params.get("tool_id") or params.get("name")
    return name if isinstance(name, str) else None


def create_jsonrpc_app(
    protocol: ProtocolServer,
    registry: Optional[SessionRegistry] = None,
    session_secret: Optional[str] = None,
    https_only: bool = False,
) -> FastAPI:
    """
    Build the JSON-RPC FastAPI app.

    Args:
        protocol: Protocol server that handles every message
        registry: Session registry (a fresh one if None)
        session_secret: Cookie signing secret (generated per process if None)
        https_only: Mark the session cookie Secure

    Returns:
        FastAPI app with POST /mcp, POST /auth/logout and GET /health
    """
    if registry is None:
        registry = SessionRegistry()

    if not session_secret:
        logger.warning(
            "MCP_SESSION_SECRET not set; using a generated secret. "
            "Sessions will not survive a restart."
        )
        session_secret = secrets.token_urlsafe(32)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("JSON-RPC endpoint ready at POST /mcp")
        yield
        await protocol.dispatcher.gateway.aclose()

    app = FastAPI(
        title="Droste CV MCP Server",
        version=protocol.version,
        description="MCP JSON-RPC endpoint for the Droste CV backend",
        lifespan=lifespan,
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=session_secret,
        session_cookie=SESSION_COOKIE,
        same_site="lax",
        https_only=https_only,
    )
    app.state.registry = registry
    app.state.protocol = protocol

    @app.post("/mcp")
    async def mcp_endpoint(request: Request):
        """Main JSON-RPC 2.0 endpoint for MCP."""
        try:
            message = await request.json()
        except ValueError:
            return JSONResponse(error_response(None, PARSE_ERROR, "Parse error"), status_code=400)

        if isinstance(message, list):
            return JSONResponse(
                error_response(None, INVALID_REQUEST, "Batch requests are not supported"),
                status_code=400,
            )

        context = registry.resolve(request.session)

        tool_name = _requested_tool(message)
        if tool_name is not None and not is_notification(message):
            try:
                ensure_authenticated(context, protocol.dispatcher.get_tool(tool_name))
            except AuthRequired as e:
                return JSONResponse(
                    error_response(
                        message.get("id"),
                        AUTH_REQUIRED,
                        str(e),
                        {"tool": tool_name, "reason": "AuthRequired"},
                    ),
                    status_code=401,
                )

        response = await protocol.handle(message, context)
        registry.sync(request.session, context)
        if response is None:
            return Response(status_code=204)
        return JSONResponse(response, status_code=_status_for(response))

    @app.post("/auth/logout")
    async def logout(request: Request):
        registry.drop(request.session)
        return Response(status_code=204)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "server": protocol.name,
            "version": protocol.version,
            "sessions": len(registry),
        }

    return app
