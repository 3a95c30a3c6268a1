"""
REST-style HTTP wrapper around the protocol server.

Each POST / is sent through the in-memory transport and the route waits
for the correlated response. Credentials come per request from an
``Authorization: Bearer`` header.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from droste_mcp.auth import bearer_token_from_header
from droste_mcp.errors import (
    AUTH_REQUIRED,
    INTERNAL_ERROR,
    CorrelationTimeoutError,
    RPCError,
    TransportError,
)
from droste_mcp.protocol import ProtocolServer, current_context, error_response
from droste_mcp.session import SessionContext
from droste_mcp.transport import InMemoryTransport

logger = logging.getLogger(__name__)


def create_wrapper_app(protocol: ProtocolServer, transport: InMemoryTransport) -> FastAPI:
    """
    Build the wrapper FastAPI app.

    The protocol server is connected to the transport on startup; on
    shutdown the transport is stopped, rejecting anything still pending.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await protocol.connect(transport)
        await transport.start()
        logger.info("HTTP wrapper ready at POST /")
        try:
            yield
        finally:
            await transport.stop()
            await protocol.close()
            await protocol.dispatcher.gateway.aclose()

    app = FastAPI(
        title="Droste CV MCP Server",
        version=protocol.version,
        description="HTTP wrapper for the Droste CV MCP server",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.protocol = protocol
    app.state.transport = transport

    @app.get("/mcp/capabilities")
    async def capabilities():
        return protocol.capabilities()

    @app.post("/")
    async def handle_request(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse(
                {"error": "Invalid MCP request payload. Body must be JSON."}, status_code=400
            )
        if not isinstance(payload, dict) or not payload.get("method"):
            return JSONResponse(
                {"error": "Invalid MCP request payload. 'method' is required."}, status_code=400
            )

        context = SessionContext.from_bearer(
            bearer_token_from_header(request.headers.get("authorization"))
        )
        request_id = payload.get("id")
        method = payload["method"]

        if isinstance(method, str) and method.startswith("notifications/"):
            await protocol.handle({**payload, "jsonrpc": "2.0"}, context)
            return Response(status_code=204)

        logger.info(f"HTTP wrapper received {method}")
        token = current_context.set(context)
        try:
            result = await transport.send(payload)
        except RPCError as e:
            status = 401 if e.code == AUTH_REQUIRED else 500
            logger.warning(f"{method} failed with JSON-RPC error {e.code}: {e.message}")
            return JSONResponse(error_response(request_id, e.code, e.message, e.data), status_code=status)
        except CorrelationTimeoutError as e:
            logger.error(f"{method} timed out: {e}")
            return JSONResponse(error_response(request_id, INTERNAL_ERROR, str(e)), status_code=504)
        except TransportError as e:
            logger.error(f"{method} failed in transport: {e}")
            return JSONResponse(error_response(request_id, INTERNAL_ERROR, str(e)), status_code=500)
        finally:
            current_context.reset(token)

        return JSONResponse(result)

    return app
