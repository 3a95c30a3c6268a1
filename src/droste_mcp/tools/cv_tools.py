"""
CV tool operations.

Each operation forwards one tool call to the backend API through the
gateway and returns the backend payload unchanged.
"""

import logging
from typing import Any, Dict
from urllib.parse import quote

from droste_mcp.adapters import BackendGateway
from droste_mcp.session import SessionContext

logger = logging.getLogger(__name__)


def _segment(value: Any) -> str:
    return quote(str(value), safe="")


async def login_to_mcp(
    gateway: BackendGateway, context: SessionContext, arguments: Dict[str, Any]
) -> Dict[str, Any]:
    """Log the session into the backend and remember the user."""
    email = arguments["email"]
    body = await gateway.login(context.credentials, email, arguments["password"])

    user = body.get("user") if isinstance(body.get("user"), dict) else None
    context.user = user
    display_name = (user or {}).get("name") or email
    return {"message": f"Login successful! Welcome {display_name}.", "user": user}


async def get_cv_overview(
    gateway: BackendGateway, context: SessionContext, arguments: Dict[str, Any]
) -> Any:
    response = await gateway.call(context.credentials, "GET", "/api/cvs")
    return response.data


async def get_cv_fields(
    gateway: BackendGateway, context: SessionContext, arguments: Dict[str, Any]
) -> Any:
    cv_id = arguments["cvId"]
    logger.debug(f"Fetching fields for CV {cv_id}")
    response = await gateway.call(
        context.credentials, "GET", f"/api/cvs/{_segment(cv_id)}/fields"
    )
    return response.data


async def get_field_versions(
    gateway: BackendGateway, context: SessionContext, arguments: Dict[str, Any]
) -> Any:
    field_id = arguments["fieldId"]
    response = await gateway.call(
        context.credentials, "GET", f"/api/fields/{_segment(field_id)}/versions"
    )
    return response.data


async def get_media(
    gateway: BackendGateway, context: SessionContext, arguments: Dict[str, Any]
) -> Any:
    """Request a secure, time-limited URL for a stored media key."""
    response = await gateway.call(
        context.credentials,
        "GET",
        "/api/media/secure-url",
        params={"key": arguments["key"]},
    )
    return response.data


async def search_cvs(
    gateway: BackendGateway, context: SessionContext, arguments: Dict[str, Any]
) -> Any:
    # Tool argument "type" maps to the backend's "fieldType"
    body: Dict[str, Any] = {"query": arguments["query"]}
    if arguments.get("type"):
        body["fieldType"] = arguments["type"]
    if arguments.get("dateRange"):
        body["dateRange"] = arguments["dateRange"]

    response = await gateway.call(context.credentials, "POST", "/api/search/cvs", payload=body)
    return response.data


async def trigger_backend_action(
    gateway: BackendGateway, context: SessionContext, arguments: Dict[str, Any]
) -> Any:
    action_name = arguments["actionName"]
    response = await gateway.call(
        context.credentials,
        "POST",
        f"/action/{_segment(action_name)}",
        payload=arguments.get("payload") or {},
    )
    return response.data


async def run_test_tool(
    gateway: BackendGateway, context: SessionContext, arguments: Dict[str, Any]
) -> str:
    """Echo the message back without touching the backend."""
    return arguments.get("message") or "Test successful!"

