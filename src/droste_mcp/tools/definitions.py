"""
Tool catalog: names, descriptions and JSON Schema input contracts.

The schemas are the protocol-facing contract; the dispatcher validates
arguments against them before any backend call.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List

from . import cv_tools


ToolHandler = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class ToolSpec:
    """
    Declaration of one MCP tool.

    Attributes:
        name: Tool name exposed to MCP clients (e.g., "getCvFields")
        description: Human-readable tool description
        input_schema: JSON Schema for the tool arguments
        handler: Coroutine (gateway, context, arguments) -> payload
        failure_label: Prefix for error messages ("Failed to get CV fields")
        requires_auth: Whether the session must hold credentials
    """

    name: str
    description: str
    input_schema: Dict[str, Any]
    handler: ToolHandler
    failure_label: str
    requires_auth: bool = True

    def to_mcp(self) -> Dict[str, Any]:
        """Serialize for a tools/list response."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


LOGIN_SCHEMA = {
    "type": "object",
    "properties": {
        "email": {"type": "string", "description": "User's email address."},
        "password": {"type": "string", "description": "User's password."},
    },
    "required": ["email", "password"],
}

CV_OVERVIEW_SCHEMA = {
    "type": "object",
    "properties": {},
    "required": [],
}

CV_FIELDS_SCHEMA = {
    "type": "object",
    "properties": {
        "cvId": {"type": "string", "description": "The CV ID to get fields for."},
    },
    "required": ["cvId"],
}

FIELD_VERSIONS_SCHEMA = {
    "type": "object",
    "properties": {
        "fieldId": {"type": "string", "description": "The field ID to get versions for."},
    },
    "required": ["fieldId"],
}

MEDIA_SCHEMA = {
    "type": "object",
    "properties": {
        "key": {
            "type": "string",
            "description": "The media key from field details (e.g., 'uploads/user-id/file-id.png')",
        },
    },
    "required": ["key"],
}

SEARCH_FIELD_TYPES = ["job", "skill", "certification", "education", "all"]

SEARCH_SCHEMA = {
    "type": "object",
    "properties": {
        "query": {
            "type": "string",
            "description": "Search query (e.g., 'AWS certifications', 'Mercedes', 'Python skills')",
        },
        "type": {
            "type": "string",
            "enum": SEARCH_FIELD_TYPES,
            "description": "Filter by field type (optional)",
        },
        "dateRange": {
            "type": "object",
            "properties": {
                "from": {"type": "string", "format": "date"},
                "to": {"type": "string", "format": "date"},
            },
            "description": "Filter by date range (optional)",
        },
    },
    "required": ["query"],
}

BACKEND_ACTION_SCHEMA = {
    "type": "object",
    "properties": {
        "actionName": {"type": "string", "description": "The name of the action to perform."},
        "payload": {
            "type": "object",
            "description": "Data payload for the action.",
            "additionalProperties": True,
        },
    },
    "required": ["actionName"],
}

TEST_TOOL_SCHEMA = {
    "type": "object",
    "properties": {
        "message": {"type": "string", "description": "Test message"},
    },
    "required": [],
}


TOOL_SPECS: List[ToolSpec] = [
    ToolSpec(
        name="loginToMcp",
        description="Logs the current session into the MCP server to enable access to protected tools.",
        input_schema=LOGIN_SCHEMA,
        handler=cv_tools.login_to_mcp,
        failure_label="Login failed",
        requires_auth=False,
    ),
    ToolSpec(
        name="getCvOverview",
        description="Fetches an overview of the user's CVs and their fields.",
        input_schema=CV_OVERVIEW_SCHEMA,
        handler=cv_tools.get_cv_overview,
        failure_label="Failed to get CV overview",
    ),
    ToolSpec(
        name="getCvFields",
        description="Fetches all fields for a specific CV by CV ID.",
        input_schema=CV_FIELDS_SCHEMA,
        handler=cv_tools.get_cv_fields,
        failure_label="Failed to get CV fields",
    ),
    ToolSpec(
        name="getFieldVersions",
        description="Fetches all versions for a specific field by field ID.",
        input_schema=FIELD_VERSIONS_SCHEMA,
        handler=cv_tools.get_field_versions,
        failure_label="Failed to get field versions",
    ),
    ToolSpec(
        name="getMedia",
        description="Gets a secure time-limited URL for media files stored in the system.",
        input_schema=MEDIA_SCHEMA,
        handler=cv_tools.get_media,
        failure_label="Failed to get media",
    ),
    ToolSpec(
        name="searchCvs",
        description=(
            "Search across all CVs for specific information like companies, "
            "skills, certifications, etc."
        ),
        input_schema=SEARCH_SCHEMA,
        handler=cv_tools.search_cvs,
        failure_label="Search failed",
    ),
    ToolSpec(
        name="triggerBackendAction",
        description="Triggers a generic action on the backend server.",
        input_schema=BACKEND_ACTION_SCHEMA,
        handler=cv_tools.trigger_backend_action,
        failure_label="Failed to trigger action",
    ),
    ToolSpec(
        name="testTool",
        description="A simple test tool that just returns a message",
        input_schema=TEST_TOOL_SCHEMA,
        handler=cv_tools.run_test_tool,
        failure_label="Test tool failed",
        requires_auth=False,
    ),
]

TOOL_CATALOG: Dict[str, ToolSpec] = {spec.name: spec for spec in TOOL_SPECS}
