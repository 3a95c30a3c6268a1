"""Session and credential management for MCP connections."""

from .context import SESSION_KEY, SessionContext, SessionRegistry
from .credentials import (
    API_KEY_ENV_VAR,
    Credentials,
    CredentialStore,
)

__all__ = [
    "API_KEY_ENV_VAR",
    "Credentials",
    "CredentialStore",
    "SESSION_KEY",
    "SessionContext",
    "SessionRegistry",
]
