"""Session context management for the Droste CV MCP server."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional

from .credentials import Credentials, CredentialStore

logger = logging.getLogger(__name__)


SESSION_KEY = "mcp_session_id"
"""Key under which the session id is kept in the signed session cookie."""


@dataclass
class SessionContext:
    """
    Credential and user context passed into every tool invocation.

    One context exists per process (stdio transport), per cookie session
    (JSON-RPC transport) or per request (HTTP wrapper with bearer token).
    """

    session_id: str
    credentials: CredentialStore
    user: Optional[Dict[str, Any]] = None
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @classmethod
    def for_process(cls, api_key: Optional[str] = None) -> "SessionContext":
        """
        Create the process-wide context used by the stdio transport.

        Args:
            api_key: Static backend API key (from DROSTE_CV_API_KEY)

        Returns:
            SessionContext seeded with the key, or empty when no key is set
        """
        return cls(
            session_id="process",
            credentials=CredentialStore.from_api_key(api_key),
        )

    @classmethod
    def from_bearer(cls, token: Optional[str]) -> "SessionContext":
        """Create a request-scoped context from an Authorization bearer token."""
        store = CredentialStore()
        if token:
            store.set(Credentials(access_token=token, expires_implicitly=True))
        return cls(session_id=f"request-{uuid.uuid4().hex[:8]}", credentials=store)

    @property
    def is_authenticated(self) -> bool:
        return self.credentials.is_authenticated

    def login(self, credentials: Credentials, user: Optional[Dict[str, Any]] = None) -> None:
        self.credentials.set(credentials)
        self.user = user

    def logout(self) -> None:
        """Clear credentials and user for this context."""
        self.credentials.clear()
        self.user = None
        logger.info(f"Session {self.session_id} logged out")


class SessionRegistry:
    """
    In-memory map of cookie session id to SessionContext.

    Only the opaque session id travels in the cookie; tokens stay in this
    process and are lost on restart. A session is registered once it holds
    credentials and forgotten when it loses them, so anonymous traffic
    never grows the map.
    """

    def __init__(self):
        self._sessions: Dict[str, SessionContext] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def resolve(self, session: MutableMapping[str, Any]) -> SessionContext:
        """
        Find the context for a cookie session.

        Args:
            session: Starlette session mapping (request.session)

        Returns:
            The registered context, or a fresh unregistered one when the
            cookie carries no known session id
        """
        session_id = session.get(SESSION_KEY)
        if session_id and session_id in self._sessions:
            return self._sessions[session_id]

        if session_id:
            # Unknown id, e.g. issued before a restart
            session.pop(SESSION_KEY, None)
        return SessionContext(session_id=uuid.uuid4().hex, credentials=CredentialStore())

    def sync(self, session: MutableMapping[str, Any], context: SessionContext) -> None:
        """
        Register or forget a context after a request, based on its credentials.

        Args:
            session: Starlette session mapping that receives the session id
            context: Context returned by resolve() for the same request
        """
        registered = self._sessions.get(context.session_id) is context
        if context.is_authenticated and not registered:
            session[SESSION_KEY] = context.session_id
            self._sessions[context.session_id] = context
            logger.debug(f"Registered session {context.session_id[:8]}")
        elif registered and not context.is_authenticated:
            self.drop(session)

    def get(self, session_id: str) -> Optional[SessionContext]:
        return self._sessions.get(session_id)

    def drop(self, session: MutableMapping[str, Any]) -> None:
        """Forget the context for a cookie session and clear its credentials."""
        session_id = session.pop(SESSION_KEY, None)
        context = self._sessions.pop(session_id, None) if session_id else None
        if context is not None:
            context.logout()
