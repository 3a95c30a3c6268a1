"""Credential storage for backend API access."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


API_KEY_ENV_VAR = "DROSTE_CV_API_KEY"

DEFAULT_MISSING_HINT = "Please login first using the loginToMcp tool"
MISSING_API_KEY_HINT = (
    f"{API_KEY_ENV_VAR} environment variable not set. Please add your API key "
    "to the MCP client configuration or login using the loginToMcp tool."
)


@dataclass(frozen=True)
class Credentials:
    """
    One set of backend credentials.

    Attributes:
        access_token: Bearer token sent with every backend call
        refresh_token: Token used to obtain a new access token (optional)
        expires_implicitly: True when expiry is only discovered via a 401
    """

    access_token: str
    refresh_token: Optional[str] = None
    expires_implicitly: bool = True

    def __repr__(self) -> str:
        return (
            "Credentials(access_token='***', "
            f"refresh_token={'***' if self.refresh_token else None}, "
            f"expires_implicitly={self.expires_implicitly})"
        )

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)


class CredentialStore:
    """
    Holds at most one credential set for a session or process.

    All credential access goes through get/set/update_tokens/clear. Every
    mutation is synchronous, so a coroutine never observes a half-updated
    credential. ``refresh_lock`` serializes token refreshes for this store.
    """

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        missing_hint: str = DEFAULT_MISSING_HINT,
    ):
        self._credentials = credentials
        self.missing_hint = missing_hint
        self.refresh_lock = asyncio.Lock()

    @classmethod
    def from_api_key(cls, api_key: Optional[str]) -> "CredentialStore":
        """
        Create the static-key variant.

        The key is used as the access token and never refreshed. An absent
        key yields an empty store; the gateway reports it on first use.
        """
        if not api_key:
            return cls(missing_hint=MISSING_API_KEY_HINT)
        return cls(Credentials(access_token=api_key, expires_implicitly=False))

    def __repr__(self) -> str:
        return f"CredentialStore(authenticated={self.is_authenticated})"

    @property
    def is_authenticated(self) -> bool:
        return self._credentials is not None and bool(self._credentials.access_token)

    def get(self) -> Optional[Credentials]:
        return self._credentials

    def set(self, credentials: Credentials) -> None:
        self._credentials = credentials
        logger.debug("Credentials stored")

    def update_tokens(self, access_token: str, refresh_token: Optional[str] = None) -> Credentials:
        """
        Replace the access token after a refresh.

        Keeps the current refresh token when the backend did not rotate it.

        Returns:
            The new Credentials value
        """
        current = self._credentials
        if refresh_token is None and current is not None:
            refresh_token = current.refresh_token
        self._credentials = Credentials(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_implicitly=current.expires_implicitly if current else True,
        )
        logger.debug("Access token refreshed")
        return self._credentials

    def clear(self) -> None:
        if self._credentials is not None:
            logger.info("Clearing stored credentials")
        self._credentials = None
